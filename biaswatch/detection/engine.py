"""Change detection for fetched fundamental data.

Given the raw records fetched for one (asset, data_type) source, decide
what is new since the last pass, store the new records as snapshots and
replace the source's cursor. Exactly one strategy runs per call, chosen by
what the source declares:

1. timestamp: records strictly newer than the cursor's last_data_timestamp
2. id: records whose id is not among the cursor's known_ids
3. hash: SHA-256 of the canonical batch; any difference marks the whole
   batch as new

Fetch and parse failures are reported as "no changes" with an error.
Storage failures propagate to the caller.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import time
from collections import defaultdict
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Literal

from biaswatch.core.config import settings
from biaswatch.core.exceptions import ExtractionError
from biaswatch.core.logging import get_logger
from biaswatch.domain import (
    ChangeDetectionCursor,
    FundamentalSnapshot,
    SourceDescriptor,
    source_key,
    utcnow,
)
from biaswatch.repositories.base import Storage
from biaswatch.sources.base import DataSource
from biaswatch.sources.extraction import extract_value, parse_timestamp


logger = get_logger("detection.engine")

DetectionMethod = Literal["timestamp", "id", "hash"]


@dataclass
class ChangeDetectionResult:
    """Outcome of one detection pass for one source."""

    source: str
    asset: str
    data_type: str
    has_changes: bool
    method: DetectionMethod
    new_records: list[FundamentalSnapshot] = field(default_factory=list)
    duration: float = 0.0  # seconds
    error: str | None = None

    @property
    def key(self) -> str:
        return source_key(self.asset, self.data_type)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "asset": self.asset,
            "data_type": self.data_type,
            "has_changes": self.has_changes,
            "method": self.method,
            "new_records": len(self.new_records),
            "duration": round(self.duration, 4),
            "error": self.error,
        }


def canonical_json(payload: Any) -> str:
    """Key-sorted compact JSON; non-JSON values are stringified."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)


def content_hash(payload: Any) -> str:
    return hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()


def check_records(raw_records: Any) -> None:
    """Raise ExtractionError unless raw_records is a list of mappings."""
    if not isinstance(raw_records, list):
        raise ExtractionError(
            f"Expected a list of records, got {type(raw_records).__name__}"
        )
    for index, record in enumerate(raw_records):
        if not isinstance(record, Mapping):
            raise ExtractionError(
                f"Record {index} is {type(record).__name__}, not a mapping",
                details={"index": index},
            )


def select_method(source: SourceDescriptor) -> DetectionMethod:
    if source.timestamp_field:
        return "timestamp"
    if source.id_field:
        return "id"
    return "hash"


@dataclass
class _Detection:
    """New raw records plus the cursor fields to write back."""

    new_records: list[tuple[datetime | None, dict[str, Any]]]
    cursor_changes: dict[str, Any]


class ChangeDetectionEngine:
    """Decides novelty per source and persists what is new."""

    def __init__(
        self,
        storage: Storage,
        data_source: DataSource | None = None,
        *,
        fetch_timeout: float | None = None,
        max_known_ids: int | None = None,
        check_frequency: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.storage = storage
        self.data_source = data_source
        self.fetch_timeout = fetch_timeout if fetch_timeout is not None else settings.fetch_timeout
        self.max_known_ids = max_known_ids or settings.max_known_ids
        self.check_frequency = check_frequency or settings.cursor_check_frequency_minutes
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # =========================================================================
    # Public API
    # =========================================================================

    async def check_source(self, source: SourceDescriptor) -> ChangeDetectionResult:
        """Fetch the source under the fetch timeout, then detect changes."""
        started = time.perf_counter()
        method = select_method(source)

        if self.data_source is None:
            return self._failed(source, method, started, "No data source configured")

        try:
            records = await asyncio.wait_for(
                self.data_source.fetch(source), timeout=self.fetch_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"Fetch for {source.name} timed out after {self.fetch_timeout}s")
            return self._failed(source, method, started, "Fetch timed out")
        except Exception as e:
            logger.warning(f"Fetch for {source.name} failed: {e}")
            return self._failed(source, method, started, str(e))

        return await self.detect_changes(source, records)

    async def detect_changes(
        self,
        source: SourceDescriptor,
        raw_records: list[dict[str, Any]],
        now: datetime | None = None,
    ) -> ChangeDetectionResult:
        """Detect and persist new records for one source."""
        started = time.perf_counter()
        method = select_method(source)
        now = now or self._clock()

        async with self._locks[source.key]:
            cursor = await self.storage.get_cursor(source.asset, source.data_type)
            if cursor is None:
                cursor = self._fresh_cursor(source.asset, source.data_type)

            try:
                check_records(raw_records)
                detection = self._detect(method, source, raw_records, cursor)
                values = [
                    (ts, record, extract_value(record, source.data_type))
                    for ts, record in detection.new_records
                ]
            except (ExtractionError, TypeError, ValueError) as e:
                logger.warning(f"Parsing records for {source.name} failed: {e}")
                return self._failed(source, method, started, str(e))

            stored = await self._store_snapshots(source, values, now)
            await self.storage.put_cursor(cursor.checked(now, **detection.cursor_changes))

        result = ChangeDetectionResult(
            source=source.name,
            asset=source.asset,
            data_type=source.data_type,
            has_changes=bool(stored),
            method=method,
            new_records=stored,
            duration=time.perf_counter() - started,
        )
        if result.has_changes:
            logger.info(
                f"Detected {len(stored)} new {source.data_type} records for "
                f"{source.asset} via {method}"
            )
        else:
            logger.debug(f"No changes for {source.key} via {method}")
        return result

    async def get_sources_needing_check(
        self, sources: Iterable[SourceDescriptor], now: datetime | None = None
    ) -> list[SourceDescriptor]:
        """Sources without a cursor or whose next scheduled check has passed."""
        now = now or self._clock()
        due = []
        for source in sources:
            cursor = await self.storage.get_cursor(source.asset, source.data_type)
            if cursor is None or cursor.needs_check(now):
                due.append(source)
        return due

    async def reset_cursor(self, asset: str, data_type: str) -> ChangeDetectionCursor:
        """Forget detection state so the next pass treats everything as new."""
        cursor = self._fresh_cursor(asset, data_type)
        async with self._locks[cursor.key]:
            await self.storage.put_cursor(cursor)
        logger.info(f"Reset change detection cursor for {cursor.key}")
        return cursor

    # =========================================================================
    # Strategies
    # =========================================================================

    def _detect(
        self,
        method: DetectionMethod,
        source: SourceDescriptor,
        records: list[dict[str, Any]],
        cursor: ChangeDetectionCursor,
    ) -> _Detection:
        if method == "timestamp":
            return self._detect_by_timestamp(source.timestamp_field, records, cursor)
        if method == "id":
            return self._detect_by_id(source.id_field, records, cursor)
        return self._detect_by_hash(records, cursor)

    def _detect_by_timestamp(
        self, field_name: str, records: list[dict[str, Any]], cursor: ChangeDetectionCursor
    ) -> _Detection:
        stamped = []
        for record in records:
            ts = parse_timestamp(record.get(field_name))
            if ts is not None:
                stamped.append((ts, record))

        last_seen = cursor.last_data_timestamp
        # Ties with the cursor are not new
        new = [(ts, r) for ts, r in stamped if last_seen is None or ts > last_seen]
        new.sort(key=lambda item: item[0])

        changes: dict[str, Any] = {}
        if stamped:
            newest = max(ts for ts, _ in stamped)
            if last_seen is None or newest > last_seen:
                changes["last_data_timestamp"] = newest
        return _Detection(new_records=new, cursor_changes=changes)

    def _detect_by_id(
        self, field_name: str, records: list[dict[str, Any]], cursor: ChangeDetectionCursor
    ) -> _Detection:
        known = set(cursor.known_ids)
        new = []
        seen_ids: list[str] = []
        for record in records:
            raw_id = record.get(field_name)
            if raw_id is None or raw_id == "":
                continue
            record_id = str(raw_id)
            if record_id not in known:
                new.append((None, record))
                known.add(record_id)
                seen_ids.append(record_id)

        known_ids = (list(cursor.known_ids) + seen_ids)[-self.max_known_ids:]
        return _Detection(new_records=new, cursor_changes={"known_ids": known_ids})

    def _detect_by_hash(
        self, records: list[dict[str, Any]], cursor: ChangeDetectionCursor
    ) -> _Detection:
        digest = content_hash(records)
        if digest == cursor.content_hash:
            return _Detection(new_records=[], cursor_changes={})
        # Any difference re-ingests the whole batch
        return _Detection(
            new_records=[(None, r) for r in records],
            cursor_changes={"content_hash": digest},
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _store_snapshots(
        self,
        source: SourceDescriptor,
        values: list[tuple[datetime | None, dict[str, Any], float]],
        now: datetime,
    ) -> list[FundamentalSnapshot]:
        if not values:
            return []

        latest = await self.storage.get_latest_snapshots(source.asset, source.data_type, limit=1)
        previous = latest[0].value if latest else None

        stored = []
        for index, (ts, record, value) in enumerate(values):
            # Records without their own time share the detection time,
            # spaced apart so each keeps a distinct key
            timestamp = ts or now + timedelta(microseconds=index)
            snapshot = FundamentalSnapshot(
                asset=source.asset,
                data_type=source.data_type,
                value=value,
                previous_value=previous,
                timestamp=timestamp,
                source=source.name,
                content_hash=content_hash(record),
                change_detected=True,
                last_updated=now,
            )
            if await self.storage.put_snapshot(snapshot):
                stored.append(snapshot)
                previous = value
        return stored

    def _fresh_cursor(self, asset: str, data_type: str) -> ChangeDetectionCursor:
        return ChangeDetectionCursor(
            asset=asset, data_type=data_type, check_frequency=self.check_frequency
        )

    def _failed(
        self, source: SourceDescriptor, method: DetectionMethod, started: float, error: str
    ) -> ChangeDetectionResult:
        return ChangeDetectionResult(
            source=source.name,
            asset=source.asset,
            data_type=source.data_type,
            has_changes=False,
            method=method,
            duration=time.perf_counter() - started,
            error=error,
        )
