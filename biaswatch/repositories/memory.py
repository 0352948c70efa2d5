"""In-process Storage implementation."""

from __future__ import annotations

import asyncio
from collections import defaultdict

from biaswatch.core.logging import get_logger
from biaswatch.domain import BiasScore, ChangeDetectionCursor, FundamentalSnapshot, source_key


logger = get_logger("repositories.memory")


class InMemoryStorage:
    """Dict-backed storage for development runs and tests.

    Writes to the same (asset, data_type) key are serialized by a per-key lock.
    """

    def __init__(self) -> None:
        self._cursors: dict[str, ChangeDetectionCursor] = {}
        self._snapshots: dict[str, list[FundamentalSnapshot]] = defaultdict(list)
        self._snapshot_keys: set[tuple] = set()
        self._scores: dict[str, list[BiasScore]] = defaultdict(list)
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def get_cursor(self, asset: str, data_type: str) -> ChangeDetectionCursor | None:
        return self._cursors.get(source_key(asset, data_type))

    async def put_cursor(self, cursor: ChangeDetectionCursor) -> None:
        async with self._locks[cursor.key]:
            self._cursors[cursor.key] = cursor

    async def put_snapshot(self, snapshot: FundamentalSnapshot) -> bool:
        async with self._locks[source_key(snapshot.asset, snapshot.data_type)]:
            if snapshot.key in self._snapshot_keys:
                logger.debug(f"Duplicate snapshot ignored: {snapshot.key}")
                return False
            self._snapshot_keys.add(snapshot.key)
            self._snapshots[snapshot.asset].append(snapshot)
            return True

    async def get_latest_snapshots(
        self, asset: str, data_type: str | None = None, limit: int = 50
    ) -> list[FundamentalSnapshot]:
        rows = self._snapshots.get(asset.upper(), [])
        if data_type is not None:
            rows = [s for s in rows if s.data_type == data_type]
        # Stable sort keeps later inserts first among equal timestamps
        ordered = sorted(reversed(rows), key=lambda s: s.timestamp, reverse=True)
        return ordered[:limit]

    async def put_bias_score(self, score: BiasScore) -> None:
        self._scores[score.asset.upper()].append(score)

    async def get_latest_bias_score(self, asset: str) -> BiasScore | None:
        history = self._scores.get(asset.upper())
        if not history:
            return None
        return max(reversed(history), key=lambda s: s.timestamp)

    async def get_all_latest_bias_scores(self) -> list[BiasScore]:
        latest = []
        for asset in sorted(self._scores):
            score = await self.get_latest_bias_score(asset)
            if score is not None:
                latest.append(score)
        return latest
