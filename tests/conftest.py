"""Pytest configuration and fixtures."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

import pytest

from biaswatch.core.config import Settings
from biaswatch.core.rate_limiter import AssetRateLimiter
from biaswatch.detection.engine import ChangeDetectionEngine
from biaswatch.domain import SourceDescriptor
from biaswatch.repositories.memory import InMemoryStorage
from biaswatch.sources.registry import SourceRegistry


T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeDataSource:
    """Serves canned records per source key and records every fetch."""

    def __init__(self, records: dict[str, list[dict[str, Any]]] | None = None):
        self.records: dict[str, list[dict[str, Any]]] = records or {}
        self.errors: dict[str, Exception] = {}
        self.delay: float = 0.0
        self.gate: asyncio.Event | None = None
        self.calls: list[str] = []

    async def fetch(self, source: SourceDescriptor) -> list[dict[str, Any]]:
        self.calls.append(source.key)
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if source.key in self.errors:
            raise self.errors[source.key]
        return [dict(r) for r in self.records.get(source.key, [])]

    def calls_for(self, key: str) -> int:
        return sum(1 for k in self.calls if k == key)


def make_source(
    asset: str = "USD",
    data_type: str = "earnings",
    timestamp_field: str | None = "timestamp",
    id_field: str | None = None,
) -> SourceDescriptor:
    return SourceDescriptor(
        name=f"{asset.lower()}_{data_type}",
        asset=asset,
        data_type=data_type,
        url=f"https://data.example.com/{asset}/{data_type}",
        timestamp_field=timestamp_field,
        id_field=id_field,
    )


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        environment="development",
        use_memory_storage=True,
        scheduler_enabled=False,
        scheduler_initial_jitter_minutes=0,
        rate_limit_enabled=False,
        tracked_assets=["USD", "EUR"],
        tracked_data_types=["earnings", "revenue", "debt_ratio", "economic_indicator"],
        source_url_template="https://data.example.com/{asset}/{data_type}",
        source_timestamp_field="timestamp",
        max_parallel_requests=4,
        fetch_timeout=5,
        log_format="text",
    )


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def data_source() -> FakeDataSource:
    return FakeDataSource()


@pytest.fixture
def engine(storage, data_source) -> ChangeDetectionEngine:
    return ChangeDetectionEngine(
        storage,
        data_source,
        fetch_timeout=5,
        max_known_ids=100,
        check_frequency=240,
        clock=lambda: T0,
    )


@pytest.fixture
def registry() -> SourceRegistry:
    return SourceRegistry(
        [
            make_source("USD", "earnings"),
            make_source("USD", "revenue"),
            make_source("EUR", "economic_indicator"),
        ]
    )


@pytest.fixture
def open_limiter() -> AssetRateLimiter:
    return AssetRateLimiter(enabled=False)
