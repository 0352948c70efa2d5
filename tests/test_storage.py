"""Tests for the Storage implementations (in-memory and SQLAlchemy on SQLite)."""

from datetime import timedelta

import pytest
import pytest_asyncio

from biaswatch.core.exceptions import StorageError
from biaswatch.database.connection import (
    create_engine_for,
    create_tables,
    get_async_database_url,
    make_session_factory,
)
from biaswatch.domain import Bias, BiasScore, ChangeDetectionCursor, FundamentalSnapshot
from biaswatch.repositories.base import Storage
from biaswatch.repositories.memory import InMemoryStorage
from biaswatch.repositories.storage_orm import SqlAlchemyStorage

from conftest import T0


def make_snapshot(value: float, minutes: int = 0, data_type: str = "earnings", asset: str = "USD"):
    return FundamentalSnapshot(
        asset=asset,
        data_type=data_type,
        value=value,
        timestamp=T0 + timedelta(minutes=minutes),
        source="test",
        content_hash=f"h{value}{minutes}",
    )


def make_score(asset: str, minutes: int, bias: Bias = Bias.NEUTRAL, confidence: float = 0.5):
    return BiasScore(
        asset=asset,
        timestamp=T0 + timedelta(minutes=minutes),
        earnings_growth_score=1,
        total_score=1,
        weighted_score=0.2,
        bias=bias,
        confidence=confidence,
        bullish_factors=["Earnings Growth (+1)"],
    )


@pytest_asyncio.fixture(params=["memory", "orm"])
async def store(request, tmp_path):
    if request.param == "memory":
        yield InMemoryStorage()
        return

    engine = create_engine_for(f"sqlite:///{tmp_path / 'biaswatch.db'}")
    await create_tables(engine)
    yield SqlAlchemyStorage(make_session_factory(engine))
    await engine.dispose()


class TestDatabaseUrl:
    def test_async_drivers(self):
        assert get_async_database_url("postgresql://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"
        assert get_async_database_url("postgres://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"
        assert get_async_database_url("sqlite:///x.db") == "sqlite+aiosqlite:///x.db"
        assert get_async_database_url("sqlite+aiosqlite:///x.db") == "sqlite+aiosqlite:///x.db"


class TestStorage:
    """Behaviour shared by every Storage implementation."""

    @pytest.mark.asyncio
    async def test_implements_protocol(self, store):
        assert isinstance(store, Storage)

    @pytest.mark.asyncio
    async def test_snapshot_insert_is_append_only(self, store):
        assert await store.put_snapshot(make_snapshot(1.0)) is True
        assert await store.put_snapshot(make_snapshot(2.0)) is False

        stored = await store.get_latest_snapshots("USD", "earnings")
        assert [s.value for s in stored] == [1.0]

    @pytest.mark.asyncio
    async def test_latest_snapshots_order_filter_and_limit(self, store):
        for minutes, value in [(0, 1.0), (20, 3.0), (10, 2.0)]:
            await store.put_snapshot(make_snapshot(value, minutes))
        await store.put_snapshot(make_snapshot(9.0, 30, data_type="revenue"))
        await store.put_snapshot(make_snapshot(7.0, 40, asset="EUR"))

        everything = await store.get_latest_snapshots("usd")
        earnings = await store.get_latest_snapshots("USD", "earnings")
        capped = await store.get_latest_snapshots("USD", "earnings", limit=2)

        assert [s.value for s in everything] == [9.0, 3.0, 2.0, 1.0]
        assert [s.value for s in earnings] == [3.0, 2.0, 1.0]
        assert [s.value for s in capped] == [3.0, 2.0]
        assert everything[0].timestamp == T0 + timedelta(minutes=30)

    @pytest.mark.asyncio
    async def test_cursor_replaced_whole(self, store):
        assert await store.get_cursor("USD", "earnings") is None

        cursor = ChangeDetectionCursor(asset="USD", data_type="earnings", known_ids=["a"])
        await store.put_cursor(cursor.checked(T0, content_hash="abc"))
        await store.put_cursor(cursor.checked(T0 + timedelta(hours=1), known_ids=["a", "b"]))

        stored = await store.get_cursor("USD", "earnings")
        assert stored.known_ids == ["a", "b"]
        assert stored.content_hash is None
        assert stored.last_check_timestamp == T0 + timedelta(hours=1)
        assert stored.next_scheduled_check == T0 + timedelta(hours=5)

    @pytest.mark.asyncio
    async def test_latest_bias_score(self, store):
        await store.put_bias_score(make_score("USD", 0, Bias.BEARISH))
        await store.put_bias_score(make_score("USD", 30, Bias.BULLISH))
        await store.put_bias_score(make_score("USD", 10, Bias.STRONG_BEARISH))

        latest = await store.get_latest_bias_score("USD")

        assert latest.bias == Bias.BULLISH
        assert latest.bullish_factors == ["Earnings Growth (+1)"]
        assert latest.earnings_growth_score == 1
        assert await store.get_latest_bias_score("JPY") is None

    @pytest.mark.asyncio
    async def test_all_latest_bias_scores(self, store):
        await store.put_bias_score(make_score("USD", 0, confidence=0.2))
        await store.put_bias_score(make_score("USD", 30, confidence=0.9))
        await store.put_bias_score(make_score("EUR", 5, confidence=0.4))

        latest = {s.asset: s for s in await store.get_all_latest_bias_scores()}

        assert set(latest) == {"USD", "EUR"}
        assert latest["USD"].confidence == 0.9
        assert latest["EUR"].confidence == 0.4


class TestOrmStorageErrors:
    @pytest.mark.asyncio
    async def test_backend_errors_become_storage_errors(self, tmp_path):
        """Missing tables surface as StorageError, not SQLAlchemy exceptions."""
        engine = create_engine_for(f"sqlite:///{tmp_path / 'empty.db'}")
        storage = SqlAlchemyStorage(make_session_factory(engine))
        try:
            with pytest.raises(StorageError):
                await storage.get_latest_snapshots("USD")
        finally:
            await engine.dispose()
