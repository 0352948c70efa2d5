"""Tests for the BiasService facade."""

from datetime import timedelta

import pytest

from biaswatch.domain import Bias, CalendarEventType, FundamentalSnapshot, ScheduledEvent
from biaswatch.services.bias_service import (
    BiasService,
    data_quality,
    database_health,
    system_load,
)

from conftest import T0


def usd_records() -> dict:
    return {
        "USD:earnings": [
            {"timestamp": "2024-01-01T00:00:00Z", "earnings": 100},
            {"timestamp": "2024-02-01T00:00:00Z", "earnings": 130},
        ],
        "USD:revenue": [{"timestamp": "2024-02-01T00:00:00Z", "totalRevenue": 20}],
        "USD:debt_ratio": [{"timestamp": "2024-02-01T00:00:00Z", "debtToEquity": 0.25}],
        "USD:economic_indicator": [{"timestamp": "2024-02-01T00:00:00Z", "actual": 85}],
    }


@pytest.fixture
def service(storage, data_source, test_settings, open_limiter):
    return BiasService(
        storage,
        data_source,
        config=test_settings,
        rate_limiter=open_limiter,
        clock=lambda: T0,
    )


class TestStatusLevels:
    def test_data_quality(self):
        assert [data_quality(n) for n in (0, 3, 4, 7, 8)] == ["LOW", "LOW", "MEDIUM", "MEDIUM", "HIGH"]

    def test_database_health(self):
        assert [database_health(n) for n in (0, 3, 4, 8)] == ["ERROR", "ERROR", "WARNING", "HEALTHY"]

    def test_system_load(self):
        assert [system_load(n) for n in (0, 1, 2, 4, 5)] == ["LOW", "LOW", "MEDIUM", "MEDIUM", "HIGH"]


class TestBiasService:
    """Tests for queries and commands on the facade."""

    def test_sources_built_from_settings(self, service):
        assert len(service.sources) == 8
        source = service.sources.get("EUR", "debt_ratio")
        assert source.url == "https://data.example.com/EUR/debt_ratio"
        assert source.timestamp_field == "timestamp"

    @pytest.mark.asyncio
    async def test_trigger_asset_update_rescores(self, service, data_source, storage):
        data_source.records.update(usd_records())

        results = await service.trigger_asset_update("usd", "analyst request")

        assert [r.data_type for r in results] == [
            "earnings",
            "revenue",
            "debt_ratio",
            "economic_indicator",
        ]
        assert all(r.has_changes for r in results)
        assert len(storage._scores["USD"]) == 1

        overview = await service.get_asset_bias_score("USD")
        assert overview.current_bias == Bias.BULLISH
        assert overview.weighted_score == pytest.approx(13 / 15)
        assert overview.data_quality == "MEDIUM"
        assert overview.last_updated == T0
        assert "Earnings Growth (+2)" in overview.bullish_factors

    @pytest.mark.asyncio
    async def test_no_changes_no_rescore(self, service, storage):
        results = await service.trigger_asset_update("USD")

        assert len(results) == 4
        assert not any(r.has_changes for r in results)
        assert "USD" not in storage._scores

    @pytest.mark.asyncio
    async def test_bad_source_data_does_not_stop_other_types(self, service, data_source, storage):
        data_source.records["USD:earnings"] = [{"timestamp": 1e25, "earnings": 1}]
        data_source.records["USD:revenue"] = [
            {"timestamp": "2024-02-01T00:00:00Z", "totalRevenue": 20}
        ]

        results = await service.trigger_asset_update("USD")

        by_type = {r.data_type: r for r in results}
        assert len(results) == 4
        assert by_type["earnings"].has_changes is False
        assert by_type["earnings"].error is not None
        assert by_type["revenue"].has_changes is True
        assert len(storage._scores["USD"]) == 1

    @pytest.mark.asyncio
    async def test_unknown_asset_yields_no_results(self, service):
        assert await service.trigger_asset_update("JPY") == []
        assert await service.get_asset_bias_score("JPY") is None

    @pytest.mark.asyncio
    async def test_recent_changes_counted(self, service, storage):
        for hours, changed in [(1, True), (2, False), (30, True)]:
            await storage.put_snapshot(
                FundamentalSnapshot(
                    asset="USD",
                    data_type="earnings",
                    value=10,
                    previous_value=5,
                    timestamp=T0 - timedelta(hours=hours),
                    source="test",
                    content_hash=str(hours),
                    change_detected=changed,
                )
            )
        await service.recalculate_all_scores()

        overview = await service.get_asset_bias_score("USD")

        assert overview.changes_since_last_update == 1
        assert overview.data_quality == "LOW"

    @pytest.mark.asyncio
    async def test_get_all_bias_scores_sorted(self, service, data_source):
        data_source.records.update(usd_records())
        data_source.records["EUR:earnings"] = [
            {"timestamp": "2024-02-01T00:00:00Z", "earnings": -40}
        ]
        await service.trigger_asset_update("USD")
        await service.trigger_asset_update("EUR")

        overviews = await service.get_all_bias_scores()

        assert [o.asset for o in overviews] == ["EUR", "USD"]

    @pytest.mark.asyncio
    async def test_service_status(self, service, data_source):
        data_source.records.update(usd_records())
        await service.trigger_asset_update("USD")

        status = await service.get_service_status()

        assert status.is_running is False
        assert status.total_assets == 2
        assert status.assets_with_scores == 1
        assert status.database_health == "ERROR"
        assert status.system_load == "LOW"
        assert status.last_update == T0
        assert 0 < status.average_confidence <= 1
        assert status.scheduler_status["total_jobs"] == 0

    def test_fundamental_factors(self, service):
        factors = service.get_fundamental_factors()
        assert set(factors) == {
            "earnings_growth",
            "revenue_trend",
            "profit_margin",
            "debt_level",
            "roe",
            "external_factors",
            "guidance",
        }


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_scores_stored_data_then_stop(self, service, storage):
        await storage.put_snapshot(
            FundamentalSnapshot(
                asset="EUR",
                data_type="economic_indicator",
                value=85,
                timestamp=T0,
                source="test",
                content_hash="x",
            )
        )

        await service.start()
        status = await service.get_service_status()
        await service.stop()

        assert status.is_running is True
        assert status.assets_with_scores == 1
        assert status.scheduler_status["total_jobs"] == 8
        assert service.is_running is False

    @pytest.mark.asyncio
    async def test_event_dispatch_rescores(self, service, data_source, storage):
        data_source.records.update(usd_records())
        await service.start()
        for job in service.scheduler.store.jobs():
            job.next_run = T0 + timedelta(days=1)
        service.add_scheduled_event(
            ScheduledEvent(
                id="usd-earnings",
                asset="USD",
                event_type=CalendarEventType.EARNINGS,
                scheduled_time=T0 - timedelta(minutes=10),
                description="USD earnings release",
            )
        )

        await service.scheduler.tick(now=T0, wait=True)
        await service.stop()

        assert data_source.calls == ["USD:earnings"]
        assert (await service.get_asset_bias_score("USD")) is not None
