"""Bias service: the facade over detection, scheduling and scoring.

Wires the engines together with constructor-injected collaborators and
exposes start/stop, queries and manual triggers to callers.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime, timedelta
from typing import Any, Literal

from pydantic import BaseModel, Field

from biaswatch.core.config import Settings, settings as default_settings
from biaswatch.core.logging import get_logger
from biaswatch.core.rate_limiter import AssetRateLimiter
from biaswatch.detection.engine import ChangeDetectionEngine, ChangeDetectionResult
from biaswatch.domain import Bias, BiasScore, FactorDefinition, ScheduledEvent, utcnow
from biaswatch.jobs.scheduler import UpdateScheduler
from biaswatch.repositories.base import Storage
from biaswatch.scoring.engine import BiasScoringEngine, ScoringResult
from biaswatch.sources.base import DataSource
from biaswatch.sources.registry import SourceRegistry, build_default_sources


logger = get_logger("services.bias_service")

Level = Literal["HIGH", "MEDIUM", "LOW"]
Health = Literal["HEALTHY", "WARNING", "ERROR"]


class AssetOverview(BaseModel):
    """Latest bias for one asset with data freshness indicators."""

    asset: str
    current_bias: Bias
    score: int = Field(..., description="Sum of factor scores")
    weighted_score: float
    confidence: float
    last_updated: datetime
    bullish_factors: list[str] = Field(default_factory=list)
    bearish_factors: list[str] = Field(default_factory=list)
    data_quality: Level
    changes_since_last_update: int = Field(
        0, description="Change-detected snapshots in the last 24 hours"
    )


class ServiceStatus(BaseModel):
    is_running: bool
    last_update: datetime | None = None
    total_assets: int
    assets_with_scores: int
    scheduler_status: dict[str, Any]
    database_health: Health
    average_confidence: float
    system_load: Level


def data_quality(snapshot_count: int) -> Level:
    if snapshot_count >= 8:
        return "HIGH"
    if snapshot_count >= 4:
        return "MEDIUM"
    return "LOW"


def database_health(scored_assets: int) -> Health:
    if scored_assets >= 8:
        return "HEALTHY"
    if scored_assets >= 4:
        return "WARNING"
    return "ERROR"


def system_load(running_jobs: int) -> Level:
    if running_jobs >= 5:
        return "HIGH"
    if running_jobs >= 2:
        return "MEDIUM"
    return "LOW"


class BiasService:
    """Orchestrates change detection, update scheduling and bias scoring."""

    def __init__(
        self,
        storage: Storage,
        data_source: DataSource | None = None,
        *,
        config: Settings | None = None,
        sources: SourceRegistry | None = None,
        factors: list[FactorDefinition] | None = None,
        rate_limiter: AssetRateLimiter | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config or default_settings
        self.storage = storage
        self._clock = clock
        self.sources = sources or SourceRegistry(build_default_sources(self.config))
        self.detection = ChangeDetectionEngine(
            storage,
            data_source,
            fetch_timeout=self.config.fetch_timeout,
            max_known_ids=self.config.max_known_ids,
            check_frequency=self.config.cursor_check_frequency_minutes,
            clock=clock,
        )
        self.scoring = BiasScoringEngine(
            storage,
            factors,
            snapshot_limit=self.config.snapshot_query_limit,
            clock=clock,
        )
        self.scheduler = UpdateScheduler(
            self.detection,
            self.sources,
            rate_limiter,
            config=self.config,
            clock=clock,
            on_changes=self._on_changes,
        )
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def assets(self) -> list[str]:
        """Tracked assets plus any asset with a registered source."""
        assets = {a.upper() for a in self.config.tracked_assets}
        assets.update(source.asset for source in self.sources.all())
        return sorted(assets)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Score what is already stored, then start the scheduler."""
        if self._running:
            logger.warning("Bias service already running")
            return

        logger.info("Starting bias service")
        await self.scoring.recalculate_all_scores(self.assets)
        await self.scheduler.start()
        self._running = True
        logger.info("Bias service started")

    async def stop(self) -> None:
        if not self._running:
            return

        logger.info("Stopping bias service")
        await self.scheduler.stop()
        self._running = False
        logger.info("Bias service stopped")

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_all_bias_scores(self) -> list[AssetOverview]:
        scores = await self.scoring.get_all_bias_scores()
        overviews = [await self._overview(score) for score in scores]
        return sorted(overviews, key=lambda o: o.asset)

    async def get_asset_bias_score(self, asset: str) -> AssetOverview | None:
        score = await self.scoring.get_bias_score(asset)
        if score is None:
            return None
        return await self._overview(score)

    async def get_service_status(self) -> ServiceStatus:
        scores = await self.storage.get_all_latest_bias_scores()
        scheduler_status = self.scheduler.get_status()
        average = sum(s.confidence for s in scores) / len(scores) if scores else 0.0
        return ServiceStatus(
            is_running=self._running,
            last_update=max((s.timestamp for s in scores), default=None),
            total_assets=len(self.config.tracked_assets),
            assets_with_scores=len(scores),
            scheduler_status=scheduler_status,
            database_health=database_health(len(scores)),
            average_confidence=average,
            system_load=system_load(scheduler_status["running_jobs"]),
        )

    def get_fundamental_factors(self) -> Mapping[str, FactorDefinition]:
        return self.scoring.factors

    # =========================================================================
    # Commands
    # =========================================================================

    async def trigger_asset_update(
        self, asset: str, reason: str = "Manual trigger"
    ) -> list[ChangeDetectionResult]:
        """Check every tracked data type for an asset now; rescore on changes."""
        asset = asset.upper()
        logger.info(f"Triggering update for {asset} ({reason})")

        results = []
        for data_type in self.config.tracked_data_types:
            result = await self.scheduler.trigger_immediate_update(
                asset, data_type, reason, notify=False
            )
            if result is not None:
                results.append(result)

        if any(r.has_changes for r in results):
            await self.scoring.calculate_bias_score(asset)
            logger.info(f"Updated bias score for {asset} after detecting changes")
        return results

    def add_scheduled_event(self, event: ScheduledEvent) -> None:
        self.scheduler.add_event(event)

    async def recalculate_all_scores(self) -> list[ScoringResult]:
        logger.info("Recalculating all bias scores")
        results = await self.scoring.recalculate_all_scores(self.assets)
        return list(results.values())

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _on_changes(self, result: ChangeDetectionResult) -> None:
        await self.scoring.calculate_bias_score(result.asset)

    async def _overview(self, score: BiasScore) -> AssetOverview:
        snapshots = await self.storage.get_latest_snapshots(
            score.asset, limit=self.config.snapshot_query_limit
        )
        since = self._clock() - timedelta(hours=24)
        recent_changes = sum(1 for s in snapshots if s.change_detected and s.timestamp > since)
        return AssetOverview(
            asset=score.asset,
            current_bias=score.bias,
            score=score.total_score,
            weighted_score=score.weighted_score,
            confidence=score.confidence,
            last_updated=score.timestamp,
            bullish_factors=score.bullish_factors,
            bearish_factors=score.bearish_factors,
            data_quality=data_quality(len(snapshots)),
            changes_since_last_update=recent_changes,
        )
