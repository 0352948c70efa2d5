"""Bias scoring engine.

Scores each configured factor from the latest snapshot of its data type,
combines the factor scores into a weight-averaged composite, classifies
the composite into one of five bias levels and attaches a confidence
value. Every calculation backed by data is appended to the bias score
history.

Factor score:
    change score from the percentage move against previous_value:
        |pct| >= 20 -> 2, >= 10 -> 1, >= 5 -> 0.5, else 0,
        signed by polarity x direction
    absolute score from the factor thresholds -> {2, 1, 0, 0, -1, -2}
    final = round(0.7 * change + 0.3 * absolute) when the snapshot
            carries change_detected, else round(absolute)

Confidence:
    min(min(snapshots / 10, 1) * majority_nonzero / nonzero, 1)
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any

from biaswatch.core.config import settings
from biaswatch.core.logging import get_logger
from biaswatch.domain import (
    FACTOR_SCORE_FIELDS,
    Bias,
    BiasScore,
    FactorDefinition,
    FundamentalSnapshot,
    utcnow,
)
from biaswatch.repositories.base import Storage

from .factors import DEFAULT_FACTORS


logger = get_logger("scoring.engine")

NO_DATA_MESSAGE = "No fundamental data available"
NO_DATA_CONFIDENCE = 0.1


@dataclass
class ScoringResult:
    """Outcome of one bias calculation."""

    asset: str
    timestamp: datetime
    factor_scores: dict[str, int] = field(default_factory=dict)
    total_score: int = 0
    weighted_score: float = 0.0
    bias: Bias = Bias.NEUTRAL
    confidence: float = NO_DATA_CONFIDENCE
    bullish_factors: list[str] = field(default_factory=list)
    bearish_factors: list[str] = field(default_factory=list)
    snapshot_count: int = 0
    processing_time: float = 0.0  # seconds

    @property
    def has_data(self) -> bool:
        return self.snapshot_count > 0

    def to_bias_score(self) -> BiasScore:
        columns = {
            FACTOR_SCORE_FIELDS[name]: score
            for name, score in self.factor_scores.items()
            if name in FACTOR_SCORE_FIELDS
        }
        return BiasScore(
            asset=self.asset,
            timestamp=self.timestamp,
            total_score=self.total_score,
            weighted_score=self.weighted_score,
            bias=self.bias,
            confidence=self.confidence,
            bullish_factors=list(self.bullish_factors),
            bearish_factors=list(self.bearish_factors),
            **columns,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "asset": self.asset,
            "timestamp": self.timestamp.isoformat(),
            "factor_scores": dict(self.factor_scores),
            "total_score": self.total_score,
            "weighted_score": round(self.weighted_score, 4),
            "bias": self.bias.value,
            "confidence": round(self.confidence, 4),
            "bullish_factors": list(self.bullish_factors),
            "bearish_factors": list(self.bearish_factors),
            "snapshot_count": self.snapshot_count,
        }


# =============================================================================
# Pure scoring functions
# =============================================================================


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves toward +infinity."""
    return math.floor(value + 0.5)


def change_score(change_pct: float, polarity: int) -> float:
    magnitude = abs(change_pct)
    sign = 1 if change_pct >= 0 else -1
    if magnitude >= 20:
        return 2 * polarity * sign
    if magnitude >= 10:
        return 1 * polarity * sign
    if magnitude >= 5:
        return 0.5 * polarity * sign
    return 0


def absolute_score(value: float, factor: FactorDefinition) -> int:
    t = factor.thresholds
    if factor.higher_is_better:
        if value >= t.strong_bullish:
            return 2
        if value >= t.bullish:
            return 1
        if value >= t.neutral_high:
            return 0
        if value >= t.neutral_low:
            return 0
        if value >= t.bearish:
            return -1
        return -2

    if value <= t.strong_bullish:
        return 2
    if value <= t.bullish:
        return 1
    if value <= t.neutral_low:
        return 0
    if value <= t.neutral_high:
        return 0
    if value <= t.bearish:
        return -1
    return -2


def factor_score(snapshot: FundamentalSnapshot | None, factor: FactorDefinition) -> int:
    """Score one factor from its most recent snapshot; 0 without data."""
    if snapshot is None:
        return 0

    change = 0.0
    if snapshot.previous_value is not None and snapshot.previous_value != 0:
        pct = (snapshot.value - snapshot.previous_value) / abs(snapshot.previous_value) * 100
        change = change_score(pct, factor.polarity)

    absolute = absolute_score(snapshot.value, factor)
    if snapshot.change_detected:
        return round_half_up(change * 0.7 + absolute * 0.3)
    return round_half_up(absolute)


def weighted_score(scores: Mapping[str, int], factors: Mapping[str, FactorDefinition]) -> float:
    weighted_sum = 0.0
    total_weight = 0
    for name, score in scores.items():
        factor = factors.get(name)
        if factor is not None:
            weighted_sum += score * factor.weight
            total_weight += factor.weight
    return weighted_sum / total_weight if total_weight > 0 else 0.0


def classify(score: float) -> Bias:
    if score >= 1.5:
        return Bias.STRONG_BULLISH
    if score >= 0.5:
        return Bias.BULLISH
    if score >= -0.5:
        return Bias.NEUTRAL
    if score >= -1.5:
        return Bias.BEARISH
    return Bias.STRONG_BEARISH


def confidence(scores: Iterable[int], snapshot_count: int) -> float:
    values = list(scores)
    data_quality = min(snapshot_count / 10, 1)
    positive = sum(1 for s in values if s > 0)
    negative = sum(1 for s in values if s < 0)
    nonzero = positive + negative
    consistency = max(positive, negative) / nonzero if nonzero else 1
    return min(data_quality * consistency, 1)


# =============================================================================
# Engine
# =============================================================================


class BiasScoringEngine:
    """Calculates and records bias scores per asset."""

    def __init__(
        self,
        storage: Storage,
        factors: Iterable[FactorDefinition] | None = None,
        *,
        snapshot_limit: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.storage = storage
        self._factors = {f.name: f for f in (factors if factors is not None else DEFAULT_FACTORS)}
        self.snapshot_limit = snapshot_limit or settings.snapshot_query_limit
        self._clock = clock

    @property
    def factors(self) -> Mapping[str, FactorDefinition]:
        return MappingProxyType(self._factors)

    async def calculate_bias_score(self, asset: str) -> ScoringResult:
        """Score an asset and append the result to its history.

        Assets without snapshots get a neutral low-confidence result that
        is not stored.
        """
        started = time.perf_counter()
        asset = asset.upper()
        timestamp = self._clock()

        snapshots = await self.storage.get_latest_snapshots(asset, limit=self.snapshot_limit)
        if not snapshots:
            logger.info(f"No fundamental data for {asset}, using neutral score")
            return ScoringResult(
                asset=asset,
                timestamp=timestamp,
                bias=Bias.NEUTRAL,
                confidence=NO_DATA_CONFIDENCE,
                bearish_factors=[NO_DATA_MESSAGE],
                processing_time=time.perf_counter() - started,
            )

        latest_by_type: dict[str, FundamentalSnapshot] = {}
        for snapshot in snapshots:  # most recent first
            latest_by_type.setdefault(snapshot.data_type, snapshot)

        scores: dict[str, int] = {}
        bullish: list[str] = []
        bearish: list[str] = []
        for name, factor in self._factors.items():
            score = factor_score(latest_by_type.get(factor.data_type), factor)
            scores[name] = score
            if score > 0:
                bullish.append(f"{factor.description} (+{score})")
            elif score < 0:
                bearish.append(f"{factor.description} ({score})")

        composite = weighted_score(scores, self._factors)
        result = ScoringResult(
            asset=asset,
            timestamp=timestamp,
            factor_scores=scores,
            total_score=sum(scores.values()),
            weighted_score=composite,
            bias=classify(composite),
            confidence=confidence(scores.values(), len(snapshots)),
            bullish_factors=bullish,
            bearish_factors=bearish,
            snapshot_count=len(snapshots),
        )

        await self.storage.put_bias_score(result.to_bias_score())
        result.processing_time = time.perf_counter() - started
        logger.info(
            f"Calculated bias for {asset}: {result.bias.value} "
            f"(score {composite:.2f}, confidence {result.confidence:.0%})"
        )
        return result

    async def recalculate_all_scores(self, assets: Iterable[str]) -> dict[str, ScoringResult]:
        """Score every asset; a failing asset is logged and skipped."""
        results: dict[str, ScoringResult] = {}
        for asset in assets:
            try:
                results[asset.upper()] = await self.calculate_bias_score(asset)
            except Exception:
                logger.exception(f"Bias calculation for {asset} failed")
        logger.info(f"Recalculated bias scores for {len(results)} assets")
        return results

    async def get_bias_score(self, asset: str) -> BiasScore | None:
        return await self.storage.get_latest_bias_score(asset.upper())

    async def get_all_bias_scores(self) -> list[BiasScore]:
        return await self.storage.get_all_latest_bias_scores()
