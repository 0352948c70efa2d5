"""Bias domain models.

Factor definitions (the scoring vocabulary) and the persisted bias score.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from biaswatch.domain.fundamentals import DataType, utcnow


class Bias(str, Enum):
    """Five-level directional classification."""

    STRONG_BULLISH = "STRONG_BULLISH"
    BULLISH = "BULLISH"
    NEUTRAL = "NEUTRAL"
    BEARISH = "BEARISH"
    STRONG_BEARISH = "STRONG_BEARISH"

    @property
    def rank(self) -> int:
        """2 for STRONG_BULLISH down to -2 for STRONG_BEARISH."""
        return _BIAS_RANK[self]


_BIAS_RANK = {
    Bias.STRONG_BULLISH: 2,
    Bias.BULLISH: 1,
    Bias.NEUTRAL: 0,
    Bias.BEARISH: -1,
    Bias.STRONG_BEARISH: -2,
}


# Factor name -> BiasScore column
FACTOR_SCORE_FIELDS: dict[str, str] = {
    "earnings_growth": "earnings_growth_score",
    "revenue_trend": "revenue_trend_score",
    "profit_margin": "profit_margin_score",
    "debt_level": "debt_level_score",
    "liquidity": "liquidity_score",
    "roe": "roe_score",
    "guidance": "guidance_score",
    "external_factors": "external_factors_score",
}


class FactorThresholds(BaseModel):
    """Six ordered cut points, best to worst."""

    strong_bullish: float
    bullish: float
    neutral_high: float
    neutral_low: float
    bearish: float
    strong_bearish: float

    model_config = {"frozen": True}


class FactorDefinition(BaseModel):
    """One weighted input to the bias composite."""

    name: str
    weight: Literal[1, 2, 3]
    data_type: DataType
    polarity: Literal[1, -1] = Field(
        1, description="+1 when higher values are bullish, -1 when lower is better"
    )
    description: str = ""
    thresholds: FactorThresholds

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def check_threshold_order(self) -> "FactorDefinition":
        t = self.thresholds
        if self.polarity == 1:
            ordered = t.strong_bullish >= t.bullish >= t.neutral_high >= t.bearish
        else:
            ordered = t.strong_bullish <= t.bullish <= t.neutral_high <= t.bearish
        if not ordered:
            raise ValueError(f"Thresholds for factor {self.name} are out of order")
        return self

    @property
    def higher_is_better(self) -> bool:
        return self.polarity == 1


class BiasScore(BaseModel):
    """Persisted bias for one asset at one point in time."""

    asset: str
    timestamp: datetime = Field(default_factory=utcnow)

    earnings_growth_score: int = 0
    revenue_trend_score: int = 0
    profit_margin_score: int = 0
    debt_level_score: int = 0
    liquidity_score: int = 0
    roe_score: int = 0
    guidance_score: int = 0
    external_factors_score: int = 0

    total_score: int = 0
    weighted_score: float = 0.0
    bias: Bias = Bias.NEUTRAL
    confidence: float = Field(0.5, ge=0.0, le=1.0)

    bullish_factors: list[str] = Field(default_factory=list)
    bearish_factors: list[str] = Field(default_factory=list)

    model_config = {
        "from_attributes": True,
    }

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @property
    def factor_scores(self) -> dict[str, int]:
        return {name: getattr(self, column) for name, column in FACTOR_SCORE_FIELDS.items()}
