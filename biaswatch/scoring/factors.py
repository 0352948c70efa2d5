"""Default fundamental factor definitions."""

from __future__ import annotations

from biaswatch.domain import FactorDefinition, FactorThresholds


DEFAULT_FACTORS: tuple[FactorDefinition, ...] = (
    FactorDefinition(
        name="earnings_growth",
        weight=3,
        data_type="earnings",
        polarity=1,
        description="Earnings Growth",
        thresholds=FactorThresholds(
            strong_bullish=20,  # >20% growth
            bullish=10,
            neutral_high=5,
            neutral_low=-5,
            bearish=-10,
            strong_bearish=-20,
        ),
    ),
    FactorDefinition(
        name="revenue_trend",
        weight=3,
        data_type="revenue",
        polarity=1,
        description="Revenue Trend",
        thresholds=FactorThresholds(
            strong_bullish=15,
            bullish=8,
            neutral_high=3,
            neutral_low=-3,
            bearish=-8,
            strong_bearish=-15,
        ),
    ),
    FactorDefinition(
        name="profit_margin",
        weight=2,
        data_type="profit_margin",
        polarity=1,
        description="Profit Margin",
        thresholds=FactorThresholds(
            strong_bullish=25,
            bullish=15,
            neutral_high=10,
            neutral_low=5,
            bearish=2,
            strong_bearish=0,
        ),
    ),
    FactorDefinition(
        name="debt_level",
        weight=2,
        data_type="debt_ratio",
        polarity=-1,  # Lower debt is better
        description="Debt Level",
        thresholds=FactorThresholds(
            strong_bullish=0.3,
            bullish=0.5,
            neutral_high=0.7,
            neutral_low=1.0,
            bearish=1.5,
            strong_bearish=2.0,
        ),
    ),
    FactorDefinition(
        name="roe",
        weight=2,
        data_type="roe",
        polarity=1,
        description="Return on Equity",
        thresholds=FactorThresholds(
            strong_bullish=20,
            bullish=15,
            neutral_high=10,
            neutral_low=5,
            bearish=0,
            strong_bearish=-5,
        ),
    ),
    FactorDefinition(
        name="external_factors",
        weight=2,
        data_type="economic_indicator",
        polarity=1,
        description="External Economic Factors",
        thresholds=FactorThresholds(
            strong_bullish=80,
            bullish=60,
            neutral_high=55,
            neutral_low=45,
            bearish=40,
            strong_bearish=20,
        ),
    ),
    FactorDefinition(
        name="guidance",
        weight=1,
        data_type="guidance",
        polarity=1,
        description="Forward Guidance",
        thresholds=FactorThresholds(
            strong_bullish=10,
            bullish=5,
            neutral_high=2,
            neutral_low=-2,
            bearish=-5,
            strong_bearish=-10,
        ),
    ),
)
