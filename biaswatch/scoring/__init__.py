"""Bias scoring."""

from .engine import BiasScoringEngine, ScoringResult, classify, confidence, factor_score
from .factors import DEFAULT_FACTORS


__all__ = [
    "DEFAULT_FACTORS",
    "BiasScoringEngine",
    "ScoringResult",
    "classify",
    "confidence",
    "factor_score",
]
