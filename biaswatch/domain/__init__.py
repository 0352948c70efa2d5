"""Domain models."""

from .bias import FACTOR_SCORE_FIELDS, Bias, BiasScore, FactorDefinition, FactorThresholds
from .calendar import CalendarEventType, Priority, ScheduledEvent
from .fundamentals import (
    EPOCH,
    ChangeDetectionCursor,
    DataType,
    FundamentalSnapshot,
    source_key,
    utcnow,
)
from .sources import SourceDescriptor


__all__ = [
    "EPOCH",
    "FACTOR_SCORE_FIELDS",
    "Bias",
    "BiasScore",
    "CalendarEventType",
    "ChangeDetectionCursor",
    "DataType",
    "FactorDefinition",
    "FactorThresholds",
    "FundamentalSnapshot",
    "Priority",
    "ScheduledEvent",
    "SourceDescriptor",
    "source_key",
    "utcnow",
]
