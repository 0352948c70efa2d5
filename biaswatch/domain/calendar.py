"""Calendar event domain models.

One-shot releases (earnings, central bank meetings) that force an update
shortly after they happen.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from biaswatch.core.config import settings


class Priority(str, Enum):
    """Dispatch priority for jobs and events."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @property
    def weight(self) -> int:
        return {"HIGH": 3, "MEDIUM": 2, "LOW": 1}[self.value]


class CalendarEventType(str, Enum):
    """Types of calendar events."""

    EARNINGS = "earnings"
    ECONOMIC_DATA = "economic_data"
    CENTRAL_BANK = "central_bank"
    GUIDANCE = "guidance"

    @property
    def data_type(self) -> str:
        """Data type refreshed when this event fires."""
        return _EVENT_DATA_TYPES.get(self, "economic_indicator")


_EVENT_DATA_TYPES = {
    CalendarEventType.EARNINGS: "earnings",
    CalendarEventType.ECONOMIC_DATA: "economic_indicator",
    CalendarEventType.CENTRAL_BANK: "economic_indicator",
    CalendarEventType.GUIDANCE: "guidance",
}


class ScheduledEvent(BaseModel):
    """Calendar entry that triggers exactly once, after its buffer elapses."""

    id: str = Field(..., description="Unique event id")
    asset: str
    event_type: CalendarEventType
    scheduled_time: datetime
    buffer: timedelta = Field(
        default_factory=lambda: timedelta(minutes=settings.event_buffer_minutes),
        description="Wait after the scheduled release",
    )
    description: str = ""
    priority: Priority = Priority.MEDIUM
    triggered: bool = False

    @field_validator("scheduled_time")
    @classmethod
    def normalize_time(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @field_validator("asset")
    @classmethod
    def upper_asset(cls, v: str) -> str:
        return v.upper()

    @property
    def due_at(self) -> datetime:
        return self.scheduled_time + self.buffer

    def is_due(self, now: datetime) -> bool:
        return not self.triggered and now >= self.due_at

    @property
    def data_type(self) -> str:
        return self.event_type.data_type
