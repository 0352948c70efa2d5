"""Fundamentals domain models.

Type-safe representations of fundamental observations and the per-source
change detection checkpoint.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Literal

from pydantic import BaseModel, Field, field_validator


DataType = Literal[
    "earnings",
    "revenue",
    "debt_ratio",
    "profit_margin",
    "roe",
    "economic_indicator",
    "guidance",
]

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def source_key(asset: str, data_type: str) -> str:
    """Key identifying one (asset, data type) pair."""
    return f"{asset.upper()}:{data_type}"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class FundamentalSnapshot(BaseModel):
    """One immutable observation of a fundamental data point.

    Unique per (asset, data_type, timestamp); never updated once stored.
    """

    asset: str = Field(..., description="Asset code, e.g. USD or XAU")
    data_type: DataType
    value: float
    previous_value: float | None = Field(
        None, description="Value of the preceding snapshot for the same series"
    )
    timestamp: datetime = Field(..., description="Observation time")
    source: str = Field(..., description="Source descriptor name")
    content_hash: str = Field(..., description="Hash of the raw record")
    change_detected: bool = False
    last_updated: datetime = Field(default_factory=utcnow)

    model_config = {
        "from_attributes": True,
        "frozen": True,
    }

    @field_validator("timestamp", "last_updated")
    @classmethod
    def normalize_times(cls, v: datetime) -> datetime:
        return _as_utc(v)

    @field_validator("asset")
    @classmethod
    def upper_asset(cls, v: str) -> str:
        return v.upper()

    @property
    def key(self) -> tuple[str, str, datetime]:
        return (self.asset, self.data_type, self.timestamp)

    @property
    def change_pct(self) -> float | None:
        """Percentage change against previous_value."""
        if self.previous_value is None or self.previous_value == 0:
            return None
        return (self.value - self.previous_value) / abs(self.previous_value) * 100


class ChangeDetectionCursor(BaseModel):
    """Per-source checkpoint used to decide whether fetched data is new.

    Replaced whole after each detection pass.
    """

    asset: str
    data_type: DataType
    last_check_timestamp: datetime = EPOCH
    last_data_timestamp: datetime | None = None
    known_ids: list[str] = Field(default_factory=list)
    content_hash: str | None = None
    check_frequency: int = Field(240, ge=1, description="Minutes between checks")
    next_scheduled_check: datetime = EPOCH

    model_config = {
        "from_attributes": True,
    }

    @field_validator("last_check_timestamp", "last_data_timestamp", "next_scheduled_check")
    @classmethod
    def normalize_times(cls, v: datetime | None) -> datetime | None:
        return _as_utc(v) if v is not None else None

    @field_validator("asset")
    @classmethod
    def upper_asset(cls, v: str) -> str:
        return v.upper()

    @property
    def key(self) -> str:
        return source_key(self.asset, self.data_type)

    def needs_check(self, now: datetime | None = None) -> bool:
        return self.next_scheduled_check <= (now or utcnow())

    def checked(self, now: datetime, **changes) -> "ChangeDetectionCursor":
        """Copy advanced to a new check time, with optional field changes."""
        return self.model_copy(
            update={
                "last_check_timestamp": now,
                "next_scheduled_check": now + timedelta(minutes=self.check_frequency),
                **changes,
            }
        )
