"""Scheduled job state and retry backoff."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from biaswatch.domain import Priority, source_key


def backoff_delay(retry_count: int, base_minutes: int = 5, max_minutes: int = 60) -> timedelta:
    """Exponential backoff: base * 2^retry_count minutes, capped."""
    return timedelta(minutes=min(base_minutes * 2 ** retry_count, max_minutes))


@dataclass
class ScheduledJob:
    """Recurring update for one (asset, data_type).

    Mutated only by the scheduler. ``running`` guards against re-entrant
    execution of the same key.
    """

    asset: str
    data_type: str
    priority: Priority
    interval: timedelta
    next_run: datetime
    last_run: datetime | None = None
    running: bool = False
    retry_count: int = 0
    max_retries: int = 3
    last_error: str | None = None

    @property
    def key(self) -> str:
        return source_key(self.asset, self.data_type)

    def is_due(self, now: datetime) -> bool:
        return not self.running and self.next_run <= now

    def record_success(self, now: datetime) -> None:
        self.last_run = now
        self.retry_count = 0
        self.last_error = None
        self.next_run = now + self.interval

    def record_failure(
        self,
        now: datetime,
        error: str,
        base_minutes: int = 5,
        max_minutes: int = 60,
    ) -> timedelta:
        """Reschedule after a failed run; returns the delay applied.

        Retries back off while retry_count stays within max_retries, then
        the counter resets and the job resumes its normal interval.
        """
        self.last_run = now
        self.last_error = error
        self.retry_count += 1
        if self.retry_count <= self.max_retries:
            delay = backoff_delay(self.retry_count, base_minutes, max_minutes)
        else:
            self.retry_count = 0
            delay = self.interval
        self.next_run = now + delay
        return delay

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "asset": self.asset,
            "data_type": self.data_type,
            "priority": self.priority.value,
            "interval_minutes": int(self.interval.total_seconds() // 60),
            "next_run": self.next_run.isoformat(),
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "running": self.running,
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "last_error": self.last_error,
        }
