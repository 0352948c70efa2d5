"""Scheduler-owned registry of jobs and calendar events."""

from __future__ import annotations

import asyncio
from datetime import datetime

from biaswatch.core.logging import get_logger
from biaswatch.domain import ScheduledEvent, source_key

from .models import ScheduledJob


logger = get_logger("jobs.store")


class JobStore:
    """Jobs keyed by ``asset:data_type`` and events keyed by id.

    Claims flip ``running`` (jobs) or ``triggered`` (events) under one lock,
    so two concurrent ticks can never claim the same entry.
    """

    def __init__(self):
        self._jobs: dict[str, ScheduledJob] = {}
        self._events: dict[str, ScheduledEvent] = {}
        self._lock = asyncio.Lock()

    # Jobs

    def add_job(self, job: ScheduledJob) -> None:
        self._jobs[job.key] = job

    def get_job(self, asset: str, data_type: str) -> ScheduledJob | None:
        return self._jobs.get(source_key(asset, data_type))

    def jobs(self) -> list[ScheduledJob]:
        return list(self._jobs.values())

    async def claim_due(self, now: datetime) -> list[ScheduledJob]:
        """Mark every due job running; highest priority, then oldest, first."""
        async with self._lock:
            due = [job for job in self._jobs.values() if job.is_due(now)]
            due.sort(key=lambda job: (-job.priority.weight, job.next_run))
            for job in due:
                job.running = True
            return due

    async def claim(self, asset: str, data_type: str) -> ScheduledJob | None:
        """Claim one job regardless of its next_run; None if absent or running."""
        async with self._lock:
            job = self._jobs.get(source_key(asset, data_type))
            if job is None or job.running:
                return None
            job.running = True
            return job

    # Events

    def add_event(self, event: ScheduledEvent) -> None:
        if event.id in self._events:
            logger.debug(f"Replacing scheduled event {event.id}")
        self._events[event.id] = event

    def events(self) -> list[ScheduledEvent]:
        return sorted(self._events.values(), key=lambda e: e.scheduled_time)

    async def claim_due_events(self, now: datetime) -> list[ScheduledEvent]:
        """Mark due events triggered before anything is dispatched."""
        async with self._lock:
            due = []
            for event_id, event in self._events.items():
                if event.is_due(now):
                    triggered = event.model_copy(update={"triggered": True})
                    self._events[event_id] = triggered
                    due.append(triggered)
            due.sort(key=lambda e: (-e.priority.weight, e.due_at))
            return due
