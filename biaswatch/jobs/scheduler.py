"""Update scheduler using APScheduler with async support.

A fixed-interval tick runs two passes:

- event pass: due calendar events are marked triggered, then dispatched
  as immediate updates for their data type
- job pass: due recurring jobs are claimed in priority order and
  dispatched through a bounded pool of concurrent workers

Every dispatch goes through the per-asset rate limiter. A denied
dispatch is skipped for this tick and stays due.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable, Coroutine
from datetime import datetime, timedelta
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from biaswatch.core.config import Settings, settings as default_settings
from biaswatch.core.exceptions import JobError
from biaswatch.core.logging import get_logger, job_key_var
from biaswatch.core.rate_limiter import AssetRateLimiter, RateLimitConfig
from biaswatch.detection.engine import ChangeDetectionEngine, ChangeDetectionResult
from biaswatch.domain import Priority, ScheduledEvent, utcnow
from biaswatch.sources.registry import SourceRegistry

from .models import ScheduledJob
from .store import JobStore


logger = get_logger("jobs.scheduler")

TICK_JOB_ID = "update_scheduler_tick"

ChangeCallback = Callable[[ChangeDetectionResult], Awaitable[Any]]


def default_priority(data_type: str) -> Priority:
    if data_type == "economic_indicator":
        return Priority.HIGH
    return Priority.MEDIUM


class UpdateScheduler:
    """Owns the recurring jobs and calendar events for all tracked sources."""

    def __init__(
        self,
        engine: ChangeDetectionEngine,
        sources: SourceRegistry,
        rate_limiter: AssetRateLimiter | None = None,
        *,
        store: JobStore | None = None,
        config: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
        on_changes: ChangeCallback | None = None,
    ):
        self.config = config or default_settings
        self.engine = engine
        self.sources = sources
        self.store = store or JobStore()
        self.rate_limiter = rate_limiter or AssetRateLimiter(
            RateLimitConfig.from_strings(
                self.config.rate_limit_per_minute,
                self.config.rate_limit_per_hour,
                self.config.rate_limit_per_day,
            ),
            enabled=self.config.rate_limit_enabled,
        )
        self.on_changes = on_changes
        self._clock = clock
        self._scheduler = AsyncIOScheduler(
            timezone=self.config.scheduler_timezone,
            job_defaults={
                "coalesce": True,  # Combine missed ticks into one
                "max_instances": 1,  # Only one tick at a time
                "misfire_grace_time": self.config.scheduler_tick_seconds,
            },
        )
        self._running = False
        self._slots = asyncio.Semaphore(self.config.max_parallel_requests)
        self._tasks: set[asyncio.Task] = set()

    @property
    def is_running(self) -> bool:
        return self._running

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def register_jobs(self, now: datetime | None = None) -> int:
        """Create one job per registered source that has none yet.

        First runs are spread over the configured jitter window.
        """
        now = now or self._clock()
        jitter = self.config.scheduler_initial_jitter_minutes
        created = 0
        for source in self.sources.all():
            if self.store.get_job(source.asset, source.data_type) is not None:
                continue
            self.add_job(
                source.asset,
                source.data_type,
                next_run=now + timedelta(minutes=random.uniform(0, jitter)),
            )
            created += 1
        logger.info(f"Registered {created} update jobs ({len(self.store.jobs())} total)")
        return created

    def add_job(
        self,
        asset: str,
        data_type: str,
        *,
        priority: Priority | None = None,
        interval: timedelta | None = None,
        next_run: datetime | None = None,
    ) -> ScheduledJob:
        job = ScheduledJob(
            asset=asset.upper(),
            data_type=data_type,
            priority=priority or default_priority(data_type),
            interval=interval or timedelta(minutes=self.config.interval_for(data_type)),
            next_run=next_run or self._clock(),
            max_retries=self.config.job_max_retries,
        )
        self.store.add_job(job)
        return job

    def add_event(self, event: ScheduledEvent) -> None:
        self.store.add_event(event)
        logger.info(
            f"Scheduled {event.event_type.value} event {event.id} for {event.asset} "
            f"at {event.scheduled_time.isoformat()}"
        )

    async def start(self) -> None:
        """Register jobs and start ticking."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        if not self.store.jobs():
            self.register_jobs()
        self._running = True

        if not self.config.scheduler_enabled:
            logger.info("Periodic ticks disabled via SCHEDULER_ENABLED=false")
            return

        self._scheduler.add_job(
            self.tick,
            trigger=IntervalTrigger(seconds=self.config.scheduler_tick_seconds),
            id=TICK_JOB_ID,
            name="Update scheduler tick",
            replace_existing=True,
            next_run_time=utcnow(),
        )
        self._scheduler.start()
        logger.info(f"Update scheduler started (tick every {self.config.scheduler_tick_seconds}s)")

    async def stop(self) -> None:
        """Stop ticking and wait for in-flight dispatches."""
        if not self._running:
            return

        self._running = False
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        await self.wait_idle()
        logger.info("Update scheduler stopped")

    async def wait_idle(self) -> None:
        """Wait until every dispatched job and event has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # =========================================================================
    # Tick
    # =========================================================================

    async def tick(self, now: datetime | None = None, wait: bool = False) -> None:
        """Run the event pass, then the job pass."""
        if not self._running:
            return
        now = now or self._clock()
        try:
            await self._event_pass(now)
            await self._job_pass(now)
        except Exception:
            logger.exception("Scheduler tick failed")
        if wait:
            await self.wait_idle()

    async def _event_pass(self, now: datetime) -> None:
        events = await self.store.claim_due_events(now)
        for event in events:
            if not self._running:
                logger.info(f"Stop requested; event {event.id} was not dispatched")
                break
            # Claiming the job keeps this tick's job pass off the same key
            job = await self.store.claim(event.asset, event.data_type)
            await self._submit(self._run_event(event, job, now))

    async def _job_pass(self, now: datetime) -> None:
        jobs = await self.store.claim_due(now)
        for index, job in enumerate(jobs):
            if not self._running:
                for pending in jobs[index:]:
                    pending.running = False
                break
            await self._submit(self._run_job(job, now))

    async def _submit(self, coro: Coroutine[Any, Any, None]) -> None:
        """Start coro once a pool slot is free."""
        await self._slots.acquire()
        task = asyncio.create_task(self._release_after(coro))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _release_after(self, coro: Coroutine[Any, Any, None]) -> None:
        try:
            await coro
        finally:
            self._slots.release()

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def _run_job(self, job: ScheduledJob, now: datetime) -> None:
        token = job_key_var.set(job.key)
        try:
            if not self.rate_limiter.is_allowed(job.asset):
                logger.info(f"Job {job.key} skipped: rate limit reached")
                return

            try:
                source = self.sources.get(job.asset, job.data_type)
                if source is None:
                    raise JobError(f"No source registered for {job.key}")
                result = await self.engine.check_source(source)
            except Exception as e:
                delay = job.record_failure(
                    now,
                    str(e),
                    self.config.backoff_base_minutes,
                    self.config.backoff_max_minutes,
                )
                logger.warning(
                    f"Job {job.key} failed (retry {job.retry_count}/{job.max_retries}), "
                    f"next run in {int(delay.total_seconds() // 60)} min: {e}"
                )
                return

            job.record_success(now)
            job.last_error = result.error
            await self._notify(result)
        finally:
            job.running = False
            job_key_var.reset(token)

    async def _run_event(
        self, event: ScheduledEvent, job: ScheduledJob | None, now: datetime
    ) -> None:
        try:
            result = await self.trigger_immediate_update(
                event.asset, event.data_type, reason=f"event {event.id}"
            )
            if job is not None and result is not None:
                job.record_success(now)
        except Exception:
            logger.exception(f"Dispatching event {event.id} failed")
        finally:
            if job is not None:
                job.running = False

    async def trigger_immediate_update(
        self,
        asset: str,
        data_type: str,
        reason: str = "manual",
        notify: bool = True,
    ) -> ChangeDetectionResult | None:
        """Check one source now, outside the schedule.

        Returns None when rate limited or no source is registered. With
        notify, the change callback runs when changes are found. Storage
        errors propagate.
        """
        asset = asset.upper()
        if not self.rate_limiter.is_allowed(asset):
            logger.info(f"Immediate update for {asset}:{data_type} skipped: rate limit reached")
            return None

        source = self.sources.get(asset, data_type)
        if source is None:
            logger.warning(f"No source registered for {asset}:{data_type}")
            return None

        token = job_key_var.set(source.key)
        try:
            logger.info(f"Immediate update for {source.key} ({reason})")
            result = await self.engine.check_source(source)
            if notify and result.has_changes and self.on_changes is not None:
                await self.on_changes(result)
            return result
        finally:
            job_key_var.reset(token)

    async def _notify(self, result: ChangeDetectionResult) -> None:
        if not result.has_changes or self.on_changes is None:
            return
        try:
            await self.on_changes(result)
        except Exception:
            logger.exception(f"Change handler failed for {result.key}")

    # =========================================================================
    # Status
    # =========================================================================

    def get_status(self) -> dict[str, Any]:
        jobs = self.store.jobs()
        events = self.store.events()
        pending_runs = [job.next_run for job in jobs if not job.running]
        return {
            "is_running": self._running,
            "total_jobs": len(jobs),
            "running_jobs": sum(1 for job in jobs if job.running),
            "next_job_time": min(pending_runs).isoformat() if pending_runs else None,
            "event_count": len(events),
            "pending_events": sum(1 for event in events if not event.triggered),
        }

    def running_job_count(self) -> int:
        return sum(1 for job in self.store.jobs() if job.running)
