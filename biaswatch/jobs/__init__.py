"""Update scheduling: recurring jobs, calendar events, dispatch."""

from .models import ScheduledJob, backoff_delay
from .scheduler import UpdateScheduler, default_priority
from .store import JobStore


__all__ = [
    "JobStore",
    "ScheduledJob",
    "UpdateScheduler",
    "backoff_delay",
    "default_priority",
]
