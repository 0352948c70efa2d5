"""Per-asset rate limiter for upstream fetches."""

from __future__ import annotations

import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Callable, Tuple

from biaswatch.core.logging import get_logger


logger = get_logger("core.rate_limiter")


@dataclass
class RateLimitResult:
    """Result of rate limit check."""

    allowed: bool
    remaining: int
    reset_at: float
    limit: int


@dataclass(frozen=True)
class RateLimitConfig:
    """Request budgets per asset."""

    requests_per_minute: int = 10
    requests_per_hour: int = 300
    requests_per_day: int = 5000

    @classmethod
    def from_strings(cls, per_minute: str, per_hour: str, per_day: str) -> "RateLimitConfig":
        """Build from "N/unit" strings, normalising each to its own window."""
        return cls(
            requests_per_minute=_scale(parse_rate_limit(per_minute), 60),
            requests_per_hour=_scale(parse_rate_limit(per_hour), 3600),
            requests_per_day=_scale(parse_rate_limit(per_day), 86400),
        )

    def windows(self) -> list[Tuple[int, int]]:
        """(limit, window_seconds) pairs, shortest window first."""
        return [
            (self.requests_per_minute, 60),
            (self.requests_per_hour, 3600),
            (self.requests_per_day, 86400),
        ]


def _scale(parsed: Tuple[int, int], window: int) -> int:
    limit, seconds = parsed
    return max(1, int(limit * window / seconds))


def parse_rate_limit(rate_string: str) -> Tuple[int, int]:
    """
    Parse rate limit string like "100/minute" or "10/second".

    Returns (limit, window_in_seconds)
    """
    parts = rate_string.lower().split("/")
    if len(parts) != 2:
        raise ValueError(f"Invalid rate limit format: {rate_string}")

    limit = int(parts[0])
    unit = parts[1].strip()

    windows = {
        "second": 1,
        "sec": 1,
        "s": 1,
        "minute": 60,
        "min": 60,
        "m": 60,
        "hour": 3600,
        "hr": 3600,
        "h": 3600,
        "day": 86400,
        "d": 86400,
    }

    if unit not in windows:
        raise ValueError(f"Unknown time unit: {unit}")

    return limit, windows[unit]


class AssetRateLimiter:
    """
    Sliding window log limiter keyed by asset.

    Every window (minute, hour, day) must have room for a request to be
    allowed; an allowed check records the request in all windows at once.
    Thread-safe; all workers share one instance.
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or RateLimitConfig()
        self.enabled = enabled
        self._clock = clock
        self._requests: dict[str, deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    def _prune(self, log: deque[float], now: float) -> None:
        horizon = now - 86400
        while log and log[0] <= horizon:
            log.popleft()

    def check(self, asset: str) -> RateLimitResult:
        """
        Check and, when allowed, record one request for asset.

        Args:
            asset: Asset identifier

        Returns:
            RateLimitResult for the tightest window
        """
        if not self.enabled:
            return RateLimitResult(allowed=True, remaining=999, reset_at=0, limit=999)

        with self._lock:
            now = self._clock()
            log = self._requests[asset]
            self._prune(log, now)

            tightest: RateLimitResult | None = None
            for limit, window in self.config.windows():
                window_start = now - window
                in_window = [t for t in log if t > window_start]
                count = len(in_window)
                if count >= limit:
                    reset_at = in_window[0] + window if in_window else now + window
                    logger.debug(
                        f"Rate limit hit for {asset}: {count}/{limit} per {window}s"
                    )
                    return RateLimitResult(
                        allowed=False, remaining=0, reset_at=reset_at, limit=limit
                    )
                remaining = limit - count - 1
                if tightest is None or remaining < tightest.remaining:
                    tightest = RateLimitResult(
                        allowed=True,
                        remaining=remaining,
                        reset_at=now + window,
                        limit=limit,
                    )

            log.append(now)
            return tightest

    def is_allowed(self, asset: str) -> bool:
        """Simple check if a request for asset is allowed (and record it)."""
        return self.check(asset).allowed

    def status(self, asset: str) -> dict:
        """Get current usage for an asset."""
        with self._lock:
            now = self._clock()
            log = self._requests.get(asset, deque())
            self._prune(log, now)
            return {
                "asset": asset,
                "enabled": self.enabled,
                "windows": [
                    {
                        "window_seconds": window,
                        "limit": limit,
                        "used": sum(1 for t in log if t > now - window),
                    }
                    for limit, window in self.config.windows()
                ],
            }

    def reset(self, asset: str | None = None) -> None:
        """Forget recorded requests for one asset or all of them."""
        with self._lock:
            if asset is None:
                self._requests.clear()
            else:
                self._requests.pop(asset, None)
