"""Tests for the per-asset rate limiter."""

import threading

import pytest

from biaswatch.core.rate_limiter import AssetRateLimiter, RateLimitConfig, parse_rate_limit


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


class TestParseRateLimit:
    def test_units(self):
        assert parse_rate_limit("10/minute") == (10, 60)
        assert parse_rate_limit("5/s") == (5, 1)
        assert parse_rate_limit("300/hour") == (300, 3600)
        assert parse_rate_limit("1000/day") == (1000, 86400)

    def test_invalid(self):
        with pytest.raises(ValueError):
            parse_rate_limit("10 per minute")
        with pytest.raises(ValueError):
            parse_rate_limit("10/fortnight")

    def test_config_from_strings_scales_to_window(self):
        """Limits given in another unit are scaled to their window."""
        config = RateLimitConfig.from_strings("1/second", "300/hour", "1/hour")
        assert config.requests_per_minute == 60
        assert config.requests_per_hour == 300
        assert config.requests_per_day == 24


class TestAssetRateLimiter:
    """Tests for AssetRateLimiter windows."""

    def test_minute_window(self, clock):
        limiter = AssetRateLimiter(RateLimitConfig(3, 100, 1000), clock=clock)

        assert [limiter.is_allowed("USD") for _ in range(4)] == [True, True, True, False]

        clock.advance(61)
        assert limiter.is_allowed("USD") is True

    def test_hour_window(self, clock):
        limiter = AssetRateLimiter(RateLimitConfig(100, 2, 1000), clock=clock)
        assert limiter.is_allowed("USD")
        clock.advance(120)
        assert limiter.is_allowed("USD")
        clock.advance(120)
        assert limiter.is_allowed("USD") is False
        clock.advance(3600)
        assert limiter.is_allowed("USD") is True

    def test_assets_are_independent(self, clock):
        limiter = AssetRateLimiter(RateLimitConfig(1, 10, 10), clock=clock)
        assert limiter.is_allowed("USD")
        assert limiter.is_allowed("EUR")
        assert limiter.is_allowed("USD") is False

    def test_denied_requests_are_not_recorded(self, clock):
        limiter = AssetRateLimiter(RateLimitConfig(2, 100, 1000), clock=clock)
        for _ in range(10):
            limiter.check("USD")
        used = limiter.status("USD")["windows"][0]["used"]
        assert used == 2

    def test_remaining_reports_tightest_window(self, clock):
        limiter = AssetRateLimiter(RateLimitConfig(10, 3, 1000), clock=clock)
        result = limiter.check("USD")
        assert result.allowed
        assert result.limit == 3
        assert result.remaining == 2

    def test_disabled_always_allows(self, clock):
        limiter = AssetRateLimiter(RateLimitConfig(1, 1, 1), enabled=False, clock=clock)
        assert all(limiter.is_allowed("USD") for _ in range(20))

    def test_reset(self, clock):
        limiter = AssetRateLimiter(RateLimitConfig(1, 10, 10), clock=clock)
        limiter.is_allowed("USD")
        limiter.reset("USD")
        assert limiter.is_allowed("USD")

    def test_concurrent_checks_do_not_undercount(self, clock):
        """Threads racing on one asset never exceed the limit."""
        limiter = AssetRateLimiter(RateLimitConfig(50, 1000, 1000), clock=clock)
        allowed = []
        lock = threading.Lock()

        def worker():
            for _ in range(25):
                ok = limiter.is_allowed("USD")
                with lock:
                    allowed.append(ok)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(allowed) == 50
