"""
Unit tests for Rate Limiter module.

Tests minute and hour windows, blocking, stats and manual unblock.
"""
import pytest


def _make_limiter(store, clock, **config):
    from voice_agent.security import RateLimiter, RateLimitConfig

    return RateLimiter(store, config=RateLimitConfig(**config), time_func=clock)


class TestRateLimitEntry:
    """Tests for RateLimitEntry dataclass."""

    def test_round_trip(self):
        """Entries should survive dict conversion."""
        from voice_agent.security import RateLimitEntry

        entry = RateLimitEntry(count=3, reset_time=100.0, blocked_until=200.0)
        assert RateLimitEntry.from_dict(entry.to_dict()) == entry

    def test_is_blocked(self):
        """Block should be active only until blocked_until."""
        from voice_agent.security import RateLimitEntry

        entry = RateLimitEntry(count=11, reset_time=60.0, blocked_until=100.0)
        assert entry.is_blocked(99.0) is True
        assert entry.is_blocked(100.0) is False
        assert RateLimitEntry(count=1, reset_time=60.0).is_blocked(0.0) is False


class TestRateLimitResult:
    """Tests for RateLimitResult dataclass."""

    def test_retry_after_rounds_up(self):
        """Retry-after should be whole seconds, rounded up."""
        from voice_agent.security import RateLimitResult

        result = RateLimitResult(allowed=False, remaining=0, reset_time=100.5)
        assert result.retry_after(now=90.0) == 11
        assert result.retry_after(now=200.0) == 0


class TestRateLimiter:
    """Tests for RateLimiter class."""

    @pytest.mark.asyncio
    async def test_first_request_allowed(self, store, clock):
        """First request should be allowed with the full allowance reported."""
        limiter = _make_limiter(store, clock)

        result = await limiter.check("ip-1")

        assert result.allowed is True
        assert result.remaining == 10
        assert result.reset_time == clock.now + 60

    @pytest.mark.asyncio
    async def test_minute_limit_blocks_for_an_hour(self, store, clock):
        """Exceeding the minute limit should block until the hour is up."""
        limiter = _make_limiter(store, clock)

        for _ in range(10):
            assert (await limiter.check("ip-1")).allowed is True

        eleventh = await limiter.check("ip-1")
        assert eleventh.allowed is False
        assert eleventh.remaining == 0
        assert eleventh.reason == "Rate limit exceeded. Blocked for 1 hour."
        assert eleventh.reset_time == clock.now + 3600

        clock.advance(30)
        twelfth = await limiter.check("ip-1")
        assert twelfth.allowed is False
        assert twelfth.reason == "Rate limit exceeded. Try again in 60 minutes."

        clock.advance(3600 - 30 + 1)
        thirteenth = await limiter.check("ip-1")
        assert thirteenth.allowed is True

    @pytest.mark.asyncio
    async def test_block_outlives_minute_window(self, store, clock):
        """Block should still apply after the minute window has passed."""
        limiter = _make_limiter(store, clock)

        for _ in range(11):
            await limiter.check("ip-1")

        clock.advance(120)
        result = await limiter.check("ip-1")
        assert result.allowed is False
        assert result.reason == "Rate limit exceeded. Try again in 58 minutes."

    @pytest.mark.asyncio
    async def test_minute_window_resets(self, store, clock):
        """Requests spread across windows should not accumulate."""
        limiter = _make_limiter(store, clock)

        for _ in range(10):
            await limiter.check("ip-1")

        clock.advance(60)
        result = await limiter.check("ip-1")
        assert result.allowed is True
        assert result.remaining == 10

    @pytest.mark.asyncio
    async def test_hour_limit_rejects_without_block(self, store, clock):
        """Exceeding the hour limit should reject but not install a block."""
        limiter = _make_limiter(store, clock, requests_per_minute=5, requests_per_hour=8)

        for _ in range(5):
            assert (await limiter.check("ip-1")).allowed is True
        clock.advance(61)
        for _ in range(3):
            assert (await limiter.check("ip-1")).allowed is True

        result = await limiter.check("ip-1")
        assert result.allowed is False
        assert result.reason == "Hourly limit exceeded. Try again later."

        stats = await limiter.get_stats("ip-1")
        assert stats["blocked"] is False
        assert stats["requests_last_hour"] == 8

    @pytest.mark.asyncio
    async def test_identifiers_are_independent(self, store, clock):
        """One client's usage should not affect another."""
        limiter = _make_limiter(store, clock)

        for _ in range(11):
            await limiter.check("ip-1")

        assert (await limiter.check("ip-2")).allowed is True

    @pytest.mark.asyncio
    async def test_remaining_decreases(self, store, clock):
        """Remaining should count down as requests are made."""
        limiter = _make_limiter(store, clock)

        remaining = [(await limiter.check("ip-1")).remaining for _ in range(3)]
        assert remaining == [10, 9, 8]

    @pytest.mark.asyncio
    async def test_get_stats(self, store, clock):
        """Stats should report counts, limits and block state."""
        limiter = _make_limiter(store, clock)

        for _ in range(3):
            await limiter.check("ip-1")
        stats = await limiter.get_stats("ip-1")

        assert stats["identifier"] == "ip-1"
        assert stats["blocked"] is False
        assert stats["requests_last_minute"] == 3
        assert stats["requests_last_hour"] == 3
        assert stats["minute_remaining"] == 7
        assert stats["hour_remaining"] == 97

    @pytest.mark.asyncio
    async def test_get_stats_unknown_identifier(self, store, clock):
        """Unknown identifiers should report an empty state."""
        limiter = _make_limiter(store, clock)

        stats = await limiter.get_stats("nobody")
        assert stats["blocked"] is False
        assert stats["requests_last_minute"] == 0

    @pytest.mark.asyncio
    async def test_unblock(self, store, clock):
        """Unblock should clear the block and the counters."""
        limiter = _make_limiter(store, clock)

        for _ in range(11):
            await limiter.check("ip-1")
        assert (await limiter.get_stats("ip-1"))["blocked"] is True

        await limiter.unblock("ip-1")

        result = await limiter.check("ip-1")
        assert result.allowed is True
        assert result.remaining == 10

    @pytest.mark.asyncio
    async def test_store_errors_propagate(self, clock):
        """Store failures should fail closed rather than allow the request."""
        from unittest.mock import AsyncMock

        broken = AsyncMock()
        broken.get.side_effect = ConnectionError("store down")
        limiter = _make_limiter(broken, clock)

        with pytest.raises(ConnectionError):
            await limiter.check("ip-1")
