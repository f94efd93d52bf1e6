"""
Rate Limiter module.

Per-identifier minute and hour request windows with an escalating
block, persisted in the shared key-value store so every worker sees
the same counters.
"""
import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from prometheus_client import Counter

from ..storage.kv_store import KeyValueStore
from ..utils.config import (
    RATE_LIMIT_PER_MINUTE,
    RATE_LIMIT_PER_HOUR,
    RATE_LIMIT_BLOCK_SECONDS
)

logger = logging.getLogger(__name__)

RATE_LIMIT_REJECTIONS = Counter(
    "rate_limit_rejections_total",
    "Requests rejected by the rate limiter",
    ["reason"]
)

MINUTE_WINDOW = 60
HOUR_WINDOW = 60 * 60
MIN_ENTRY_TTL = 60


@dataclass
class RateLimitConfig:
    """Rate limit configuration."""
    requests_per_minute: int = RATE_LIMIT_PER_MINUTE
    requests_per_hour: int = RATE_LIMIT_PER_HOUR
    block_seconds: int = RATE_LIMIT_BLOCK_SECONDS


@dataclass
class RateLimitEntry:
    """Stored counter for one (identifier, window) pair."""
    count: int
    reset_time: float
    blocked_until: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"count": self.count, "reset_time": self.reset_time}
        if self.blocked_until is not None:
            data["blocked_until"] = self.blocked_until
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RateLimitEntry":
        return cls(
            count=int(data.get("count", 0)),
            reset_time=float(data["reset_time"]),
            blocked_until=data.get("blocked_until")
        )

    def is_blocked(self, now: float) -> bool:
        return self.blocked_until is not None and self.blocked_until > now


@dataclass
class RateLimitResult:
    """Outcome of a rate limit check."""
    allowed: bool
    remaining: int
    reset_time: float
    reason: Optional[str] = None

    def retry_after(self, now: Optional[float] = None) -> int:
        """Seconds until the caller may retry."""
        now = time.time() if now is None else now
        return max(0, math.ceil(self.reset_time - now))


@dataclass
class _WindowState:
    """Evaluated state of a window at a point in time."""
    allowed: bool
    count: int
    reset_time: float
    remaining: int


class RateLimiter:
    """
    Store-backed rate limiter with minute and hour windows.

    Exceeding the minute window blocks the identifier for the block
    duration; exceeding the hour window only rejects the request.
    Windows start on the first request after expiry rather than on
    wall-clock boundaries.

    Counters are updated with plain read-modify-write, so concurrent
    requests from the same identifier may undercount.
    """

    def __init__(
        self,
        store: KeyValueStore,
        config: Optional[RateLimitConfig] = None,
        time_func: Callable[[], float] = time.time
    ):
        """
        Initialize rate limiter.

        Args:
            store: Key-value store holding the counters.
            config: Rate limit configuration. Uses defaults if not provided.
            time_func: Clock returning epoch seconds.
        """
        self.store = store
        self.config = config or RateLimitConfig()
        self._time = time_func

        logger.info(f"RateLimiter initialized: {self.config.requests_per_minute}/min, "
                   f"{self.config.requests_per_hour}/hour, block={self.config.block_seconds}s")

    async def check(self, identifier: str) -> RateLimitResult:
        """
        Check whether a request from `identifier` is allowed and count it.

        Args:
            identifier: Client identifier (usually the client IP).

        Returns:
            RateLimitResult describing the decision.
        """
        now = self._time()
        minute_key, hour_key = self._keys(identifier)

        minute_entry = await self._get_entry(minute_key)
        if minute_entry and minute_entry.is_blocked(now):
            blocked_until = minute_entry.blocked_until
            minutes_remaining = math.ceil((blocked_until - now) / 60)
            logger.info(f"BLOCKED: {identifier} - {minutes_remaining} minutes remaining")
            RATE_LIMIT_REJECTIONS.labels(reason="blocked").inc()
            return RateLimitResult(
                allowed=False,
                remaining=0,
                reset_time=blocked_until,
                reason=f"Rate limit exceeded. Try again in {minutes_remaining} minutes."
            )

        minute = self._evaluate(
            minute_entry, self.config.requests_per_minute, MINUTE_WINDOW, now
        )
        if not minute.allowed:
            blocked_until = now + self.config.block_seconds
            await self._set_entry(
                minute_key,
                RateLimitEntry(minute.count, minute.reset_time, blocked_until),
                now
            )
            logger.warning(f"RATE LIMIT EXCEEDED: {identifier} - blocked until {blocked_until:.0f}")
            RATE_LIMIT_REJECTIONS.labels(reason="minute").inc()
            return RateLimitResult(
                allowed=False,
                remaining=0,
                reset_time=blocked_until,
                reason="Rate limit exceeded. Blocked for 1 hour."
            )

        hour = self._evaluate(
            await self._get_entry(hour_key),
            self.config.requests_per_hour,
            HOUR_WINDOW,
            now
        )
        if not hour.allowed:
            logger.warning(f"HOURLY LIMIT EXCEEDED: {identifier}")
            RATE_LIMIT_REJECTIONS.labels(reason="hour").inc()
            return RateLimitResult(
                allowed=False,
                remaining=0,
                reset_time=hour.reset_time,
                reason="Hourly limit exceeded. Try again later."
            )

        await self._set_entry(minute_key, RateLimitEntry(minute.count + 1, minute.reset_time), now)
        await self._set_entry(hour_key, RateLimitEntry(hour.count + 1, hour.reset_time), now)

        logger.debug(f"Rate limit OK: {identifier} ({minute.remaining}/min, "
                    f"{hour.remaining}/hour remaining)")

        return RateLimitResult(
            allowed=True,
            remaining=min(minute.remaining, hour.remaining),
            reset_time=min(minute.reset_time, hour.reset_time)
        )

    async def get_stats(self, identifier: str) -> Dict[str, Any]:
        """
        Get current counters for an identifier.

        Read-only: does not count a request or refresh any window.
        """
        now = self._time()
        minute_key, hour_key = self._keys(identifier)
        minute_entry = await self._get_entry(minute_key)
        hour_entry = await self._get_entry(hour_key)

        minute = self._evaluate(minute_entry, self.config.requests_per_minute, MINUTE_WINDOW, now)
        hour = self._evaluate(hour_entry, self.config.requests_per_hour, HOUR_WINDOW, now)
        blocked = bool(minute_entry and minute_entry.is_blocked(now))

        return {
            "identifier": identifier,
            "blocked": blocked,
            "blocked_until": minute_entry.blocked_until if blocked else None,
            "requests_last_minute": minute.count,
            "requests_last_hour": hour.count,
            "requests_per_minute_limit": self.config.requests_per_minute,
            "requests_per_hour_limit": self.config.requests_per_hour,
            "minute_remaining": minute.remaining,
            "hour_remaining": hour.remaining,
            "minute_reset_in": max(0, math.ceil(minute.reset_time - now)),
            "hour_reset_in": max(0, math.ceil(hour.reset_time - now)),
        }

    async def unblock(self, identifier: str) -> None:
        """Manually clear the block and counters for an identifier."""
        minute_key, hour_key = self._keys(identifier)
        await self.store.delete(minute_key)
        await self.store.delete(hour_key)
        logger.info(f"UNBLOCKED: {identifier}")

    @staticmethod
    def _keys(identifier: str) -> Tuple[str, str]:
        return f"ratelimit:{identifier}:minute", f"ratelimit:{identifier}:hour"

    @staticmethod
    def _evaluate(
        entry: Optional[RateLimitEntry],
        limit: int,
        window: int,
        now: float
    ) -> _WindowState:
        """Evaluate a window, restarting it if it has expired."""
        if entry is None or now >= entry.reset_time:
            return _WindowState(allowed=True, count=0, reset_time=now + window, remaining=limit)

        return _WindowState(
            allowed=entry.count < limit,
            count=entry.count,
            reset_time=entry.reset_time,
            remaining=max(0, limit - entry.count)
        )

    async def _get_entry(self, key: str) -> Optional[RateLimitEntry]:
        data = await self.store.get(key)
        if not data:
            return None
        return RateLimitEntry.from_dict(data)

    async def _set_entry(self, key: str, entry: RateLimitEntry, now: float) -> None:
        # A block must outlive the window it was installed on
        expires_at = max(entry.reset_time, entry.blocked_until or 0)
        ttl = max(MIN_ENTRY_TTL, math.ceil(expires_at - now))
        await self.store.put(key, entry.to_dict(), expiration_ttl=ttl)
