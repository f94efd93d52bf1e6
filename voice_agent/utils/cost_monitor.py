"""
Cost Monitor module.

Prices each model call, keeps an audit trail of usage records and a
running daily total in the key-value store, and raises alerts when the
daily spend crosses its thresholds.
"""
import logging
import time
import uuid
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from prometheus_client import Counter

from ..storage.kv_store import KeyValueStore
from .config import (
    DAILY_COST_LIMIT_USD,
    COST_ALERT_THRESHOLD_USD,
    USAGE_RECORD_TTL_SECONDS
)

logger = logging.getLogger(__name__)

MODEL_COST_USD = Counter("model_cost_usd_total", "Tracked model spend in USD", ["model"])
MODEL_CALLS = Counter("model_calls_total", "Tracked model calls", ["model", "cached"])


class ModelName(str, Enum):
    """Models with known pricing."""
    CHAT = "gpt-4o-mini"
    TRANSCRIPTION = "whisper-1"
    TTS = "tts-1"


PRICING: Dict[ModelName, Dict[str, float]] = {
    ModelName.CHAT: {
        "input": 0.15 / 1_000_000,
        "output": 0.60 / 1_000_000,
    },
    ModelName.TRANSCRIPTION: {
        "per_minute": 0.006,
    },
    ModelName.TTS: {
        "per_character": 15 / 1_000_000,
    },
}

# Transcription usage arrives as a token count; convert tokens -> words -> minutes
WORDS_PER_TOKEN = 0.75
WORDS_PER_MINUTE = 150


class AlertSeverity(Enum):
    """Cost alert severity levels."""
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass
class UsageEntry:
    """Record of a single model call."""
    timestamp: float
    endpoint: str
    model: str
    input_tokens: int
    output_tokens: int
    cost: float
    cached: bool = False
    ip: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CostAlert:
    """Alert emitted when the daily total crosses a threshold."""
    severity: AlertSeverity
    daily_total: float
    threshold: float
    date: str
    message: str


def calculate_cost(
    model: str,
    input_tokens: int,
    output_tokens: int,
    cached: bool = False
) -> float:
    """
    Calculate the cost of a model call.

    Args:
        model: Model name; must be one of ModelName.
        input_tokens: Input tokens (word-count proxy for transcription).
        output_tokens: Output tokens (character count for speech synthesis).
        cached: Cache hits are never billed.

    Returns:
        Cost in USD.

    Raises:
        ValueError: If the model has no pricing entry.
    """
    try:
        model_name = ModelName(model)
    except ValueError:
        raise ValueError(
            f"Unknown model '{model}'. Expected one of: "
            f"{', '.join(m.value for m in ModelName)}"
        ) from None

    if cached:
        return 0.0

    pricing = PRICING[model_name]
    if model_name is ModelName.CHAT:
        return input_tokens * pricing["input"] + output_tokens * pricing["output"]
    if model_name is ModelName.TRANSCRIPTION:
        estimated_minutes = (input_tokens * WORDS_PER_TOKEN) / WORDS_PER_MINUTE
        return estimated_minutes * pricing["per_minute"]
    return output_tokens * pricing["per_character"]


def estimate_whisper_cost(duration_seconds: float) -> float:
    """Estimate transcription cost from audio duration."""
    return (duration_seconds / 60) * PRICING[ModelName.TRANSCRIPTION]["per_minute"]


def estimate_gpt_cost(input_tokens: int, output_tokens: int) -> float:
    """Estimate chat completion cost from token counts."""
    return calculate_cost(ModelName.CHAT.value, input_tokens, output_tokens)


def estimate_tts_cost(text_length: int) -> float:
    """Estimate speech synthesis cost from character count."""
    return text_length * PRICING[ModelName.TTS]["per_character"]


class CostMonitor:
    """
    Tracks model spend against a daily budget.

    The daily total is advisory: track() never blocks, so callers that
    want to enforce the limit must check is_over_daily_limit() before
    making a costly call. The total is updated with read-modify-write
    and may lose updates under concurrent tracking.
    """

    def __init__(
        self,
        store: KeyValueStore,
        daily_limit: float = DAILY_COST_LIMIT_USD,
        alert_threshold: float = COST_ALERT_THRESHOLD_USD,
        record_ttl: int = USAGE_RECORD_TTL_SECONDS,
        time_func: Callable[[], float] = time.time
    ):
        """
        Initialize cost monitor.

        Args:
            store: Key-value store for usage records and daily totals.
            daily_limit: Daily spend limit in USD.
            alert_threshold: Daily spend that triggers a warning, in USD.
            record_ttl: TTL for usage records and daily totals, in seconds.
            time_func: Clock returning epoch seconds.
        """
        self.store = store
        self.daily_limit = daily_limit
        self.alert_threshold = alert_threshold
        self.record_ttl = record_ttl
        self._time = time_func
        self._alert_handlers: List[Callable[[CostAlert], None]] = []

        logger.info(f"CostMonitor initialized: daily_limit=${daily_limit}, "
                   f"alert_threshold=${alert_threshold}")

    def add_alert_handler(self, handler: Callable[[CostAlert], None]) -> None:
        """Register a callback invoked for every cost alert."""
        self._alert_handlers.append(handler)

    async def track(
        self,
        endpoint: str,
        model: str,
        input_tokens: int = 0,
        output_tokens: int = 0,
        cached: bool = False,
        ip: Optional[str] = None
    ) -> float:
        """
        Record a model call and add its cost to the daily total.

        Args:
            endpoint: Endpoint that made the call (e.g. "chat", "tts").
            model: Model name.
            input_tokens: Input token count.
            output_tokens: Output token count.
            cached: Whether the response was served from cache.
            ip: Optional client identifier.

        Returns:
            Cost of this call in USD.
        """
        cost = calculate_cost(model, input_tokens, output_tokens, cached)
        now = self._time()

        entry = UsageEntry(
            timestamp=now,
            endpoint=endpoint,
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=cost,
            cached=cached,
            ip=ip
        )
        entry_key = f"cost:entry:{int(now * 1000)}:{uuid.uuid4().hex}"
        await self.store.put(entry_key, entry.to_dict(), expiration_ttl=self.record_ttl)

        date = self._today()
        daily_total = await self.get_daily_cost() + cost
        await self.store.put(self._daily_key(date), daily_total, expiration_ttl=self.record_ttl)

        MODEL_CALLS.labels(model=model, cached=str(cached).lower()).inc()
        MODEL_COST_USD.labels(model=model).inc(cost)
        logger.debug(f"Tracked usage: {endpoint} {model}, ${cost:.6f} (daily ${daily_total:.4f})")

        self._check_thresholds(daily_total, date)
        return cost

    async def get_daily_cost(self) -> float:
        """Get the accumulated cost for the current UTC day."""
        value = await self.store.get(self._daily_key(self._today()))
        return float(value) if value else 0.0

    async def is_over_daily_limit(self) -> bool:
        """Check whether today's spend has reached the daily limit."""
        return await self.get_daily_cost() >= self.daily_limit

    async def get_budget_status(self) -> Dict[str, Any]:
        """Get budget status for the current day."""
        used = await self.get_daily_cost()
        remaining = max(0.0, self.daily_limit - used)
        percentage = (used / self.daily_limit) * 100 if self.daily_limit > 0 else 0

        return {
            "date": self._today(),
            "limit": self.daily_limit,
            "alert_threshold": self.alert_threshold,
            "used": used,
            "remaining": remaining,
            "percentage": percentage,
            "alert_threshold_reached": used >= self.alert_threshold,
            "limit_reached": used >= self.daily_limit
        }

    def _check_thresholds(self, daily_total: float, date: str) -> None:
        if daily_total >= self.daily_limit:
            alert = CostAlert(
                severity=AlertSeverity.CRITICAL,
                daily_total=daily_total,
                threshold=self.daily_limit,
                date=date,
                message=f"DAILY COST LIMIT EXCEEDED: ${daily_total:.2f}"
            )
            logger.critical(alert.message)
        elif daily_total >= self.alert_threshold:
            alert = CostAlert(
                severity=AlertSeverity.WARNING,
                daily_total=daily_total,
                threshold=self.alert_threshold,
                date=date,
                message=f"COST ALERT: ${daily_total:.2f}"
            )
            logger.warning(alert.message)
        else:
            return

        for handler in self._alert_handlers:
            try:
                handler(alert)
            except Exception as e:
                logger.error(f"Cost alert handler failed: {e}")

    def _today(self) -> str:
        return datetime.fromtimestamp(self._time(), tz=timezone.utc).strftime("%Y-%m-%d")

    @staticmethod
    def _daily_key(date: str) -> str:
        return f"cost:daily:{date}"


# Factory function
def create_cost_monitor(
    store: KeyValueStore,
    daily_limit: float = DAILY_COST_LIMIT_USD,
    alert_threshold: float = COST_ALERT_THRESHOLD_USD
) -> CostMonitor:
    """Create a cost monitor with the configured budget."""
    return CostMonitor(
        store=store,
        daily_limit=daily_limit,
        alert_threshold=alert_threshold
    )
