# utils package
"""
Utility modules for the voice agent service.

Modules:
    - cache: Topic-keyed response caching (in-memory and key-value backed)
    - cost_monitor: Model pricing, daily spend tracking and alerts
    - config: Configuration constants and environment variables
    - tracing: Optional OpenTelemetry setup
"""

from .cache import (
    BaseResponseCache,
    InMemoryResponseCache,
    KVResponseCache,
    TextToSpeechCache,
    CacheEntry,
    CachedResponse,
    normalize_question,
    create_response_cache
)
from .cost_monitor import (
    CostMonitor,
    CostAlert,
    AlertSeverity,
    ModelName,
    UsageEntry,
    calculate_cost,
    estimate_whisper_cost,
    estimate_gpt_cost,
    estimate_tts_cost,
    create_cost_monitor
)
from .config import (
    OPENAI_API_KEY,
    USE_LOCAL,
    CHAT_MODEL,
    TRANSCRIPTION_MODEL,
    TTS_MODEL,
    TTS_VOICE,
    KV_BACKEND,
    REDIS_URL,
    RATE_LIMIT_PER_MINUTE,
    RATE_LIMIT_PER_HOUR,
    RATE_LIMIT_BLOCK_SECONDS,
    DAILY_COST_LIMIT_USD,
    COST_ALERT_THRESHOLD_USD,
    CACHE_TTL_SECONDS,
    CACHE_MAX_SIZE,
    SESSION_TTL_SECONDS,
    SESSION_MAX_MESSAGES
)

__all__ = [
    # Cache
    "BaseResponseCache",
    "InMemoryResponseCache",
    "KVResponseCache",
    "TextToSpeechCache",
    "CacheEntry",
    "CachedResponse",
    "normalize_question",
    "create_response_cache",
    # Cost Monitor
    "CostMonitor",
    "CostAlert",
    "AlertSeverity",
    "ModelName",
    "UsageEntry",
    "calculate_cost",
    "estimate_whisper_cost",
    "estimate_gpt_cost",
    "estimate_tts_cost",
    "create_cost_monitor",
    # Config values
    "OPENAI_API_KEY",
    "USE_LOCAL",
    "CHAT_MODEL",
    "TRANSCRIPTION_MODEL",
    "TTS_MODEL",
    "TTS_VOICE",
    "KV_BACKEND",
    "REDIS_URL",
    "RATE_LIMIT_PER_MINUTE",
    "RATE_LIMIT_PER_HOUR",
    "RATE_LIMIT_BLOCK_SECONDS",
    "DAILY_COST_LIMIT_USD",
    "COST_ALERT_THRESHOLD_USD",
    "CACHE_TTL_SECONDS",
    "CACHE_MAX_SIZE",
    "SESSION_TTL_SECONDS",
    "SESSION_MAX_MESSAGES",
]
