"""
Configuration module for the voice agent service.
Loads environment variables and defines configuration constants.
"""
import os
import logging
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


def get_required_env(name: str) -> str:
    """
    Get a required environment variable or raise ValueError.

    Args:
        name: Name of the environment variable.

    Returns:
        The value of the environment variable.

    Raises:
        ValueError: If the environment variable is not set.
    """
    value = os.getenv(name)
    if not value:
        raise ValueError(f"Required environment variable '{name}' is not set. "
                        f"Please set it in your .env file or environment.")
    return value


def get_optional_env(name: str, default: str) -> str:
    """
    Get an optional environment variable with a default value.

    Args:
        name: Name of the environment variable.
        default: Default value if not set.

    Returns:
        The value of the environment variable or the default.
    """
    return os.getenv(name, default)


# API Configuration
OPENAI_API_KEY: Optional[str] = os.getenv("OPENAI_API_KEY")

# Local Model Configuration
USE_LOCAL: bool = get_optional_env("USE_LOCAL", "false").lower() == "true"
LOCAL_LLM_MODEL: str = get_optional_env("LOCAL_LLM_MODEL", "llama3.2:1b")
OLLAMA_BASE_URL: str = get_optional_env("OLLAMA_BASE_URL", "http://localhost:11434")

# Model Configuration
CHAT_MODEL: str = get_optional_env("CHAT_MODEL", "gpt-4o-mini")
TRANSCRIPTION_MODEL: str = get_optional_env("TRANSCRIPTION_MODEL", "whisper-1")
TTS_MODEL: str = get_optional_env("TTS_MODEL", "tts-1")
TTS_VOICE: str = get_optional_env("TTS_VOICE", "echo")
CHAT_TEMPERATURE: float = float(get_optional_env("CHAT_TEMPERATURE", "0.7"))
CHAT_MAX_TOKENS: int = int(get_optional_env("CHAT_MAX_TOKENS", "300"))

# Logging Configuration
LOG_LEVEL: str = get_optional_env("LOG_LEVEL", "INFO")
logging.basicConfig(level=getattr(logging, LOG_LEVEL, logging.INFO))

# Key-Value Store
KV_BACKEND: str = get_optional_env("KV_BACKEND", "memory").lower()
REDIS_URL: str = get_optional_env("REDIS_URL", "redis://redis:6379")

# Rate Limiting
RATE_LIMIT_PER_MINUTE: int = int(get_optional_env("RATE_LIMIT_PER_MINUTE", "10"))
RATE_LIMIT_PER_HOUR: int = int(get_optional_env("RATE_LIMIT_PER_HOUR", "100"))
RATE_LIMIT_BLOCK_SECONDS: int = int(get_optional_env("RATE_LIMIT_BLOCK_SECONDS", "3600"))

# Cost Control
DAILY_COST_LIMIT_USD: float = float(get_optional_env("DAILY_COST_LIMIT_USD", "10.0"))
COST_ALERT_THRESHOLD_USD: float = float(get_optional_env("COST_ALERT_THRESHOLD_USD", "5.0"))
USAGE_RECORD_TTL_SECONDS: int = int(get_optional_env("USAGE_RECORD_TTL_SECONDS", "172800"))

# Caching Configuration
CACHE_TTL_SECONDS: int = int(get_optional_env("CACHE_TTL_SECONDS", "86400"))
CACHE_MAX_SIZE: int = int(get_optional_env("CACHE_MAX_SIZE", "100"))
TTS_CACHE_MAX_SIZE: int = int(get_optional_env("TTS_CACHE_MAX_SIZE", "50"))
CLEANUP_INTERVAL_SECONDS: int = int(get_optional_env("CLEANUP_INTERVAL_SECONDS", "300"))

# Session Configuration
SESSION_TTL_SECONDS: int = int(get_optional_env("SESSION_TTL_SECONDS", "3600"))
SESSION_MAX_MESSAGES: int = int(get_optional_env("SESSION_MAX_MESSAGES", "10"))

# Tracing Configuration
TRACING_ENABLED: bool = get_optional_env("TRACING_ENABLED", "false").lower() == "true"
TRACING_SERVICE_NAME: str = get_optional_env("TRACING_SERVICE_NAME", "voice-agent")
OTLP_ENDPOINT: str = get_optional_env("OTEL_EXPORTER_OTLP_ENDPOINT", "http://jaeger:4317")
