"""
Security module.

Rate limiting and request validation for the voice agent endpoints.
"""

from .rate_limiter import (
    RateLimiter,
    RateLimitConfig,
    RateLimitEntry,
    RateLimitResult
)
from .request_validator import (
    ValidationError,
    ValidationResult,
    InjectionCheck,
    validate_question,
    validate_text,
    validate_audio_file,
    validate_body_size,
    detect_prompt_injection,
    sanitize_text,
    get_client_ip
)

__all__ = [
    # Rate Limiter
    "RateLimiter",
    "RateLimitConfig",
    "RateLimitEntry",
    "RateLimitResult",
    # Request Validator
    "ValidationError",
    "ValidationResult",
    "InjectionCheck",
    "validate_question",
    "validate_text",
    "validate_audio_file",
    "validate_body_size",
    "detect_prompt_injection",
    "sanitize_text",
    "get_client_ip",
]
