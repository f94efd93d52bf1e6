"""
Request Validator module.

Input validation and sanitization for voice agent requests.
"""
import logging
import re
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Pattern, Tuple

logger = logging.getLogger(__name__)

MAX_QUESTION_LENGTH = 500
MAX_TEXT_LENGTH = 1000
MAX_AUDIO_SIZE = 5 * 1024 * 1024
MAX_BODY_SIZE = 10 * 1024

ALLOWED_AUDIO_TYPES: Tuple[str, ...] = (
    "audio/webm",
    "audio/mp4",
    "audio/mpeg",
    "audio/wav",
    "audio/ogg",
)

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_WHITESPACE = re.compile(r"\s+")

# Logged only; the model provider applies its own safety filtering
SUSPICIOUS_PATTERNS: List[Pattern[str]] = [
    re.compile(r"ignore\s+previous\s+instructions", re.IGNORECASE),
    re.compile(r"forget\s+your\s+instructions", re.IGNORECASE),
    re.compile(r"you\s+are\s+now", re.IGNORECASE),
    re.compile(r"system\s*:", re.IGNORECASE),
    re.compile(r"assistant\s*:", re.IGNORECASE),
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"onerror=", re.IGNORECASE),
    re.compile(r"onclick=", re.IGNORECASE),
]

INJECTION_PATTERNS: List[Tuple[Pattern[str], str]] = [
    (re.compile(r"ignore\s+(all\s+)?previous\s+instructions", re.IGNORECASE), "Ignore instructions"),
    (re.compile(r"forget\s+(everything|all|your\s+instructions)", re.IGNORECASE), "Forget instructions"),
    (re.compile(r"you\s+are\s+now\s+(a|an|the)\b", re.IGNORECASE), "Role override"),
    (re.compile(r"new\s+instructions:", re.IGNORECASE), "New instructions"),
    (re.compile(r"system\s*:\s*\w+", re.IGNORECASE), "System message injection"),
    (re.compile(r"assistant\s*:\s*\w+", re.IGNORECASE), "Assistant injection"),
    (re.compile(r"CRITICAL\s+SECURITY\s+UPDATE", re.IGNORECASE), "Fake security update"),
]


class ValidationError(ValueError):
    """Raised when caller-supplied input is malformed."""
    pass


@dataclass
class ValidationResult:
    """Result of validating a piece of input."""
    valid: bool
    error: Optional[str] = None
    sanitized: Optional[str] = None

    def raise_for_error(self) -> None:
        """Raise ValidationError if the input was rejected."""
        if not self.valid:
            raise ValidationError(self.error or "Invalid input")


@dataclass
class InjectionCheck:
    """Result of a prompt injection scan."""
    detected: bool
    pattern: Optional[str] = None


def sanitize_text(text: str) -> str:
    """Strip control characters and collapse whitespace."""
    text = _CONTROL_CHARS.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def _validate_string(value: Any, label: str, max_length: int) -> ValidationResult:
    if not isinstance(value, str):
        return ValidationResult(valid=False, error=f"{label} must be a string")

    trimmed = value.strip()
    if not trimmed:
        return ValidationResult(valid=False, error=f"{label} cannot be empty")

    if len(trimmed) > max_length:
        return ValidationResult(
            valid=False,
            error=f"{label} too long (max {max_length} characters, got {len(trimmed)})"
        )

    return ValidationResult(valid=True, sanitized=sanitize_text(trimmed))


def validate_question(question: Any) -> ValidationResult:
    """
    Validate and sanitize a chat question.

    Args:
        question: Raw question from the request body.

    Returns:
        ValidationResult with the sanitized question when valid.
    """
    result = _validate_string(question, "Question", MAX_QUESTION_LENGTH)
    if not result.valid:
        return result

    for pattern in SUSPICIOUS_PATTERNS:
        if pattern.search(result.sanitized):
            logger.warning(f"Suspicious pattern detected: {pattern.pattern}")

    return result


def validate_text(text: Any) -> ValidationResult:
    """Validate and sanitize text for speech synthesis."""
    return _validate_string(text, "Text", MAX_TEXT_LENGTH)


def validate_audio_file(size: int, content_type: Optional[str]) -> ValidationResult:
    """
    Validate an uploaded audio file.

    Args:
        size: File size in bytes.
        content_type: MIME type reported by the client.

    Returns:
        ValidationResult.
    """
    if size > MAX_AUDIO_SIZE:
        size_mb = size / (1024 * 1024)
        max_mb = MAX_AUDIO_SIZE / (1024 * 1024)
        return ValidationResult(
            valid=False,
            error=f"Audio file too large ({size_mb:.2f}MB, max {max_mb:.2f}MB)"
        )

    # Browsers append codec parameters, e.g. "audio/webm;codecs=opus"
    base_type = (content_type or "").split(";")[0].strip().lower()
    if base_type not in ALLOWED_AUDIO_TYPES:
        return ValidationResult(
            valid=False,
            error=f"Invalid audio type ({content_type}). Allowed: {', '.join(ALLOWED_AUDIO_TYPES)}"
        )

    return ValidationResult(valid=True)


def validate_body_size(body: str, max_size: int = MAX_BODY_SIZE) -> ValidationResult:
    """Reject request bodies larger than `max_size` bytes."""
    size = len(body.encode("utf-8"))
    if size > max_size:
        return ValidationResult(
            valid=False,
            error=f"Request body too large ({size} bytes, max {max_size} bytes)"
        )
    return ValidationResult(valid=True)


def detect_prompt_injection(text: str) -> InjectionCheck:
    """Return the first matching prompt injection pattern, if any."""
    for pattern, name in INJECTION_PATTERNS:
        if pattern.search(text):
            return InjectionCheck(detected=True, pattern=name)
    return InjectionCheck(detected=False)


def get_client_ip(headers: Mapping[str, str]) -> str:
    """
    Extract the client IP from proxy headers.

    Args:
        headers: Case-insensitive request headers.

    Returns:
        The first forwarded address, the real IP header, or "unknown".
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    return "unknown"
