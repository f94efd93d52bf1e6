"""
Agents module.

The voice agent request pipeline and its speech client.
"""

from .voice_agent import (
    VoiceAgent,
    ChatResult,
    TranscriptionResult,
    SpeechResult,
    DailyCostLimitExceeded,
    create_chat_model
)
from .speech import SpeechClient

__all__ = [
    "VoiceAgent",
    "ChatResult",
    "TranscriptionResult",
    "SpeechResult",
    "DailyCostLimitExceeded",
    "create_chat_model",
    "SpeechClient",
]
