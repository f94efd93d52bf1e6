"""
Memory module for conversation management.

Provides per-session conversation history with a capped length and a
sliding TTL, persisted in the key-value store.
"""

from .session_store import (
    ConversationMessage,
    VoiceSession,
    SessionStore,
    create_session_store
)

__all__ = [
    "ConversationMessage",
    "VoiceSession",
    "SessionStore",
    "create_session_store",
]
