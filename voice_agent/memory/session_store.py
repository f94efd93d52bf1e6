"""
Session Store module.

Conversation history per voice session, persisted in the key-value
store with a sliding TTL and a capped history length.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..storage.kv_store import KeyValueStore
from ..utils.config import SESSION_TTL_SECONDS, SESSION_MAX_MESSAGES

logger = logging.getLogger(__name__)

VALID_ROLES = ("user", "assistant")


@dataclass
class ConversationMessage:
    """Represents a single message in conversation history."""
    role: str  # 'user' or 'assistant'
    content: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert message to dictionary."""
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConversationMessage":
        """Create message from dictionary."""
        return cls(role=data["role"], content=data["content"])


@dataclass
class VoiceSession:
    """A voice agent session and its conversation history."""
    session_id: str
    conversation_history: List[ConversationMessage] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    last_accessed_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "conversation_history": [m.to_dict() for m in self.conversation_history],
            "created_at": self.created_at,
            "last_accessed_at": self.last_accessed_at
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VoiceSession":
        return cls(
            session_id=data["session_id"],
            conversation_history=[
                ConversationMessage.from_dict(m)
                for m in data.get("conversation_history", [])
            ],
            created_at=data.get("created_at", time.time()),
            last_accessed_at=data.get("last_accessed_at", time.time())
        )


class SessionStore:
    """
    Key-value backed session storage.

    Every mutation rewrites the whole session object. Reads refresh
    `last_accessed_at` and the TTL, so sessions expire only after
    `session_ttl` seconds of inactivity.
    """

    def __init__(
        self,
        store: KeyValueStore,
        session_ttl: int = SESSION_TTL_SECONDS,
        max_messages: int = SESSION_MAX_MESSAGES,
        time_func: Callable[[], float] = time.time
    ):
        """
        Initialize session store.

        Args:
            store: Key-value store.
            session_ttl: Inactivity TTL in seconds.
            max_messages: Maximum messages kept per session.
            time_func: Clock returning epoch seconds.
        """
        self.store = store
        self.session_ttl = session_ttl
        self.max_messages = max_messages
        self._time = time_func

        logger.info(f"SessionStore initialized: ttl={session_ttl}s, max_messages={max_messages}")

    async def get_session(self, session_id: str) -> Optional[VoiceSession]:
        """
        Load a session and refresh its TTL.

        Returns:
            The session, or None if absent or expired.
        """
        session = await self._load(session_id)
        if session is None:
            return None

        await self.save_session(session)
        return session

    async def save_session(self, session: VoiceSession) -> None:
        """Persist a session, refreshing `last_accessed_at` and its TTL."""
        session.last_accessed_at = self._time()
        await self.store.put(
            self._key(session.session_id),
            session.to_dict(),
            expiration_ttl=self.session_ttl
        )

    async def create_session(self, session_id: str) -> VoiceSession:
        """Create and persist an empty session."""
        now = self._time()
        session = VoiceSession(session_id=session_id, created_at=now, last_accessed_at=now)
        await self.save_session(session)
        logger.info(f"Created new session: {session_id}")
        return session

    async def add_message(self, session_id: str, role: str, content: str) -> VoiceSession:
        """
        Append a message, creating the session if needed.

        History is truncated to the most recent `max_messages` entries.

        Args:
            session_id: Session identifier.
            role: 'user' or 'assistant'.
            content: Message content.

        Returns:
            The updated session.

        Raises:
            ValueError: If role is not 'user' or 'assistant'.
        """
        if role not in VALID_ROLES:
            raise ValueError(f"Invalid role '{role}'. Expected one of: {', '.join(VALID_ROLES)}")

        session = await self._load(session_id)
        if session is None:
            now = self._time()
            session = VoiceSession(session_id=session_id, created_at=now, last_accessed_at=now)
            logger.info(f"Created new session: {session_id}")

        session.conversation_history.append(ConversationMessage(role=role, content=content))

        if len(session.conversation_history) > self.max_messages:
            session.conversation_history = session.conversation_history[-self.max_messages:]
            logger.debug(f"Trimmed session {session_id} to last {self.max_messages} messages")

        await self.save_session(session)
        return session

    async def delete_session(self, session_id: str) -> None:
        """Delete a session."""
        await self.store.delete(self._key(session_id))
        logger.info(f"Deleted session: {session_id}")

    async def get_conversation_history(self, session_id: str) -> List[ConversationMessage]:
        """Get a session's history, refreshing its TTL."""
        session = await self.get_session(session_id)
        return session.conversation_history if session else []

    async def _load(self, session_id: str) -> Optional[VoiceSession]:
        data = await self.store.get(self._key(session_id))
        if not data:
            return None
        return VoiceSession.from_dict(data)

    @staticmethod
    def _key(session_id: str) -> str:
        return f"session:{session_id}"


# Factory function for easy creation
def create_session_store(
    store: KeyValueStore,
    session_ttl: int = SESSION_TTL_SECONDS,
    max_messages: int = SESSION_MAX_MESSAGES
) -> SessionStore:
    """Create a session store with sensible defaults."""
    return SessionStore(store=store, session_ttl=session_ttl, max_messages=max_messages)
