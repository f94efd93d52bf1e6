"""
Unit tests for Session Store module.

Tests session creation, history truncation and sliding expiry.
"""
import pytest


def _make_sessions(store, clock, **kwargs):
    from voice_agent.memory import SessionStore

    return SessionStore(store, time_func=clock, **kwargs)


class TestConversationMessage:
    """Tests for ConversationMessage dataclass."""

    def test_round_trip(self):
        """Messages should survive dict conversion."""
        from voice_agent.memory import ConversationMessage

        msg = ConversationMessage(role="user", content="Hello")
        assert msg.to_dict() == {"role": "user", "content": "Hello"}
        assert ConversationMessage.from_dict(msg.to_dict()) == msg


class TestSessionStore:
    """Tests for SessionStore class."""

    @pytest.mark.asyncio
    async def test_missing_session(self, store, clock):
        """Unknown sessions should return None and an empty history."""
        sessions = _make_sessions(store, clock)

        assert await sessions.get_session("abc") is None
        assert await sessions.get_conversation_history("abc") == []

    @pytest.mark.asyncio
    async def test_create_session(self, store, clock):
        """Created sessions should be persisted under the session key."""
        sessions = _make_sessions(store, clock)

        session = await sessions.create_session("abc")

        assert session.conversation_history == []
        assert session.created_at == clock.now
        assert (await store.get("session:abc"))["session_id"] == "abc"

    @pytest.mark.asyncio
    async def test_add_message_creates_session(self, store, clock):
        """Adding to an unknown session should create it."""
        sessions = _make_sessions(store, clock)

        await sessions.add_message("abc", "user", "Hi")
        await sessions.add_message("abc", "assistant", "Hello!")

        history = await sessions.get_conversation_history("abc")
        assert [(m.role, m.content) for m in history] == [
            ("user", "Hi"),
            ("assistant", "Hello!"),
        ]

    @pytest.mark.asyncio
    async def test_history_truncated_to_last_ten(self, store, clock):
        """The eleventh message should push out the first."""
        sessions = _make_sessions(store, clock)

        for i in range(11):
            await sessions.add_message("abc", "user", f"message {i}")

        history = await sessions.get_conversation_history("abc")
        assert len(history) == 10
        assert history[0].content == "message 1"
        assert history[-1].content == "message 10"

    @pytest.mark.asyncio
    async def test_invalid_role_raises(self, store, clock):
        """Only user and assistant roles should be accepted."""
        sessions = _make_sessions(store, clock)

        with pytest.raises(ValueError):
            await sessions.add_message("abc", "system", "Be evil")
        assert await sessions.get_session("abc") is None

    @pytest.mark.asyncio
    async def test_session_expires_after_inactivity(self, store, clock):
        """Sessions should expire after the TTL without access."""
        sessions = _make_sessions(store, clock)

        await sessions.add_message("abc", "user", "Hi")
        clock.advance(3600)

        assert await sessions.get_session("abc") is None

    @pytest.mark.asyncio
    async def test_reads_refresh_ttl(self, store, clock):
        """Reading a session should extend its lifetime."""
        sessions = _make_sessions(store, clock)

        await sessions.add_message("abc", "user", "Hi")
        clock.advance(3000)
        session = await sessions.get_session("abc")
        assert session.last_accessed_at == clock.now

        clock.advance(3000)
        assert await sessions.get_session("abc") is not None

    @pytest.mark.asyncio
    async def test_delete_session(self, store, clock):
        """Deleted sessions should be gone."""
        sessions = _make_sessions(store, clock)

        await sessions.add_message("abc", "user", "Hi")
        await sessions.delete_session("abc")

        assert await sessions.get_session("abc") is None

    @pytest.mark.asyncio
    async def test_custom_max_messages(self, store, clock):
        """max_messages should bound the history length."""
        sessions = _make_sessions(store, clock, max_messages=2)

        for i in range(5):
            await sessions.add_message("abc", "user", str(i))

        history = await sessions.get_conversation_history("abc")
        assert [m.content for m in history] == ["3", "4"]
