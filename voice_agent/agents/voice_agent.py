"""
Voice Agent module.

Request pipeline for the voice assistant: validation, rate limiting,
response caching, cost metering and session history around the chat,
transcription and speech synthesis calls.
"""
import logging
import time
from dataclasses import dataclass
from typing import List, Optional

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from ..memory.session_store import ConversationMessage, SessionStore
from ..security.rate_limiter import RateLimiter, RateLimitResult
from ..security.request_validator import (
    ValidationError,
    detect_prompt_injection,
    validate_audio_file,
    validate_question,
    validate_text
)
from ..utils.cache import BaseResponseCache, CachedResponse, TextToSpeechCache
from ..utils.config import (
    CHAT_MAX_TOKENS,
    CHAT_MODEL,
    CHAT_TEMPERATURE,
    LOCAL_LLM_MODEL,
    OLLAMA_BASE_URL,
    OPENAI_API_KEY,
    USE_LOCAL
)
from ..utils.cost_monitor import WORDS_PER_MINUTE, WORDS_PER_TOKEN, CostMonitor, ModelName
from ..utils.tracing import annotate_span
from .prompts import FALLBACK_RESPONSE, SPANISH_INSTRUCTION, SYSTEM_PROMPT
from .speech import SpeechClient

logger = logging.getLogger(__name__)

# Rough estimate: 1MB of compressed speech is about a minute of audio
BYTES_PER_AUDIO_MINUTE = 1024 * 1024


class DailyCostLimitExceeded(Exception):
    """Raised before a billable call when today's spend is over the limit."""

    def __init__(self, daily_cost: float, limit: float):
        self.daily_cost = daily_cost
        self.limit = limit
        super().__init__(
            f"Daily cost limit reached: ${daily_cost:.2f} spent of ${limit:.2f}"
        )


@dataclass
class ChatResult:
    """Outcome of a chat request."""
    response: Optional[str]
    allowed: bool = True
    cached: bool = False
    cost: float = 0.0
    rate_limit: Optional[RateLimitResult] = None
    duration_ms: int = 0


@dataclass
class TranscriptionResult:
    """Outcome of a transcription request."""
    text: Optional[str]
    allowed: bool = True
    cost: float = 0.0
    rate_limit: Optional[RateLimitResult] = None
    duration_ms: int = 0


@dataclass
class SpeechResult:
    """Outcome of a speech synthesis request."""
    audio: Optional[bytes]
    allowed: bool = True
    cached: bool = False
    cost: float = 0.0
    rate_limit: Optional[RateLimitResult] = None
    duration_ms: int = 0


def create_chat_model() -> BaseChatModel:
    """Create the chat model for the configured provider."""
    if USE_LOCAL:
        from langchain_ollama import ChatOllama
        logger.info(f"Using local LLM: {LOCAL_LLM_MODEL}")
        return ChatOllama(model=LOCAL_LLM_MODEL, base_url=OLLAMA_BASE_URL)

    from langchain_openai import ChatOpenAI
    return ChatOpenAI(
        model=CHAT_MODEL,
        api_key=OPENAI_API_KEY,
        temperature=CHAT_TEMPERATURE,
        max_tokens=CHAT_MAX_TOKENS
    )


def _elapsed_ms(start: float) -> int:
    return int((time.time() - start) * 1000)


class VoiceAgent:
    """
    Orchestrates one voice agent request end to end.

    Components are injected once at startup and shared across requests;
    the agent itself holds no per-request state.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        cost_monitor: CostMonitor,
        response_cache: BaseResponseCache,
        session_store: SessionStore,
        llm: Optional[BaseChatModel] = None,
        speech_client: Optional[SpeechClient] = None,
        tts_cache: Optional[TextToSpeechCache] = None,
        system_prompt: str = SYSTEM_PROMPT
    ):
        """
        Initialize the voice agent.

        Args:
            rate_limiter: Per-identifier rate limiter.
            cost_monitor: Daily spend tracker.
            response_cache: Topic-keyed answer cache.
            session_store: Conversation history store.
            llm: Optional chat model (created lazily if not provided).
            speech_client: Optional speech client for audio endpoints.
            tts_cache: Optional synthesized audio cache.
            system_prompt: System prompt prepended to every chat.
        """
        self.rate_limiter = rate_limiter
        self.cost_monitor = cost_monitor
        self.response_cache = response_cache
        self.session_store = session_store
        self.speech_client = speech_client if speech_client is not None else SpeechClient()
        self.tts_cache = tts_cache if tts_cache is not None else TextToSpeechCache()
        self.system_prompt = system_prompt
        self._llm = llm

    @property
    def llm(self) -> BaseChatModel:
        """Lazy initialization of the chat model."""
        if self._llm is None:
            self._llm = create_chat_model()
        return self._llm

    async def chat(
        self,
        identifier: str,
        session_id: str,
        question: str,
        language: Optional[str] = None
    ) -> ChatResult:
        """
        Answer a question for a session.

        Args:
            identifier: Client identifier for rate limiting.
            session_id: Client-generated session identifier.
            question: The visitor's question.
            language: Optional response language ("en" or "es").

        Returns:
            ChatResult; `allowed` is False when rate limited.

        Raises:
            ValidationError: If the session id or question is malformed.
            DailyCostLimitExceeded: If a model call is needed but the
                daily budget is spent.
        """
        start = time.time()

        if not isinstance(session_id, str) or not session_id.strip():
            raise ValidationError("Session ID required")

        validation = validate_question(question)
        validation.raise_for_error()
        question = validation.sanitized

        rate_limit = await self.rate_limiter.check(identifier)
        if not rate_limit.allowed:
            logger.warning(f"Rate limit exceeded for: {identifier}")
            annotate_span(rate_limited=True)
            return ChatResult(response=None, allowed=False, rate_limit=rate_limit,
                              duration_ms=_elapsed_ms(start))

        injection = detect_prompt_injection(question)
        if injection.detected:
            logger.warning(f"Possible prompt injection from {identifier}: {injection.pattern}")

        # Cached answers are English only
        use_cache = language in (None, "en")

        cached = await self._cache_get(question) if use_cache else None
        if cached:
            await self.cost_monitor.track(
                endpoint="chat",
                model=ModelName.CHAT.value,
                cached=True,
                ip=identifier
            )
            await self._remember(session_id, question, cached.text_response)
            annotate_span(endpoint="chat", cached=True, cost=0.0)
            return ChatResult(response=cached.text_response, cached=True,
                              rate_limit=rate_limit, duration_ms=_elapsed_ms(start))

        await self._ensure_budget()

        history = await self.session_store.get_conversation_history(session_id)
        reply = await self.llm.ainvoke(self._build_messages(history, question, language))

        answer = reply.content if isinstance(reply.content, str) else ""
        answer = answer.strip() or FALLBACK_RESPONSE
        usage = getattr(reply, "usage_metadata", None) or {}

        cost = await self.cost_monitor.track(
            endpoint="chat",
            model=ModelName.CHAT.value,
            input_tokens=usage.get("input_tokens", 0),
            output_tokens=usage.get("output_tokens", 0),
            ip=identifier
        )

        if use_cache and answer != FALLBACK_RESPONSE:
            await self._cache_set(question, answer)

        await self._remember(session_id, question, answer)

        annotate_span(endpoint="chat", cached=False, cost=cost)
        return ChatResult(response=answer, cost=cost, rate_limit=rate_limit,
                          duration_ms=_elapsed_ms(start))

    async def transcribe(
        self,
        identifier: str,
        audio: bytes,
        content_type: str
    ) -> TranscriptionResult:
        """
        Transcribe an uploaded audio clip.

        Raises:
            ValidationError: If the audio is too large or of the wrong type.
            DailyCostLimitExceeded: If the daily budget is spent.
        """
        start = time.time()

        rate_limit = await self.rate_limiter.check(identifier)
        if not rate_limit.allowed:
            logger.warning(f"Rate limit exceeded for: {identifier}")
            annotate_span(rate_limited=True)
            return TranscriptionResult(text=None, allowed=False, rate_limit=rate_limit,
                                       duration_ms=_elapsed_ms(start))

        if not audio:
            raise ValidationError("No audio file provided")
        validate_audio_file(len(audio), content_type).raise_for_error()

        await self._ensure_budget()

        text = await self.speech_client.transcribe(audio, content_type)

        # Token proxy that calculate_cost maps back to the same minutes
        estimated_minutes = len(audio) / BYTES_PER_AUDIO_MINUTE
        estimated_tokens = round(estimated_minutes * WORDS_PER_MINUTE / WORDS_PER_TOKEN)
        cost = await self.cost_monitor.track(
            endpoint="transcribe",
            model=ModelName.TRANSCRIPTION.value,
            input_tokens=estimated_tokens,
            ip=identifier
        )

        annotate_span(endpoint="transcribe", audio_bytes=len(audio), cost=cost)
        return TranscriptionResult(text=text, cost=cost, rate_limit=rate_limit,
                                   duration_ms=_elapsed_ms(start))

    async def speak(self, identifier: str, text: str) -> SpeechResult:
        """
        Synthesize speech for a piece of text.

        Raises:
            ValidationError: If the text is malformed.
            DailyCostLimitExceeded: If the daily budget is spent.
        """
        start = time.time()

        rate_limit = await self.rate_limiter.check(identifier)
        if not rate_limit.allowed:
            logger.warning(f"Rate limit exceeded for: {identifier}")
            annotate_span(rate_limited=True)
            return SpeechResult(audio=None, allowed=False, rate_limit=rate_limit,
                                duration_ms=_elapsed_ms(start))

        validation = validate_text(text)
        validation.raise_for_error()
        text = validation.sanitized

        await self._ensure_budget()

        audio = self.tts_cache.get(text)
        if audio is not None:
            await self.cost_monitor.track(
                endpoint="tts",
                model=ModelName.TTS.value,
                cached=True,
                ip=identifier
            )
            annotate_span(endpoint="tts", cached=True, cost=0.0)
            return SpeechResult(audio=audio, cached=True, rate_limit=rate_limit,
                                duration_ms=_elapsed_ms(start))

        audio = await self.speech_client.synthesize(text)
        self.tts_cache.set(text, audio)

        cost = await self.cost_monitor.track(
            endpoint="tts",
            model=ModelName.TTS.value,
            output_tokens=len(text),
            ip=identifier
        )

        annotate_span(endpoint="tts", cached=False, cost=cost)
        return SpeechResult(audio=audio, cost=cost, rate_limit=rate_limit,
                            duration_ms=_elapsed_ms(start))

    def _build_messages(
        self,
        history: List[ConversationMessage],
        question: str,
        language: Optional[str]
    ) -> List[BaseMessage]:
        messages: List[BaseMessage] = []
        if language == "es":
            messages.append(SystemMessage(content=SPANISH_INSTRUCTION))
        messages.append(SystemMessage(content=self.system_prompt))

        for message in history:
            if message.role == "user":
                messages.append(HumanMessage(content=message.content))
            else:
                messages.append(AIMessage(content=message.content))

        messages.append(HumanMessage(content=question))
        return messages

    async def _ensure_budget(self) -> None:
        if await self.cost_monitor.is_over_daily_limit():
            daily_cost = await self.cost_monitor.get_daily_cost()
            logger.error(f"DAILY COST LIMIT EXCEEDED: ${daily_cost:.2f}")
            raise DailyCostLimitExceeded(daily_cost, self.cost_monitor.daily_limit)

    async def _cache_get(self, question: str) -> Optional[CachedResponse]:
        # Cache failures degrade to a miss
        try:
            return await self.response_cache.get(question)
        except Exception as e:
            logger.warning(f"Response cache get failed: {e}")
            return None

    async def _cache_set(self, question: str, answer: str) -> None:
        try:
            await self.response_cache.set(question, answer)
        except Exception as e:
            logger.warning(f"Response cache set failed: {e}")

    async def _remember(self, session_id: str, question: str, answer: str) -> None:
        await self.session_store.add_message(session_id, "user", question)
        await self.session_store.add_message(session_id, "assistant", answer)
