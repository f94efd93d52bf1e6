"""
Voice Agent Service - FastAPI application for the website voice assistant.
Chat, transcription and speech endpoints guarded by rate limiting,
a daily cost budget and a topic-keyed response cache.
"""
import asyncio
import logging
from typing import Optional
from contextlib import asynccontextmanager, suppress
from fastapi import FastAPI, File, Request, UploadFile
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as RequestModelError
from prometheus_fastapi_instrumentator import Instrumentator

from voice_agent.agents import DailyCostLimitExceeded, VoiceAgent
from voice_agent.agents.prompts import SYSTEM_PROMPT, load_knowledge_base
from voice_agent.memory import create_session_store
from voice_agent.security import (
    RateLimiter,
    RateLimitResult,
    ValidationError,
    get_client_ip,
    validate_body_size
)
from voice_agent.storage import create_kv_store
from voice_agent.utils import KV_BACKEND, REDIS_URL, create_cost_monitor, create_response_cache
from voice_agent.utils.config import CLEANUP_INTERVAL_SECONDS
from voice_agent.utils.tracing import setup_tracing

logger = logging.getLogger(__name__)


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    question: str
    language: Optional[str] = None


class ChatResponse(BaseModel):
    response: str
    cached: bool
    cost: float
    duration_ms: int


class SpeakRequest(BaseModel):
    text: str


class TranscriptionResponse(BaseModel):
    text: str
    cost: float
    duration_ms: int


async def purge_expired(state) -> int:
    """Sweep expired store keys and cached answers."""
    removed = await state.store.purge_expired()
    removed += state.response_cache.clear_expired()
    return removed


async def _cleanup_loop(state, interval: int) -> None:
    # Usage records and idle rate-limit keys are never read again after expiry
    while True:
        await asyncio.sleep(interval)
        try:
            removed = await purge_expired(state)
        except Exception as e:
            logger.error(f"Expired entry sweep failed: {e}")
            continue
        if removed:
            logger.info(f"Swept {removed} expired entries")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the shared components on startup."""
    logger.info("--- Voice Agent Service Starting ---")

    store = create_kv_store(KV_BACKEND, REDIS_URL)
    rate_limiter = RateLimiter(store)
    cost_monitor = create_cost_monitor(store)
    # The in-memory cache keeps richer stats when no shared store is configured
    response_cache = create_response_cache(store if KV_BACKEND != "memory" else None)
    session_store = create_session_store(store)

    system_prompt = SYSTEM_PROMPT
    knowledge_base = load_knowledge_base()
    if knowledge_base:
        system_prompt = f"{SYSTEM_PROMPT}\n\nKnowledge base:\n{knowledge_base}"

    app.state.store = store
    app.state.rate_limiter = rate_limiter
    app.state.cost_monitor = cost_monitor
    app.state.response_cache = response_cache
    app.state.session_store = session_store
    app.state.voice_agent = VoiceAgent(
        rate_limiter=rate_limiter,
        cost_monitor=cost_monitor,
        response_cache=response_cache,
        session_store=session_store,
        system_prompt=system_prompt
    )

    app.state.cleanup_task = asyncio.create_task(_cleanup_loop(app.state, CLEANUP_INTERVAL_SECONDS))

    logger.info(f"Components initialized (kv backend: {store.backend}).")
    yield

    logger.info("--- Voice Agent Service Shutting Down ---")
    app.state.cleanup_task.cancel()
    with suppress(asyncio.CancelledError):
        await app.state.cleanup_task
    await store.close()


app = FastAPI(
    title="Voice Agent Service",
    description="Rate limited, cost metered voice assistant API",
    version="1.0.0",
    lifespan=lifespan
)

Instrumentator().instrument(app).expose(app)

# Setup tracing
setup_tracing(app)


def _rate_limited(rate_limit: RateLimitResult) -> JSONResponse:
    retry_after = rate_limit.retry_after()
    return JSONResponse(
        status_code=429,
        content={"error": rate_limit.reason, "retryAfter": retry_after},
        headers={"Retry-After": str(retry_after)}
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    logger.warning(f"Rejected request to {request.url.path}: {exc}")
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(DailyCostLimitExceeded)
async def cost_limit_handler(request: Request, exc: DailyCostLimitExceeded):
    logger.error(str(exc))
    return JSONResponse(
        status_code=503,
        content={"error": "Service temporarily unavailable. Please try again later."}
    )


@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    return {"status": "healthy", "kv_backend": request.app.state.store.backend}


@app.post("/voice-agent/chat", response_model=ChatResponse)
async def chat(request: Request):
    """
    Answer a visitor question.
    1. Rejects oversized or malformed bodies.
    2. Rate limits by client IP.
    3. Serves cached answers, otherwise calls the chat model within budget.
    """
    try:
        body = (await request.body()).decode("utf-8")
    except UnicodeDecodeError:
        raise ValidationError("Invalid request body")
    validate_body_size(body).raise_for_error()

    try:
        payload = ChatRequest.model_validate_json(body)
    except RequestModelError:
        raise ValidationError("Invalid request body")

    identifier = get_client_ip(request.headers)
    result = await request.app.state.voice_agent.chat(
        identifier=identifier,
        session_id=payload.session_id,
        question=payload.question,
        language=payload.language
    )
    if not result.allowed:
        return _rate_limited(result.rate_limit)

    return ChatResponse(
        response=result.response,
        cached=result.cached,
        cost=result.cost,
        duration_ms=result.duration_ms
    )


@app.post("/voice-agent/transcribe", response_model=TranscriptionResponse)
async def transcribe(request: Request, audio: UploadFile = File(...)):
    """Transcribe an uploaded audio clip."""
    identifier = get_client_ip(request.headers)
    data = await audio.read()

    result = await request.app.state.voice_agent.transcribe(
        identifier=identifier,
        audio=data,
        content_type=audio.content_type or ""
    )
    if not result.allowed:
        return _rate_limited(result.rate_limit)

    return TranscriptionResponse(text=result.text, cost=result.cost, duration_ms=result.duration_ms)


@app.post("/voice-agent/speak")
async def speak(request: Request, payload: SpeakRequest):
    """Synthesize speech and return MP3 audio."""
    identifier = get_client_ip(request.headers)
    result = await request.app.state.voice_agent.speak(identifier=identifier, text=payload.text)
    if not result.allowed:
        return _rate_limited(result.rate_limit)

    return Response(
        content=result.audio,
        media_type="audio/mpeg",
        headers={"X-Cache": "HIT" if result.cached else "MISS"}
    )


@app.get("/voice-agent/cache-stats")
async def cache_stats(request: Request):
    """Get response cache statistics."""
    return request.app.state.response_cache.get_stats()


@app.post("/voice-agent/clear-cache")
async def clear_cache(request: Request):
    """Empty the response cache."""
    await request.app.state.response_cache.clear()
    return {"status": "cleared"}


@app.get("/voice-agent/security-stats")
async def security_stats(request: Request):
    """Get daily spend and budget status."""
    cost_monitor = request.app.state.cost_monitor
    return {
        "daily_cost": await cost_monitor.get_daily_cost(),
        "budget": await cost_monitor.get_budget_status(),
        "kv_backend": request.app.state.store.backend
    }


@app.get("/voice-agent/rate-limit/{identifier}")
async def rate_limit_stats(request: Request, identifier: str):
    """Get rate limiter counters for an identifier."""
    return await request.app.state.rate_limiter.get_stats(identifier)


@app.delete("/voice-agent/sessions/{session_id}")
async def delete_session(request: Request, session_id: str):
    """Delete a conversation session."""
    await request.app.state.session_store.delete_session(session_id)
    return {"status": "deleted", "session_id": session_id}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
