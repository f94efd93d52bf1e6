"""
Speech module.

Thin async wrapper over the OpenAI audio endpoints used by the voice
agent: Whisper transcription and text-to-speech.
"""
import logging
from typing import Optional

from openai import AsyncOpenAI

from ..utils.config import OPENAI_API_KEY, TRANSCRIPTION_MODEL, TTS_MODEL, TTS_VOICE

logger = logging.getLogger(__name__)


def audio_extension(content_type: str) -> str:
    """Pick a file extension the transcription API accepts for a MIME type."""
    if "mp4" in content_type:
        return "mp4"
    if "webm" in content_type:
        return "webm"
    if "ogg" in content_type:
        return "ogg"
    if "wav" in content_type:
        return "wav"
    if "mpeg" in content_type:
        return "mp3"
    return "audio"


class SpeechClient:
    """
    Transcribes audio and synthesizes speech.

    The OpenAI client is created on first use so the service can start
    without an API key.
    """

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        api_key: Optional[str] = None,
        transcription_model: str = TRANSCRIPTION_MODEL,
        tts_model: str = TTS_MODEL,
        voice: str = TTS_VOICE
    ):
        self._client = client
        self._api_key = api_key or OPENAI_API_KEY
        self.transcription_model = transcription_model
        self.tts_model = tts_model
        self.voice = voice

    @property
    def client(self) -> AsyncOpenAI:
        """Lazy initialization of the OpenAI client."""
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def transcribe(self, audio: bytes, content_type: str) -> str:
        """
        Transcribe an audio clip.

        Args:
            audio: Raw audio bytes.
            content_type: MIME type of the audio.

        Returns:
            Transcribed text.
        """
        filename = f"audio.{audio_extension(content_type)}"
        logger.info(f"Transcribing audio: {len(audio)} bytes, type: {content_type}")

        transcription = await self.client.audio.transcriptions.create(
            file=(filename, audio, content_type),
            model=self.transcription_model,
            response_format="json"
        )
        return transcription.text

    async def synthesize(self, text: str) -> bytes:
        """Synthesize speech as MP3 bytes."""
        response = await self.client.audio.speech.create(
            model=self.tts_model,
            voice=self.voice,
            input=text,
            response_format="mp3",
            speed=1.0
        )
        return response.content
