"""Prompt text for the voice agent."""
import logging
from pathlib import Path

from ..utils.config import get_optional_env

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a friendly voice assistant for an AI partnership studio that helps
small business owners design, deploy and own AI systems.

Your answers are read aloud, so:
1. Keep responses to two or three short sentences.
2. Never use markdown, bullet points or URLs.
3. If you do not know something, offer to book a call rather than guessing.
4. Ask about the visitor's industry and team size when it would help you answer."""

SPANISH_INSTRUCTION = (
    "INSTRUCCIÓN OBLIGATORIA DE IDIOMA: Eres un asistente que SOLO responde en español. "
    "Toda tu comunicación debe ser en español natural."
)

FALLBACK_RESPONSE = "I apologize, I could not generate a response."


def load_knowledge_base(path: str = "") -> str:
    """
    Load the optional knowledge base appended to the system prompt.

    Args:
        path: File path; defaults to the KNOWLEDGE_BASE_PATH env var.

    Returns:
        File contents, or an empty string if no file is configured.
    """
    path = path or get_optional_env("KNOWLEDGE_BASE_PATH", "")
    if not path:
        return ""

    kb_file = Path(path)
    if not kb_file.is_file():
        logger.warning(f"Knowledge base not found: {path}")
        return ""

    return kb_file.read_text(encoding="utf-8")
