"""
Family Assistant — Audio Transcriber.

Voice notes are transcribed with OpenAI Whisper; the transcript then goes
through the same chat turn as a typed message.

Whisper is always OpenAI, whatever LLM_PROVIDER is set to, and uses
OPENAI_API_KEY (falling back to LLM_API_KEY).
"""

from __future__ import annotations

import logging
from pathlib import Path

from openai import AsyncOpenAI

from family_assistant.config import settings

logger = logging.getLogger(__name__)

_client: AsyncOpenAI | None = None


def _get_client() -> AsyncOpenAI:
    global _client
    if _client is None:
        _client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY or settings.LLM_API_KEY)
    return _client


async def transcribe_audio(file_path: str, language: str | None = None) -> str:
    """Transcribe an audio file using OpenAI Whisper.

    Args:
        file_path: Path to the audio file (OGG, MP3, etc.).
        language: ISO-639-1 hint ("it", "en"); defaults to DEFAULT_LANGUAGE.

    Returns:
        Transcribed text string.

    Raises:
        Exception: If the Whisper API call fails.
    """
    try:
        with open(file_path, "rb") as audio_file:
            response = await _get_client().audio.transcriptions.create(
                model="whisper-1",
                file=audio_file,
                language=language or settings.DEFAULT_LANGUAGE,
            )
        text = response.text.strip()
        logger.info("Transcribed %d chars from %s", len(text), Path(file_path).name)
        return text
    except Exception as exc:
        logger.error("Whisper transcription failed for %s: %s", file_path, exc)
        raise
