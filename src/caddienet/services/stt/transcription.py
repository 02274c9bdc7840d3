"""Transcription bridge: finished recording in, plain text out."""
from __future__ import annotations

import time

import httpx
import structlog

from caddienet.config import get_settings
from caddienet.errors import TranscriptionFailure
from caddienet.models.commands import AudioClip
from caddienet.services.llm.openai_client import OpenAIClient, get_openai_client

logger = structlog.get_logger()


class TranscriptionBridge:
    """Sends a clip to the external transcription endpoint.

    No retries here. Fallback between credentials is the degradation
    controller's job.
    """

    def __init__(
        self,
        client: OpenAIClient | None = None,
        model: str | None = None,
        language: str | None = None,
    ) -> None:
        settings = get_settings()
        self._client = client or get_openai_client()
        self.model = model or settings.openai.transcription_model
        self.language = language if language is not None else settings.openai.language

    async def transcribe(self, clip: AudioClip, credential: str) -> str:
        """Transcribe ``clip`` using ``credential``.

        Raises:
            TranscriptionFailure: the service was unreachable (``reason="unreachable"``)
                or returned no text (``reason="empty"``).
        """
        start = time.perf_counter()
        try:
            result = await self._client.transcribe(
                clip.data,
                credential=credential,
                model=self.model,
                language=self.language,
                filename=clip.filename,
                mime_type=clip.mime_type,
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(
                "Transcription service unreachable",
                error_type=type(e).__name__,
                audio_bytes=clip.size,
            )
            raise TranscriptionFailure(f"Transcription request failed: {e}") from e

        text = result.text.strip()
        latency_ms = (time.perf_counter() - start) * 1000
        if not text:
            logger.warning("Transcription returned no text", audio_bytes=clip.size)
            raise TranscriptionFailure("Transcription returned no text", reason="empty")

        logger.info(
            "Transcription complete",
            text_length=len(text),
            latency_ms=f"{latency_ms:.1f}",
        )
        return text
