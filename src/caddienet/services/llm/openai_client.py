"""HTTP client for the external transcription/classification service.

The service speaks the OpenAI REST shapes. The bearer credential is supplied
per request because each interaction may run under a different key (the
user's own, or the application's shared one).
"""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx
from pydantic import BaseModel

from caddienet.config import get_settings

logger = logging.getLogger(__name__)


class ChatMessage(BaseModel):
    """A single message in a chat conversation."""

    role: str  # system, user, assistant
    content: str


class ChatResponse(BaseModel):
    """Response from a chat completion."""

    text: str
    model: str
    finish_reason: str
    latency_ms: float


class TranscriptionResponse(BaseModel):
    """Response from the transcription endpoint."""

    text: str
    model: str
    latency_ms: float


class OpenAIClient:
    """Async client for ``/audio/transcriptions`` and ``/chat/completions``.

    Raises ``httpx.HTTPError`` subclasses on transport or status failures;
    callers translate those into pipeline errors.
    """

    def __init__(
        self,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def init(self) -> None:
        """Initialize the HTTP client."""
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        )
        logger.info("Assistant service client initialized (%s)", self.base_url)

    async def shutdown(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
        logger.info("Assistant service client shutdown")

    @staticmethod
    def _auth_headers(credential: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {credential}"}

    async def transcribe(
        self,
        audio: bytes,
        *,
        credential: str,
        model: str,
        language: str | None = None,
        filename: str = "audio.webm",
        mime_type: str = "audio/webm",
    ) -> TranscriptionResponse:
        """Upload a recording and return its transcript."""
        if self._client is None:
            await self.init()
        assert self._client is not None

        data: dict[str, Any] = {"model": model}
        if language:
            data["language"] = language

        start_time = time.perf_counter()
        response = await self._client.post(
            "/audio/transcriptions",
            headers=self._auth_headers(credential),
            data=data,
            files={"file": (filename, audio, mime_type)},
        )
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError(f"Transcription response is not an object: {type(payload).__name__}")
        latency_ms = (time.perf_counter() - start_time) * 1000

        logger.debug("Transcription completed in %.1fms (%d bytes)", latency_ms, len(audio))
        return TranscriptionResponse(
            text=str(payload.get("text") or ""),
            model=model,
            latency_ms=latency_ms,
        )

    async def chat(
        self,
        messages: list[ChatMessage] | list[dict[str, str]],
        *,
        credential: str,
        model: str,
        json_response: bool = False,
        temperature: float | None = None,
    ) -> ChatResponse:
        """Send a chat completion request.

        Args:
            messages: Chat messages, system first.
            credential: Bearer key for this call.
            model: Model identifier.
            json_response: Ask the service for a JSON object response.
            temperature: Optional sampling override.

        Returns:
            ChatResponse with the first choice's content.
        """
        if self._client is None:
            await self.init()
        assert self._client is not None

        msg_dicts = [
            {"role": m.role, "content": m.content} if isinstance(m, ChatMessage) else m
            for m in messages
        ]
        payload: dict[str, Any] = {"model": model, "messages": msg_dicts}
        if json_response:
            payload["response_format"] = {"type": "json_object"}
        if temperature is not None:
            payload["temperature"] = temperature

        start_time = time.perf_counter()
        try:
            response = await self._client.post(
                "/chat/completions",
                headers=self._auth_headers(credential),
                json=payload,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("Chat completion failed: HTTP %s", e.response.status_code)
            raise
        data = response.json()
        latency_ms = (time.perf_counter() - start_time) * 1000

        if not isinstance(data, dict):
            raise ValueError(f"Chat response is not an object: {type(data).__name__}")

        choices = data.get("choices") or [{}]
        if not isinstance(choices, list) or not isinstance(choices[0], dict):
            raise ValueError("Chat response has malformed choices")
        choice = choices[0]
        message = choice.get("message") or {}
        if not isinstance(message, dict):
            raise ValueError("Chat response has malformed message")
        return ChatResponse(
            text=message.get("content") or "",
            model=data.get("model", model),
            finish_reason=choice.get("finish_reason") or "unknown",
            latency_ms=latency_ms,
        )


# Global client instance
_client: OpenAIClient | None = None


def get_openai_client() -> OpenAIClient:
    """Get the global client instance, configured from settings."""
    global _client
    if _client is None:
        settings = get_settings()
        _client = OpenAIClient(
            base_url=settings.openai.base_url,
            timeout=settings.openai.timeout_seconds,
        )
    return _client
