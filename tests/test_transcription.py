"""Tests for the transcription bridge."""

from __future__ import annotations

import httpx
import pytest

from caddienet.errors import TranscriptionFailure
from caddienet.models.commands import AudioClip
from caddienet.services.llm.openai_client import OpenAIClient
from caddienet.services.stt.transcription import TranscriptionBridge

CLIP = AudioClip(data=b"\x1a\x45\xdf\xa3webm", mime_type="audio/webm")


def make_bridge(handler) -> TranscriptionBridge:
    client = OpenAIClient(base_url="https://llm.test/v1", transport=httpx.MockTransport(handler))
    return TranscriptionBridge(client=client, model="whisper-1", language="en")


@pytest.mark.asyncio
async def test_returns_trimmed_text() -> None:
    bridge = make_bridge(lambda request: httpx.Response(200, json={"text": "  I got a 5 on hole 3 \n"}))
    assert await bridge.transcribe(CLIP, "sk-one") == "I got a 5 on hole 3"


@pytest.mark.asyncio
async def test_uses_given_credential() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.headers["Authorization"])
        return httpx.Response(200, json={"text": "ok"})

    await make_bridge(handler).transcribe(CLIP, "sk-user")
    assert seen == ["Bearer sk-user"]


@pytest.mark.asyncio
async def test_empty_text_is_failure() -> None:
    bridge = make_bridge(lambda request: httpx.Response(200, json={"text": "   "}))
    with pytest.raises(TranscriptionFailure) as exc_info:
        await bridge.transcribe(CLIP, "sk-one")
    assert exc_info.value.reason == "empty"


@pytest.mark.asyncio
async def test_http_error_is_unreachable() -> None:
    bridge = make_bridge(lambda request: httpx.Response(503))
    with pytest.raises(TranscriptionFailure) as exc_info:
        await bridge.transcribe(CLIP, "sk-one")
    assert exc_info.value.reason == "unreachable"


@pytest.mark.asyncio
async def test_malformed_body_is_unreachable() -> None:
    bridge = make_bridge(lambda request: httpx.Response(200, content=b"<html>"))
    with pytest.raises(TranscriptionFailure) as exc_info:
        await bridge.transcribe(CLIP, "sk-one")
    assert exc_info.value.reason == "unreachable"


@pytest.mark.asyncio
async def test_non_object_body_is_unreachable() -> None:
    bridge = make_bridge(lambda request: httpx.Response(200, json=["par on seven"]))
    with pytest.raises(TranscriptionFailure) as exc_info:
        await bridge.transcribe(CLIP, "sk-one")
    assert exc_info.value.reason == "unreachable"
