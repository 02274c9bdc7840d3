"""Command Classifier - turns an utterance into a structured golf command.

The external language service is asked for a JSON object with exactly
``commandType``, ``parameters`` and ``response``. The reply is validated
strictly against the closed set of command types; anything else is a
:class:`ClassificationFailure`.
"""

from __future__ import annotations

import json
import logging
import time

import httpx
from pydantic import ValidationError

from caddienet.config import get_settings
from caddienet.errors import ClassificationFailure
from caddienet.models.commands import ClassifiedCommand, ContextHints, parse_classified_command
from caddienet.services.llm.openai_client import OpenAIClient, get_openai_client

logger = logging.getLogger(__name__)


SYSTEM_DIRECTIVE = """You are an AI assistant specialized in golf. Your task is to:
1. Classify the user's voice command
2. Extract relevant parameters
3. Generate a brief, helpful response

Command types:
- start_round: Starting a new round of golf
- record_score: Recording a score for a hole
- add_note: Adding a note about play or conditions
- ask_question: Answering a golf-related question

Format your response as a JSON object with exactly these keys:
- commandType: The type of command (one of the options above)
- parameters: An object with relevant parameters like courseName, score, holeNumber, roundId, note, question, etc.
- response: A brief, friendly response to confirm the action or answer the question

Also include the original_input: the user's original query in the parameters object.

Keep responses concise and golf-appropriate."""


def build_user_message(text: str, hints: ContextHints | None = None) -> str:
    """Append the present context hints to the utterance, in a fixed order."""
    message = text
    if hints is None:
        return message
    if hints.round_id:
        message += f" (Current round ID: {hints.round_id})"
    if hints.hole_number:
        message += f" (Current hole: {hints.hole_number})"
    if hints.course_id:
        message += f" (Current course ID: {hints.course_id})"
    return message


def parse_command_payload(content: str, original_input: str) -> ClassifiedCommand:
    """Decode and validate the service's JSON reply.

    Raises:
        ClassificationFailure: empty, not JSON, not an object, missing a
            field, or naming an unknown command type.
    """
    if not content or not content.strip():
        raise ClassificationFailure("Empty response from classification service")

    try:
        payload = json.loads(content)
    except json.JSONDecodeError as e:
        raise ClassificationFailure(f"Classification reply is not JSON: {e.msg}") from e

    if not isinstance(payload, dict):
        raise ClassificationFailure("Classification reply is not a JSON object")

    try:
        command = parse_classified_command(payload)
    except ValidationError as e:
        raise ClassificationFailure(
            f"Classification reply failed validation ({e.error_count()} errors)"
        ) from e

    return command.with_original_input(original_input)  # type: ignore[return-value]


class CommandClassifier:
    """Classifies golf utterances through the external chat endpoint."""

    def __init__(self, client: OpenAIClient | None = None, model: str | None = None) -> None:
        self._client = client or get_openai_client()
        self.model = model or get_settings().openai.classification_model

    async def classify(
        self,
        utterance: str,
        hints: ContextHints | None,
        credential: str,
    ) -> ClassifiedCommand:
        """Classify ``utterance`` under ``credential``.

        Raises:
            ClassificationFailure: the service was unreachable or replied
                with something that is not a valid command.
        """
        start_time = time.perf_counter()
        try:
            response = await self._client.chat(
                messages=[
                    {"role": "system", "content": SYSTEM_DIRECTIVE},
                    {"role": "user", "content": build_user_message(utterance, hints)},
                ],
                credential=credential,
                model=self.model,
                json_response=True,
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Classification service unreachable: %s", type(e).__name__)
            raise ClassificationFailure(f"Classification request failed: {e}") from e

        command = parse_command_payload(response.text, utterance)
        latency_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "Classified utterance as %s in %.1fms", command.command_type, latency_ms
        )
        return command
