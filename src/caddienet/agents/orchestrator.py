"""Interaction Orchestrator - runs one assistant interaction end to end.

Flow per call:
1. Refuse without a user identity
2. Read the user's credential plan; stop if the assistant is disabled
3. Transcribe (audio only) and classify, under credential degradation
4. Execute the classified command
5. Record the interaction in the background
6. Schedule navigation for navigate actions

Users only ever see one of the fixed messages below or the classifier's own
response. Raw error text goes to the debug trace and the logs.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from caddienet.agents.classifier import CommandClassifier
from caddienet.agents.executor import CommandExecutor
from caddienet.config import get_settings
from caddienet.errors import AssistantDisabled, AuthenticationRequired, LogWriteFailure
from caddienet.models.commands import (
    AudioClip,
    ClassifiedCommand,
    ContextHints,
    ExecutionResult,
    InteractionKind,
    InteractionRecord,
    ProcessResult,
    Utterance,
)
from caddienet.services.degradation import CredentialPlan, DegradationController
from caddienet.services.interaction_log import InteractionLog, get_interaction_log
from caddienet.services.stt.transcription import TranscriptionBridge
from caddienet.services.trace_queue import DebugTraceQueue, format_trace_entry

logger = logging.getLogger(__name__)

AUTH_REQUIRED_MESSAGE = "You need to be logged in to use the AI assistant."
ASSISTANT_DISABLED_MESSAGE = "The AI assistant is currently disabled in your profile settings."
SERVICE_FAILURE_MESSAGE = (
    "Sorry, I had trouble connecting to the assistant service. Please try again later."
)
PROCESSING_FAILED_MESSAGE = "Sorry, I had trouble processing that. Please try again."

# Receives the path to open; may be a coroutine function
Navigator = Callable[[str], Any]


@dataclass(frozen=True)
class OrchestratorState:
    """Snapshot of what a caller can observe."""

    is_processing: bool = False
    response: str = ""
    last_command: ClassifiedCommand | None = None
    last_result: ExecutionResult | None = None
    trace_entries: tuple[str, ...] = ()


class InteractionOrchestrator:
    """Coordinates capture output, the external service, and command execution.

    One orchestrator serves one user. Overlapping calls are not arbitrated
    here; callers check ``state.is_processing`` first.
    """

    def __init__(
        self,
        user_id: str | None,
        *,
        transcription: TranscriptionBridge | None = None,
        classifier: CommandClassifier | None = None,
        degradation: DegradationController | None = None,
        executor: CommandExecutor | None = None,
        interaction_log: InteractionLog | None = None,
        trace: DebugTraceQueue | None = None,
        navigator: Navigator | None = None,
        navigation_delay_ms: int | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            user_id: Authenticated user, or None when nobody is logged in.
            transcription: Audio-to-text bridge.
            classifier: Command classifier.
            degradation: Credential planner and fallback runner.
            executor: Command executor.
            interaction_log: Where finished interactions are recorded.
            trace: Debug trace for this session.
            navigator: Called with the target path of navigate actions.
            navigation_delay_ms: Pause before navigating so the confirmation is seen.
        """
        self.user_id = user_id
        self._transcription = transcription
        self._classifier = classifier
        self._degradation = degradation
        self._executor = executor or CommandExecutor()
        self._interaction_log = interaction_log or get_interaction_log()
        self.trace = trace or DebugTraceQueue()
        self.navigator = navigator
        self.navigation_delay_ms = (
            navigation_delay_ms
            if navigation_delay_ms is not None
            else get_settings().assistant.navigation_delay_ms
        )

        self._is_processing = False
        self._response = ""
        self._last_command: ClassifiedCommand | None = None
        self._last_result: ExecutionResult | None = None

        self._listeners: list[Callable[[OrchestratorState], None]] = []
        self._log_tasks: set[asyncio.Task[None]] = set()
        self._navigation_tasks: set[asyncio.Task[None]] = set()

    # -------------------------------------------------------------------------
    # Collaborators (created on first use)
    # -------------------------------------------------------------------------

    @property
    def transcription(self) -> TranscriptionBridge:
        if self._transcription is None:
            self._transcription = TranscriptionBridge()
        return self._transcription

    @property
    def classifier(self) -> CommandClassifier:
        if self._classifier is None:
            self._classifier = CommandClassifier()
        return self._classifier

    @property
    def degradation(self) -> DegradationController:
        if self._degradation is None:
            self._degradation = DegradationController.from_settings()
        return self._degradation

    # -------------------------------------------------------------------------
    # Observable state
    # -------------------------------------------------------------------------

    @property
    def state(self) -> OrchestratorState:
        return OrchestratorState(
            is_processing=self._is_processing,
            response=self._response,
            last_command=self._last_command,
            last_result=self._last_result,
            trace_entries=self.trace.entries,
        )

    def subscribe(self, callback: Callable[[OrchestratorState], None]) -> Callable[[], None]:
        """Receive a state snapshot after every change. Returns an unsubscribe function."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.state
        for callback in list(self._listeners):
            try:
                callback(snapshot)
            except Exception as e:
                logger.error("State listener error: %s", e)

    def _set_processing(self, value: bool) -> None:
        self._is_processing = value
        self._notify()

    def _step(self, message: str, data: Any = None) -> None:
        """Record one trace line."""
        entry = format_trace_entry(message, data)
        logger.debug("AI step: %s", entry)
        self.trace.push_entries([entry])

    # -------------------------------------------------------------------------
    # Processing
    # -------------------------------------------------------------------------

    async def process_text(
        self,
        text: str,
        hints: ContextHints | None = None,
        kind: InteractionKind = InteractionKind.TEXT_COMMAND,
    ) -> ProcessResult:
        """Process a typed request."""
        return await self._process(kind=kind, hints=hints or ContextHints(), text=text)

    async def process_audio(
        self,
        clip: AudioClip,
        hints: ContextHints | None = None,
        kind: InteractionKind = InteractionKind.VOICE_COMMAND,
    ) -> ProcessResult:
        """Process a finished recording."""
        return await self._process(kind=kind, hints=hints or ContextHints(), clip=clip)

    async def _process(
        self,
        *,
        kind: InteractionKind,
        hints: ContextHints,
        text: str | None = None,
        clip: AudioClip | None = None,
    ) -> ProcessResult:
        try:
            user_id = self._require_user()
        except AuthenticationRequired as e:
            logger.info("%s", e)
            return self._finish(ProcessResult(response=AUTH_REQUIRED_MESSAGE))

        self._set_processing(True)
        self.trace.reset()

        try:
            plan = await self._enabled_plan(user_id)

            if clip is not None:
                self._step("Received voice input", clip.data)
            else:
                self._step("Received text input", text)
            self._step("Credential plan ready", {"attempts": ", ".join(plan.labels)})

            async def work(credential: str) -> tuple[Utterance, ClassifiedCommand]:
                utterance_text = text or ""
                if clip is not None:
                    self._step("Transcribing audio", clip.data)
                    utterance_text = await self.transcription.transcribe(clip, credential)
                    self._step("Transcription complete", utterance_text)

                utterance = Utterance(text=utterance_text, kind=kind, hints=hints)
                self._step("Classifying command", utterance.text)
                command = await self.classifier.classify(utterance.text, utterance.hints, credential)
                self._step("Command classified", {"commandType": command.command_type})
                return utterance, command

            outcome = await self.degradation.run(plan, work, on_event=self._step)
            if not outcome.ok or outcome.value is None:
                logger.warning(
                    "Assistant service failed after %d attempt(s): %s",
                    outcome.attempts_made,
                    type(outcome.error).__name__ if outcome.error else "unknown",
                )
                self._step("Assistant service unavailable", outcome.error)
                return self._finish(ProcessResult(response=SERVICE_FAILURE_MESSAGE))

            utterance, command = outcome.value

            self._step("Executing command", {"commandType": command.command_type})
            result = await self._executor.execute(command, user_id)
            self._step(
                "Command executed",
                {"success": result.success, "action": result.action.type.value},
            )

            self._schedule_log(
                InteractionRecord(
                    user_id=user_id,
                    interaction_type=kind,
                    utterance=utterance.text,
                    classified_command=command.to_payload(),
                    response=result.message,
                )
            )

            path = result.navigation_path
            if path:
                self._step("Navigation scheduled", path)
                self._schedule_navigation(path)

            return self._finish(
                ProcessResult(
                    response=result.message,
                    classified_command=command,
                    execution_result=result,
                )
            )

        except AssistantDisabled as e:
            logger.info("%s", e)
            return self._finish(ProcessResult(response=ASSISTANT_DISABLED_MESSAGE))

        except Exception as e:
            logger.exception("Interaction processing failed: %s", e)
            self._step("Processing failed", e)
            return self._finish(ProcessResult(response=PROCESSING_FAILED_MESSAGE))

        finally:
            self._set_processing(False)

    def _require_user(self) -> str:
        if not self.user_id:
            raise AuthenticationRequired("Assistant request without a user identity")
        return self.user_id

    async def _enabled_plan(self, user_id: str) -> CredentialPlan:
        """Read the credential plan, refusing when the assistant is switched off."""
        plan = await self.degradation.plan(user_id)
        if not plan.enabled:
            raise AssistantDisabled(f"Assistant disabled for user {user_id}")
        return plan

    def _finish(self, result: ProcessResult) -> ProcessResult:
        self._response = result.response
        self._last_command = result.classified_command
        self._last_result = result.execution_result
        self._notify()
        return result

    # -------------------------------------------------------------------------
    # Background work
    # -------------------------------------------------------------------------

    def _schedule_log(self, record: InteractionRecord) -> None:
        task = asyncio.create_task(self._write_log(record))
        self._log_tasks.add(task)
        task.add_done_callback(self._log_tasks.discard)

    async def _write_log(self, record: InteractionRecord) -> None:
        try:
            await self._interaction_log.append(record)
        except LogWriteFailure as e:
            logger.warning("Interaction log write failed: %s", e)
        except Exception as e:
            logger.warning("Interaction log write failed: %s", LogWriteFailure(str(e)))

    def _schedule_navigation(self, path: str) -> None:
        if self.navigator is None:
            return
        task = asyncio.create_task(self._navigate_later(path))
        self._navigation_tasks.add(task)
        task.add_done_callback(self._navigation_tasks.discard)

    async def _navigate_later(self, path: str) -> None:
        await asyncio.sleep(self.navigation_delay_ms / 1000)
        assert self.navigator is not None
        try:
            outcome = self.navigator(path)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.error("Navigation to %s failed: %s", path, e)

    async def drain(self) -> None:
        """Wait for pending log writes and navigations."""
        pending = list(self._log_tasks | self._navigation_tasks)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def shutdown(self) -> None:
        """Finish log writes and drop navigations that have not fired yet."""
        for task in list(self._navigation_tasks):
            task.cancel()
        pending = list(self._log_tasks | self._navigation_tasks)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._listeners.clear()
