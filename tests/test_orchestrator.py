"""Tests for the interaction orchestrator."""

from __future__ import annotations

import asyncio

import pytest
from pydantic import SecretStr

from caddienet.agents.executor import CommandExecutor
from caddienet.agents.orchestrator import (
    ASSISTANT_DISABLED_MESSAGE,
    AUTH_REQUIRED_MESSAGE,
    PROCESSING_FAILED_MESSAGE,
    SERVICE_FAILURE_MESSAGE,
    InteractionOrchestrator,
    OrchestratorState,
)
from caddienet.errors import (
    AssistantDisabled,
    AuthenticationRequired,
    ClassificationFailure,
    LogWriteFailure,
    TranscriptionFailure,
)
from caddienet.models.commands import (
    ActionType,
    AudioClip,
    ContextHints,
    ExecutionResult,
    InteractionKind,
    RecordScoreCommand,
    parse_classified_command,
)
from caddienet.models.preferences import CredentialPreferenceUpdate, CredentialSource
from caddienet.services.degradation import DegradationController
from caddienet.services.interaction_log import InteractionLog
from caddienet.services.preferences import CredentialPreferenceStore

CLIP = AudioClip(data=b"recorded-audio", mime_type="audio/webm")


def score_command(round_id: str | None = None):
    parameters: dict = {"strokes": 5, "holeNumber": 3}
    if round_id:
        parameters["roundId"] = round_id
    return parse_classified_command(
        {
            "commandType": "record_score",
            "parameters": parameters,
            "response": "Recorded a 5 on hole 3.",
        }
    )


class FakeTranscription:
    """Transcribes to a fixed text; optionally fails for some credentials."""

    def __init__(self, text: str = "I got a 5 on hole 3", failing: set[str] | None = None) -> None:
        self.text = text
        self.failing = failing or set()
        self.calls: list[str] = []

    async def transcribe(self, clip: AudioClip, credential: str) -> str:
        self.calls.append(credential)
        if credential in self.failing:
            raise TranscriptionFailure("service unreachable")
        return self.text


class FakeClassifier:
    """Returns a fixed command; optionally fails for some credentials."""

    def __init__(self, command=None, failing: set[str] | None = None) -> None:
        self.command = command or score_command()
        self.failing = failing or set()
        self.calls: list[tuple[str, ContextHints | None, str]] = []

    async def classify(self, utterance: str, hints: ContextHints | None, credential: str):
        self.calls.append((utterance, hints, credential))
        if credential in self.failing:
            raise ClassificationFailure("bad reply")
        return self.command.with_original_input(utterance)


class FailingLog(InteractionLog):
    async def append(self, record) -> None:
        raise LogWriteFailure("disk full")


@pytest.fixture
def store() -> CredentialPreferenceStore:
    return CredentialPreferenceStore(master_key="test-master-key")


@pytest.fixture
def log() -> InteractionLog:
    return InteractionLog()


def make_orchestrator(
    store: CredentialPreferenceStore,
    log: InteractionLog,
    *,
    user_id: str | None = "u1",
    transcription: FakeTranscription | None = None,
    classifier: FakeClassifier | None = None,
    executor: CommandExecutor | None = None,
    shared_credential: str | None = "sk-shared",
    **kwargs,
) -> InteractionOrchestrator:
    return InteractionOrchestrator(
        user_id,
        transcription=transcription or FakeTranscription(),  # type: ignore[arg-type]
        classifier=classifier or FakeClassifier(),  # type: ignore[arg-type]
        degradation=DegradationController(preferences=store, shared_credential=shared_credential),
        executor=executor or CommandExecutor(),
        interaction_log=log,
        navigation_delay_ms=kwargs.pop("navigation_delay_ms", 0),
        **kwargs,
    )


async def use_own_key(store: CredentialPreferenceStore, key: str = "sk-user") -> None:
    await store.write(
        "u1",
        CredentialPreferenceUpdate(source=CredentialSource.USER, user_credential=SecretStr(key)),
    )


class TestHappyPath:
    """Successful interactions."""

    @pytest.mark.asyncio
    async def test_voice_score_without_round_does_not_navigate(self, store, log) -> None:
        await use_own_key(store)
        transcription = FakeTranscription()
        classifier = FakeClassifier(score_command())
        navigations: list[str] = []
        orchestrator = make_orchestrator(
            store, log, transcription=transcription, classifier=classifier,
            navigator=navigations.append,
        )

        result = await orchestrator.process_audio(CLIP, ContextHints(hole_number=3))
        await orchestrator.drain()

        assert result.response == "Recorded a 5 on hole 3."
        assert isinstance(result.classified_command, RecordScoreCommand)
        assert result.classified_command.parameters.strokes == 5
        assert result.classified_command.parameters.round_id is None
        assert result.execution_result == ExecutionResult(
            success=True, message="Recorded a 5 on hole 3."
        )
        assert result.execution_result.action.type is ActionType.NONE
        assert navigations == []
        assert transcription.calls == ["sk-user"]
        assert classifier.calls == [("I got a 5 on hole 3", ContextHints(hole_number=3), "sk-user")]

    @pytest.mark.asyncio
    async def test_score_with_round_navigates_after_delay(self, store, log) -> None:
        navigations: list[str] = []
        orchestrator = make_orchestrator(
            store, log, classifier=FakeClassifier(score_command("r-42")),
            navigator=navigations.append,
        )

        result = await orchestrator.process_text("I got a 5 on hole 3")
        assert result.execution_result is not None
        assert result.execution_result.action.payload == {"path": "/rounds/r-42/score"}

        await orchestrator.drain()
        assert navigations == ["/rounds/r-42/score"]

    @pytest.mark.asyncio
    async def test_async_navigator_awaited(self, store, log) -> None:
        navigations: list[str] = []

        async def navigate(path: str) -> None:
            navigations.append(path)

        orchestrator = make_orchestrator(
            store, log, classifier=FakeClassifier(score_command("r-1")), navigator=navigate
        )
        await orchestrator.process_text("five on three")
        await orchestrator.drain()
        assert navigations == ["/rounds/r-1/score"]

    @pytest.mark.asyncio
    async def test_shutdown_drops_pending_navigation(self, store, log) -> None:
        navigations: list[str] = []
        orchestrator = make_orchestrator(
            store, log, classifier=FakeClassifier(score_command("r-1")),
            navigator=navigations.append, navigation_delay_ms=60_000,
        )
        await orchestrator.process_text("five on three")
        await orchestrator.shutdown()
        assert navigations == []

    @pytest.mark.asyncio
    async def test_text_skips_transcription(self, store, log) -> None:
        transcription = FakeTranscription()
        orchestrator = make_orchestrator(store, log, transcription=transcription)
        await orchestrator.process_text("I got a 5 on hole 3")
        assert transcription.calls == []

    @pytest.mark.asyncio
    async def test_interaction_recorded(self, store, log) -> None:
        orchestrator = make_orchestrator(store, log)
        await orchestrator.process_text("I got a 5 on hole 3")
        await orchestrator.drain()

        records = await log.recent("u1")
        assert len(records) == 1
        record = records[0]
        assert record.interaction_type is InteractionKind.TEXT_COMMAND
        assert record.utterance == "I got a 5 on hole 3"
        assert record.response == "Recorded a 5 on hole 3."
        assert record.classified_command is not None
        assert record.classified_command["commandType"] == "record_score"
        assert record.classified_command["parameters"]["original_input"] == "I got a 5 on hole 3"

    @pytest.mark.asyncio
    async def test_log_failure_does_not_change_response(self, store) -> None:
        orchestrator = make_orchestrator(store, FailingLog())
        result = await orchestrator.process_text("I got a 5 on hole 3")
        await orchestrator.drain()
        assert result.response == "Recorded a 5 on hole 3."


class TestDegradation:
    """Credential fallback through the orchestrator."""

    @pytest.mark.asyncio
    async def test_transcription_failure_falls_back_to_shared(self, store, log) -> None:
        await use_own_key(store)
        transcription = FakeTranscription(failing={"sk-user"})
        classifier = FakeClassifier()
        orchestrator = make_orchestrator(
            store, log, transcription=transcription, classifier=classifier
        )

        result = await orchestrator.process_audio(CLIP)

        assert result.response == "Recorded a 5 on hole 3."
        # The whole unit of work reruns under the shared credential
        assert transcription.calls == ["sk-user", "sk-shared"]
        assert [credential for _, _, credential in classifier.calls] == ["sk-shared"]

        entries = orchestrator.state.trace_entries
        assert any(e.startswith("Attempt 1/2 with user credential failed") for e in entries)
        assert "Attempt 2/2 with shared credential succeeded" in entries
        assert all("sk-user" not in e and "sk-shared" not in e for e in entries)

    @pytest.mark.asyncio
    async def test_both_attempts_fail(self, store, log) -> None:
        await use_own_key(store)
        classifier = FakeClassifier(failing={"sk-user", "sk-shared"})
        orchestrator = make_orchestrator(store, log, classifier=classifier)

        result = await orchestrator.process_text("hello")
        await orchestrator.drain()

        assert result.response == SERVICE_FAILURE_MESSAGE
        assert result.classified_command is None
        assert len(classifier.calls) == 2
        assert await log.recent("u1") == []

    @pytest.mark.asyncio
    async def test_no_credential_at_all(self, store, log) -> None:
        classifier = FakeClassifier()
        orchestrator = make_orchestrator(store, log, classifier=classifier, shared_credential=None)

        result = await orchestrator.process_text("hello")

        assert result.response == SERVICE_FAILURE_MESSAGE
        assert classifier.calls == []


class TestRefusals:
    """Requests that never reach the external service."""

    @pytest.mark.asyncio
    async def test_disabled_assistant(self, store, log) -> None:
        await store.write("u1", CredentialPreferenceUpdate(enabled=False))
        transcription = FakeTranscription()
        classifier = FakeClassifier()
        orchestrator = make_orchestrator(
            store, log, transcription=transcription, classifier=classifier
        )

        result = await orchestrator.process_text("start a round")

        assert result.response == ASSISTANT_DISABLED_MESSAGE
        assert transcription.calls == []
        assert classifier.calls == []
        assert orchestrator.state.trace_entries == ()
        assert orchestrator.trace.total == 0

    @pytest.mark.asyncio
    async def test_anonymous_user(self, store, log) -> None:
        classifier = FakeClassifier()
        orchestrator = make_orchestrator(store, log, user_id=None, classifier=classifier)
        states: list[OrchestratorState] = []
        orchestrator.subscribe(states.append)

        result = await orchestrator.process_text("start a round")

        assert result.response == AUTH_REQUIRED_MESSAGE
        assert classifier.calls == []
        assert all(not state.is_processing for state in states)

    @pytest.mark.asyncio
    async def test_refusals_raise_typed_errors_internally(self, store, log) -> None:
        await store.write("u1", CredentialPreferenceUpdate(enabled=False))
        with pytest.raises(AuthenticationRequired):
            make_orchestrator(store, log, user_id=None)._require_user()
        with pytest.raises(AssistantDisabled):
            await make_orchestrator(store, log)._enabled_plan("u1")


class TestProcessingState:
    """Observable processing flag and unexpected failures."""

    @pytest.mark.asyncio
    async def test_processing_flag_brackets_the_call(self, store, log) -> None:
        orchestrator = make_orchestrator(store, log)
        flags: list[bool] = []
        orchestrator.subscribe(lambda state: flags.append(state.is_processing))

        await orchestrator.process_text("I got a 5 on hole 3")

        assert flags[0] is True
        assert flags[-1] is False
        assert orchestrator.state.is_processing is False
        assert orchestrator.state.response == "Recorded a 5 on hole 3."

    @pytest.mark.asyncio
    async def test_processing_flag_set_while_waiting(self, store, log) -> None:
        gate = asyncio.Event()

        class SlowClassifier(FakeClassifier):
            async def classify(self, utterance, hints, credential):
                await gate.wait()
                return await super().classify(utterance, hints, credential)

        orchestrator = make_orchestrator(store, log, classifier=SlowClassifier())
        task = asyncio.create_task(orchestrator.process_text("I got a 5 on hole 3"))
        await asyncio.sleep(0)
        assert orchestrator.state.is_processing is True

        gate.set()
        await task
        assert orchestrator.state.is_processing is False

    @pytest.mark.asyncio
    async def test_unexpected_error_is_generic(self, store, log) -> None:
        class BrokenExecutor(CommandExecutor):
            async def execute(self, command, user_id):
                raise RuntimeError("boom")

        orchestrator = make_orchestrator(store, log, executor=BrokenExecutor())
        result = await orchestrator.process_text("I got a 5 on hole 3")

        assert result.response == PROCESSING_FAILED_MESSAGE
        assert "boom" not in result.response
        assert orchestrator.state.is_processing is False
        assert "Processing failed: RuntimeError: boom" in orchestrator.state.trace_entries

    @pytest.mark.asyncio
    async def test_trace_reset_between_interactions(self, store, log) -> None:
        orchestrator = make_orchestrator(store, log)
        await orchestrator.process_text("first")
        first_total = orchestrator.trace.total
        await orchestrator.process_text("second")
        assert orchestrator.trace.total == first_total
        assert orchestrator.trace.entries[0] == "Received text input: second"

    @pytest.mark.asyncio
    async def test_voice_trace_reports_byte_count(self, store, log) -> None:
        orchestrator = make_orchestrator(store, log)
        await orchestrator.process_audio(CLIP)
        assert orchestrator.trace.entries[0] == f"Received voice input: {CLIP.size} bytes"
