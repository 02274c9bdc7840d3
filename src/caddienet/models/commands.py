"""Command pipeline data model.

An :class:`Utterance` goes in, a :class:`ClassifiedCommand` comes back from the
classifier, and the executor turns that into an :class:`ExecutionResult`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

# =============================================================================
# Enums
# =============================================================================


class InteractionKind(str, Enum):
    """How the user reached the assistant."""

    VOICE_COMMAND = "voice_command"
    TEXT_COMMAND = "text_command"
    NOTE = "note"
    QUESTION = "question"


class CommandType(str, Enum):
    """The closed set of commands the classifier may return."""

    START_ROUND = "start_round"
    RECORD_SCORE = "record_score"
    ADD_NOTE = "add_note"
    ASK_QUESTION = "ask_question"


class ActionType(str, Enum):
    """Follow-up the UI should perform after a command."""

    NAVIGATE = "navigate"
    REFRESH = "refresh"
    MODAL = "modal"
    NONE = "none"


# =============================================================================
# Input
# =============================================================================


class ContextHints(BaseModel):
    """Where the user is in the app when they speak."""

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        populate_by_name=True,
        alias_generator=to_camel,
        coerce_numbers_to_str=True,
    )

    round_id: str | None = None
    hole_number: int | None = None
    course_id: str | None = None


class Utterance(BaseModel):
    """A single user request as plain text."""

    model_config = ConfigDict(frozen=True)

    text: str
    kind: InteractionKind = InteractionKind.VOICE_COMMAND
    hints: ContextHints = Field(default_factory=ContextHints)


@dataclass(frozen=True)
class AudioClip:
    """A finished recording."""

    data: bytes
    mime_type: str = "audio/webm"

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def filename(self) -> str:
        subtype = self.mime_type.split("/", 1)[-1].split(";", 1)[0] or "webm"
        extension = {"mpeg": "mp3", "x-wav": "wav", "wave": "wav"}.get(subtype, subtype)
        return f"audio.{extension}"


# =============================================================================
# Classified commands (tagged by commandType)
# =============================================================================


class CommandParameters(BaseModel):
    """Fields shared by every command's parameters.

    Unknown keys returned by the classifier are kept as extras.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        populate_by_name=True,
        alias_generator=to_camel,
        coerce_numbers_to_str=True,
    )

    original_input: str | None = Field(
        default=None,
        alias="original_input",
        validation_alias=AliasChoices("original_input", "originalInput"),
    )


class StartRoundParameters(CommandParameters):
    course_name: str | None = None
    course_id: str | None = None
    date: str | None = None
    notes: str | None = None
    # Filled in once the backing operation has created the round
    created_round_id: str | None = None
    event_id: str | None = None


class RecordScoreParameters(CommandParameters):
    strokes: int | None = Field(default=None, validation_alias=AliasChoices("strokes", "score"))
    hole_number: int | None = Field(
        default=None, validation_alias=AliasChoices("holeNumber", "hole_number", "hole")
    )
    round_id: str | None = Field(default=None, validation_alias=AliasChoices("roundId", "round_id"))
    putts: int | None = None
    fairway_hit: bool | None = None
    green_in_regulation: bool | None = Field(
        default=None,
        validation_alias=AliasChoices("greenInRegulation", "green_in_regulation", "gir"),
    )
    penalties: int | None = None


class AddNoteParameters(CommandParameters):
    note: str | None = Field(default=None, validation_alias=AliasChoices("note", "content"))
    round_id: str | None = Field(default=None, validation_alias=AliasChoices("roundId", "round_id"))
    hole_number: int | None = Field(
        default=None, validation_alias=AliasChoices("holeNumber", "hole_number", "hole")
    )
    category: str | None = None


class AskQuestionParameters(CommandParameters):
    question: str | None = None


class _Command(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    response: str

    @property
    def kind(self) -> CommandType:
        return CommandType(self.command_type)  # type: ignore[attr-defined]

    def with_original_input(self, text: str) -> _Command:
        """Return a copy whose parameters echo ``text`` when they don't already."""
        params: CommandParameters = self.parameters  # type: ignore[attr-defined]
        if params.original_input:
            return self
        return self.model_copy(update={"parameters": params.model_copy(update={"original_input": text})})

    def to_payload(self) -> dict[str, Any]:
        """Wire/storage form (camelCase, extras kept)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class StartRoundCommand(_Command):
    command_type: Literal["start_round"] = Field(default="start_round", alias="commandType")
    parameters: StartRoundParameters


class RecordScoreCommand(_Command):
    command_type: Literal["record_score"] = Field(default="record_score", alias="commandType")
    parameters: RecordScoreParameters


class AddNoteCommand(_Command):
    command_type: Literal["add_note"] = Field(default="add_note", alias="commandType")
    parameters: AddNoteParameters


class AskQuestionCommand(_Command):
    command_type: Literal["ask_question"] = Field(default="ask_question", alias="commandType")
    parameters: AskQuestionParameters


ClassifiedCommand = Annotated[
    Union[StartRoundCommand, RecordScoreCommand, AddNoteCommand, AskQuestionCommand],
    Field(discriminator="command_type"),
]

_command_adapter: TypeAdapter[ClassifiedCommand] = TypeAdapter(ClassifiedCommand)


def parse_classified_command(payload: Any) -> ClassifiedCommand:
    """Validate a decoded classifier payload.

    Raises:
        pydantic.ValidationError: missing fields, wrong types, or a
            ``commandType`` outside :class:`CommandType`.
    """
    return _command_adapter.validate_python(payload)


# =============================================================================
# Execution
# =============================================================================


class ExecutionAction(BaseModel):
    """What the UI should do next."""

    model_config = ConfigDict(frozen=True)

    type: ActionType = ActionType.NONE
    payload: dict[str, Any] | None = None

    @classmethod
    def navigate(cls, path: str) -> ExecutionAction:
        return cls(type=ActionType.NAVIGATE, payload={"path": path})


class ExecutionResult(BaseModel):
    """Outcome of executing one classified command."""

    model_config = ConfigDict(frozen=True)

    success: bool
    message: str
    action: ExecutionAction = Field(default_factory=ExecutionAction)

    @property
    def navigation_path(self) -> str | None:
        if self.action.type is not ActionType.NAVIGATE or not self.action.payload:
            return None
        return self.action.payload.get("path")


# =============================================================================
# Results & history
# =============================================================================


class ProcessResult(BaseModel):
    """What the orchestrator hands back for one interaction."""

    model_config = ConfigDict(frozen=True)

    response: str
    classified_command: ClassifiedCommand | None = None
    execution_result: ExecutionResult | None = None


class InteractionRecord(BaseModel):
    """A persisted interaction, one per successfully classified request."""

    user_id: str
    interaction_type: InteractionKind
    utterance: str
    classified_command: dict[str, Any] | None = None
    response: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
