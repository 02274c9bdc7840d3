"""CaddieNet data models."""

from caddienet.models.commands import (
    ActionType,
    AddNoteCommand,
    AskQuestionCommand,
    AudioClip,
    ClassifiedCommand,
    CommandType,
    ContextHints,
    ExecutionAction,
    ExecutionResult,
    InteractionKind,
    InteractionRecord,
    ProcessResult,
    RecordScoreCommand,
    StartRoundCommand,
    Utterance,
    parse_classified_command,
)
from caddienet.models.preferences import (
    CredentialPreference,
    CredentialPreferenceUpdate,
    CredentialSource,
)

__all__ = [
    "ActionType",
    "AddNoteCommand",
    "AskQuestionCommand",
    "AudioClip",
    "ClassifiedCommand",
    "CommandType",
    "ContextHints",
    "CredentialPreference",
    "CredentialPreferenceUpdate",
    "CredentialSource",
    "ExecutionAction",
    "ExecutionResult",
    "InteractionKind",
    "InteractionRecord",
    "ProcessResult",
    "RecordScoreCommand",
    "StartRoundCommand",
    "Utterance",
    "parse_classified_command",
]
