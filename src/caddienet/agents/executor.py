"""Command Executor - maps a classified command to a UI action.

Two steps:

1. Backing operation (only when domain operations are configured): create
   the round, record the score, or store the note.
2. Dispatch: a pure match on the command variant to an :class:`ExecutionResult`.
"""

from __future__ import annotations

import logging

from caddienet.models.commands import (
    AddNoteCommand,
    AskQuestionCommand,
    ClassifiedCommand,
    CommandType,
    ExecutionAction,
    ExecutionResult,
    RecordScoreCommand,
    StartRoundCommand,
)
from caddienet.services.operations import DomainOperations

logger = logging.getLogger(__name__)

BACKING_FAILURE_MESSAGES: dict[CommandType, str] = {
    CommandType.START_ROUND: "I had trouble starting a new round. Please try again.",
    CommandType.RECORD_SCORE: "I had trouble recording your score. Please try again.",
    CommandType.ADD_NOTE: "I had trouble saving your note. Please try again.",
}


def round_score_path(round_id: str) -> str:
    return f"/rounds/{round_id}/score"


def event_scorecard_path(event_id: str) -> str:
    return f"/events/{event_id}/scorecard"


def _start_round(command: StartRoundCommand) -> ExecutionResult:
    params = command.parameters
    if not params.created_round_id:
        return ExecutionResult(success=True, message=command.response)

    # Rounds that belong to an event are scored from the event's scorecard
    if params.event_id:
        path = event_scorecard_path(params.event_id)
    else:
        path = round_score_path(params.created_round_id)
    return ExecutionResult(
        success=True, message=command.response, action=ExecutionAction.navigate(path)
    )


def _record_score(command: RecordScoreCommand) -> ExecutionResult:
    round_id = command.parameters.round_id
    if not round_id:
        return ExecutionResult(success=True, message=command.response)
    return ExecutionResult(
        success=True,
        message=command.response,
        action=ExecutionAction.navigate(round_score_path(round_id)),
    )


def _add_note(command: AddNoteCommand) -> ExecutionResult:
    return ExecutionResult(success=True, message=command.response)


def _ask_question(command: AskQuestionCommand) -> ExecutionResult:
    return ExecutionResult(success=True, message=command.response)


def dispatch(command: ClassifiedCommand) -> ExecutionResult:
    """Map a command to its result without side effects."""
    match command:
        case StartRoundCommand():
            return _start_round(command)
        case RecordScoreCommand():
            return _record_score(command)
        case AddNoteCommand():
            return _add_note(command)
        case AskQuestionCommand():
            return _ask_question(command)
    return ExecutionResult(success=True, message=command.response)


class CommandExecutor:
    """Executes classified commands for a user."""

    def __init__(self, operations: DomainOperations | None = None) -> None:
        self._operations = operations

    async def apply_backing_operation(
        self, command: ClassifiedCommand, user_id: str
    ) -> ClassifiedCommand:
        """Run the domain operation behind ``command``.

        Returns the command, enriched with anything the operation produced.
        Exceptions from the operation propagate.
        """
        ops = self._operations
        if ops is None:
            return command

        if isinstance(command, StartRoundCommand) and not command.parameters.created_round_id:
            created = await ops.create_round(user_id, command.parameters)
            update: dict[str, str] = {"created_round_id": created.round_id}
            if created.event_id:
                update["event_id"] = created.event_id
            if created.course_name and not command.parameters.course_name:
                update["course_name"] = created.course_name
            logger.info("Created round %s for user %s", created.round_id, user_id)
            return command.model_copy(
                update={"parameters": command.parameters.model_copy(update=update)}
            )

        if isinstance(command, RecordScoreCommand):
            params = command.parameters
            if params.round_id and params.strokes is not None:
                await ops.record_score(user_id, params)
                logger.info("Recorded %s strokes on round %s", params.strokes, params.round_id)
            return command

        if isinstance(command, AddNoteCommand):
            params = command.parameters
            if params.round_id and params.note:
                await ops.add_note(user_id, params)
                logger.info("Added note to round %s", params.round_id)
            return command

        return command

    async def execute(self, command: ClassifiedCommand, user_id: str) -> ExecutionResult:
        """Run the backing operation, then dispatch."""
        try:
            command = await self.apply_backing_operation(command, user_id)
        except Exception as e:
            logger.error("Backing operation for %s failed: %s", command.command_type, e)
            return ExecutionResult(
                success=False,
                message=BACKING_FAILURE_MESSAGES.get(
                    command.kind, "I had trouble doing that. Please try again."
                ),
            )
        return dispatch(command)
