"""Domain operations the assistant can drive.

The round/score/note store belongs to the wider application; the assistant
only sees it through this interface.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from caddienet.models.commands import (
    AddNoteParameters,
    RecordScoreParameters,
    StartRoundParameters,
)


@dataclass(frozen=True)
class CreatedRound:
    """A round created on the user's behalf."""

    round_id: str
    event_id: str | None = None
    course_name: str | None = None


class DomainOperations(Protocol):
    """Backing operations for classified commands.

    Implementations raise on failure; the executor turns that into an
    apologetic result.
    """

    async def create_round(self, user_id: str, params: StartRoundParameters) -> CreatedRound: ...

    async def record_score(self, user_id: str, params: RecordScoreParameters) -> None: ...

    async def add_note(self, user_id: str, params: AddNoteParameters) -> None: ...
