"""Per-user assistant sessions.

Each authenticated user gets one long-lived orchestrator (and with it one
debug trace). Sessions share the service clients, the preference store and
the interaction log.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from caddienet.agents.classifier import CommandClassifier
from caddienet.agents.executor import CommandExecutor
from caddienet.agents.orchestrator import InteractionOrchestrator
from caddienet.services.degradation import DegradationController
from caddienet.services.interaction_log import InteractionLog, get_interaction_log
from caddienet.services.operations import DomainOperations
from caddienet.services.preferences import CredentialPreferenceStore, get_preference_store
from caddienet.services.stt.transcription import TranscriptionBridge

logger = logging.getLogger(__name__)

OrchestratorFactory = Callable[[str | None], InteractionOrchestrator]


class AssistantSessions:
    """Registry of orchestrators keyed by user id."""

    def __init__(
        self,
        factory: OrchestratorFactory | None = None,
        *,
        preferences: CredentialPreferenceStore | None = None,
        interaction_log: InteractionLog | None = None,
        operations: DomainOperations | None = None,
    ) -> None:
        self._factory = factory
        self._preferences = preferences
        self._interaction_log = interaction_log
        self._operations = operations
        self._sessions: dict[str, InteractionOrchestrator] = {}
        self._shared: tuple[TranscriptionBridge, CommandClassifier, DegradationController] | None = None

    def _default_factory(self, user_id: str | None) -> InteractionOrchestrator:
        if self._shared is None:
            self._shared = (
                TranscriptionBridge(),
                CommandClassifier(),
                DegradationController.from_settings(self._preferences or get_preference_store()),
            )
        transcription, classifier, degradation = self._shared
        return InteractionOrchestrator(
            user_id,
            transcription=transcription,
            classifier=classifier,
            degradation=degradation,
            executor=CommandExecutor(self._operations),
            interaction_log=self._interaction_log or get_interaction_log(),
        )

    def _create(self, user_id: str | None) -> InteractionOrchestrator:
        if self._factory is not None:
            return self._factory(user_id)
        return self._default_factory(user_id)

    def get(self, user_id: str | None) -> InteractionOrchestrator:
        """Return the user's orchestrator.

        Anonymous callers get a throwaway orchestrator that will answer with
        the login-required message.
        """
        if not user_id:
            return self._create(None)
        if user_id not in self._sessions:
            self._sessions[user_id] = self._create(user_id)
            logger.debug("Created assistant session for user %s", user_id)
        return self._sessions[user_id]

    def peek(self, user_id: str) -> InteractionOrchestrator | None:
        """Return an existing session without creating one."""
        return self._sessions.get(user_id)

    def __len__(self) -> int:
        return len(self._sessions)

    async def shutdown(self) -> None:
        """Shut down every session."""
        for orchestrator in self._sessions.values():
            await orchestrator.shutdown()
        self._sessions.clear()


# Global registry
_sessions: AssistantSessions | None = None


def get_sessions() -> AssistantSessions:
    """Get the global session registry."""
    global _sessions
    if _sessions is None:
        _sessions = AssistantSessions()
    return _sessions


def init_sessions(
    preferences: CredentialPreferenceStore | None = None,
    interaction_log: InteractionLog | None = None,
    operations: DomainOperations | None = None,
) -> AssistantSessions:
    """Initialize the global session registry."""
    global _sessions
    _sessions = AssistantSessions(
        preferences=preferences,
        interaction_log=interaction_log,
        operations=operations,
    )
    return _sessions
