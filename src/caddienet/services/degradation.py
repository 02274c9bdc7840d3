"""Credential degradation for external assistant calls.

Policy, in order, stopping at the first success:

1. Assistant disabled in preferences -> DISABLED, nothing is called.
2. User chose their own credential and has one -> try it.
3. Anything in 2 fails -> one more try with the shared credential.
4. That fails too -> FAILED, carrying the last error.

The plan is at most ``MAX_ATTEMPTS`` long.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import SecretStr

from caddienet.config import get_settings
from caddienet.errors import ServiceUnavailable
from caddienet.models.preferences import CredentialSource
from caddienet.services.preferences import CredentialPreferenceStore, get_preference_store

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_ATTEMPTS = 2

USER_CREDENTIAL = "user"
SHARED_CREDENTIAL = "shared"

# on_event(message, data) receives one line before and after each attempt
EventCallback = Callable[[str, Any], None]


class DegradationStatus(str, Enum):
    """How a degraded run ended."""

    OK = "ok"
    DISABLED = "disabled"
    FAILED = "failed"


@dataclass(frozen=True)
class CredentialAttempt:
    """One credential to try. The secret stays masked in reprs."""

    label: str
    credential: SecretStr | None


@dataclass(frozen=True)
class CredentialPlan:
    """Ordered attempts for one interaction."""

    enabled: bool
    attempts: tuple[CredentialAttempt, ...] = ()

    def __post_init__(self) -> None:
        if len(self.attempts) > MAX_ATTEMPTS:
            raise ValueError(
                f"Credential plan has {len(self.attempts)} attempts; at most {MAX_ATTEMPTS} allowed"
            )

    @property
    def labels(self) -> list[str]:
        return [attempt.label for attempt in self.attempts]


@dataclass
class DegradationOutcome(Generic[T]):
    """Result of running work under a credential plan."""

    status: DegradationStatus
    value: T | None = None
    error: Exception | None = None
    attempts_made: int = 0
    credential_label: str | None = None
    failures: list[tuple[str, Exception]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status is DegradationStatus.OK


class DegradationController:
    """Runs work under the user's credential, falling back to the shared one."""

    def __init__(
        self,
        preferences: CredentialPreferenceStore | None = None,
        shared_credential: str | None = None,
    ) -> None:
        self._preferences = preferences or get_preference_store()
        self._shared_credential = SecretStr(shared_credential) if shared_credential else None

    @classmethod
    def from_settings(cls, preferences: CredentialPreferenceStore | None = None) -> DegradationController:
        """Use the shared credential from application settings."""
        return cls(preferences=preferences, shared_credential=get_settings().shared_credential)

    async def plan(self, user_id: str) -> CredentialPlan:
        """Read the user's preference once and build the attempt order."""
        preference = await self._preferences.read(user_id)
        if not preference.enabled:
            return CredentialPlan(enabled=False)

        attempts: list[CredentialAttempt] = []
        if preference.source is CredentialSource.USER and preference.has_user_credential:
            attempts.append(CredentialAttempt(USER_CREDENTIAL, preference.user_credential))
        attempts.append(CredentialAttempt(SHARED_CREDENTIAL, self._shared_credential))
        return CredentialPlan(enabled=True, attempts=tuple(attempts))

    async def run(
        self,
        plan: CredentialPlan,
        work: Callable[[str], Awaitable[T]],
        on_event: EventCallback | None = None,
    ) -> DegradationOutcome[T]:
        """Run ``work(credential)`` for each planned attempt until one succeeds."""

        def emit(message: str, data: Any = None) -> None:
            if on_event is not None:
                on_event(message, data)

        if not plan.enabled:
            return DegradationOutcome(status=DegradationStatus.DISABLED)

        failures: list[tuple[str, Exception]] = []
        total = len(plan.attempts)
        for index, attempt in enumerate(plan.attempts, start=1):
            emit(f"Attempt {index}/{total}: calling assistant service with {attempt.label} credential")
            try:
                if attempt.credential is None:
                    raise ServiceUnavailable("No shared credential configured")
                value = await work(attempt.credential.get_secret_value())
            except Exception as e:
                failures.append((attempt.label, e))
                logger.warning(
                    "Assistant call with %s credential failed: %s", attempt.label, type(e).__name__
                )
                emit(f"Attempt {index}/{total} with {attempt.label} credential failed", e)
                continue

            emit(f"Attempt {index}/{total} with {attempt.label} credential succeeded")
            return DegradationOutcome(
                status=DegradationStatus.OK,
                value=value,
                attempts_made=index,
                credential_label=attempt.label,
                failures=failures,
            )

        return DegradationOutcome(
            status=DegradationStatus.FAILED,
            error=failures[-1][1] if failures else None,
            attempts_made=total,
            failures=failures,
        )

    async def resolve_credential_and_run(
        self,
        user_id: str,
        work: Callable[[str], Awaitable[T]],
        on_event: EventCallback | None = None,
    ) -> DegradationOutcome[T]:
        """Plan and run in one step."""
        return await self.run(await self.plan(user_id), work, on_event)
