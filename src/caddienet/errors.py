"""Error taxonomy for the assistant pipeline.

These exceptions are internal. End users only ever see the fixed messages
defined by the orchestrator; raw exception text is confined to the debug trace.
"""

from __future__ import annotations


class AssistantError(Exception):
    """Base class for all pipeline errors."""


class PermissionDenied(AssistantError):
    """Microphone access was refused or no capture device is available.

    Recoverable: the caller may simply try again.
    """


class CaptureBusy(AssistantError):
    """A recording session is already active."""


class TranscriptionFailure(AssistantError):
    """The transcription service was unreachable or returned no text."""

    def __init__(self, message: str, reason: str = "unreachable") -> None:
        super().__init__(message)
        # "empty" or "unreachable"; only used for logging
        self.reason = reason


class ClassificationFailure(AssistantError):
    """The classification service was unreachable or returned a malformed payload."""


class ServiceUnavailable(AssistantError):
    """No credential is available for the external service."""


class AuthenticationRequired(AssistantError):
    """No user identity is attached to the interaction."""


class AssistantDisabled(AssistantError):
    """The user has switched the assistant off in their preferences."""


class LogWriteFailure(AssistantError):
    """Persisting an interaction record failed. Never surfaced to users."""
