"""Pydantic models for CaddieNet API requests and responses."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from caddienet.models.commands import ContextHints, InteractionKind, InteractionRecord
from caddienet.models.preferences import CredentialSource

# =============================================================================
# Health & Status
# =============================================================================


class ServiceHealth(BaseModel):
    """Health status of a single service."""

    name: str
    status: str = Field(..., description="healthy, degraded, or unhealthy")
    latency_ms: float | None = None
    message: str | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="healthy, degraded, or unhealthy")
    version: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    services: list[ServiceHealth] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "version": "0.1.0",
                "timestamp": "2026-01-17T12:00:00Z",
                "services": [
                    {"name": "redis", "status": "healthy", "latency_ms": 1.2},
                    {"name": "assistant_service", "status": "healthy"},
                ],
            }
        }


# =============================================================================
# Assistant
# =============================================================================


class TextCommandRequest(BaseModel):
    """A typed request for the assistant."""

    text: str = Field(..., min_length=1, max_length=2000, description="What the user typed")
    interaction_type: InteractionKind = Field(default=InteractionKind.TEXT_COMMAND)
    context: ContextHints = Field(default_factory=ContextHints)

    class Config:
        json_schema_extra = {
            "example": {
                "text": "I got a 5 on hole 3",
                "context": {"roundId": "r-42", "holeNumber": 3},
            }
        }


class AudioCommandRequest(BaseModel):
    """A recorded request for the assistant."""

    audio_base64: str = Field(..., description="Base64-encoded recording")
    mime_type: str = Field(default="audio/webm", description="MIME type of the recording")
    interaction_type: InteractionKind = Field(default=InteractionKind.VOICE_COMMAND)
    context: ContextHints = Field(default_factory=ContextHints)

    class Config:
        json_schema_extra = {
            "example": {
                "audio_base64": "GkXfo59ChoEBQveBAULygQRC84EIQoKEd2VibUKHgQRChYECGFOAZwH/////",
                "mime_type": "audio/webm",
                "context": {"roundId": "r-42"},
            }
        }


class AssistantResponse(BaseModel):
    """Outcome of one assistant interaction."""

    response: str = Field(..., description="Message to show the user")
    command: dict[str, Any] | None = Field(default=None, description="Classified command")
    result: dict[str, Any] | None = Field(default=None, description="Execution result")
    latency_ms: float = Field(..., description="Processing time in milliseconds")

    class Config:
        json_schema_extra = {
            "example": {
                "response": "Recorded a 5 on hole 3.",
                "command": {
                    "commandType": "record_score",
                    "parameters": {"score": 5, "holeNumber": 3, "roundId": "r-42"},
                    "response": "Recorded a 5 on hole 3.",
                },
                "result": {
                    "success": True,
                    "message": "Recorded a 5 on hole 3.",
                    "action": {"type": "navigate", "payload": {"path": "/rounds/r-42/score"}},
                },
                "latency_ms": 812.4,
            }
        }


class AssistantStateResponse(BaseModel):
    """Current observable state of a user's assistant session."""

    is_processing: bool = False
    response: str = ""
    last_command: dict[str, Any] | None = None
    last_result: dict[str, Any] | None = None
    trace_entries: list[str] = Field(default_factory=list)


class InteractionHistoryResponse(BaseModel):
    """Recent interactions, newest first."""

    interactions: list[InteractionRecord] = Field(default_factory=list)
    count: int = 0


class TraceResponse(BaseModel):
    """Step-through view of the current interaction trace."""

    entries: list[str] = Field(default_factory=list)
    current_index: int = 0
    current_entry: str | None = None
    total: int = 0
    skipped: bool = False


# =============================================================================
# Preferences
# =============================================================================


class PreferenceResponse(BaseModel):
    """Assistant preference as shown to the user. The credential is never echoed."""

    enabled: bool
    source: CredentialSource
    has_user_credential: bool = False


class PreferenceUpdateRequest(BaseModel):
    """Partial preference update."""

    enabled: bool | None = None
    source: CredentialSource | None = None
    user_credential: str | None = Field(
        default=None, description="Personal API key; an empty string clears it"
    )


# =============================================================================
# Errors
# =============================================================================


class ErrorDetail(BaseModel):
    """Detailed error information."""

    code: str = Field(..., description="Error code")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] | None = Field(default=None, description="Additional details")


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: ErrorDetail
    request_id: str | None = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        json_schema_extra = {
            "example": {
                "error": {
                    "code": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                    "details": None,
                },
                "request_id": "abc123",
                "timestamp": "2026-01-17T12:00:00Z",
            }
        }
