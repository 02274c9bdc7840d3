"""Assistant API routes - text and voice commands, session state, debug trace."""
from __future__ import annotations

import base64
import binascii
import time

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Query

from caddienet.agents.orchestrator import InteractionOrchestrator, OrchestratorState
from caddienet.config import Settings, get_settings
from caddienet.models.commands import AudioClip, ProcessResult
from caddienet.models.schemas import (
    AssistantResponse,
    AssistantStateResponse,
    AudioCommandRequest,
    ErrorDetail,
    InteractionHistoryResponse,
    TextCommandRequest,
    TraceResponse,
)
from caddienet.services.interaction_log import InteractionLog, get_interaction_log
from caddienet.services.sessions import AssistantSessions, get_sessions
from caddienet.services.trace_queue import DebugTraceQueue

router = APIRouter(prefix="/assistant")
logger = structlog.get_logger()


# =============================================================================
# Dependencies
# =============================================================================


def get_assistant_sessions() -> AssistantSessions:
    """Session registry dependency."""
    return get_sessions()


def get_history_log() -> InteractionLog:
    """Interaction log dependency."""
    return get_interaction_log()


def current_user_id(x_user_id: str | None = Header(default=None)) -> str | None:
    """Identity set by the upstream auth layer, if any."""
    return x_user_id or None


def require_user_id(user_id: str | None = Depends(current_user_id)) -> str:
    if not user_id:
        raise HTTPException(
            status_code=401,
            detail=ErrorDetail(
                code="AUTH_REQUIRED",
                message="You need to be logged in to use the AI assistant.",
            ).model_dump(),
        )
    return user_id


def require_verbose_trace(settings: Settings = Depends(get_settings)) -> None:
    """Trace controls only exist in diagnostic mode."""
    if not settings.assistant.verbose_trace:
        raise HTTPException(status_code=404, detail="Not Found")


def _idle_session(
    sessions: AssistantSessions, user_id: str | None
) -> InteractionOrchestrator:
    orchestrator = sessions.get(user_id)
    if orchestrator.state.is_processing:
        raise HTTPException(
            status_code=409,
            detail=ErrorDetail(
                code="ASSISTANT_BUSY",
                message="The assistant is still working on your last request",
            ).model_dump(),
        )
    return orchestrator


def _to_response(result: ProcessResult, start_time: float) -> AssistantResponse:
    return AssistantResponse(
        response=result.response,
        command=result.classified_command.to_payload() if result.classified_command else None,
        result=result.execution_result.model_dump(mode="json")
        if result.execution_result
        else None,
        latency_ms=(time.perf_counter() - start_time) * 1000,
    )


def _state_response(state: OrchestratorState) -> AssistantStateResponse:
    return AssistantStateResponse(
        is_processing=state.is_processing,
        response=state.response,
        last_command=state.last_command.to_payload() if state.last_command else None,
        last_result=state.last_result.model_dump(mode="json") if state.last_result else None,
        trace_entries=list(state.trace_entries),
    )


def _trace_response(trace: DebugTraceQueue) -> TraceResponse:
    return TraceResponse(
        entries=list(trace.entries),
        current_index=trace.current_index,
        current_entry=trace.current_entry,
        total=trace.total,
        skipped=trace.skipped,
    )


# =============================================================================
# Commands
# =============================================================================


@router.post("/text", response_model=AssistantResponse)
async def process_text(
    request: TextCommandRequest,
    user_id: str | None = Depends(current_user_id),
    sessions: AssistantSessions = Depends(get_assistant_sessions),
) -> AssistantResponse:
    """Run a typed request through the assistant."""
    start_time = time.perf_counter()
    orchestrator = _idle_session(sessions, user_id)

    result = await orchestrator.process_text(
        request.text, hints=request.context, kind=request.interaction_type
    )

    logger.info(
        "Assistant text request complete",
        user_id=user_id,
        command=result.classified_command.command_type if result.classified_command else None,
    )
    return _to_response(result, start_time)


@router.post("/audio", response_model=AssistantResponse)
async def process_audio(
    request: AudioCommandRequest,
    user_id: str | None = Depends(current_user_id),
    sessions: AssistantSessions = Depends(get_assistant_sessions),
) -> AssistantResponse:
    """Run a recorded request through the assistant."""
    start_time = time.perf_counter()

    try:
        audio_bytes = base64.b64decode(request.audio_base64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise HTTPException(
            status_code=400,
            detail=ErrorDetail(
                code="INVALID_AUDIO",
                message="Failed to decode base64 audio",
                details={"error": str(e)},
            ).model_dump(),
        ) from e

    if not audio_bytes:
        raise HTTPException(
            status_code=400,
            detail=ErrorDetail(code="INVALID_AUDIO", message="Audio is empty").model_dump(),
        )

    orchestrator = _idle_session(sessions, user_id)
    clip = AudioClip(data=audio_bytes, mime_type=request.mime_type)
    result = await orchestrator.process_audio(
        clip, hints=request.context, kind=request.interaction_type
    )

    logger.info(
        "Assistant audio request complete",
        user_id=user_id,
        audio_bytes=clip.size,
        command=result.classified_command.command_type if result.classified_command else None,
    )
    return _to_response(result, start_time)


# =============================================================================
# State & History
# =============================================================================


@router.get("/state", response_model=AssistantStateResponse)
async def get_state(
    user_id: str = Depends(require_user_id),
    sessions: AssistantSessions = Depends(get_assistant_sessions),
) -> AssistantStateResponse:
    """Current state of the user's assistant session."""
    orchestrator = sessions.peek(user_id)
    if orchestrator is None:
        return AssistantStateResponse()
    return _state_response(orchestrator.state)


@router.get("/interactions", response_model=InteractionHistoryResponse)
async def list_interactions(
    limit: int = Query(default=20, ge=1, le=200),
    user_id: str = Depends(require_user_id),
    interaction_log: InteractionLog = Depends(get_history_log),
) -> InteractionHistoryResponse:
    """Most recent interactions, newest first."""
    records = await interaction_log.recent(user_id, limit=limit)
    return InteractionHistoryResponse(interactions=records, count=len(records))


# =============================================================================
# Debug Trace (diagnostic mode only)
# =============================================================================


@router.get("/trace", response_model=TraceResponse, dependencies=[Depends(require_verbose_trace)])
async def get_trace(
    user_id: str = Depends(require_user_id),
    sessions: AssistantSessions = Depends(get_assistant_sessions),
) -> TraceResponse:
    """The current interaction's trace and cursor."""
    orchestrator = sessions.peek(user_id)
    if orchestrator is None:
        return TraceResponse()
    return _trace_response(orchestrator.trace)


@router.post(
    "/trace/{direction}",
    response_model=TraceResponse,
    dependencies=[Depends(require_verbose_trace)],
)
async def move_trace(
    direction: str,
    user_id: str = Depends(require_user_id),
    sessions: AssistantSessions = Depends(get_assistant_sessions),
) -> TraceResponse:
    """Step the trace cursor: ``next``, ``previous`` or ``skip``."""
    trace = sessions.get(user_id).trace
    if direction == "next":
        trace.next()
    elif direction == "previous":
        trace.previous()
    elif direction == "skip":
        trace.skip_all()
    else:
        raise HTTPException(
            status_code=400,
            detail=ErrorDetail(
                code="INVALID_DIRECTION",
                message="Direction must be one of: next, previous, skip",
            ).model_dump(),
        )
    return _trace_response(trace)
