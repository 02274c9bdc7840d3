"""Assistant preference API routes."""
from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from pydantic import SecretStr

from caddienet.api.routes.assistant import require_user_id
from caddienet.models.preferences import CredentialPreference, CredentialPreferenceUpdate
from caddienet.models.schemas import PreferenceResponse, PreferenceUpdateRequest
from caddienet.services.preferences import CredentialPreferenceStore, get_preference_store

router = APIRouter(prefix="/preferences")
logger = structlog.get_logger()


def get_store() -> CredentialPreferenceStore:
    """Preference store dependency."""
    return get_preference_store()


def _to_response(preference: CredentialPreference) -> PreferenceResponse:
    return PreferenceResponse(
        enabled=preference.enabled,
        source=preference.source,
        has_user_credential=preference.has_user_credential,
    )


@router.get("", response_model=PreferenceResponse)
async def read_preferences(
    user_id: str = Depends(require_user_id),
    store: CredentialPreferenceStore = Depends(get_store),
) -> PreferenceResponse:
    """The caller's assistant preference (created with defaults on first read)."""
    return _to_response(await store.read(user_id))


@router.patch("", response_model=PreferenceResponse)
async def update_preferences(
    request: PreferenceUpdateRequest,
    user_id: str = Depends(require_user_id),
    store: CredentialPreferenceStore = Depends(get_store),
) -> PreferenceResponse:
    """Update the caller's assistant preference."""
    fields = request.model_dump(exclude_unset=True)
    for name in ("enabled", "source"):
        if name in fields and fields[name] is None:
            del fields[name]
    if "user_credential" in fields:
        fields["user_credential"] = SecretStr(request.user_credential or "")

    preference = await store.write(user_id, CredentialPreferenceUpdate(**fields))
    logger.info(
        "Assistant preference updated",
        user_id=user_id,
        fields=sorted(fields),
    )
    return _to_response(preference)
