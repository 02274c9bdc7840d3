"""Per-user assistant preferences."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, SecretStr


class CredentialSource(str, Enum):
    """Which credential the assistant should use for external calls."""

    APP = "app"
    USER = "user"


class CredentialPreference(BaseModel):
    """Stored assistant preference for one user.

    ``user_credential`` is a SecretStr so it never shows up in reprs, logs or
    JSON dumps.
    """

    enabled: bool = True
    source: CredentialSource = CredentialSource.APP
    user_credential: SecretStr | None = None

    @property
    def has_user_credential(self) -> bool:
        return bool(self.user_credential and self.user_credential.get_secret_value())


class CredentialPreferenceUpdate(BaseModel):
    """Partial update; unset fields are left alone.

    An empty ``user_credential`` string clears the stored credential.
    """

    enabled: bool | None = None
    source: CredentialSource | None = None
    user_credential: SecretStr | None = Field(default=None)
