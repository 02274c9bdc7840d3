"""Per-user assistant preference store.

Preferences live in a Redis hash per user. A personal credential is stored
Fernet-encrypted under a key derived from the configured master key. Without
Redis the store keeps everything in memory.
"""

from __future__ import annotations

import base64
import hashlib
import logging
from typing import TYPE_CHECKING

from cryptography.fernet import Fernet, InvalidToken
from pydantic import SecretStr

from caddienet.models.preferences import (
    CredentialPreference,
    CredentialPreferenceUpdate,
    CredentialSource,
)

if TYPE_CHECKING:
    import redis.asyncio as redis

logger = logging.getLogger(__name__)

# Redis keys
PREFERENCES_KEY_PREFIX = "caddienet:preferences:"


def derive_fernet(master_key: str | None) -> Fernet:
    """Build the Fernet used for credentials at rest.

    Without a master key a random one is generated and stored credentials
    will not survive a restart.
    """
    if not master_key:
        logger.warning(
            "CADDIENET_MASTER_KEY not set! "
            "Using random key - stored credentials will NOT persist across restarts. "
            "Set CADDIENET_MASTER_KEY for production use."
        )
        return Fernet(Fernet.generate_key())

    # Fernet requires exactly 32 url-safe base64-encoded bytes
    key_bytes = hashlib.sha256(master_key.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(key_bytes))


class CredentialPreferenceStore:
    """Reads and writes :class:`CredentialPreference` per user.

    The first read for a user creates the default ``{enabled: true,
    source: app}`` record.
    """

    def __init__(self, redis_client: redis.Redis | None = None, master_key: str | None = None) -> None:
        self.redis = redis_client
        self._fernet = derive_fernet(master_key)
        self._memory: dict[str, CredentialPreference] = {}

    def _key(self, user_id: str) -> str:
        return f"{PREFERENCES_KEY_PREFIX}{user_id}"

    def _encrypt(self, value: str) -> str:
        return self._fernet.encrypt(value.encode()).decode()

    def _decrypt(self, encrypted_value: str) -> str | None:
        try:
            return self._fernet.decrypt(encrypted_value.encode()).decode()
        except InvalidToken:
            # Master key changed; the stored credential is unusable
            logger.warning("Stored credential could not be decrypted; ignoring it")
            return None

    def _to_hash(self, preference: CredentialPreference) -> dict[str, str]:
        credential = ""
        if preference.has_user_credential:
            assert preference.user_credential is not None
            credential = self._encrypt(preference.user_credential.get_secret_value())
        return {
            "enabled": "1" if preference.enabled else "0",
            "source": preference.source.value,
            "credential": credential,
        }

    def _from_hash(self, data: dict[str, str]) -> CredentialPreference:
        credential = self._decrypt(data["credential"]) if data.get("credential") else None
        return CredentialPreference(
            enabled=data.get("enabled", "1") == "1",
            source=CredentialSource(data.get("source", CredentialSource.APP.value)),
            user_credential=SecretStr(credential) if credential else None,
        )

    async def read(self, user_id: str) -> CredentialPreference:
        """Return the user's preference, creating the default on first read."""
        if self.redis is None:
            if user_id not in self._memory:
                self._memory[user_id] = CredentialPreference()
            return self._memory[user_id]

        data = await self.redis.hgetall(self._key(user_id))
        if not data:
            preference = CredentialPreference()
            await self.redis.hset(self._key(user_id), mapping=self._to_hash(preference))
            logger.info("Created default assistant preference for user %s", user_id)
            return preference
        return self._from_hash(data)

    async def write(self, user_id: str, update: CredentialPreferenceUpdate) -> CredentialPreference:
        """Apply a partial update and return the stored result."""
        current = await self.read(user_id)
        changes = update.model_dump(exclude_unset=True)

        if "user_credential" in changes:
            secret = update.user_credential
            changes["user_credential"] = (
                secret if secret is not None and secret.get_secret_value() else None
            )

        preference = current.model_copy(update=changes)

        if self.redis is None:
            self._memory[user_id] = preference
        else:
            await self.redis.hset(self._key(user_id), mapping=self._to_hash(preference))

        logger.info(
            "Updated assistant preference for user %s (enabled=%s, source=%s, credential=%s)",
            user_id,
            preference.enabled,
            preference.source.value,
            "set" if preference.has_user_credential else "unset",
        )
        return preference


# Global store instance
_store: CredentialPreferenceStore | None = None


def get_preference_store() -> CredentialPreferenceStore:
    """Get the global preference store (in-memory until initialized)."""
    global _store
    if _store is None:
        _store = CredentialPreferenceStore()
    return _store


def init_preference_store(
    redis_client: redis.Redis | None = None, master_key: str | None = None
) -> CredentialPreferenceStore:
    """Initialize the global preference store."""
    global _store
    _store = CredentialPreferenceStore(redis_client=redis_client, master_key=master_key)
    return _store
