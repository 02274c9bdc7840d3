"""Persistent history of assistant interactions.

Each user's records live in a capped Redis list, newest first. Without Redis
the log keeps the same shape in memory.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError

from caddienet.errors import LogWriteFailure
from caddienet.models.commands import InteractionRecord

if TYPE_CHECKING:
    import redis.asyncio as redis

logger = logging.getLogger(__name__)


class InteractionLog:
    """Append-only interaction history per user."""

    KEY_PREFIX = "caddienet:interactions:"
    DEFAULT_MAX_RECORDS = 200

    def __init__(self, redis_client: redis.Redis | None = None, max_records: int | None = None) -> None:
        self._redis = redis_client
        self.max_records = max_records or self.DEFAULT_MAX_RECORDS
        self._fallback: dict[str, list[InteractionRecord]] = {}

    async def set_redis(self, redis_client: redis.Redis) -> None:
        """Set Redis client after initialization."""
        self._redis = redis_client

    def _key(self, user_id: str) -> str:
        return f"{self.KEY_PREFIX}{user_id}"

    async def append(self, record: InteractionRecord) -> None:
        """Store ``record``.

        Raises:
            LogWriteFailure: the backing store rejected the write.
        """
        if self._redis is None:
            records = self._fallback.setdefault(record.user_id, [])
            records.insert(0, record)
            del records[self.max_records :]
            return

        try:
            key = self._key(record.user_id)
            await self._redis.lpush(key, record.model_dump_json())
            await self._redis.ltrim(key, 0, self.max_records - 1)
        except Exception as e:
            raise LogWriteFailure(f"Failed to store interaction: {e}") from e

    async def recent(self, user_id: str, limit: int = 20) -> list[InteractionRecord]:
        """Most recent records for ``user_id``, newest first."""
        if limit <= 0:
            return []
        if self._redis is None:
            return list(self._fallback.get(user_id, [])[:limit])

        try:
            raw_records = await self._redis.lrange(self._key(user_id), 0, limit - 1)
        except Exception as e:
            logger.error("Failed to read interactions: %s", e)
            return list(self._fallback.get(user_id, [])[:limit])

        records = []
        for raw in raw_records:
            try:
                records.append(InteractionRecord.model_validate_json(raw))
            except ValidationError as e:
                logger.warning("Skipping unreadable interaction record: %s", e.error_count())
        return records


# Global instance
_interaction_log: InteractionLog | None = None


def get_interaction_log() -> InteractionLog:
    """Get the global interaction log instance."""
    global _interaction_log
    if _interaction_log is None:
        _interaction_log = InteractionLog()
    return _interaction_log


async def init_interaction_log(
    redis_client: redis.Redis | None = None, max_records: int | None = None
) -> InteractionLog:
    """Initialize the interaction log with Redis."""
    global _interaction_log
    _interaction_log = InteractionLog(redis_client, max_records=max_records)
    return _interaction_log
