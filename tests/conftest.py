"""Shared fixtures."""

from __future__ import annotations

import pytest

from caddienet.config import get_settings


class FakeRedis:
    """Just enough of redis.asyncio.Redis (decode_responses=True) for the stores."""

    def __init__(self) -> None:
        self.hashes: dict[str, dict[str, str]] = {}
        self.lists: dict[str, list[str]] = {}
        self.fail_writes = False

    async def hgetall(self, key: str) -> dict[str, str]:
        return dict(self.hashes.get(key, {}))

    async def hset(self, key: str, mapping: dict[str, str]) -> int:
        self.hashes.setdefault(key, {}).update(mapping)
        return len(mapping)

    async def lpush(self, key: str, value: str) -> int:
        if self.fail_writes:
            raise ConnectionError("redis went away")
        self.lists.setdefault(key, []).insert(0, value)
        return len(self.lists[key])

    async def ltrim(self, key: str, start: int, end: int) -> bool:
        self.lists[key] = self.lists.get(key, [])[start : end + 1]
        return True

    async def lrange(self, key: str, start: int, end: int) -> list[str]:
        return self.lists.get(key, [])[start : end + 1]

    async def ping(self) -> bool:
        return True


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture(autouse=True)
def fresh_settings():
    """Settings are cached; make env overrides visible per test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
