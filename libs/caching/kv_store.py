"""
Key/value stores backing the thread cache and the ownership registry.

Two interchangeable backends:
- InMemoryKeyValueStore: process-local dict (single instance deployments)
- RedisKeyValueStore: shared Redis keys (multi-instance deployments)

Values are JSON-compatible (dicts, lists, strings). Neither backend is a
source of truth; callers reload from Firestore on a miss.
"""

import copy
import json
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import structlog

from libs.caching.redis_client import get_redis_client
from libs.common.settings import Settings, get_settings

logger = structlog.get_logger(__name__)


class KeyValueStore(ABC):
    """Minimal async key/value interface."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        ...

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store. Values are copied in and out so callers never share state."""

    def __init__(self):
        self._data: Dict[str, Any] = {}

    async def get(self, key: str) -> Optional[Any]:
        value = self._data.get(key)
        return copy.deepcopy(value)

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __len__(self) -> int:
        return len(self._data)


class RedisKeyValueStore(KeyValueStore):
    """JSON values under ``<prefix><key>`` with a sliding TTL."""

    def __init__(self, redis_client, prefix: str = "pepper:", ttl_seconds: int = 86400):
        self.redis = redis_client
        self.prefix = prefix
        self.ttl_seconds = ttl_seconds

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def get(self, key: str) -> Optional[Any]:
        raw = await self.redis.get(self._key(key))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding undecodable cache entry", key=key)
            await self.redis.delete(self._key(key))
            return None

    async def set(self, key: str, value: Any) -> None:
        await self.redis.set(self._key(key), json.dumps(value, default=str), ex=self.ttl_seconds)

    async def delete(self, key: str) -> None:
        await self.redis.delete(self._key(key))


async def create_key_value_store(settings: Settings | None = None) -> KeyValueStore:
    """
    Build the store selected by ``cache_backend``.

    A Redis backend that cannot connect degrades to the in-process store,
    which keeps the single-process behaviour.
    """
    settings = settings or get_settings()
    if settings.cache_backend == "redis":
        client = await get_redis_client(settings)
        if client is not None:
            return RedisKeyValueStore(client, ttl_seconds=settings.cache_ttl_seconds)
        logger.warning("Redis unavailable, thread cache falls back to process memory")
    return InMemoryKeyValueStore()
