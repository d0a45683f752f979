"""
Thread message cache.

Keeps the most recent messages of each thread so a turn does not re-read the
persisted history. The cache is best effort: a miss (or an empty entry) is
refilled from the last ``reload_limit`` persisted messages, and Firestore
always wins after a restart or across processes.

Usage:
    cache = ThreadMessageCache(InMemoryKeyValueStore(), message_store)
    history = await cache.get(thread_id)
    await cache.append(thread_id, [user_message, assistant_message])
"""

from typing import Any, Dict, Iterable, List

import structlog

from libs.caching.kv_store import KeyValueStore
from libs.firestore.messages import MessageStore
from libs.models.firestore import StoredMessage

logger = structlog.get_logger(__name__)

CachedMessage = Dict[str, Any]


def project_message(message: StoredMessage) -> CachedMessage:
    """Lightweight JSON-compatible shape kept in the cache."""
    return {
        "role": message.sender,
        "text": message.text or "",
        "attachments": [a.model_dump(exclude_none=True) for a in message.attachments],
        "timestamp": message.timestamp.isoformat(),
    }


class ThreadMessageCache:
    """Sliding window of the last ``max_messages`` messages per thread."""

    def __init__(
        self,
        store: KeyValueStore,
        messages: MessageStore | None = None,
        max_messages: int = 20,
        reload_limit: int = 60,
    ):
        self.store = store
        self.messages = messages
        self.max_messages = max_messages
        self.reload_limit = reload_limit

    @staticmethod
    def _key(thread_id: str) -> str:
        return f"thread:{thread_id}:messages"

    async def peek(self, thread_id: str) -> List[CachedMessage]:
        """Cached messages without touching persisted storage."""
        return await self.store.get(self._key(thread_id)) or []

    async def get(self, thread_id: str) -> List[CachedMessage]:
        """Cached messages, reloading from Firestore on a miss."""
        cached = await self.peek(thread_id)
        if cached:
            return cached
        return await self.reload(thread_id)

    async def reload(self, thread_id: str) -> List[CachedMessage]:
        if self.messages is None:
            return []
        try:
            persisted = await self.messages.recent(thread_id, limit=self.reload_limit)
        except Exception as e:
            logger.warning("Thread cache reload failed", thread_id=thread_id, error=str(e))
            return []

        projected = [project_message(m) for m in persisted][-self.max_messages:]
        if projected:
            await self.store.set(self._key(thread_id), projected)
        logger.debug("Thread cache reloaded", thread_id=thread_id, messages=len(projected))
        return projected

    async def set(self, thread_id: str, messages: Iterable[CachedMessage]) -> List[CachedMessage]:
        window = list(messages)[-self.max_messages:]
        await self.store.set(self._key(thread_id), window)
        return window

    async def append(self, thread_id: str, messages: Iterable[CachedMessage]) -> List[CachedMessage]:
        """Append in order and keep only the most recent ``max_messages``."""
        current = await self.peek(thread_id)
        current.extend(messages)
        return await self.set(thread_id, current)

    async def invalidate(self, thread_id: str) -> None:
        await self.store.delete(self._key(thread_id))
