"""
Tests for the thread message cache.

Tests verify:
- Sliding window keeps the 20 most recent messages in order
- A miss reloads the last persisted messages
- Empty entries count as a miss
- Reload failures degrade to an empty history
"""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from libs.caching.kv_store import InMemoryKeyValueStore
from libs.caching.thread_cache import ThreadMessageCache, project_message
from libs.models.firestore import Attachment, StoredMessage


def _message(i: int, sender: str = "user") -> StoredMessage:
    return StoredMessage(
        sender=sender,
        text=f"Message {i}",
        thread_id="t1",
        timestamp=datetime(2024, 5, 1) + timedelta(seconds=i),
    )


def _entry(i: int) -> dict:
    return {"role": "user", "text": f"Message {i}", "attachments": [], "timestamp": ""}


@pytest.fixture
def message_store():
    store = MagicMock()
    store.recent = AsyncMock(return_value=[])
    return store


@pytest.fixture
def cache(message_store):
    return ThreadMessageCache(InMemoryKeyValueStore(), message_store)


def test_project_message_shape():
    message = StoredMessage(
        sender="assistant",
        text="Hola",
        thread_id="t1",
        attachments=[Attachment(name="demanda", ext="pdf")],
        timestamp=datetime(2024, 5, 1, 10, 0),
    )

    assert project_message(message) == {
        "role": "assistant",
        "text": "Hola",
        "attachments": [{"name": "demanda", "ext": "pdf"}],
        "timestamp": "2024-05-01T10:00:00",
    }


@pytest.mark.asyncio
async def test_append_keeps_last_twenty_in_order(cache):
    for i in range(25):
        await cache.append("t1", [_entry(i)])

    messages = await cache.peek("t1")

    assert len(messages) == 20
    assert messages[0]["text"] == "Message 5"
    assert messages[-1]["text"] == "Message 24"


@pytest.mark.asyncio
async def test_miss_reloads_from_persisted_history(cache, message_store):
    message_store.recent.return_value = [_message(i) for i in range(30)]

    messages = await cache.get("t1")

    message_store.recent.assert_awaited_once_with("t1", limit=60)
    assert len(messages) == 20
    assert messages[0]["text"] == "Message 10"
    assert await cache.peek("t1") == messages


@pytest.mark.asyncio
async def test_hit_does_not_touch_storage(cache, message_store):
    await cache.set("t1", [_entry(1)])

    assert await cache.get("t1") == [_entry(1)]
    message_store.recent.assert_not_awaited()


@pytest.mark.asyncio
async def test_empty_entry_counts_as_miss(cache, message_store):
    await cache.set("t1", [])
    message_store.recent.return_value = [_message(1)]

    messages = await cache.get("t1")

    assert [m["text"] for m in messages] == ["Message 1"]


@pytest.mark.asyncio
async def test_reload_failure_returns_empty(cache, message_store):
    message_store.recent.side_effect = RuntimeError("firestore down")

    assert await cache.get("t1") == []


@pytest.mark.asyncio
async def test_cache_without_message_store():
    cache = ThreadMessageCache(InMemoryKeyValueStore())

    assert await cache.get("t1") == []


@pytest.mark.asyncio
async def test_invalidate(cache):
    await cache.set("t1", [_entry(1)])
    await cache.invalidate("t1")

    assert await cache.peek("t1") == []
