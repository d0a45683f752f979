"""Tests for message persistence in the ``messages`` collection."""

from datetime import timezone

import pytest

from libs.firestore.messages import MessageStore, chunked
from libs.models.firestore import Attachment

EMAIL = "ana@example.com"


@pytest.fixture
def store(firestore):
    return MessageStore(firestore)


def test_chunked():
    assert list(chunked(["a", "b", "c"], 2)) == [["a", "b"], ["c"]]
    assert list(chunked([], 30)) == []


@pytest.mark.asyncio
async def test_add_exchange_persists_in_order(store):
    user_msg, assistant_msg = await store.add_exchange(
        thread_id="t1",
        user_text="Hola",
        assistant_text="Buenos días",
        user_email=EMAIL,
        user_id="uid-ana",
        scenario="jurisprudence",
        attachments=[Attachment(name="demanda", ext="pdf", url="https://files/demanda.pdf")],
    )

    assert user_msg.timestamp < assistant_msg.timestamp
    assert user_msg.timestamp.tzinfo == timezone.utc
    assert user_msg.attachments == [Attachment(name="demanda", ext="pdf")]
    assert assistant_msg.reply == "Buenos días"

    recent = await store.recent("t1")
    assert [(m.sender, m.text) for m in recent] == [("user", "Hola"), ("assistant", "Buenos días")]


@pytest.mark.asyncio
async def test_recent_returns_last_messages_oldest_first(store):
    for i in range(5):
        await store.add_exchange(
            thread_id="t1", user_text=f"q{i}", assistant_text=f"a{i}",
            user_email=EMAIL, user_id="uid-ana", scenario="jurisprudence",
        )

    recent = await store.recent("t1", limit=3)
    latest = await store.latest("t1")

    assert [m.text for m in recent] == ["a3", "q4", "a4"]
    assert latest.text == "a4"
    assert await store.latest("missing") is None


@pytest.mark.asyncio
async def test_thread_ids_and_delete_for_user(store):
    for thread_id, email in (("t1", EMAIL), ("t2", EMAIL), ("t3", "luis@example.com")):
        await store.add_exchange(
            thread_id=thread_id, user_text="q", assistant_text="a",
            user_email=email, user_id=None, scenario="jurisprudence",
        )

    assert sorted(await store.thread_ids_for_user(EMAIL)) == ["t1", "t2"]
    assert await store.thread_ids_for_user(EMAIL, ["t2", "t3"]) == ["t2"]

    deleted = await store.delete_for_user(EMAIL, ["t1", "t3"])

    assert deleted == 2
    assert await store.recent("t1") == []
    assert len(await store.recent("t3")) == 2
