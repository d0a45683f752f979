"""Persistence of chat messages in the Firestore ``messages`` collection."""

import uuid
from datetime import timedelta
from typing import Iterable, List, Sequence

import structlog
from google.cloud.firestore_v1.async_client import AsyncClient
from google.cloud.firestore_v1.base_query import FieldFilter

from libs.models.firestore import Attachment, StoredMessage, utc_now

logger = structlog.get_logger(__name__)

# Firestore caps "in" filters at 30 values and write batches at 500 operations.
IN_FILTER_LIMIT = 30
BATCH_LIMIT = 500


def chunked(items: Sequence[str], size: int) -> Iterable[Sequence[str]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class MessageStore:
    """
    Reads and writes thread messages.

    Messages are immutable once written. An exchange (user prompt plus
    assistant reply) is committed in one batch so both rows land together,
    with the reply stamped one microsecond after the prompt to keep arrival
    order stable under ``order_by("timestamp")``.
    """

    collection_name = "messages"

    def __init__(self, client: AsyncClient):
        self.client = client

    def _collection(self):
        return self.client.collection(self.collection_name)

    async def add_exchange(
        self,
        *,
        thread_id: str,
        user_text: str,
        assistant_text: str,
        user_email: str | None,
        user_id: str | None,
        scenario: str | None,
        attachments: List[Attachment] | None = None,
    ) -> List[StoredMessage]:
        """Persist one user/assistant exchange and return the stored rows."""
        now = utc_now()
        user_message = StoredMessage(
            sender="user",
            text=user_text,
            thread_id=thread_id,
            scenario=scenario,
            user_email=user_email,
            user_id=user_id,
            prompt=user_text,
            reply=None,
            attachments=[Attachment(name=a.name, ext=a.ext) for a in attachments or []],
            timestamp=now,
        )
        assistant_message = StoredMessage(
            sender="assistant",
            text=assistant_text,
            thread_id=thread_id,
            scenario=scenario,
            user_email=user_email,
            user_id=user_id,
            prompt=user_text,
            reply=assistant_text,
            timestamp=now + timedelta(microseconds=1),
        )

        batch = self.client.batch()
        collection = self._collection()
        for message in (user_message, assistant_message):
            batch.set(collection.document(uuid.uuid4().hex), message.model_dump())
        await batch.commit()

        logger.debug("Exchange persisted", thread_id=thread_id, scenario=scenario)
        return [user_message, assistant_message]

    async def recent(self, thread_id: str, limit: int = 60) -> List[StoredMessage]:
        """Fetch the last ``limit`` messages of a thread, oldest first."""
        query = (
            self._collection()
            .where(filter=FieldFilter("thread_id", "==", thread_id))
            .order_by("timestamp", direction="DESCENDING")
            .limit(limit)
        )
        messages = [StoredMessage(**snapshot.to_dict()) async for snapshot in query.stream()]
        return messages[::-1]

    async def latest(self, thread_id: str) -> StoredMessage | None:
        """Most recent message of a thread, if any."""
        messages = await self.recent(thread_id, limit=1)
        return messages[-1] if messages else None

    async def thread_ids_for_user(self, user_email: str, thread_ids: Sequence[str] | None = None) -> List[str]:
        """Distinct thread ids that have messages owned by ``user_email``."""
        base = self._collection().where(filter=FieldFilter("user_email", "==", user_email))
        queries = [base]
        if thread_ids:
            queries = [
                base.where(filter=FieldFilter("thread_id", "in", list(chunk)))
                for chunk in chunked(list(thread_ids), IN_FILTER_LIMIT)
            ]

        found: List[str] = []
        for query in queries:
            async for snapshot in query.stream():
                thread_id = snapshot.to_dict().get("thread_id")
                if thread_id and thread_id not in found:
                    found.append(thread_id)
        return found

    async def delete_for_user(self, user_email: str, thread_ids: Sequence[str]) -> int:
        """Delete every message of ``thread_ids`` owned by ``user_email``."""
        deleted = 0
        for chunk in chunked(list(thread_ids), IN_FILTER_LIMIT):
            query = (
                self._collection()
                .where(filter=FieldFilter("user_email", "==", user_email))
                .where(filter=FieldFilter("thread_id", "in", list(chunk)))
            )
            references = [snapshot.reference async for snapshot in query.stream()]
            for start in range(0, len(references), BATCH_LIMIT):
                batch = self.client.batch()
                for reference in references[start:start + BATCH_LIMIT]:
                    batch.delete(reference)
                await batch.commit()
            deleted += len(references)

        logger.info("Messages deleted", user_email=user_email, threads=len(thread_ids), deleted=deleted)
        return deleted
