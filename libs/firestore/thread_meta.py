"""Persistence of per-thread memory rows in the Firestore ``thread_meta`` collection."""

from typing import List, Sequence

import structlog
from google.cloud.firestore_v1.async_client import AsyncClient
from google.cloud.firestore_v1.base_query import FieldFilter

from libs.firestore.messages import BATCH_LIMIT, IN_FILTER_LIMIT, chunked
from libs.models.firestore import ThreadMeta, thread_meta_document_id, utc_now

logger = structlog.get_logger(__name__)


class ThreadMetaStore:
    """CRUD helpers for :class:`ThreadMeta` rows, one per (thread, scenario)."""

    collection_name = "thread_meta"

    def __init__(self, client: AsyncClient):
        self.client = client

    def _collection(self):
        return self.client.collection(self.collection_name)

    async def get(self, thread_id: str, scenario: str, user_email: str | None = None) -> ThreadMeta | None:
        """Fetch a memory row, optionally requiring it to belong to ``user_email``."""
        snapshot = await self._collection().document(thread_meta_document_id(thread_id, scenario)).get()
        if not snapshot.exists:
            return None
        meta = ThreadMeta(**snapshot.to_dict())
        if user_email is not None and meta.user_email != user_email:
            return None
        return meta

    async def save(self, meta: ThreadMeta) -> ThreadMeta:
        await self._collection().document(meta.document_id).set(meta.model_dump())
        return meta

    async def ensure(self, thread_id: str, scenario: str, user_email: str, user_id: str | None) -> ThreadMeta:
        """Create the row on first touch, otherwise only bump ``last_message_at``."""
        meta = await self.get(thread_id, scenario)
        if meta is None:
            meta = ThreadMeta(thread_id=thread_id, scenario=scenario, user_email=user_email, user_id=user_id)
            return await self.save(meta)

        meta.last_message_at = utc_now()
        await self._collection().document(meta.document_id).update({"last_message_at": meta.last_message_at})
        return meta

    async def first_for_thread(self, thread_id: str) -> ThreadMeta | None:
        """Any memory row of the thread, regardless of scenario."""
        query = self._collection().where(filter=FieldFilter("thread_id", "==", thread_id)).limit(1)
        async for snapshot in query.stream():
            return ThreadMeta(**snapshot.to_dict())
        return None

    async def list_for_user(self, user_email: str) -> List[ThreadMeta]:
        """All memory rows of a user, most recently active first."""
        query = (
            self._collection()
            .where(filter=FieldFilter("user_email", "==", user_email))
            .order_by("last_message_at", direction="DESCENDING")
        )
        return [ThreadMeta(**snapshot.to_dict()) async for snapshot in query.stream()]

    async def for_threads(self, thread_ids: Sequence[str], scenario: str) -> List[ThreadMeta]:
        """Memory rows of ``thread_ids`` in one scenario, most recently active first."""
        rows: List[ThreadMeta] = []
        for chunk in chunked(list(dict.fromkeys(thread_ids)), IN_FILTER_LIMIT):
            query = (
                self._collection()
                .where(filter=FieldFilter("thread_id", "in", list(chunk)))
                .where(filter=FieldFilter("scenario", "==", scenario))
            )
            rows.extend([ThreadMeta(**snapshot.to_dict()) async for snapshot in query.stream()])
        return sorted(rows, key=lambda row: row.last_message_at, reverse=True)

    async def find_owned(self, thread_id: str, user_email: str) -> ThreadMeta | None:
        query = (
            self._collection()
            .where(filter=FieldFilter("thread_id", "==", thread_id))
            .where(filter=FieldFilter("user_email", "==", user_email))
            .limit(1)
        )
        async for snapshot in query.stream():
            return ThreadMeta(**snapshot.to_dict())
        return None

    async def rename(self, thread_id: str, user_email: str, title: str) -> ThreadMeta | None:
        meta = await self.find_owned(thread_id, user_email)
        if meta is None:
            return None
        meta.title = title
        await self._collection().document(meta.document_id).update({"title": title})
        return meta

    async def delete_threads(self, thread_ids: Sequence[str]) -> int:
        """Delete every memory row belonging to ``thread_ids``."""
        references = []
        for chunk in chunked(list(thread_ids), IN_FILTER_LIMIT):
            query = self._collection().where(filter=FieldFilter("thread_id", "in", list(chunk)))
            references.extend([snapshot.reference async for snapshot in query.stream()])

        for start in range(0, len(references), BATCH_LIMIT):
            batch = self.client.batch()
            for reference in references[start:start + BATCH_LIMIT]:
                batch.delete(reference)
            await batch.commit()

        logger.debug("Thread memory rows deleted", count=len(references))
        return len(references)
