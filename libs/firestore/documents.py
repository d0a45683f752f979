"""Read access to analysed case documents in the Firestore ``documents`` collection."""

from typing import List

import structlog
from google.cloud.firestore_v1.async_client import AsyncClient
from google.cloud.firestore_v1.base_query import FieldFilter

from libs.models.firestore import CaseDocument

logger = structlog.get_logger(__name__)


class DocumentStore:
    """Loads the documents the text-analysis scenario answers from."""

    collection_name = "documents"

    def __init__(self, client: AsyncClient):
        self.client = client

    def _collection(self):
        return self.client.collection(self.collection_name)

    @staticmethod
    def _to_document(snapshot) -> CaseDocument:
        data = snapshot.to_dict()
        data.setdefault("id", snapshot.id)
        return CaseDocument(**data)

    async def for_thread(self, thread_id: str, user_id: str) -> List[CaseDocument]:
        query = (
            self._collection()
            .where(filter=FieldFilter("thread_id", "==", thread_id))
            .where(filter=FieldFilter("user_id", "==", user_id))
            .order_by("created_at", direction="DESCENDING")
        )
        return [self._to_document(snapshot) async for snapshot in query.stream()]

    async def for_user_scenario(self, user_email: str, scenario: str, limit: int = 10) -> List[CaseDocument]:
        query = (
            self._collection()
            .where(filter=FieldFilter("user_email", "==", user_email.lower()))
            .where(filter=FieldFilter("scenario", "==", scenario))
            .order_by("created_at", direction="DESCENDING")
            .limit(limit)
        )
        return [self._to_document(snapshot) async for snapshot in query.stream()]

    async def load_text_analysis_context(self, thread_id: str, user_id: str, user_email: str | None) -> List[CaseDocument]:
        """
        Documents attached to the thread, newest first.

        Falls back to the user's ten latest text-analysis documents when the
        thread has none of its own. Lookup errors yield an empty list.
        """
        try:
            documents = await self.for_thread(thread_id, user_id)
            if not documents and user_email:
                return await self.for_user_scenario(user_email, "text-analysis", limit=10)
            return documents
        except Exception as e:
            logger.error("Failed to load text-analysis documents", thread_id=thread_id, error=str(e))
            return []

    async def for_user_analyses(self, user_id: str, thread_id: str | None = None) -> List[CaseDocument]:
        """The user's text-analysis documents, newest first, optionally for one thread."""
        query = (
            self._collection()
            .where(filter=FieldFilter("user_id", "==", user_id))
            .where(filter=FieldFilter("scenario", "==", "text-analysis"))
        )
        if thread_id:
            query = query.where(filter=FieldFilter("thread_id", "==", thread_id))
        query = query.order_by("created_at", direction="DESCENDING")
        return [self._to_document(snapshot) async for snapshot in query.stream()]
