"""Read access to extracted voice/file texts in the ``extracted_texts`` collection."""

from typing import List, Sequence

import structlog
from google.cloud.firestore_v1.async_client import AsyncClient
from google.cloud.firestore_v1.base_query import FieldFilter

from libs.firestore.messages import IN_FILTER_LIMIT, chunked
from libs.models.firestore import ExtractedText

logger = structlog.get_logger(__name__)


class ExtractedTextStore:
    collection_name = "extracted_texts"

    def __init__(self, client: AsyncClient):
        self.client = client

    async def get_by_ids(self, text_ids: Sequence[str], user_id: str) -> List[ExtractedText]:
        """Ready texts owned by ``user_id`` among ``text_ids``, newest first. Errors yield []."""
        if not text_ids:
            return []
        try:
            texts: List[ExtractedText] = []
            for chunk in chunked(list(text_ids), IN_FILTER_LIMIT):
                query = (
                    self.client.collection(self.collection_name)
                    .where(filter=FieldFilter("text_id", "in", list(chunk)))
                    .where(filter=FieldFilter("user_id", "==", user_id))
                    .where(filter=FieldFilter("status", "==", "ready"))
                )
                texts.extend([ExtractedText(**snapshot.to_dict()) async for snapshot in query.stream()])
        except Exception as e:
            logger.error("Failed to load extracted texts", user_id=user_id, error=str(e))
            return []

        texts.sort(key=lambda t: t.created_at.timestamp() if t.created_at else 0.0, reverse=True)
        return texts
