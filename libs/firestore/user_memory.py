"""Functions for managing cross-thread user memory in Firestore."""

from typing import Sequence

from google.cloud.firestore_v1.async_client import AsyncClient

from libs.models.firestore import UserMemory


class UserMemoryStore:
    """One :class:`UserMemory` document per user, keyed by lowercased email."""

    collection_name = "user_memory"

    def __init__(self, client: AsyncClient):
        self.client = client

    def _document(self, user_email: str):
        return self.client.collection(self.collection_name).document(user_email.lower())

    async def get(self, user_email: str) -> UserMemory | None:
        snapshot = await self._document(user_email).get()
        if not snapshot.exists:
            return None
        return UserMemory(**snapshot.to_dict())

    async def save(self, memory: UserMemory) -> UserMemory:
        await self._document(memory.user_email).set(memory.model_dump())
        return memory

    async def remove_threads(self, user_email: str, thread_ids: Sequence[str]) -> None:
        """Drop recent-thread entries for deleted threads."""
        memory = await self.get(user_email)
        if memory is None:
            return
        memory.recent_threads = [item for item in memory.recent_threads if item.thread_id not in thread_ids]
        await self.save(memory)
