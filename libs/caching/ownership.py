"""
Thread ownership registry.

Maps a thread id to the fingerprint of the user who first touched it and
rejects any other caller before the database is read. The check is
application level only.

Resolution order for an unknown thread:
    1. registry entry
    2. most recent persisted message of the thread
    3. any thread_meta row of the thread
    4. nobody: the caller becomes the owner
"""

from typing import Optional

import structlog

from libs.caching.kv_store import KeyValueStore
from libs.firestore.messages import MessageStore
from libs.firestore.thread_meta import ThreadMetaStore

logger = structlog.get_logger(__name__)

OWNERSHIP_MISMATCH_CODE = "THREAD_OWNERSHIP_MISMATCH"


def owner_key(user_id: Optional[str], user_email: Optional[str]) -> Optional[str]:
    """Fingerprint ``"<uid>::<lowercased email>"``; None when both parts are missing."""
    uid = (user_id or "").strip()
    email = (user_email or "").strip().lower()
    if not uid and not email:
        return None
    return f"{uid}::{email}"


class ThreadOwnershipError(Exception):
    """Raised when a caller touches a thread bound to another user."""

    code = OWNERSHIP_MISMATCH_CODE

    def __init__(self, thread_id: str, message: str = "Thread belongs to another user"):
        super().__init__(message)
        self.thread_id = thread_id


class ThreadOwnershipRegistry:
    def __init__(
        self,
        store: KeyValueStore,
        messages: MessageStore | None = None,
        thread_meta: ThreadMetaStore | None = None,
    ):
        self.store = store
        self.messages = messages
        self.thread_meta = thread_meta

    @staticmethod
    def _key(thread_id: str) -> str:
        return f"thread:{thread_id}:owner"

    async def resolve_owner(self, thread_id: str) -> Optional[str]:
        """Known owner fingerprint of a thread, caching whatever persisted storage reveals."""
        owner = await self.store.get(self._key(thread_id))
        if owner:
            return owner

        owner = await self._persisted_owner(thread_id)
        if owner:
            await self.store.set(self._key(thread_id), owner)
        return owner

    async def _persisted_owner(self, thread_id: str) -> Optional[str]:
        """Owner recorded in Firestore; lookup errors propagate so nobody gets bound."""
        try:
            if self.messages is not None:
                latest = await self.messages.latest(thread_id)
                if latest is not None:
                    owner = owner_key(latest.user_id, latest.user_email)
                    if owner:
                        return owner
            if self.thread_meta is not None:
                meta = await self.thread_meta.first_for_thread(thread_id)
                if meta is not None:
                    return owner_key(meta.user_id, meta.user_email)
        except Exception as e:
            logger.error("Owner lookup failed", thread_id=thread_id, error=str(e))
            raise
        return None

    async def bind_owner(self, thread_id: str, fingerprint: str) -> None:
        await self.store.set(self._key(thread_id), fingerprint)

    async def check_owner(self, thread_id: str, caller: Optional[str]) -> None:
        """
        Allow the caller or raise :class:`ThreadOwnershipError`.

        An unowned thread is bound to the caller. Storage errors propagate
        and leave the thread unbound.
        """
        owner = await self.resolve_owner(thread_id)
        if owner is None:
            if caller:
                await self.bind_owner(thread_id, caller)
            return
        if owner != caller:
            logger.warning("Thread ownership mismatch", thread_id=thread_id)
            raise ThreadOwnershipError(thread_id)

    async def is_allowed(self, thread_id: str, caller: Optional[str]) -> bool:
        try:
            await self.check_owner(thread_id, caller)
        except ThreadOwnershipError:
            return False
        return True

    async def drop(self, thread_id: str) -> None:
        await self.store.delete(self._key(thread_id))
