"""
Memory coordinator for the persistent conversation memory.

Combines the per-thread memory rows (``thread_meta``) and the per-user
cross-thread recall (``user_memory``) with:
- Fallback lookups for rows written under older scenario keys
- A single update call after every exchange
- Cleanup when threads are deleted

Memory is never allowed to fail a turn: load errors yield an empty block and
update errors are logged.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

import structlog

from libs.firestore.thread_meta import ThreadMetaStore
from libs.firestore.user_memory import UserMemoryStore
from libs.memory.summary import (
    MAX_MEMORY_SUMMARY_CHARS,
    RECENT_THREADS_MAX,
    SHORT_HISTORY_MAX,
    apply_exchange,
    build_memory_block,
    upsert_recent_thread,
)
from libs.models.firestore import ThreadMeta, UserMemory, utc_now

logger = structlog.get_logger(__name__)


@dataclass
class MemorySnapshot:
    thread_meta: Optional[ThreadMeta] = None
    user_memory: Optional[UserMemory] = None
    block: str = ""


class MemoryCoordinator:
    """
    Loads and updates persistent memory for a thread.

    Usage:
        coordinator = MemoryCoordinator(ThreadMetaStore(db), UserMemoryStore(db))
        snapshot = await coordinator.load(thread_id, "jurisprudence", "Jurisprudencia", email)
        await coordinator.record_exchange(thread_id, email, uid, "jurisprudence", question, answer)
    """

    def __init__(
        self,
        thread_meta: ThreadMetaStore,
        user_memory: UserMemoryStore,
        max_summary_chars: int = MAX_MEMORY_SUMMARY_CHARS,
        short_history_max: int = SHORT_HISTORY_MAX,
        recent_threads_max: int = RECENT_THREADS_MAX,
    ):
        self.thread_meta = thread_meta
        self.user_memory = user_memory
        self.max_summary_chars = max_summary_chars
        self.short_history_max = short_history_max
        self.recent_threads_max = recent_threads_max

    async def _find_thread_meta(
        self,
        thread_id: str,
        scenario: str,
        raw_scenario: str | None,
        user_email: str,
    ) -> Optional[ThreadMeta]:
        meta = await self.thread_meta.get(thread_id, scenario, user_email=user_email)
        if meta is None and raw_scenario:
            legacy = raw_scenario.strip().lower()
            if legacy != scenario:
                meta = await self.thread_meta.get(thread_id, legacy, user_email=user_email)
        if meta is None:
            meta = await self.thread_meta.get(thread_id, scenario)
        return meta

    async def load(
        self,
        thread_id: str,
        scenario: str,
        raw_scenario: str | None,
        user_email: str,
    ) -> MemorySnapshot:
        """
        Load the memory of a thread for prompt assembly.

        The row is looked up with the normalized scenario, then with the raw
        scenario value the client sent, then without the owner filter.

        Args:
            thread_id: Thread identifier
            scenario: Normalized scenario key
            raw_scenario: Scenario as received from the client
            user_email: Email of the caller

        Returns:
            MemorySnapshot with the rendered block (empty on any failure)
        """
        try:
            meta, memory = await asyncio.gather(
                self._find_thread_meta(thread_id, scenario, raw_scenario, user_email),
                self.user_memory.get(user_email),
            )
        except Exception as e:
            logger.warning("Memory load failed", thread_id=thread_id, error=str(e))
            return MemorySnapshot()

        block = build_memory_block(meta, memory, thread_id, scenario)
        logger.debug(
            "Memory loaded",
            thread_id=thread_id,
            scenario=scenario,
            has_thread_meta=meta is not None,
            has_user_memory=memory is not None,
            block_length=len(block),
        )
        return MemorySnapshot(thread_meta=meta, user_memory=memory, block=block)

    async def record_exchange(
        self,
        thread_id: str,
        user_email: str | None,
        user_id: str | None,
        scenario: str | None,
        user_text: str | None,
        assistant_text: str | None,
    ) -> Optional[ThreadMeta]:
        """Fold an exchange into the thread row and the user's recent threads."""
        if not thread_id or not user_email or not scenario:
            return None

        try:
            now = utc_now()
            meta = await self.thread_meta.get(thread_id, scenario) or ThreadMeta(
                thread_id=thread_id, scenario=scenario, user_email=user_email, user_id=user_id
            )
            meta.user_email = user_email
            if user_id:
                meta.user_id = user_id
            apply_exchange(meta, user_text, assistant_text, now, self.max_summary_chars, self.short_history_max)
            await self.thread_meta.save(meta)

            await self.touch_user_memory(user_email, user_id, thread_id, scenario, meta.summary, now)
            return meta
        except Exception as e:
            logger.error("Persist memory failed", thread_id=thread_id, scenario=scenario, error=str(e))
            return None

    async def touch_user_memory(
        self,
        user_email: str,
        user_id: str | None,
        thread_id: str,
        scenario: str | None,
        summary: str,
        last_message_at: datetime,
    ) -> UserMemory:
        memory = await self.user_memory.get(user_email) or UserMemory(user_email=user_email, user_id=user_id)
        if user_id:
            memory.user_id = user_id
        memory.user_email = user_email
        upsert_recent_thread(
            memory,
            thread_id,
            scenario,
            summary,
            last_message_at,
            max_threads=self.recent_threads_max,
            max_summary_chars=self.max_summary_chars,
        )
        return await self.user_memory.save(memory)

    async def touch_thread(self, thread_id: str, scenario: str, user_email: str, user_id: str | None) -> ThreadMeta:
        """Register a freshly created thread in both collections."""
        meta = await self.thread_meta.ensure(thread_id, scenario, user_email, user_id)
        await self.touch_user_memory(user_email, user_id, thread_id, scenario, meta.summary, meta.last_message_at)
        return meta

    async def forget_threads(self, thread_ids: Sequence[str], user_email: str | None) -> None:
        if not thread_ids:
            return
        await self.thread_meta.delete_threads(thread_ids)
        if user_email:
            await self.user_memory.remove_threads(user_email, thread_ids)
        logger.info("Thread memory removed", threads=len(thread_ids))
