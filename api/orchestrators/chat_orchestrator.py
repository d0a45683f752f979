"""Chat orchestrator for the Pepper legal assistant.

This module runs one conversation turn end to end: ownership check, context
loading (extracted texts, persistent memory, cached history), the scenario
branch (jurisprudence search, text analysis over the user's documents, or a
generic conversation), quick answers, the streamed completion, table reflow
and persistence. It also serves the thread management operations behind
the chat router.

A turn is exposed as an async iterator of ``TurnEvent`` so the router only
has to encode frames. The iterator always ends with a ``completed`` event.
"""

import json
import random
import string
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Literal, Optional, Sequence

import structlog

from api.auth import User
from api.composer.context import build_documents_context, build_extracted_texts_context, build_rulings_context
from api.composer.language import detect_language
from api.composer.master_document import aggregate_master_document
from api.composer.prompts import (
    DASHBOARD_AGENT,
    DASHBOARD_AGENT_START_MESSAGE,
    JURISPRUDENCE,
    TEXT_ANALYSIS,
    augment_prompt_with_memory,
    build_default_user_prompt,
    build_juris_user_prompt,
    build_text_analysis_user_prompt,
    default_thread_title,
    locale_string,
    normalize_scenario_key,
    prompt_for,
    sampling_for_scenario,
)
from api.composer.tables import reflow_tables
from api.llm.completion_relay import CompletionRelay
from api.models import (
    ClearHistoryResponse,
    MasterDocument,
    MemoryView,
    SendMessageRequest,
    ThreadMessagesResponse,
    ThreadOwnerView,
    ThreadSummary,
)
from api.tools.quick_answers import try_quick_answer
from libs.caching.kv_store import create_key_value_store
from libs.caching.ownership import ThreadOwnershipError, ThreadOwnershipRegistry
from libs.caching.thread_cache import CachedMessage, ThreadMessageCache, project_message
from libs.common.settings import Settings, get_settings
from libs.firebase.client import get_firestore_async_client
from libs.firestore.documents import DocumentStore
from libs.firestore.extracted_texts import ExtractedTextStore
from libs.firestore.messages import MessageStore
from libs.firestore.rulings import RulingStore
from libs.firestore.thread_meta import ThreadMetaStore
from libs.firestore.user_memory import UserMemoryStore
from libs.memory.coordinator import MemoryCoordinator, MemorySnapshot
from libs.memory.summary import build_cached_history, build_contextual_memory, build_memory_block
from libs.models.firestore import Attachment, utc_now

logger = structlog.get_logger(__name__)

MISSING_PARAMETERS_MESSAGE = "Faltan parámetros (threadId, text, scenario)"
UNAUTHENTICATED_MESSAGE = "Usuario no autenticado o token inválido"
OWNERSHIP_MESSAGE = "Este hilo pertenece a otro usuario."
FORBIDDEN_REASON = "thread-belongs-to-other-user"
TITLE_MAX_CHARS = 160

THREAD_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def new_thread_id() -> str:
    """Opaque id ``thread-<epoch ms>-<6 base36 chars>``."""
    suffix = "".join(random.choices(THREAD_SUFFIX_ALPHABET, k=6))
    return f"thread-{int(time.time() * 1000)}-{suffix}"


@dataclass(frozen=True)
class TurnEvent:
    """
    One event of a chat turn.

    ``notice`` and ``content`` are shown to the user, ``error`` carries an
    optional stable ``code``, and ``completed`` closes the turn with the
    reply text that was persisted.
    """
    kind: Literal["notice", "content", "error", "completed"]
    text: str = ""
    code: Optional[str] = None


def format_sse(event: TurnEvent) -> str:
    """Encode a turn event as a client SSE frame."""
    if event.kind == "completed":
        payload: Dict[str, Any] = {"completed": True}
    elif event.kind == "error":
        payload = {"error": event.text}
        if event.code:
            payload["code"] = event.code
    else:
        payload = {"content": event.text}
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


@dataclass
class TurnContext:
    user: User
    thread_id: str
    text: str
    scenario: str
    language: str
    attachments: List[Attachment] = field(default_factory=list)
    cached: List[CachedMessage] = field(default_factory=list)
    memory: MemorySnapshot = field(default_factory=MemorySnapshot)
    contextual_memory: str = ""
    extracted_context: str = ""

    @property
    def full_user_message(self) -> str:
        if self.extracted_context:
            return f'{self.extracted_context}Pregunta del usuario: "{self.text}"'
        return self.text


def _cached_entry(role: str, text: str, attachments: Sequence[Attachment] = ()) -> CachedMessage:
    return {
        "role": role,
        "text": text,
        "attachments": [a.model_dump(exclude_none=True) for a in attachments],
        "timestamp": utc_now().isoformat(),
    }


class ChatOrchestrator:
    """
    Runs chat turns and thread operations over the Firestore stores.

    Usage:
        orchestrator = await create_chat_orchestrator()
        async for event in orchestrator.send_message(user, request):
            send(format_sse(event))
    """

    def __init__(
        self,
        *,
        messages: MessageStore,
        thread_meta: ThreadMetaStore,
        documents: DocumentStore,
        rulings: RulingStore,
        extracted_texts: ExtractedTextStore,
        cache: ThreadMessageCache,
        owners: ThreadOwnershipRegistry,
        memory: MemoryCoordinator,
        relay: CompletionRelay,
        ruling_result_limit: int = 50,
    ):
        self.messages = messages
        self.thread_meta = thread_meta
        self.documents = documents
        self.rulings = rulings
        self.extracted_texts = extracted_texts
        self.cache = cache
        self.owners = owners
        self.memory = memory
        self.relay = relay
        self.ruling_result_limit = ruling_result_limit

    # ------------------------------------------------------------------
    # Thread management
    # ------------------------------------------------------------------

    async def create_thread(self, user: User, scenario: Optional[str] = None) -> str:
        thread_id = new_thread_id()
        try:
            await self.cache.set(thread_id, [])
        except Exception as e:
            logger.warning("Thread cache init failed", thread_id=thread_id, error=str(e))

        fingerprint = user.fingerprint
        if fingerprint:
            await self.owners.bind_owner(thread_id, fingerprint)

        scenario_key = normalize_scenario_key(scenario)
        if user.email and scenario_key:
            try:
                await self.memory.touch_thread(thread_id, scenario_key, user.email, user.uid)
            except Exception as e:
                logger.warning("Thread meta init failed", thread_id=thread_id, error=str(e))

        logger.info("Thread created", thread_id=thread_id, scenario=scenario_key)
        return thread_id

    async def list_messages(self, user: User, thread_id: Optional[str]) -> ThreadMessagesResponse:
        """
        History of a thread with its memory snapshot.

        A thread owned by someone else yields a ``forbidden`` response
        instead of an error. Lookup failures yield an empty history.
        """
        if not thread_id:
            return ThreadMessagesResponse()

        try:
            owner = await self.owners.resolve_owner(thread_id)
            caller = user.fingerprint
            if owner and caller and owner != caller:
                return ThreadMessagesResponse(status="forbidden", reason=FORBIDDEN_REASON)

            messages = await self.cache.peek(thread_id)
            scenario: Optional[str] = None
            owner_view = ThreadOwnerView()

            if not messages:
                persisted = await self.messages.recent(thread_id, limit=self.cache.reload_limit)
                for message in reversed(persisted):
                    if scenario is None and message.scenario:
                        scenario = message.scenario
                    if owner_view.email is None and owner_view.id is None and (message.user_email or message.user_id):
                        owner_view = ThreadOwnerView(email=message.user_email, id=message.user_id)
                    if scenario is not None and (owner_view.email or owner_view.id):
                        break
                messages = [project_message(m) for m in persisted]
                if messages:
                    await self.cache.set(thread_id, messages)
            else:
                latest = await self.messages.latest(thread_id)
                if latest is not None:
                    scenario = latest.scenario
                    owner_view = ThreadOwnerView(email=latest.user_email, id=latest.user_id)

            memory = await self._memory_view(thread_id, scenario, owner_view.email or user.email, len(messages))
            return ThreadMessagesResponse(
                messages=messages,
                scenario=scenario,
                user=owner_view,
                memory=memory,
            )
        except Exception as e:
            logger.error("List messages failed", thread_id=thread_id, error=str(e))
            return ThreadMessagesResponse()

    async def _memory_view(
        self,
        thread_id: str,
        scenario: Optional[str],
        email: Optional[str],
        message_count: int,
    ) -> MemoryView:
        meta = None
        user_memory = None
        if scenario and email:
            try:
                meta = await self.thread_meta.get(thread_id, scenario, user_email=email)
                user_memory = await self.memory.user_memory.get(email)
            except Exception as e:
                logger.warning("Memory lookup failed", thread_id=thread_id, error=str(e))

        recent = [t for t in (user_memory.recent_threads if user_memory else []) if t.scenario == scenario]
        return MemoryView(
            summary=meta.summary if meta else "",
            short_history=meta.short_history if meta else [],
            message_count=(meta.message_count if meta else 0) or message_count,
            recent_threads=recent,
            facts=user_memory.facts if user_memory else [],
            memory_block=build_memory_block(meta, user_memory, thread_id, scenario),
        )

    async def list_threads(self, user: User) -> List[ThreadSummary]:
        rows = await self.thread_meta.list_for_user(user.email)
        return [self._summary(row) for row in rows]

    @staticmethod
    def _summary(row) -> ThreadSummary:
        return ThreadSummary(
            thread_id=row.thread_id,
            title=(row.title or "").strip() or default_thread_title(row.scenario, row.last_message_at),
            scenario=row.scenario or TEXT_ANALYSIS,
            updated_at=row.last_message_at,
        )

    async def rename_thread(self, user: User, thread_id: str, title: str) -> Optional[ThreadSummary]:
        """Rename an owned thread; None when the caller has no such thread."""
        trimmed = title.strip()[:TITLE_MAX_CHARS]
        updated = await self.thread_meta.rename(thread_id, user.email, trimmed)
        if updated is None:
            return None
        return self._summary(updated)

    async def _drop_thread_artifacts(self, thread_id: str) -> None:
        await self.cache.invalidate(thread_id)
        await self.owners.drop(thread_id)

    async def delete_thread(self, user: User, thread_id: str) -> bool:
        """Delete an owned thread with its messages and memory; False when not found."""
        owned = await self.thread_meta.find_owned(thread_id, user.email)
        if owned is None:
            return False

        await self.messages.delete_for_user(user.email, [thread_id])
        await self.memory.forget_threads([thread_id], user.email)
        await self._drop_thread_artifacts(thread_id)
        logger.info("Thread deleted", thread_id=thread_id)
        return True

    async def clear_history(self, user: User, thread_ids: Optional[Sequence[str]] = None) -> ClearHistoryResponse:
        """
        Delete the caller's messages for ``thread_ids`` (every thread when empty).

        Requested threads with no persisted messages are still cleaned up
        when nobody else owns them.
        """
        requested = [t for t in thread_ids or [] if t]
        owned = await self.messages.thread_ids_for_user(user.email, requested or None)

        caller = user.fingerprint
        cache_only = []
        if caller:
            for thread_id in requested:
                if thread_id in owned:
                    continue
                owner = await self.owners.resolve_owner(thread_id)
                if not owner or owner == caller:
                    cache_only.append(thread_id)

        deleted = await self.messages.delete_for_user(user.email, owned) if owned else 0
        targets = list(dict.fromkeys([*owned, *cache_only]))
        for thread_id in targets:
            await self._drop_thread_artifacts(thread_id)
        await self.memory.forget_threads(targets, user.email)

        return ClearHistoryResponse(ok=True, deleted=deleted, thread_ids=targets)

    async def build_master_document(self, user: User, thread_id: Optional[str] = None) -> Optional[MasterDocument]:
        """
        Aggregate the caller's text-analysis documents for the dashboard.

        Limited to one thread when ``thread_id`` is given. Returns None when
        the caller has no such documents.
        """
        documents = await self.documents.for_user_analyses(user.uid, thread_id)
        if not documents:
            return None

        thread_ids = [d.thread_id for d in documents if d.thread_id]
        rows = await self.thread_meta.for_threads(thread_ids, TEXT_ANALYSIS) if thread_ids else []
        logger.info("Master document built", uid=user.uid, documents=len(documents), threads=len(rows))
        return aggregate_master_document(documents, rows)

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def send_message(self, user: User, request: SendMessageRequest) -> AsyncIterator[TurnEvent]:
        """Run one chat turn as a stream of events ending with ``completed``."""
        thread_id = (request.thread_id or "").strip()
        if not thread_id or not (request.text or "").strip() or not (request.scenario or "").strip():
            yield TurnEvent("error", MISSING_PARAMETERS_MESSAGE)
            yield TurnEvent("completed")
            return

        if not user.uid or not user.email:
            yield TurnEvent("error", UNAUTHENTICATED_MESSAGE)
            yield TurnEvent("completed")
            return

        try:
            await self.owners.check_owner(thread_id, user.fingerprint)
        except ThreadOwnershipError as e:
            yield TurnEvent("error", OWNERSHIP_MESSAGE, code=e.code)
            yield TurnEvent("completed")
            return
        except Exception as e:
            # Owner unknown, so nothing is persisted
            logger.error("Ownership check failed", thread_id=thread_id, error=str(e))
            fallback = locale_string("generic_error", detect_language(request.text))
            yield TurnEvent("content", fallback)
            yield TurnEvent("completed", fallback)
            return

        turn = TurnContext(
            user=user,
            thread_id=thread_id,
            text=request.text,
            scenario=normalize_scenario_key(request.scenario),
            language=detect_language(request.text),
            attachments=list(request.attachments),
        )
        logger.info("Turn started", thread_id=thread_id, scenario=turn.scenario, language=turn.language)

        try:
            await self._load_context(turn, request)
            if turn.scenario == JURISPRUDENCE:
                async for event in self._jurisprudence_turn(turn):
                    yield event
            elif turn.scenario == TEXT_ANALYSIS:
                async for event in self._text_analysis_turn(turn):
                    yield event
            else:
                async for event in self._conversation_turn(turn):
                    yield event
        except Exception as e:
            logger.error("Turn failed", thread_id=thread_id, scenario=turn.scenario, error=str(e))
            fallback = locale_string("generic_error", turn.language)
            yield TurnEvent("content", fallback)
            yield TurnEvent("completed", fallback)
            await self._persist(turn, fallback)

    async def generate_reply(self, user: User, request: SendMessageRequest) -> str:
        """
        Run a turn without streaming and return the assistant reply.

        Raises:
            ThreadOwnershipError: The thread belongs to another user
            ValueError: The request is incomplete or the user is not identified
        """
        reply = ""
        async for event in self.send_message(user, request):
            if event.kind == "error":
                if event.code == ThreadOwnershipError.code:
                    raise ThreadOwnershipError(request.thread_id, event.text)
                raise ValueError(event.text)
            if event.kind == "completed":
                reply = event.text
        return reply

    async def _load_context(self, turn: TurnContext, request: SendMessageRequest) -> None:
        """Extracted texts, persistent memory and cached history of the turn."""
        thread_id = turn.thread_id
        if request.extracted_text_ids:
            texts = await self.extracted_texts.get_by_ids(request.extracted_text_ids, turn.user.uid)
            turn.extracted_context = build_extracted_texts_context(texts)
            if texts:
                logger.debug("Extracted texts loaded", thread_id=thread_id, count=len(texts))

        turn.memory = await self.memory.load(thread_id, turn.scenario, request.scenario, turn.user.email)
        turn.cached = await self.cache.get(thread_id)
        turn.contextual_memory = build_contextual_memory(turn.memory.block, build_cached_history(turn.cached))

    async def _jurisprudence_turn(self, turn: TurnContext) -> AsyncIterator[TurnEvent]:
        yield TurnEvent("notice", locale_string("juris_searching", turn.language))

        rulings = await self.rulings.search(turn.text, limit=self.ruling_result_limit)
        if not rulings:
            async for event in self._reply(turn, locale_string("juris_no_matches", turn.language)):
                yield event
            return

        quick = try_quick_answer(turn.text, [r.model_dump() for r in rulings])
        if quick:
            async for event in self._reply(turn, quick):
                yield event
            return

        user_prompt = augment_prompt_with_memory(
            build_juris_user_prompt(turn.language, turn.text, build_rulings_context(rulings)),
            turn.contextual_memory,
        )
        async for event in self._complete(turn, prompt_for(JURISPRUDENCE, turn.language), user_prompt):
            yield event

    async def _text_analysis_turn(self, turn: TurnContext) -> AsyncIterator[TurnEvent]:
        documents = await self.documents.load_text_analysis_context(turn.thread_id, turn.user.uid, turn.user.email)
        if not documents:
            async for event in self._reply(turn, locale_string("text_no_docs", turn.language)):
                yield event
            return

        quick = try_quick_answer(turn.text, [d.flatten() for d in documents])
        if quick:
            async for event in self._reply(turn, quick):
                yield event
            return

        context_block = build_documents_context(documents)
        if turn.extracted_context:
            context_block = f"{turn.extracted_context}\n\n{context_block}"
        user_prompt = augment_prompt_with_memory(
            build_text_analysis_user_prompt(turn.language, turn.text, context_block, turn.user.email),
            turn.contextual_memory,
        )
        async for event in self._complete(turn, prompt_for(TEXT_ANALYSIS, turn.language), user_prompt):
            yield event

    async def _conversation_turn(self, turn: TurnContext) -> AsyncIterator[TurnEvent]:
        if turn.scenario == DASHBOARD_AGENT and not turn.cached:
            yield TurnEvent("content", DASHBOARD_AGENT_START_MESSAGE)
            await self._persist_greeting(turn)

        user_prompt = augment_prompt_with_memory(
            build_default_user_prompt(turn.language, turn.full_user_message),
            turn.contextual_memory,
        )
        async for event in self._complete(turn, prompt_for(turn.scenario, turn.language), user_prompt):
            yield event

    async def _persist_greeting(self, turn: TurnContext) -> None:
        greeting = _cached_entry("assistant", DASHBOARD_AGENT_START_MESSAGE)
        try:
            await self.messages.add_exchange(
                thread_id=turn.thread_id,
                user_text="",
                assistant_text=DASHBOARD_AGENT_START_MESSAGE,
                user_email=turn.user.email,
                user_id=turn.user.uid,
                scenario=turn.scenario,
            )
            turn.cached = await self.cache.set(turn.thread_id, [greeting])
        except Exception as e:
            logger.error("Persist greeting failed", thread_id=turn.thread_id, error=str(e))

    async def _complete(self, turn: TurnContext, system_prompt: str, user_prompt: str) -> AsyncIterator[TurnEvent]:
        sampling = sampling_for_scenario(turn.scenario)
        parts: List[str] = []
        async for chunk in self.relay.stream(
            system_prompt,
            user_prompt,
            temperature=sampling.temperature,
            max_tokens=sampling.max_tokens,
            language=turn.language,
        ):
            if chunk.done or not chunk.content:
                continue
            parts.append(chunk.content)
            yield TurnEvent("content", chunk.content)

        reply = reflow_tables("".join(parts))
        await self._persist(turn, reply)
        yield TurnEvent("completed", reply)

    async def _reply(self, turn: TurnContext, text: str) -> AsyncIterator[TurnEvent]:
        """Answer without the completion endpoint."""
        yield TurnEvent("content", text)
        await self._persist(turn, text)
        yield TurnEvent("completed", text)

    async def _persist(self, turn: TurnContext, reply: str) -> None:
        """Cache, store and summarize the exchange. Failures are logged only."""
        try:
            await self.cache.set(
                turn.thread_id,
                [*turn.cached, _cached_entry("user", turn.text, turn.attachments), _cached_entry("assistant", reply)],
            )
            await self.messages.add_exchange(
                thread_id=turn.thread_id,
                user_text=turn.text,
                assistant_text=reply,
                user_email=turn.user.email,
                user_id=turn.user.uid,
                scenario=turn.scenario,
                attachments=turn.attachments,
            )
        except Exception as e:
            logger.error("Persist messages failed", thread_id=turn.thread_id, error=str(e))
            return

        await self.memory.record_exchange(
            turn.thread_id,
            turn.user.email,
            turn.user.uid,
            turn.scenario,
            turn.text,
            reply,
        )


async def create_chat_orchestrator(settings: Optional[Settings] = None, client=None) -> ChatOrchestrator:
    """Wire the orchestrator with Firestore stores and the configured cache backend."""
    settings = settings or get_settings()
    db = client or get_firestore_async_client(settings)
    store = await create_key_value_store(settings)

    messages = MessageStore(db)
    thread_meta = ThreadMetaStore(db)
    memory = MemoryCoordinator(
        thread_meta,
        UserMemoryStore(db),
        max_summary_chars=settings.max_memory_summary_chars,
        short_history_max=settings.short_history_max,
        recent_threads_max=settings.recent_threads_max,
    )
    return ChatOrchestrator(
        messages=messages,
        thread_meta=thread_meta,
        documents=DocumentStore(db),
        rulings=RulingStore(db, scan_limit=settings.ruling_scan_limit),
        extracted_texts=ExtractedTextStore(db),
        cache=ThreadMessageCache(
            store,
            messages,
            max_messages=settings.cache_history_limit,
            reload_limit=settings.cache_reload_limit,
        ),
        owners=ThreadOwnershipRegistry(store, messages, thread_meta),
        memory=memory,
        relay=CompletionRelay.from_settings(settings),
        ruling_result_limit=settings.ruling_result_limit,
    )
