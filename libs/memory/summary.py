"""
Pure helpers for the persistent conversation memory.

The summary is append-then-truncate: every exchange adds ``Usuario:`` and
``Pepper:`` lines at the end, and once the text exceeds the cap the oldest
characters are cut from the front.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from libs.common.text import sanitize_text
from libs.models.firestore import RecentThread, ShortHistoryEntry, ThreadMeta, UserMemory

MAX_MEMORY_SUMMARY_CHARS = 100_000
SHORT_HISTORY_MAX = 8
RECENT_THREADS_MAX = 10
OTHER_THREADS_IN_BLOCK = 3

USER_LABEL = "Usuario"
ASSISTANT_LABEL = "Pepper"


def _label(role: str) -> str:
    return ASSISTANT_LABEL if role == "assistant" else USER_LABEL


def build_updated_summary(
    previous: str,
    user_text: str | None,
    assistant_text: str | None,
    max_chars: int = MAX_MEMORY_SUMMARY_CHARS,
) -> str:
    """Append one exchange to ``previous`` and keep only the last ``max_chars`` characters."""
    segments = []
    if user_text:
        segments.append(f"{USER_LABEL}: {sanitize_text(user_text)}")
    if assistant_text:
        segments.append(f"{ASSISTANT_LABEL}: {sanitize_text(assistant_text)}")

    joined = "\n".join(segments)
    summary = f"{previous}\n{joined}" if previous else joined
    if len(summary) > max_chars:
        summary = summary[-max_chars:]
    return summary


def append_short_history(
    history: List[ShortHistoryEntry],
    user_text: str | None,
    assistant_text: str | None,
    now: datetime,
    max_entries: int = SHORT_HISTORY_MAX,
) -> List[ShortHistoryEntry]:
    updated = list(history)
    if user_text:
        updated.append(ShortHistoryEntry(role="user", content=sanitize_text(user_text), at=now))
    if assistant_text:
        updated.append(ShortHistoryEntry(role="assistant", content=sanitize_text(assistant_text), at=now))
    return updated[-max_entries:]


def apply_exchange(
    meta: ThreadMeta,
    user_text: str | None,
    assistant_text: str | None,
    now: datetime,
    max_summary_chars: int = MAX_MEMORY_SUMMARY_CHARS,
    short_history_max: int = SHORT_HISTORY_MAX,
) -> ThreadMeta:
    """Fold one exchange into a thread memory row (mutates and returns ``meta``)."""
    meta.last_message_at = now
    meta.summary = build_updated_summary(meta.summary or "", user_text, assistant_text, max_summary_chars)
    meta.short_history = append_short_history(meta.short_history, user_text, assistant_text, now, short_history_max)
    meta.message_count = (meta.message_count or 0) + (1 if user_text else 0) + (1 if assistant_text else 0)
    meta.tokens_approx = round(len(meta.summary) / 4)
    return meta


def upsert_recent_thread(
    memory: UserMemory,
    thread_id: str,
    scenario: str | None,
    summary: str,
    last_message_at: datetime,
    max_threads: int = RECENT_THREADS_MAX,
    max_summary_chars: int = MAX_MEMORY_SUMMARY_CHARS,
) -> UserMemory:
    """Move (thread, scenario) to the front of the user's recent threads, evicting past the cap."""
    others = [
        item for item in memory.recent_threads
        if item.thread_id != thread_id or item.scenario != scenario
    ]
    entry = RecentThread(
        thread_id=thread_id,
        scenario=scenario,
        summary=summary[-max_summary_chars:] if summary else "",
        last_message_at=last_message_at,
    )
    memory.recent_threads = [entry, *others][:max_threads]
    return memory


def build_memory_block(
    meta: Optional[ThreadMeta],
    memory: Optional[UserMemory],
    thread_id: str,
    scenario: str | None,
) -> str:
    """Render the persisted memory as the text block prepended to the user prompt."""
    segments = []
    if meta is not None and meta.summary:
        segments.append(f"Resumen del hilo actual:\n{meta.summary}")

    if meta is not None and meta.short_history:
        lines = "\n".join(f"{_label(entry.role)}: {entry.content}" for entry in meta.short_history)
        segments.append(f"Intercambios recientes:\n{lines}")

    if memory is not None and memory.recent_threads:
        others = [
            f"• Hilo {item.thread_id}: ({item.scenario or 'sin escenario'}) {item.summary or ''}"
            for item in memory.recent_threads
            if item.thread_id != thread_id and item.scenario == scenario
        ][:OTHER_THREADS_IN_BLOCK]
        if others:
            segments.append("Otros recuerdos recientes del usuario:\n" + "\n".join(others))

    return "\n\n".join(segments)


def build_cached_history(messages: Iterable[Dict[str, Any]]) -> str:
    """``Usuario:``/``Pepper:`` transcript of cached messages, skipping empty ones."""
    lines = []
    for message in messages or []:
        text = sanitize_text(message.get("text"))
        if text:
            lines.append(f"{_label(message.get('role'))}: {text}")
    return "\n".join(lines)


def build_contextual_memory(memory_block: str, cached_history: str) -> str:
    parts = [memory_block, f"Historial inmediato:\n{cached_history}" if cached_history else ""]
    return "\n\n".join(part for part in parts if part)
