"""
Tests for the persistent memory helpers.

Tests verify:
- Summary is append-then-truncate with a 100000 character cap
- Short history keeps the last 8 turns
- Recent threads are most-recent-first with a cap of 10
- Memory block only recalls other threads of the same scenario
"""

from datetime import datetime

from libs.memory.summary import (
    MAX_MEMORY_SUMMARY_CHARS,
    append_short_history,
    apply_exchange,
    build_cached_history,
    build_contextual_memory,
    build_memory_block,
    build_updated_summary,
    upsert_recent_thread,
)
from libs.models.firestore import RecentThread, ShortHistoryEntry, ThreadMeta, UserMemory

NOW = datetime(2024, 5, 1, 12, 0)


def test_summary_appends_labelled_lines():
    summary = build_updated_summary("", "¿Qué es  la tutela?", "Es una acción\nconstitucional.")

    assert summary == "Usuario: ¿Qué es la tutela?\nPepper: Es una acción constitucional."
    assert build_updated_summary(summary, "Gracias", None).endswith("\nUsuario: Gracias")


def test_summary_never_exceeds_cap_and_keeps_newest():
    summary = ""
    for i in range(300):
        summary = build_updated_summary(summary, "u" * 400, f"respuesta {i} " + "a" * 400)

    assert len(summary) == MAX_MEMORY_SUMMARY_CHARS
    assert summary.endswith("a" * 400)
    assert "respuesta 299" in summary
    assert "respuesta 0 " not in summary


def test_short_history_bounded():
    history = []
    for i in range(6):
        history = append_short_history(history, f"q{i}", f"a{i}", NOW)

    assert len(history) == 8
    assert [e.content for e in history[:2]] == ["q2", "a2"]
    assert history[-1].role == "assistant"


def test_apply_exchange_updates_counters():
    meta = ThreadMeta(thread_id="t1", scenario="jurisprudence")

    apply_exchange(meta, "Hola", "Buenos días", NOW)
    apply_exchange(meta, "", "Saludo", NOW)

    assert meta.message_count == 3
    assert meta.last_message_at == NOW
    assert meta.tokens_approx == round(len(meta.summary) / 4)
    assert [e.role for e in meta.short_history] == ["user", "assistant", "assistant"]


def test_upsert_recent_thread_moves_to_front_and_evicts():
    memory = UserMemory(user_email="ana@example.com")
    for i in range(12):
        upsert_recent_thread(memory, f"t{i}", "jurisprudence", f"s{i}", NOW)
    upsert_recent_thread(memory, "t5", "jurisprudence", "updated", NOW)

    ids = [t.thread_id for t in memory.recent_threads]
    assert len(ids) == 10
    assert ids[0] == "t5"
    assert memory.recent_threads[0].summary == "updated"
    assert ids.count("t5") == 1
    assert "t0" not in ids and "t1" not in ids


def test_upsert_keeps_same_thread_under_other_scenario():
    memory = UserMemory(user_email="ana@example.com")
    upsert_recent_thread(memory, "t1", "jurisprudence", "a", NOW)
    upsert_recent_thread(memory, "t1", "text-analysis", "b", NOW)

    assert [(t.thread_id, t.scenario) for t in memory.recent_threads] == [
        ("t1", "text-analysis"),
        ("t1", "jurisprudence"),
    ]


def test_memory_block_sections():
    meta = ThreadMeta(
        thread_id="t1",
        scenario="jurisprudence",
        summary="Usuario: hola",
        short_history=[ShortHistoryEntry(role="user", content="hola", at=NOW)],
    )
    memory = UserMemory(
        user_email="ana@example.com",
        recent_threads=[
            RecentThread(thread_id="t1", scenario="jurisprudence", summary="self"),
            RecentThread(thread_id="t2", scenario="jurisprudence", summary="pensiones"),
            RecentThread(thread_id="t3", scenario="text-analysis", summary="otro escenario"),
            RecentThread(thread_id="t4", scenario="jurisprudence", summary="salud"),
            RecentThread(thread_id="t5", scenario="jurisprudence", summary="vivienda"),
            RecentThread(thread_id="t6", scenario="jurisprudence", summary="educación"),
        ],
    )

    block = build_memory_block(meta, memory, "t1", "jurisprudence")

    assert block.startswith("Resumen del hilo actual:\nUsuario: hola")
    assert "Intercambios recientes:\nUsuario: hola" in block
    assert "• Hilo t2: (jurisprudence) pensiones" in block
    assert "vivienda" in block
    assert "educación" not in block
    assert "otro escenario" not in block
    assert "self" not in block


def test_memory_block_empty():
    assert build_memory_block(None, None, "t1", "jurisprudence") == ""


def test_cached_history_and_contextual_memory():
    history = build_cached_history([
        {"role": "user", "text": "¿Qué dice la T-123-45?"},
        {"role": "assistant", "text": ""},
        {"role": "assistant", "text": "Trata sobre salud."},
    ])

    assert history == "Usuario: ¿Qué dice la T-123-45?\nPepper: Trata sobre salud."
    assert build_contextual_memory("", history) == f"Historial inmediato:\n{history}"
    assert build_contextual_memory("Resumen", "") == "Resumen"
    assert build_contextual_memory("", "") == ""
