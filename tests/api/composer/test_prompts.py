from datetime import datetime

import pytest

from api.composer.prompts import (
    DASHBOARD_AGENT,
    JURISPRUDENCE,
    LANGUAGE_INSTRUCTIONS,
    LEGAL_WRITING,
    SCENARIO_PROMPTS,
    TEXT_ANALYSIS,
    augment_prompt_with_memory,
    build_default_user_prompt,
    build_juris_user_prompt,
    build_system_prompt,
    build_text_analysis_user_prompt,
    default_thread_title,
    locale_string,
    normalize_scenario_key,
    prompt_for,
    sampling_for_scenario,
)


@pytest.mark.parametrize("raw, expected", [
    ("Dashboard Legal", DASHBOARD_AGENT),
    ("agent", DASHBOARD_AGENT),
    ("legal-writing", LEGAL_WRITING),
    ("Escritura", LEGAL_WRITING),
    ("Jurisprudencia", JURISPRUDENCE),
    ("Análisis de texto", TEXT_ANALYSIS),
    ("text-analysis", TEXT_ANALYSIS),
    ("  Custom ", "custom"),
    ("", None),
    (None, None),
])
def test_normalize_scenario_key(raw, expected):
    assert normalize_scenario_key(raw) == expected


def test_prompt_for_falls_back_to_spanish_and_default_profile():
    assert prompt_for("jurisprudence", "fr") == SCENARIO_PROMPTS[JURISPRUDENCE]["es"]
    assert prompt_for("Jurisprudencia", "en") == SCENARIO_PROMPTS[JURISPRUDENCE]["en"]
    assert prompt_for("unknown", "en") == SCENARIO_PROMPTS["default"]["en"]
    assert prompt_for(None, None) == SCENARIO_PROMPTS["default"]["es"]


def test_locale_string():
    assert locale_string("generic_error", "de") == "Lo siento, ocurrió un error al procesar tu solicitud."
    assert locale_string("juris_searching", "es") == "🔎 Consultando base de datos de sentencias…"
    assert locale_string("missing", "es") == ""


def test_system_prompt_prefixes_language_and_collapses_newlines():
    assert build_system_prompt("a\n\n\nb", "en") == LANGUAGE_INSTRUCTIONS["en"] + "\na\nb"
    assert build_system_prompt("x", "xx").startswith(LANGUAGE_INSTRUCTIONS["es"])


def test_memory_augmentation():
    assert augment_prompt_with_memory("P", "  ") == "P"
    assert augment_prompt_with_memory("P", "hechos") == "🧠 CONTEXTO PERSISTENTE:\nhechos\n\nP"


def test_user_prompt_builders():
    assert build_default_user_prompt("es", "hola") == 'Pregunta del usuario: "hola".'
    assert build_default_user_prompt("en", "hi") == 'User question: "hi".'

    juris = build_juris_user_prompt("es", "¿Qué dice?", "CTX")
    assert "📨 PREGUNTA DEL USUARIO:\n¿Qué dice?" in juris
    assert "CTX" in juris

    analysis = build_text_analysis_user_prompt("pt", "q", "DOCS", None)
    assert "do usuário usuario" in analysis
    assert "DOCS" in analysis


def test_sampling_per_scenario():
    grounded = sampling_for_scenario("Jurisprudencia")
    assert (grounded.temperature, grounded.max_tokens) == (0.2, 1800)
    assert sampling_for_scenario("text-analysis") == grounded

    conversational = sampling_for_scenario("dashboard")
    assert (conversational.temperature, conversational.max_tokens) == (0.7, 2000)
    assert sampling_for_scenario(None) == conversational


def test_default_thread_title():
    at = datetime(2024, 3, 5, 14, 7)
    assert default_thread_title(JURISPRUDENCE, at) == "Jurisprudencia • 05/03/2024, 14:07"
    assert default_thread_title(LEGAL_WRITING) == "Redacción legal"
    assert default_thread_title(None) == "Análisis de texto"
