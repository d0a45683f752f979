"""Heuristic language detection for user messages (es / en / pt)."""

import re
from typing import Dict, Tuple

SPANISH_ACCENTS = re.compile(r"[áéíóúñü¿¡]", re.IGNORECASE)
PORTUGUESE_ACCENTS = re.compile(r"[ãõâêôç]", re.IGNORECASE)
ASCII_ONLY = re.compile(r"^[\x00-\x7F]+$")

# Scored by substring presence, in this order; ties keep the earlier language.
LANGUAGE_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "es": (
        "derecho", "tutela", "magistrado", "constitucion", "constitución", "articulo",
        "artículo", "gracias", "hola", "colombia", "jurisprudencia",
    ),
    "en": (
        "law", "case", "please", "thanks", "thank you", "analysis", "draft", "hello",
        "court", "evidence", "summary", "should", "could",
    ),
    "pt": (
        "você", "vocês", "obrigado", "obrigada", "jurisprudência", "jurisprudencia", "artigo",
        "processo", "ação", "acao", "juiz", "sentença", "sentenca", "brasil",
    ),
}


def keyword_scores(text: str) -> Dict[str, int]:
    lowered = text.lower()
    return {
        lang: sum(1 for keyword in keywords if keyword in lowered)
        for lang, keywords in LANGUAGE_KEYWORDS.items()
    }


def detect_language(text: str | None) -> str:
    """
    Guess the language of ``text``.

    Accents unique to one language decide immediately. Otherwise the
    keyword score wins, then any accent, then ASCII-only text is English.
    Empty text and everything else is Spanish.
    """
    sample = (text or "").strip()
    if not sample:
        return "es"

    has_spanish = bool(SPANISH_ACCENTS.search(sample))
    has_portuguese = bool(PORTUGUESE_ACCENTS.search(sample))
    if has_portuguese and not has_spanish:
        return "pt"
    if has_spanish and not has_portuguese:
        return "es"

    best_lang, best_score = "es", 0
    for lang, score in keyword_scores(sample).items():
        if score > best_score:
            best_lang, best_score = lang, score
    if best_score > 0:
        return best_lang

    if has_portuguese:
        return "pt"
    if has_spanish:
        return "es"
    if ASCII_ONLY.match(sample):
        return "en"
    return "es"
