"""Small text helpers shared by memory, search and the quick-answer matchers."""

from __future__ import annotations

import re
import unicodedata
from typing import Any

_WHITESPACE = re.compile(r"\s+")


def sanitize_text(text: Any) -> str:
    """Collapse whitespace runs into single spaces and trim."""
    return _WHITESPACE.sub(" ", str(text or "")).strip()


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_text(text: Any) -> str:
    """Accent-stripped, lowercased, whitespace-collapsed form used for matching."""
    if text is None:
        return ""
    return sanitize_text(strip_accents(str(text)).lower())
