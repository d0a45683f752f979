"""
Quick answers over structured legal records.

Common factual questions (the plaintiff's surname, a ruling's magistrate,
the evidence checklist, the constitutional articles behind a right) can be
answered straight from the analysed documents without a completion call.

The chain is an ordered list of ``(trigger, extractor)`` pairs. The trigger
runs on the normalized question; the first extractor that returns text wins.
Lexicons and weights below are tuned for Spanish legal text and are part of
the observable behaviour.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import structlog

from libs.common.text import normalize_text

logger = structlog.get_logger(__name__)

Record = Mapping[str, Any]

# ==============================================================================
# TRIGGERS
# ==============================================================================

PARTY_TRIGGER = re.compile(r"\b(apellid[oa]s?)\b.*\b(demandante|accionante)\b")
RULING_TRIGGER = re.compile(r"\bsentenci|jurisprudenc|providenci|t-\d|c-\d|su-\d")
EVIDENCE_TRIGGER = re.compile(r"\bevidenc|prueb|checklist|lista de control|por que.*cumple|porque.*cumple|no cumple")
ARTICLE_TRIGGERS = (
    re.compile(r"\bque\s+articulos?.*\b(soportan|sustentan|fundamentan|amparan|protegen)\b"),
    re.compile(r"\b(base|fundamento)\s+constitucional\b"),
    re.compile(r"\barticulos?.*sobre\s+el\s+derecho\b"),
)

# ==============================================================================
# PARTY NAMES
# ==============================================================================

PARTY_LINE_PATTERNS = (
    re.compile(r"DEMANDANTE:\s*([^\n]+)", re.IGNORECASE),
    re.compile(r"\bYo,\s*([^,]+),", re.IGNORECASE),
    re.compile(r"\bAccionante:\s*([^\n]+)", re.IGNORECASE),
)
PLACEHOLDER = re.compile(r"\[[^\]]*\]")
QUOTES = re.compile(r"[\"'“”]")
NOT_A_PERSON = re.compile(r"N/?A|S\.?A\.?")
BARE_PLAINTIFF = re.compile(r"\bDEMANDANTE:\s*([A-Za-zÁÉÍÓÚÑáéíóúñ]+)\b")

# ==============================================================================
# RULINGS
# ==============================================================================

CITATION = re.compile(r"\b([A-Z]{1,3}-\d{2,3}-\d{2})\b", re.IGNORECASE)
RULING_LIST_REQUEST = re.compile(r"\b(lista|relacionad|vinculad|cuáles|cuales|que\s+sentencias?)\b")
RULING_LIST_MAX = 8
RULING_SUBINTENTS = {
    "magistrate": re.compile(r"\bmagistrad"),
    "file_number": re.compile(r"\bexpedient"),
    "rights": re.compile(r"\bderech"),
    "date": re.compile(r"\bfech"),
    "url": re.compile(r"\burl|enlace|hipervinculo|hipervínculo"),
    "summary": re.compile(r"\bresumen|sintesis|síntesis|tema\b"),
}

# ==============================================================================
# EVIDENCE
# ==============================================================================

WHY_COMPLIES = re.compile(r"por qu[eé]\s+(?:marcaste\s+)?(.+?)\s+cumple", re.IGNORECASE)
EVIDENCE_WHY_MAX = 6
CHECKLIST_ITEMS_MAX = 5
EVIDENCES_PER_ITEM_MAX = 4

# ==============================================================================
# CONSTITUTIONAL ARTICLES
# ==============================================================================

BOLD_ARTICLE = re.compile(
    r"\*\*\s*Art[íi]culo\s+(\d+)\.\s*\*\*([\s\S]*?)(?=\*\*\s*Art[íi]culo\s+\d+\.\s*\*\*|\Z)",
    re.IGNORECASE,
)
PLAIN_ARTICLE = re.compile(
    r"(^|\n)\s*Art[íi]culo\s+(\d+)\.\s*([\s\S]*?)(?=(?:\n\s*Art[íi]culo\s+\d+\.|\Z))",
    re.IGNORECASE,
)
RIGHT_FOCUS = re.compile(r"\bderech[oa]s?\s+(?:a|al|a la|a los|a las)?\s*([a-z0-9\s]{3,})")
FOCUS_STOPWORDS = re.compile(r"\b(del|de|la|el|los|las|y|o|en|para|por|un|una|que|se|al)\b")

RIGHTS_LEXICON = (
    ("igualdad", ("igualdad", "no discriminacion", "discriminacion")),
    ("dignidad", ("dignidad", "dignidad humana")),
    ("vida", ("vida", "pena de muerte")),
    ("integridad", ("integridad", "torturas", "tratos crueles", "degradantes", "inhumanos")),
    ("libre_desarrollo", ("libre desarrollo de la personalidad", "desarrollo de la personalidad", "libre desarrollo")),
    ("expresion", ("libertad de expresion", "expresion", "opinion")),
    ("educacion", ("educacion", "estudio")),
    ("salud", ("salud",)),
    ("familia", ("familia",)),
)
LONG_KEYWORD_LENGTH = 8
LONG_KEYWORD_WEIGHT = 2
SHORT_KEYWORD_WEIGHT = 1
FALLBACK_KEYWORDS_MAX = 6
TOP_ARTICLES = 3
OTHER_ARTICLES_MAX = 3
SNIPPET_RADIUS = 100
SNIPPET_FALLBACK_LENGTH = 220


# ==============================================================================
# HELPERS
# ==============================================================================

def collect_field(records: Sequence[Record], key: str) -> List[Any]:
    """Values of ``key`` across records (top level or ``metadata``), lists flattened."""
    values: List[Any] = []
    for record in records:
        value = record.get(key) or (record.get("metadata") or {}).get(key)
        if isinstance(value, list):
            values.extend(value)
        elif value is not None:
            values.append(value)
    return values


def _field(record: Record, key: str) -> Any:
    return record.get(key) or (record.get("metadata") or {}).get(key)


def _display(value: Any, separator: str = ", ") -> str:
    if isinstance(value, list):
        return separator.join(str(v) for v in value)
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


# ==============================================================================
# MATCHERS
# ==============================================================================

def answer_party_surname(question: str, records: Sequence[Record]) -> Optional[str]:
    candidates: List[str] = []
    for record in records:
        content = "\n".join(
            str(v) for v in (
                _field(record, "pdf_content") or record.get("content"),
                _field(record, "pdf_resume"),
                _field(record, "resultados"),
                _field(record, "title") or record.get("file_name"),
            ) if v
        )
        for line in content.split("\n"):
            for pattern in PARTY_LINE_PATTERNS:
                match = pattern.search(line)
                if match:
                    candidates.append(PLACEHOLDER.sub("", match.group(1)).strip())

    clean = [QUOTES.sub("", c).strip() for c in candidates]
    clean = [c for c in clean if c and not c.startswith("[") and not NOT_A_PERSON.search(c)]
    best = next((c for c in clean if re.search(r"\s", c)), clean[0] if clean else None)

    if best is None:
        for record in records:
            content = str(_field(record, "pdf_content") or record.get("content") or "")
            match = BARE_PLAINTIFF.search(content)
            if match:
                return f'No aparece el apellido en el expediente analizado; el nombre consignado es "{match.group(1)}".'
        return "No encuentro el apellido de la demandante en el material cargado."

    tokens = best.split()
    if len(tokens) >= 2:
        surname = " ".join(tokens[1:])
        return f"Apellido de la demandante: **{surname}**.\nNombre completo consignado: **{best}**."
    return f'No aparece el apellido en el expediente; el nombre consignado es "{best}".'


def ruling_records(records: Sequence[Record]) -> List[Record]:
    """Ruling results of the analyses plus records that are rulings themselves."""
    results = [r for r in collect_field(records, "sentence_result") if isinstance(r, Mapping)]
    results.extend(r for r in records if r.get("providencia"))
    return results


def _ruling_list(rows: Sequence[Record]) -> Optional[str]:
    lines = []
    for ruling in rows[:RULING_LIST_MAX]:
        line = f"• {ruling.get('providencia') or '—'}"
        for key in ("fecha_sentencia", "magistrado", "derechos"):
            if ruling.get(key):
                line += f" — {_display(ruling[key], ',')}"
        lines.append(line)
    if not lines:
        return "No encuentro sentencias relacionadas en el expediente cargado."
    return "Sentencias relacionadas registradas en el expediente:\n" + "\n".join(lines)


def _ruling_field(code: str, ruling: Record, normalized: str) -> str:
    wants = {name: bool(pattern.search(normalized)) for name, pattern in RULING_SUBINTENTS.items()}

    if wants["magistrate"] and ruling.get("magistrado"):
        return f"Magistrado(a) en {code}: **{ruling['magistrado']}**."
    if wants["file_number"] and ruling.get("expediente"):
        return f"Expediente de {code}: **{ruling['expediente']}**."
    if wants["rights"] and ruling.get("derechos"):
        return f"Derechos en {code}: {_display(ruling['derechos']) or 'no disponibles en el expediente'}."
    if wants["date"] and ruling.get("fecha_sentencia"):
        return f"Fecha de {code}: **{_display(ruling['fecha_sentencia'])}**."
    if wants["url"] and ruling.get("url"):
        return f"URL oficial de {code}: {ruling['url']}"
    if wants["summary"]:
        summary = ruling.get("hechos_relevantes") or ruling.get("tema")
        if summary:
            return f"Resumen breve de {code}: {_display(summary)}"
        return f"No tengo un resumen almacenado para {code}."

    labels = (
        ("providencia", "Providencia"),
        ("fecha_sentencia", "Fecha"),
        ("magistrado", "Magistrado"),
        ("expediente", "Expediente"),
        ("derechos", "Derechos"),
        ("hechos_relevantes", "Hechos relevantes"),
        ("url", "URL"),
    )
    lines = [f"• {label}: {_display(ruling[key])}" for key, label in labels if ruling.get(key)]
    return "\n".join(lines) if lines else f"No hay metadatos suficientes de {code} en el expediente."


def answer_ruling(question: str, records: Sequence[Record]) -> Optional[str]:
    normalized = normalize_text(question)
    listed = [r for r in collect_field(records, "sentencia_list") if isinstance(r, Mapping)]
    results = ruling_records(records)

    match = CITATION.search(question)
    code = match.group(1).upper() if match else None

    if code is None:
        if RULING_LIST_REQUEST.search(normalized):
            return _ruling_list(results or listed)
        return None

    ruling = next(
        (r for r in [*results, *listed] if str(r.get("providencia") or "").upper() == code),
        None,
    )
    if ruling is None:
        return f"No encontré la providencia {code} en el expediente."
    return _ruling_field(code, ruling, normalized)


def answer_evidence(question: str, records: Sequence[Record]) -> Optional[str]:
    checklist = [i for i in collect_field(records, "evidence_checklist") if isinstance(i, Mapping)]
    satisfied = [e for e in collect_field(records, "evidencias_cumplen") if isinstance(e, Mapping)]
    unsatisfied = collect_field(records, "evidencias_no_cumplen")
    if not checklist and not satisfied and not unsatisfied:
        return "No encuentro un bloque de evidencias en el expediente cargado."

    match = WHY_COMPLIES.search(question)
    target = normalize_text(match.group(1)) if match else None
    if target and satisfied:
        hits = [
            e for e in satisfied
            if target in normalize_text(e.get("descripcion")) or target in normalize_text(e.get("subevidencia") or "")
        ]
        if hits:
            rows = [
                f"• {e.get('descripcion')} → {e.get('subevidencia')}: **{e.get('resultado')}**"
                for e in hits[:EVIDENCE_WHY_MAX]
            ]
            return 'Marcado como "cumple" por:\n' + "\n".join(rows)

    bullets = []
    for item in checklist[:CHECKLIST_ITEMS_MAX]:
        evidences = item.get("evidencias") if isinstance(item.get("evidencias"), list) else []
        sub = "\n".join(
            f"   - ({ev.get('tipo')}) {ev.get('descripcion')}" + (f" — {ev['archivo']}" if ev.get("archivo") else "")
            for ev in evidences[:EVIDENCES_PER_ITEM_MAX]
        )
        bullets.append(f"• {item.get('descripcion')}" + (f"\n{sub}" if sub else ""))

    status = []
    if satisfied:
        status.append(f"✅ Cumplen: {len(satisfied)}")
    if unsatisfied:
        status.append(f"⚠️ No cumplen: {len(unsatisfied)}")
    return " · ".join(status) + "\n" + "\n".join(bullets)


def build_articles_index(text: str) -> Dict[str, str]:
    """Article number to article text, from bold ``**Artículo N.**`` headers or plain ones."""
    index: Dict[str, str] = {}
    if not text:
        return index
    for match in BOLD_ARTICLE.finditer(text):
        index[match.group(1)] = match.group(2).strip()
    if not index:
        for match in PLAIN_ARTICLE.finditer(text):
            index[match.group(2)] = (match.group(3) or "").strip()
    return index


def extract_right_keywords(normalized_question: str) -> List[str]:
    match = RIGHT_FOCUS.search(normalized_question)
    focus = match.group(1).strip() if match else normalized_question

    hit = {name for name, keywords in RIGHTS_LEXICON if any(k in focus for k in keywords)}
    if not hit:
        tokens = [w for w in FOCUS_STOPWORDS.sub(" ", focus).strip().split() if len(w) > 2]
        return list(dict.fromkeys(tokens))[:FALLBACK_KEYWORDS_MAX]

    keywords = [k for name, kws in RIGHTS_LEXICON if name in hit for k in kws]
    return list(dict.fromkeys(keywords))


def score_article(text: str, keywords: Sequence[str]) -> int:
    normalized = normalize_text(text)
    score = 0
    for keyword in keywords:
        kw = normalize_text(keyword)
        hits = len(re.findall(rf"\b{re.escape(kw)}\b", normalized))
        score += hits * (LONG_KEYWORD_WEIGHT if len(kw) >= LONG_KEYWORD_LENGTH else SHORT_KEYWORD_WEIGHT)
    return score


def snippet_around(text: str, keywords: Sequence[str], max_len: int = SNIPPET_FALLBACK_LENGTH) -> str:
    lowered = normalize_text(text)
    positions = [lowered.find(normalize_text(k)) for k in keywords]
    positions = [p for p in positions if p != -1]
    if not positions:
        return text[:max_len].strip() + ("…" if len(text) > max_len else "")

    pos = min(positions)
    start = max(0, pos - SNIPPET_RADIUS)
    end = min(len(text), pos + SNIPPET_RADIUS)
    return ("…" if start > 0 else "") + text[start:end].strip() + ("…" if end < len(text) else "")


def answer_articles(question: str, records: Sequence[Record]) -> Optional[str]:
    constitution = ""
    articles: List[Any] = []
    for record in records:
        if not constitution:
            constitution = _field(record, "constitution") or ""
        if isinstance(record.get("articulo_result"), list):
            articles = record["articulo_result"]
        elif isinstance((record.get("metadata") or {}).get("articulo_result"), list):
            articles = record["metadata"]["articulo_result"]
    cited = ", ".join(str(a) for a in articles)

    if not constitution:
        if articles:
            return f"Base constitucional identificada en el expediente: Art. {cited}."
        return "No tengo el texto constitucional cargado en este expediente."

    index = build_articles_index(constitution)
    if not index:
        return "No pude indexar artículos de la Constitución en este expediente."

    keywords = extract_right_keywords(normalize_text(question))
    if not keywords:
        if articles:
            return f"Base constitucional identificada: Art. {cited}."
        return "Indícame el derecho concreto para mostrar los artículos pertinentes."

    scored = [
        (number, score_article(index[number], keywords))
        for number in sorted(index, key=int)
    ]
    scored = [(number, score) for number, score in scored if score > 0]
    if not scored:
        if articles:
            return f"Puedes revisar: Art. {cited}."
        return "No encontré coincidencias claras en el texto constitucional."

    scored.sort(key=lambda pair: pair[1], reverse=True)
    bullets = "\n".join(
        f"• **Art. {number}** — {snippet_around(index[number], keywords)}"
        for number, _ in scored[:TOP_ARTICLES]
    )
    others = scored[TOP_ARTICLES:TOP_ARTICLES + OTHER_ARTICLES_MAX]
    rest = f"\n\nOtros posibles: Art. {', '.join(n for n, _ in others)}." if others else ""
    return f"Artículos pertinentes según el texto del expediente:\n{bullets}{rest}"


# ==============================================================================
# CHAIN
# ==============================================================================

@dataclass(frozen=True)
class QuickAnswerMatcher:
    name: str
    trigger: Callable[[str], bool]
    extract: Callable[[str, Sequence[Record]], Optional[str]]


QUICK_ANSWER_CHAIN = (
    QuickAnswerMatcher("party_surname", lambda q: bool(PARTY_TRIGGER.search(q)), answer_party_surname),
    QuickAnswerMatcher("ruling", lambda q: bool(RULING_TRIGGER.search(q)), answer_ruling),
    QuickAnswerMatcher("evidence", lambda q: bool(EVIDENCE_TRIGGER.search(q)), answer_evidence),
    QuickAnswerMatcher("articles", lambda q: any(p.search(q) for p in ARTICLE_TRIGGERS), answer_articles),
)


def try_quick_answer(question: str, records: Sequence[Record]) -> Optional[str]:
    """
    Answer ``question`` from ``records`` without the completion endpoint.

    Args:
        question: Raw user question
        records: Flattened documents or ruling records (plain mappings)

    Returns:
        Answer text from the first matcher that produces one, else None
    """
    normalized = normalize_text(question)
    for matcher in QUICK_ANSWER_CHAIN:
        if not matcher.trigger(normalized):
            continue
        answer = matcher.extract(question, records)
        if answer:
            logger.info("Quick answer matched", matcher=matcher.name)
            return answer
    return None
