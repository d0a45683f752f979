"""
Context blocks injected into user prompts.

- Jurisprudence: one labelled card per ruling found by the search
- Text analysis: every field of the user's analysed documents
- Extracted texts: voice transcriptions and uploaded file texts
"""

import json
from datetime import date, datetime
from typing import Any, Iterable, List

from libs.models.firestore import CaseDocument, ExtractedText, Ruling

RULING_EXTRACT_CHARS = 600
RULING_SEPARATOR = "\n\n---\n\n"

DOCUMENT_EXCLUDED_KEYS = frozenset({
    "id", "thread_id", "user_id", "user_email", "scenario", "created_at", "updated_at", "timestamp",
})

EXTRACTED_TEXTS_HEADER = "📋 CONTEXTO DE TEXTOS EXTRAÍDOS:"


def _join_values(value: Any) -> str:
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    return str(value) if value else ""


def format_ruling_date(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.strftime("%Y-%m-%d")
    if value:
        return str(value)[:10]
    return "s/f"


def format_ruling(ruling: Ruling) -> str:
    """Labelled card for one ruling; empty fields are omitted."""
    subject = ruling.sujeto or {}
    subject_text = " · ".join(
        str(subject[k])
        for k in ("genero", "edad", "condicion_especial", "grupo_etnico", "condicion_social")
        if subject.get(k)
    )
    conflict = ruling.conflicto_juridico or {}
    conflict_text = " — ".join(str(conflict[k]) for k in ("frase", "tipo") if conflict.get(k))

    extract = ""
    if ruling.texto:
        text = str(ruling.texto)
        extract = text[:RULING_EXTRACT_CHARS] + ("…" if len(text) > RULING_EXTRACT_CHARS else "")

    rights = _join_values(ruling.derechos)
    facts = _join_values(ruling.hechos_relevantes)
    providencia = (ruling.providencia or "").strip()

    lines = [
        f"📘 Providencia: {providencia}" if providencia else "",
        f"📅 Fecha: {format_ruling_date(ruling.fecha_sentencia)}",
        f"👨‍⚖️ Magistrado: {ruling.magistrado or 'Sin magistrado'}",
        f"🧭 Tema: {ruling.tema or 'Sin tema'}",
        f"📂 Expediente: {ruling.expediente}" if ruling.expediente else "",
        f"⚖️ Derechos discutidos: {rights}" if rights else "",
        f"📌 Hechos relevantes: {facts}" if facts else "",
        f"👥 Sujeto(s) implicado(s): {subject_text}" if subject_text else "",
        f"⚔️ Conflicto jurídico: {conflict_text}" if conflict_text else "",
        f"🔗 {ruling.url}" if ruling.url else "",
        f"📝 Extracto:\n{extract}" if extract else "",
    ]
    return "\n".join(line for line in lines if line)


def build_rulings_context(rulings: Iterable[Ruling]) -> str:
    return RULING_SEPARATOR.join(format_ruling(r) for r in rulings)


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def build_documents_context(documents: List[CaseDocument]) -> str:
    """
    Dump every field of the analysed documents, one banner per document.

    Content comes first, then metadata fields, then remaining top-level
    fields. Identity and bookkeeping keys are left out.
    """
    if not documents:
        return ""

    parts: List[str] = []
    for index, document in enumerate(documents, start=1):
        title = document.metadata.get("title") or document.file_name or f"Documento {index}"
        parts.append(f"\n================ DOCUMENTO {index}: {title} ================\n")

        if document.content:
            parts.append(f"\n[content]\n{document.content}\n")

        for key, value in (document.metadata or {}).items():
            if key in DOCUMENT_EXCLUDED_KEYS:
                continue
            rendered = _stringify(value)
            if rendered.strip():
                parts.append(f"\n[{key}]\n{rendered}\n")

        for key, value in document.model_dump(exclude={"metadata", "content"}).items():
            if key in DOCUMENT_EXCLUDED_KEYS:
                continue
            rendered = _stringify(value)
            if rendered.strip():
                parts.append(f"\n[{key}]\n{rendered}\n")

    return "".join(parts)


def build_extracted_texts_context(texts: List[ExtractedText]) -> str:
    """Block of transcriptions and file texts the user attached to the message."""
    if not texts:
        return ""

    sections = []
    for index, item in enumerate(texts, start=1):
        if item.source == "voice":
            label = f"🎙️ Transcripción de voz: {item.source_name or f'Grabación {index}'}"
        else:
            name = item.source_name or item.metadata.get("file_name") or f"Archivo {index}"
            label = f"📄 Archivo: {name}"
        sections.append(f"\n{label}\n{'=' * 60}\n{item.extracted_text}\n")

    return f"\n\n{EXTRACTED_TEXTS_HEADER}\n" + "\n---\n".join(sections) + "\n\n"
