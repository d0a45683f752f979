"""
Master document for the dashboard.

Folds a user's analysed text-analysis documents into one record: a listing
of the documents, their analysis fields merged across documents, and the
conversation summaries of the threads they belong to.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from api.models import (
    ConversationSummary,
    MasterDocument,
    MasterDocumentAnalyses,
    MasterDocumentEntry,
)
from api.tools.quick_answers import collect_field
from libs.models.firestore import CaseDocument, ThreadMeta, utc_now

DOCUMENT_SEPARATOR = "\n\n---\n\n"

LIST_FIELDS = (
    "sentence_result",
    "sentencia_list",
    "evidence_checklist",
    "evidencias_cumplen",
    "evidencias_no_cumplen",
    "articulo_result",
)


def _record(document: CaseDocument) -> Dict[str, Any]:
    return document.model_dump()


def _joined(documents: Sequence[CaseDocument], key: str, fallback_to_content: bool = False) -> str:
    values = []
    for document in documents:
        value = document.metadata.get(key) or (document.content if fallback_to_content else None)
        if value:
            values.append(str(value))
    return DOCUMENT_SEPARATOR.join(values)


def _constitution(documents: Sequence[CaseDocument]) -> str:
    # Only the first document carrying either field may contribute its constitution
    first = next((d for d in documents if d.metadata.get("constitution") or d.content), None)
    if first is not None and first.metadata.get("constitution"):
        return str(first.metadata["constitution"])
    return next((d.content for d in documents if d.content), "")


def _last_updated(newest: CaseDocument) -> datetime:
    return (newest.model_extra or {}).get("updated_at") or newest.created_at or utc_now()


def aggregate_master_document(
    documents: Sequence[CaseDocument],
    thread_rows: Sequence[ThreadMeta] = (),
) -> Optional[MasterDocument]:
    """
    Aggregate ``documents`` (newest first) into a master document.

    Returns None when there are no documents.
    """
    if not documents:
        return None

    records: List[Dict[str, Any]] = [_record(d) for d in documents]
    analyses = MasterDocumentAnalyses(
        **{key: collect_field(records, key) for key in LIST_FIELDS},
        constitution=_constitution(documents),
        pdf_content=_joined(documents, "pdf_content", fallback_to_content=True),
        pdf_resume=_joined(documents, "pdf_resume"),
        resultados=_joined(documents, "resultados"),
    )

    return MasterDocument(
        all_documents=[
            MasterDocumentEntry(
                id=d.id,
                thread_id=d.thread_id,
                file_name=d.file_name,
                document_type=d.document_type,
                created_at=d.created_at,
                word_count=d.word_count,
            )
            for d in documents
        ],
        all_analyses=analyses,
        total_documents=len(documents),
        total_word_count=sum(d.word_count or 0 for d in documents),
        last_updated=_last_updated(documents[0]),
        conversation_summaries=[
            ConversationSummary(
                thread_id=row.thread_id,
                summary=row.summary,
                title=row.title,
                last_message_at=row.last_message_at,
                message_count=row.message_count,
            )
            for row in thread_rows
        ],
    )
