"""Pydantic models for the Pepper chat API.

This module defines the request and response models used by the chat
endpoints and the health checks.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from libs.models.firestore import Attachment, RecentThread, ShortHistoryEntry


class CreateThreadRequest(BaseModel):
    """Request model for opening a new conversation thread."""
    scenario: Optional[str] = Field(None, description="Scenario of the thread", examples=["jurisprudence"])


class CreateThreadResponse(BaseModel):
    thread_id: str = Field(description="Opaque thread identifier", examples=["thread-1717171717171-k3j9x0"])


class ThreadSummary(BaseModel):
    """One entry of the user's thread list.

    Attributes:
        thread_id: Thread identifier
        title: User title, or a scenario label with the last activity date
        scenario: Canonical scenario key
        updated_at: Last activity time
    """
    thread_id: str
    title: str
    scenario: str = "text-analysis"
    updated_at: Optional[datetime] = None


class ThreadListResponse(BaseModel):
    threads: List[ThreadSummary] = Field(default_factory=list)


class RenameThreadRequest(BaseModel):
    title: str = Field(description="New thread title (trimmed, max 160 characters)", examples=["Tutela salud"])


class RenameThreadResponse(BaseModel):
    thread: ThreadSummary


class DeleteThreadResponse(BaseModel):
    ok: bool = True
    thread_id: str


class ClearHistoryRequest(BaseModel):
    """Threads to clear; an empty or missing list clears every thread of the user."""
    thread_ids: Optional[List[str]] = Field(None, examples=[["thread-1717171717171-k3j9x0"]])


class ClearHistoryResponse(BaseModel):
    ok: bool = True
    deleted: int = 0
    thread_ids: List[str] = Field(default_factory=list)


class SendMessageRequest(BaseModel):
    """Request model for one chat turn.

    Missing fields are reported on the event stream rather than as a 422,
    so clients always read the same frame format.
    """
    thread_id: str = Field("", description="Thread identifier")
    text: str = Field("", max_length=20000, description="User message")
    scenario: str = Field("", description="Scenario of the thread", examples=["jurisprudence"])
    extracted_text_ids: List[str] = Field(default_factory=list, description="Extracted texts to add as context")
    attachments: List[Attachment] = Field(default_factory=list)

    @field_validator("extracted_text_ids")
    @classmethod
    def drop_blank_ids(cls, v: List[str]) -> List[str]:
        return [item for item in v if item and item.strip()]


class ThreadOwnerView(BaseModel):
    email: Optional[str] = None
    id: Optional[str] = None


class MemoryView(BaseModel):
    summary: str = ""
    short_history: List[ShortHistoryEntry] = Field(default_factory=list)
    message_count: int = 0
    recent_threads: List[RecentThread] = Field(default_factory=list)
    facts: List[Any] = Field(default_factory=list)
    memory_block: str = ""


class ThreadMessagesResponse(BaseModel):
    """History of a thread with its memory snapshot.

    ``status`` is ``forbidden`` (with ``reason``) when the thread belongs
    to another user.
    """
    messages: List[dict] = Field(default_factory=list)
    status: Literal["completed", "forbidden"] = "completed"
    scenario: Optional[str] = None
    user: ThreadOwnerView = Field(default_factory=ThreadOwnerView)
    memory: Optional[MemoryView] = None
    reason: Optional[str] = None


class MasterDocumentEntry(BaseModel):
    id: Optional[str] = None
    thread_id: Optional[str] = None
    file_name: Optional[str] = None
    document_type: Optional[str] = None
    created_at: Optional[datetime] = None
    word_count: int = 0


class MasterDocumentAnalyses(BaseModel):
    """Analysis fields gathered across documents; list fields are flattened."""
    sentence_result: List[Any] = Field(default_factory=list)
    sentencia_list: List[Any] = Field(default_factory=list)
    evidence_checklist: List[Any] = Field(default_factory=list)
    evidencias_cumplen: List[Any] = Field(default_factory=list)
    evidencias_no_cumplen: List[Any] = Field(default_factory=list)
    constitution: str = ""
    articulo_result: List[Any] = Field(default_factory=list)
    pdf_content: str = ""
    pdf_resume: str = ""
    resultados: str = ""


class ConversationSummary(BaseModel):
    thread_id: str
    summary: str = ""
    title: str = ""
    last_message_at: Optional[datetime] = None
    message_count: int = 0


class MasterDocument(BaseModel):
    """Everything a user's text-analysis threads know, for the dashboard.

    Attributes:
        all_documents: One entry per document, newest first
        all_analyses: Analysis fields merged across documents
        total_documents: Number of documents
        total_word_count: Sum of document word counts
        last_updated: Update (or creation) time of the newest document
        conversation_summaries: Memory rows of the documents' threads
    """
    all_documents: List[MasterDocumentEntry] = Field(default_factory=list)
    all_analyses: MasterDocumentAnalyses = Field(default_factory=MasterDocumentAnalyses)
    total_documents: int = 0
    total_word_count: int = 0
    last_updated: Optional[datetime] = None
    conversation_summaries: List[ConversationSummary] = Field(default_factory=list)


class MasterDocumentResponse(BaseModel):
    success: bool = True
    master_document: MasterDocument


class HealthResponse(BaseModel):
    """Response model for health check endpoints.

    Attributes:
        status: Health status (healthy/unhealthy/ready/not_ready)
        service: Service name
        version: Service version
        timestamp: Unix timestamp
        details: Optional additional details
    """
    status: Literal["healthy", "unhealthy", "ready", "not_ready"] = Field(description="Health status", examples=["healthy"])
    service: str = Field(description="Service name", examples=["pepper-chat"])
    version: str = Field(description="Service version", examples=["0.1.0"])
    timestamp: float = Field(default_factory=time.time, description="Unix timestamp")
    details: dict[str, str] | None = Field(
        default=None,
        description="Optional additional details",
        examples=[{"firestore": "configured", "cache": "memory"}],
    )


class ErrorResponse(BaseModel):
    error: str = Field(description="Error code", examples=["THREAD_NOT_FOUND"])
    message: str = Field(description="Human-readable error message")
    request_id: str | None = None
