"""Pydantic models for Firestore collections.

These models define the structure of the documents stored in Firestore
and are used for data validation and serialization.
"""
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Attachment(BaseModel):
    """File reference attached to a user message."""
    name: str | None = None
    ext: str | None = None
    url: str | None = None


class StoredMessage(BaseModel):
    """A single persisted chat message (``messages`` collection)."""
    sender: Literal["user", "assistant"] = Field(..., description="Who produced the message.")
    text: str = Field("", description="Raw message text.")
    thread_id: str = Field(..., description="Thread this message belongs to.")
    scenario: str | None = Field(None, description="Normalized scenario key of the thread.")
    user_email: str | None = Field(None, description="Email of the owning user.")
    user_id: str | None = Field(None, description="UID of the owning user.")
    prompt: str | None = Field(None, description="User prompt of the exchange.")
    reply: str | None = Field(None, description="Assistant reply of the exchange.")
    attachments: list[Attachment] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utc_now, description="Arrival time.")


class ShortHistoryEntry(BaseModel):
    """One turn in the bounded short history of a thread."""
    role: Literal["user", "assistant"]
    content: str
    at: datetime = Field(default_factory=utc_now)


class ThreadMeta(BaseModel):
    """Persistent per-(thread, scenario) memory (``thread_meta`` collection)."""
    thread_id: str
    scenario: str
    user_email: str | None = None
    user_id: str | None = None
    title: str = ""
    summary: str = ""
    short_history: list[ShortHistoryEntry] = Field(default_factory=list)
    message_count: int = 0
    tokens_approx: int = 0
    last_message_at: datetime = Field(default_factory=utc_now)

    @property
    def document_id(self) -> str:
        return thread_meta_document_id(self.thread_id, self.scenario)


class RecentThread(BaseModel):
    """Summary of a recently touched thread, kept in the user's memory."""
    thread_id: str
    scenario: str | None = None
    summary: str = ""
    last_message_at: datetime = Field(default_factory=utc_now)


class UserMemory(BaseModel):
    """Cross-thread recall for one user (``user_memory`` collection)."""
    user_email: str
    user_id: str | None = None
    facts: list[Any] = Field(default_factory=list)
    recent_threads: list[RecentThread] = Field(default_factory=list)


class CaseDocument(BaseModel):
    """An analysed case document (``documents`` collection, read only)."""
    model_config = ConfigDict(extra="allow")

    id: str | None = None
    thread_id: str | None = None
    user_id: str | None = None
    user_email: str | None = None
    scenario: str | None = None
    document_type: str | None = None
    file_name: str | None = None
    content: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    word_count: int = 0
    created_at: datetime | None = None

    def flatten(self) -> dict[str, Any]:
        """Merge top-level fields and metadata into one record for the quick-answer matchers."""
        record = self.model_dump(exclude={"metadata"})
        record.update(self.metadata or {})
        record["title"] = self.metadata.get("title") or self.file_name
        record["file_name"] = self.file_name
        return record


class Ruling(BaseModel):
    """A constitutional court ruling (``sentencias`` collection, read only)."""
    model_config = ConfigDict(extra="allow")

    providencia: str | None = None
    expediente: str | None = None
    fecha_sentencia: datetime | str | None = None
    tema: str | None = None
    magistrado: str | None = None
    texto: str | None = None
    url: str | None = None
    derechos: Any = None
    hechos_relevantes: Any = None
    sujeto: dict[str, Any] | None = None
    conflicto_juridico: dict[str, Any] | None = None


class ExtractedText(BaseModel):
    """Text previously extracted from a voice recording or uploaded file."""
    text_id: str
    user_id: str
    source: Literal["voice", "file"]
    source_name: str = ""
    extracted_text: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    status: str = "ready"
    created_at: datetime | None = None


def thread_meta_document_id(thread_id: str, scenario: str) -> str:
    """Firestore document id enforcing one memory row per (thread, scenario)."""
    return f"{thread_id}:{scenario}"
