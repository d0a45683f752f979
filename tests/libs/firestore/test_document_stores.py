"""Tests for the read-only document and extracted-text stores."""

from datetime import datetime
from unittest.mock import MagicMock

import pytest

from libs.firestore.documents import DocumentStore
from libs.firestore.extracted_texts import ExtractedTextStore


@pytest.mark.asyncio
async def test_thread_documents_first(firestore):
    firestore.seed("documents", "d1", {"thread_id": "t1", "user_id": "uid-ana", "file_name": "demanda.pdf",
                                       "created_at": datetime(2024, 5, 1)})
    firestore.seed("documents", "d2", {"user_email": "ana@example.com", "scenario": "text-analysis",
                                       "file_name": "otro.pdf", "created_at": datetime(2024, 5, 2)})

    documents = await DocumentStore(firestore).load_text_analysis_context("t1", "uid-ana", "ana@example.com")

    assert [d.id for d in documents] == ["d1"]


@pytest.mark.asyncio
async def test_falls_back_to_latest_user_documents(firestore):
    for i in range(12):
        firestore.seed("documents", f"d{i}", {"user_email": "ana@example.com", "scenario": "text-analysis",
                                              "created_at": datetime(2024, 5, 1, 0, i)})

    documents = await DocumentStore(firestore).load_text_analysis_context("t1", "uid-ana", "Ana@Example.com")

    assert len(documents) == 10
    assert documents[0].id == "d11"


@pytest.mark.asyncio
async def test_document_errors_yield_empty_list():
    client = MagicMock()
    client.collection.side_effect = RuntimeError("firestore down")

    assert await DocumentStore(client).load_text_analysis_context("t1", "uid", "ana@example.com") == []


@pytest.mark.asyncio
async def test_extracted_texts_filtered_by_owner_and_status(firestore):
    firestore.seed("extracted_texts", "e1", {"text_id": "e1", "user_id": "uid-ana", "source": "voice", "status": "ready",
                                             "extracted_text": "audio", "created_at": datetime(2024, 5, 1)})
    firestore.seed("extracted_texts", "e2", {"text_id": "e2", "user_id": "uid-ana", "source": "file", "status": "ready",
                                             "extracted_text": "pdf", "created_at": datetime(2024, 5, 2)})
    firestore.seed("extracted_texts", "e3", {"text_id": "e3", "user_id": "uid-ana", "source": "file",
                                             "status": "processing"})
    firestore.seed("extracted_texts", "e4", {"text_id": "e4", "user_id": "uid-luis", "source": "file"})

    texts = await ExtractedTextStore(firestore).get_by_ids(["e1", "e2", "e3", "e4"], "uid-ana")

    assert [t.text_id for t in texts] == ["e2", "e1"]


@pytest.mark.asyncio
async def test_extracted_texts_without_ids(firestore):
    assert await ExtractedTextStore(firestore).get_by_ids([], "uid-ana") == []
