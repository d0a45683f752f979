"""
Tests for the chat router.

The orchestrator is replaced by a recording fake so these tests cover the
HTTP surface only: status codes, payload shapes and SSE framing.
"""

import pytest
from fastapi.testclient import TestClient

from api.auth import User, get_current_user
from api.main import create_app
from api.models import ClearHistoryResponse, MasterDocument, ThreadMessagesResponse, ThreadSummary
from api.orchestrators.chat_orchestrator import TurnEvent
from api.routers.chat import get_chat_orchestrator

ANA = User(uid="uid-ana", email="ana@example.com")


class FakeOrchestrator:
    def __init__(self):
        self.calls = []
        self.fail = False

    async def list_threads(self, user):
        if self.fail:
            raise RuntimeError("firestore down")
        return [ThreadSummary(thread_id="t1", title="Tutela salud", scenario="jurisprudence")]

    async def create_thread(self, user, scenario=None):
        self.calls.append(("create_thread", scenario))
        return "thread-1717171717171-abc123"

    async def rename_thread(self, user, thread_id, title):
        if thread_id == "missing":
            return None
        return ThreadSummary(thread_id=thread_id, title=title)

    async def delete_thread(self, user, thread_id):
        return thread_id != "missing"

    async def list_messages(self, user, thread_id):
        self.calls.append(("list_messages", thread_id))
        return ThreadMessagesResponse(messages=[{"role": "user", "text": "hola"}], scenario="jurisprudence")

    async def clear_history(self, user, thread_ids=None):
        self.calls.append(("clear_history", thread_ids))
        return ClearHistoryResponse(deleted=2, thread_ids=thread_ids or ["t1"])

    async def build_master_document(self, user, thread_id=None):
        self.calls.append(("build_master_document", thread_id))
        if thread_id == "empty":
            return None
        return MasterDocument(total_documents=1, total_word_count=120)

    async def send_message(self, user, request):
        self.calls.append(("send_message", request.thread_id, request.text))
        yield TurnEvent("notice", "🔎 Consultando base de datos de sentencias…")
        yield TurnEvent("content", "Hola")
        yield TurnEvent("completed", "Hola")


@pytest.fixture
def orchestrator():
    return FakeOrchestrator()


@pytest.fixture
def client(orchestrator):
    app = create_app()
    app.dependency_overrides[get_current_user] = lambda: ANA
    app.dependency_overrides[get_chat_orchestrator] = lambda: orchestrator
    return TestClient(app)


def test_list_threads(client):
    response = client.get("/api/v1/chat/threads")

    assert response.status_code == 200
    thread = response.json()["threads"][0]
    assert thread["thread_id"] == "t1"
    assert thread["title"] == "Tutela salud"


def test_list_threads_failure_is_500(client, orchestrator):
    orchestrator.fail = True

    response = client.get("/api/v1/chat/threads")

    assert response.status_code == 500
    assert response.json()["detail"] == "No se pudo obtener la lista de conversaciones."


def test_user_without_email_is_rejected(client):
    client.app.dependency_overrides[get_current_user] = lambda: User(uid="uid-x")

    assert client.get("/api/v1/chat/threads").status_code == 401


def test_create_thread_with_and_without_body(client, orchestrator):
    response = client.post("/api/v1/chat/threads", json={"scenario": "jurisprudence"})
    assert response.status_code == 200
    assert response.json() == {"thread_id": "thread-1717171717171-abc123"}

    client.post("/api/v1/chat/threads")
    assert orchestrator.calls == [("create_thread", "jurisprudence"), ("create_thread", None)]


def test_rename_thread(client):
    response = client.patch("/api/v1/chat/threads/t1", json={"title": "Nuevo"})
    assert response.status_code == 200
    assert response.json()["thread"]["title"] == "Nuevo"

    assert client.patch("/api/v1/chat/threads/missing", json={"title": "x"}).status_code == 404


def test_delete_thread(client):
    response = client.delete("/api/v1/chat/threads/t1")
    assert response.json() == {"ok": True, "thread_id": "t1"}

    assert client.delete("/api/v1/chat/threads/missing").status_code == 404


def test_list_messages(client, orchestrator):
    response = client.get("/api/v1/chat/messages", params={"thread_id": "t1"})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "completed"
    assert body["messages"] == [{"role": "user", "text": "hola"}]
    assert orchestrator.calls == [("list_messages", "t1")]


def test_clear_history(client, orchestrator):
    response = client.post("/api/v1/chat/history/clear", json={"thread_ids": ["t1", "t2"]})

    assert response.json() == {"ok": True, "deleted": 2, "thread_ids": ["t1", "t2"]}
    assert orchestrator.calls == [("clear_history", ["t1", "t2"])]


def test_master_document(client, orchestrator):
    response = client.get("/api/v1/chat/master-document", params={"thread_id": "t1"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["master_document"]["total_documents"] == 1
    assert body["master_document"]["total_word_count"] == 120
    assert orchestrator.calls == [("build_master_document", "t1")]


def test_master_document_without_documents(client):
    response = client.get("/api/v1/chat/master-document", params={"thread_id": "empty"})

    assert response.status_code == 404
    assert response.json()["detail"] == "No se encontraron documentos para este usuario"


def test_send_streams_sse_frames(client, orchestrator):
    response = client.post(
        "/api/v1/chat/send",
        json={"thread_id": "t1", "text": "¿Qué dice la T-123-45?", "scenario": "jurisprudence"},
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"
    assert response.text == (
        'data: {"content": "🔎 Consultando base de datos de sentencias…"}\n\n'
        'data: {"content": "Hola"}\n\n'
        'data: {"completed": true}\n\n'
    )
    assert orchestrator.calls == [("send_message", "t1", "¿Qué dice la T-123-45?")]


def test_send_with_missing_fields_still_streams(client):
    response = client.post("/api/v1/chat/send", json={})
    assert response.status_code == 200


def test_send_requires_authentication(orchestrator):
    app = create_app()
    app.dependency_overrides[get_chat_orchestrator] = lambda: orchestrator

    response = TestClient(app).post("/api/v1/chat/send", json={"thread_id": "t1", "text": "hola", "scenario": "x"})

    assert response.status_code == 401
    assert orchestrator.calls == []
