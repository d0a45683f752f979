from __future__ import annotations

from typing import AsyncGenerator

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse

from api.auth import User, get_current_user
from api.middleware.rate_limiter import send_rate_limiter
from api.models import (
    ClearHistoryRequest,
    ClearHistoryResponse,
    CreateThreadRequest,
    CreateThreadResponse,
    DeleteThreadResponse,
    MasterDocumentResponse,
    RenameThreadRequest,
    RenameThreadResponse,
    SendMessageRequest,
    ThreadListResponse,
    ThreadMessagesResponse,
)
from api.orchestrators.chat_orchestrator import ChatOrchestrator, create_chat_orchestrator, format_sse

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/api/v1/chat", tags=["Chat"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def get_chat_orchestrator(request: Request) -> ChatOrchestrator:
    """Orchestrator shared by the application, created on first use."""
    orchestrator = getattr(request.app.state, "chat_orchestrator", None)
    if orchestrator is None:
        try:
            orchestrator = await create_chat_orchestrator()
        except Exception as e:
            logger.error("Chat orchestrator initialization failed", error=str(e))
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Chat service is not available",
            )
        request.app.state.chat_orchestrator = orchestrator
    return orchestrator


def _require_email(user: User) -> str:
    if not user.email:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Usuario no autenticado")
    return user.email


@router.get("/threads", response_model=ThreadListResponse, summary="List the user's threads")
async def list_threads(
    current_user: User = Depends(get_current_user),
    orchestrator: ChatOrchestrator = Depends(get_chat_orchestrator),
) -> ThreadListResponse:
    _require_email(current_user)
    try:
        threads = await orchestrator.list_threads(current_user)
    except Exception as e:
        logger.error("List threads failed", uid=current_user.uid, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="No se pudo obtener la lista de conversaciones.",
        )
    return ThreadListResponse(threads=threads)


@router.post("/threads", response_model=CreateThreadResponse, summary="Open a new thread")
async def create_thread(
    body: CreateThreadRequest | None = None,
    current_user: User = Depends(get_current_user),
    orchestrator: ChatOrchestrator = Depends(get_chat_orchestrator),
) -> CreateThreadResponse:
    """
    Open a thread bound to the caller.

    The scenario is optional; when present the thread is registered in the
    caller's memory right away so it shows up in the thread list.
    """
    thread_id = await orchestrator.create_thread(current_user, body.scenario if body else None)
    return CreateThreadResponse(thread_id=thread_id)


@router.patch("/threads/{thread_id}", response_model=RenameThreadResponse, summary="Rename a thread")
async def rename_thread(
    thread_id: str,
    body: RenameThreadRequest,
    current_user: User = Depends(get_current_user),
    orchestrator: ChatOrchestrator = Depends(get_chat_orchestrator),
) -> RenameThreadResponse:
    _require_email(current_user)
    if not thread_id.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Parámetros inválidos")

    try:
        thread = await orchestrator.rename_thread(current_user, thread_id, body.title)
    except Exception as e:
        logger.error("Rename thread failed", thread_id=thread_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="No se pudo actualizar el nombre de la conversación.",
        )

    if thread is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversación no encontrada")
    return RenameThreadResponse(thread=thread)


@router.delete("/threads/{thread_id}", response_model=DeleteThreadResponse, summary="Delete a thread")
async def delete_thread(
    thread_id: str,
    current_user: User = Depends(get_current_user),
    orchestrator: ChatOrchestrator = Depends(get_chat_orchestrator),
) -> DeleteThreadResponse:
    if not current_user.email or not thread_id.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Parámetros inválidos")

    try:
        deleted = await orchestrator.delete_thread(current_user, thread_id)
    except Exception as e:
        logger.error("Delete thread failed", thread_id=thread_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="No se pudo eliminar la conversación.",
        )

    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversación no encontrada")
    return DeleteThreadResponse(ok=True, thread_id=thread_id)


@router.get("/messages", response_model=ThreadMessagesResponse, summary="Thread history and memory")
async def list_messages(
    thread_id: str | None = Query(None, description="Thread identifier"),
    current_user: User = Depends(get_current_user),
    orchestrator: ChatOrchestrator = Depends(get_chat_orchestrator),
) -> ThreadMessagesResponse:
    return await orchestrator.list_messages(current_user, thread_id)


@router.post("/history/clear", response_model=ClearHistoryResponse, summary="Clear conversation history")
async def clear_history(
    body: ClearHistoryRequest | None = None,
    current_user: User = Depends(get_current_user),
    orchestrator: ChatOrchestrator = Depends(get_chat_orchestrator),
) -> ClearHistoryResponse:
    _require_email(current_user)
    try:
        return await orchestrator.clear_history(current_user, body.thread_ids if body else None)
    except Exception as e:
        logger.error("Clear history failed", uid=current_user.uid, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="No se pudo borrar el historial.",
        )


@router.get("/master-document", response_model=MasterDocumentResponse, summary="Aggregated text-analysis documents")
async def get_master_document(
    thread_id: str | None = Query(None, description="Limit to one thread"),
    current_user: User = Depends(get_current_user),
    orchestrator: ChatOrchestrator = Depends(get_chat_orchestrator),
) -> MasterDocumentResponse:
    _require_email(current_user)
    try:
        master_document = await orchestrator.build_master_document(current_user, thread_id or None)
    except Exception as e:
        logger.error("Master document failed", uid=current_user.uid, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error al generar el documento maestro",
        )

    if master_document is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No se encontraron documentos para este usuario",
        )
    return MasterDocumentResponse(master_document=master_document)


@router.post("/send", summary="Send a message and stream the reply")
async def send_message(
    body: SendMessageRequest,
    current_user: User = Depends(get_current_user),
    _: None = Depends(send_rate_limiter),
    orchestrator: ChatOrchestrator = Depends(get_chat_orchestrator),
) -> StreamingResponse:
    """Stream one chat turn as Server-Sent Events.

    Frames are ``{"content": ...}`` for text, ``{"error": ..., "code": ...}``
    for failures the user should see, and a final ``{"completed": true}``.

    Raises:
        HTTPException: 401 when not authenticated, 429 for rate limits
    """

    async def generate_sse_stream() -> AsyncGenerator[str, None]:
        async for event in orchestrator.send_message(current_user, body):
            yield format_sse(event)

    return StreamingResponse(
        generate_sse_stream(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
