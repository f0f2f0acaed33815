"""Routes for chat sessions and their context documents."""

from __future__ import annotations

from typing import Any, List

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pydantic import BaseModel, Field

from ..schemas.chat import Attachment
from ..services.attachments import AttachmentCodec
from ..services.sessions import ChatSessionService
from .uploads import encode_inline_attachments, get_attachment_codec

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


def get_session_service(request: Request) -> ChatSessionService:
    service = getattr(request.app.state, "session_service", None)
    if service is None:
        raise HTTPException(status_code=500, detail="Session service unavailable")
    return service


class ContextDocumentsPayload(BaseModel):
    documents: List[Attachment] = Field(..., min_length=1)


def _not_found(session_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"Session not found: {session_id}")


def _dump_documents(documents: List[Attachment]) -> dict[str, Any]:
    return {
        "documents": [
            document.model_dump(mode="json", by_alias=True) for document in documents
        ]
    }


@router.get("")
async def list_sessions(
    service: ChatSessionService = Depends(get_session_service),
) -> dict[str, Any]:
    return {
        "sessions": [service.describe(session) for session in service.list_sessions()],
        "currentSessionId": service.current_session_id,
    }


@router.post("", status_code=201)
async def create_session(
    service: ChatSessionService = Depends(get_session_service),
) -> dict[str, Any]:
    return service.describe(service.create_session())


@router.get("/{session_id}")
async def read_session(
    session_id: str,
    service: ChatSessionService = Depends(get_session_service),
) -> dict[str, Any]:
    try:
        session = service.get_session(session_id)
    except KeyError as exc:
        raise _not_found(session_id) from exc
    return service.describe(session)


@router.delete("/{session_id}", status_code=204)
async def delete_session(
    session_id: str,
    service: ChatSessionService = Depends(get_session_service),
) -> Response:
    try:
        service.delete_session(session_id)
    except KeyError as exc:
        raise _not_found(session_id) from exc
    return Response(status_code=204)


@router.post("/{session_id}/select")
async def select_session(
    session_id: str,
    service: ChatSessionService = Depends(get_session_service),
) -> dict[str, Any]:
    try:
        session = service.select_session(session_id)
    except KeyError as exc:
        raise _not_found(session_id) from exc
    return service.describe(session)


@router.get("/{session_id}/context")
async def read_context_documents(
    session_id: str,
    service: ChatSessionService = Depends(get_session_service),
) -> dict[str, Any]:
    try:
        documents = service.get_context_documents(session_id)
    except KeyError as exc:
        raise _not_found(session_id) from exc
    return _dump_documents(documents)


@router.post("/{session_id}/context", status_code=201)
async def add_context_documents(
    session_id: str,
    payload: ContextDocumentsPayload,
    service: ChatSessionService = Depends(get_session_service),
    codec: AttachmentCodec = Depends(get_attachment_codec),
) -> dict[str, Any]:
    incoming = encode_inline_attachments(codec, payload.documents)
    try:
        documents = service.add_context_documents(session_id, incoming)
    except KeyError as exc:
        raise _not_found(session_id) from exc
    return _dump_documents(documents)


@router.delete("/{session_id}/context/{index}")
async def remove_context_document(
    session_id: str,
    index: int,
    service: ChatSessionService = Depends(get_session_service),
) -> dict[str, Any]:
    try:
        documents = service.remove_context_document(session_id, index)
    except KeyError as exc:
        raise _not_found(session_id) from exc
    except IndexError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _dump_documents(documents)


@router.delete("/{session_id}/context", status_code=204)
async def clear_context_documents(
    session_id: str,
    service: ChatSessionService = Depends(get_session_service),
) -> Response:
    try:
        service.clear_context_documents(session_id)
    except KeyError as exc:
        raise _not_found(session_id) from exc
    return Response(status_code=204)


__all__ = ["ContextDocumentsPayload", "router", "get_session_service"]
