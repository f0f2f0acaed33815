"""Chat streaming API routes."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Request
from sse_starlette.sse import EventSourceResponse

from ..chat.conversation import ChatTurnOutcome, ConversationService
from ..gemini import GeminiError
from ..schemas.chat import ChatStreamRequest
from .uploads import encode_inline_attachments, get_attachment_codec

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])


def get_conversation_service(request: Request) -> ConversationService:
    service = getattr(request.app.state, "conversation_service", None)
    if service is None:
        raise HTTPException(status_code=500, detail="Conversation service unavailable")
    return service


def _error_detail(exc: Exception) -> str:
    if isinstance(exc, GeminiError):
        detail = exc.detail
        return detail if isinstance(detail, str) else json.dumps(detail)
    return str(exc) or type(exc).__name__


def _done_payload(outcome: ChatTurnOutcome) -> dict[str, Any]:
    return {
        "message": outcome.message.model_dump(
            mode="json", by_alias=True, exclude_none=True
        ),
        "budget_exhausted": outcome.result.budget_exhausted,
        "iterations": outcome.result.iterations,
    }


@router.post("/chat/stream", response_model=None, status_code=200)
async def stream_chat(
    payload: ChatStreamRequest,
    request: Request,
) -> EventSourceResponse:
    """Run one chat turn and stream its progress through Server-Sent Events."""

    service = get_conversation_service(request)
    if not payload.text.strip() and not payload.attachments:
        raise HTTPException(
            status_code=400,
            detail="Message must contain text or at least one attachment",
        )
    attachments = encode_inline_attachments(
        get_attachment_codec(request), payload.attachments
    )

    if payload.session_id is not None:
        try:
            service.sessions.get_session(payload.session_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Session not found") from exc
        session_id = payload.session_id
    else:
        session_id = service.sessions.create_session().id

    async def event_publisher():
        queue: asyncio.Queue[Optional[str]] = asyncio.Queue()

        yield {"event": "session", "data": json.dumps({"sessionId": session_id})}

        task = asyncio.create_task(
            service.send_message(
                payload.text,
                attachments,
                queue.put_nowait,
                session_id=session_id,
                model=payload.model,
            )
        )
        task.add_done_callback(lambda _: queue.put_nowait(None))

        while True:
            text = await queue.get()
            if text is None:
                break
            yield {"event": "message", "data": json.dumps({"text": text})}

        try:
            outcome = task.result()
        except Exception as exc:  # noqa: BLE001 - reported to the client
            logger.warning("Chat stream for session %s failed: %s", session_id, exc)
            yield {"event": "error", "data": json.dumps({"detail": _error_detail(exc)})}
            return
        yield {"event": "done", "data": json.dumps(_done_payload(outcome))}

    return EventSourceResponse(event_publisher())


__all__ = ["router", "get_conversation_service"]
