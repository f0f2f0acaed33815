"""Send-message flow tying sessions, the tool loop, and MCP servers together."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Sequence

from ..gemini import GeminiError
from ..schemas.chat import Attachment, ChatSession, Message, Role
from .orchestrator import ToolLoopResult, ToolOrchestrator

if TYPE_CHECKING:
    from ..gemini import ProgressCallback
    from ..services.sessions import ChatSessionService
    from .mcp_registry import MCPServerRegistry

logger = logging.getLogger(__name__)

FALLBACK_ERROR_TEXT = (
    "Sorry, I encountered an error. Please check your API key and connection."
)


@dataclass
class ChatTurnOutcome:
    session: ChatSession
    message: Message
    result: ToolLoopResult


def _error_text(exc: Exception) -> str:
    if isinstance(exc, GeminiError):
        detail = exc.detail
        if isinstance(detail, str) and detail:
            return detail
    message = str(exc)
    return message or FALLBACK_ERROR_TEXT


class ConversationService:
    """Run one user turn end to end against a chat session."""

    def __init__(
        self,
        sessions: ChatSessionService,
        registry: MCPServerRegistry,
        orchestrator: ToolOrchestrator,
    ) -> None:
        self._sessions = sessions
        self._registry = registry
        self._orchestrator = orchestrator

    @property
    def sessions(self) -> ChatSessionService:
        return self._sessions

    def _replace_placeholder(
        self,
        session_id: str,
        message: Message,
        *,
        persist: bool = True,
    ) -> ChatSession | None:
        try:
            return self._sessions.replace_trailing_message(
                session_id, message, persist=persist
            )
        except (KeyError, ValueError) as exc:
            logger.warning(
                "Could not update reply placeholder in session %s: %s", session_id, exc
            )
            return None

    async def send_message(
        self,
        text: str,
        attachments: Sequence[Attachment] = (),
        on_progress: ProgressCallback | None = None,
        *,
        session_id: str | None = None,
        model: str | None = None,
    ) -> ChatTurnOutcome:
        if not text.strip() and not attachments:
            raise ValueError("Message must contain text or at least one attachment")

        if session_id is None:
            session_id = self._sessions.create_session().id
        else:
            # Unknown ids fail here, before anything is appended.
            self._sessions.get_session(session_id)

        user_message = Message(role=Role.USER, text=text, attachments=list(attachments))
        session = self._sessions.append_message(session_id, user_message)
        history = list(session.messages)

        placeholder = Message(role=Role.MODEL, text="")
        self._sessions.append_message(session_id, placeholder)

        def _progress(accumulated: str) -> None:
            self._replace_placeholder(
                session_id,
                placeholder.model_copy(update={"text": accumulated}),
                persist=False,
            )
            if on_progress is not None:
                on_progress(accumulated)

        try:
            result = await self._orchestrator.run(
                history,
                self._sessions.get_context_documents(session_id),
                self._registry.servers(),
                _progress,
                model=model,
            )
        except Exception as exc:
            logger.error("Chat turn failed for session %s: %s", session_id, exc)
            failed = placeholder.model_copy(
                update={"text": _error_text(exc), "is_error": True}
            )
            self._replace_placeholder(session_id, failed)
            raise

        final = placeholder.model_copy(update={"text": result.text})
        stored = self._replace_placeholder(session_id, final)
        if stored is None:
            # Session went away mid-turn; hand back a detached snapshot.
            stored = session.model_copy(update={"messages": [*history, final]})
        session = stored
        return ChatTurnOutcome(session=session, message=final, result=result)


__all__ = [
    "ChatTurnOutcome",
    "ConversationService",
    "FALLBACK_ERROR_TEXT",
]
