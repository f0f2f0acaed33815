"""Chat session bookkeeping on top of the key-value store."""

from __future__ import annotations

import logging
from typing import Any, Iterable

from pydantic import ValidationError

from ..schemas.chat import Attachment, ChatSession, Message, Role, now_ms
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

SESSIONS_STORAGE_KEY = "chat_sessions"
TITLE_MAX_LENGTH = 30
TITLE_ELLIPSIS = "…"


def derive_title(text: str) -> str:
    """Build a session title from the first user message."""

    if len(text) > TITLE_MAX_LENGTH:
        return text[:TITLE_MAX_LENGTH] + TITLE_ELLIPSIS
    return text


class ChatSessionService:
    """Own the ordered session list, the current session, and context documents."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        storage_key: str = SESSIONS_STORAGE_KEY,
    ) -> None:
        self._store = store
        self._storage_key = storage_key
        self._sessions: list[ChatSession] = []
        self._current_session_id: str | None = None
        self._context: dict[str, list[Attachment]] = {}

    def load(self) -> list[ChatSession]:
        raw = self._store.get(self._storage_key)
        sessions: list[ChatSession] = []
        if isinstance(raw, list):
            for item in raw:
                try:
                    sessions.append(ChatSession.model_validate(item))
                except ValidationError as exc:
                    logger.warning("Skipping unreadable chat session: %s", exc)
        elif raw is not None:
            logger.warning("Ignoring stored sessions of type %s", type(raw).__name__)
        self._sessions = sessions
        return self.list_sessions()

    def save(self) -> None:
        payload = [
            session.model_dump(mode="json", by_alias=True, exclude_none=True)
            for session in self._sessions
        ]
        self._store.set(self._storage_key, payload)

    def list_sessions(self) -> list[ChatSession]:
        return [session.model_copy(deep=True) for session in self._sessions]

    def _index_of(self, session_id: str) -> int:
        for index, session in enumerate(self._sessions):
            if session.id == session_id:
                return index
        raise KeyError(f"Unknown chat session: {session_id}")

    def get_session(self, session_id: str) -> ChatSession:
        return self._sessions[self._index_of(session_id)].model_copy(deep=True)

    @property
    def current_session_id(self) -> str | None:
        return self._current_session_id

    def create_session(self) -> ChatSession:
        session = ChatSession()
        self._sessions.insert(0, session)
        self._current_session_id = session.id
        self.save()
        logger.info("Created chat session %s", session.id)
        return session.model_copy(deep=True)

    def select_session(self, session_id: str) -> ChatSession:
        session = self.get_session(session_id)
        self._current_session_id = session_id
        return session

    def delete_session(self, session_id: str) -> None:
        index = self._index_of(session_id)
        del self._sessions[index]
        self._context.pop(session_id, None)
        if self._current_session_id == session_id:
            self._current_session_id = None
        self.save()

    def _replace(self, index: int, session: ChatSession, *, persist: bool) -> ChatSession:
        self._sessions[index] = session
        if persist:
            self.save()
        return session.model_copy(deep=True)

    def append_message(
        self,
        session_id: str,
        message: Message,
        *,
        persist: bool = True,
    ) -> ChatSession:
        index = self._index_of(session_id)
        existing = self._sessions[index]
        title = existing.title
        if not existing.messages and message.role is Role.USER:
            title = derive_title(message.text)
        updated = existing.model_copy(
            update={
                "messages": [*existing.messages, message],
                "title": title,
                "updated_at": now_ms(),
            }
        )
        return self._replace(index, updated, persist=persist)

    def replace_trailing_message(
        self,
        session_id: str,
        message: Message,
        *,
        persist: bool = True,
    ) -> ChatSession:
        """Swap the trailing model message for an updated copy with the same id."""

        index = self._index_of(session_id)
        existing = self._sessions[index]
        if not existing.messages:
            raise ValueError(f"Session {session_id} has no messages to replace")
        trailing = existing.messages[-1]
        if trailing.id != message.id or trailing.role is not Role.MODEL:
            raise ValueError("Only the trailing model message can be replaced")
        updated = existing.model_copy(
            update={
                "messages": [*existing.messages[:-1], message],
                "updated_at": now_ms(),
            }
        )
        return self._replace(index, updated, persist=persist)

    def get_context_documents(self, session_id: str) -> list[Attachment]:
        self._index_of(session_id)
        return list(self._context.get(session_id, []))

    def add_context_documents(
        self, session_id: str, documents: Iterable[Attachment]
    ) -> list[Attachment]:
        self._index_of(session_id)
        current = self._context.setdefault(session_id, [])
        current.extend(documents)
        return list(current)

    def remove_context_document(self, session_id: str, index: int) -> list[Attachment]:
        self._index_of(session_id)
        current = self._context.get(session_id, [])
        if index < 0 or index >= len(current):
            raise IndexError(f"No context document at position {index}")
        del current[index]
        return list(current)

    def clear_context_documents(self, session_id: str) -> None:
        self._index_of(session_id)
        self._context.pop(session_id, None)

    def describe(self, session: ChatSession) -> dict[str, Any]:
        return session.model_dump(mode="json", by_alias=True, exclude_none=True)


__all__ = [
    "ChatSessionService",
    "SESSIONS_STORAGE_KEY",
    "TITLE_ELLIPSIS",
    "TITLE_MAX_LENGTH",
    "derive_title",
]
