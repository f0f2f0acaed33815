from __future__ import annotations

import pytest

from contextchat.schemas.chat import Attachment, Message, Role
from contextchat.services.sessions import (
    SESSIONS_STORAGE_KEY,
    ChatSessionService,
    derive_title,
)
from contextchat.services.storage import MemoryStore


def make_service() -> tuple[ChatSessionService, MemoryStore]:
    store = MemoryStore()
    return ChatSessionService(store), store


def test_derive_title_truncates_long_text() -> None:
    assert derive_title("Short question") == "Short question"
    assert derive_title("x" * 30) == "x" * 30
    assert derive_title("abcdefghijklmnopqrstuvwxyz0123456789") == (
        "abcdefghijklmnopqrstuvwxyz0123…"
    )


def test_create_session_is_current_and_newest_first() -> None:
    service, store = make_service()

    first = service.create_session()
    second = service.create_session()

    assert first.title == "New Chat"
    assert service.current_session_id == second.id
    assert [s.id for s in service.list_sessions()] == [second.id, first.id]
    assert len(store.get(SESSIONS_STORAGE_KEY)) == 2


def test_first_user_message_sets_title_once() -> None:
    service, _ = make_service()
    session = service.create_session()

    service.append_message(
        session.id, Message(role=Role.USER, text="What is the capital of France today?")
    )
    updated = service.append_message(
        session.id, Message(role=Role.USER, text="Another question")
    )

    assert updated.title == "What is the capital of France …"
    assert len(updated.messages) == 2


def test_model_first_message_keeps_default_title() -> None:
    service, _ = make_service()
    session = service.create_session()

    updated = service.append_message(session.id, Message(role=Role.MODEL, text="Hi"))

    assert updated.title == "New Chat"


def test_append_refreshes_updated_at() -> None:
    service, _ = make_service()
    session = service.create_session()

    message = Message(role=Role.USER, text="hi", timestamp=1)
    updated = service.append_message(session.id, message)

    assert updated.updated_at >= session.updated_at


def test_replace_trailing_message_requires_matching_model_message() -> None:
    service, _ = make_service()
    session = service.create_session()
    user = Message(role=Role.USER, text="hi")
    placeholder = Message(role=Role.MODEL)
    service.append_message(session.id, user)
    service.append_message(session.id, placeholder)

    updated = service.replace_trailing_message(
        session.id, placeholder.model_copy(update={"text": "Hello!"})
    )
    assert [m.text for m in updated.messages] == ["hi", "Hello!"]

    with pytest.raises(ValueError):
        service.replace_trailing_message(session.id, Message(role=Role.MODEL))
    with pytest.raises(ValueError):
        service.replace_trailing_message(
            session.id, user.model_copy(update={"text": "edited"})
        )


def test_unpersisted_replacements_reach_the_store_on_next_save() -> None:
    service, store = make_service()
    session = service.create_session()
    placeholder = Message(role=Role.MODEL)
    service.append_message(session.id, placeholder)

    service.replace_trailing_message(
        session.id, placeholder.model_copy(update={"text": "partial"}), persist=False
    )
    assert store.get(SESSIONS_STORAGE_KEY)[0]["messages"][0]["text"] == ""

    service.save()
    assert store.get(SESSIONS_STORAGE_KEY)[0]["messages"][0]["text"] == "partial"


def test_unknown_session_raises_key_error() -> None:
    service, _ = make_service()

    with pytest.raises(KeyError):
        service.get_session("missing")
    with pytest.raises(KeyError):
        service.append_message("missing", Message(role=Role.USER, text="x"))


def test_delete_current_session_clears_selection() -> None:
    service, store = make_service()
    older = service.create_session()
    newer = service.create_session()

    service.delete_session(newer.id)

    assert service.current_session_id is None
    assert [s.id for s in service.list_sessions()] == [older.id]
    assert [s["id"] for s in store.get(SESSIONS_STORAGE_KEY)] == [older.id]


def test_select_session() -> None:
    service, _ = make_service()
    first = service.create_session()
    service.create_session()

    selected = service.select_session(first.id)

    assert selected.id == first.id
    assert service.current_session_id == first.id


def test_load_round_trips_and_skips_unreadable_records() -> None:
    service, store = make_service()
    session = service.create_session()
    service.append_message(
        session.id,
        Message(
            role=Role.USER,
            text="hello",
            attachments=[Attachment(name="a.txt", mime_type="text/plain", base64_data="YQ==")],
        ),
    )
    raw = store.get(SESSIONS_STORAGE_KEY)
    raw.append({"messages": "not a list"})
    store.set(SESSIONS_STORAGE_KEY, raw)

    stored_message = raw[0]["messages"][0]
    assert stored_message["attachments"][0]["mimeType"] == "text/plain"
    assert "isError" not in stored_message

    reloaded = ChatSessionService(store)
    sessions = reloaded.load()

    assert [s.id for s in sessions] == [session.id]
    assert sessions[0].messages[0].attachments[0].base64_data == "YQ=="
    assert reloaded.current_session_id is None


def test_context_documents_are_per_session() -> None:
    service, _ = make_service()
    first = service.create_session()
    second = service.create_session()
    doc_a = Attachment(name="a.pdf", mime_type="application/pdf", base64_data="AA==")
    doc_b = Attachment(name="b.txt", mime_type="text/plain", base64_data="Yg==")

    service.add_context_documents(first.id, [doc_a, doc_b])

    assert service.get_context_documents(second.id) == []
    assert service.remove_context_document(first.id, 0) == [doc_b]
    with pytest.raises(IndexError):
        service.remove_context_document(first.id, 5)

    service.clear_context_documents(first.id)
    assert service.get_context_documents(first.id) == []


def test_deleting_session_drops_its_context() -> None:
    service, _ = make_service()
    session = service.create_session()
    service.add_context_documents(
        session.id,
        [Attachment(name="a.txt", mime_type="text/plain", base64_data="YQ==")],
    )

    service.delete_session(session.id)

    with pytest.raises(KeyError):
        service.get_context_documents(session.id)
