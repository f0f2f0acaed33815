"""Pydantic models shared across the backend."""

from .chat import Attachment, ChatSession, ChatStreamRequest, Message, Role

__all__ = ["Attachment", "ChatSession", "ChatStreamRequest", "Message", "Role"]
