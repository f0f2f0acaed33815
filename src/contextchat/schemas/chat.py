"""Pydantic models for chat sessions, messages, and attachments."""

from __future__ import annotations

import time
from enum import Enum
from typing import Any, List, Optional
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


def now_ms() -> int:
    """Return the current time as epoch milliseconds."""

    return int(time.time() * 1000)


def generate_id() -> str:
    return uuid4().hex


class Role(str, Enum):
    USER = "user"
    MODEL = "model"


class Attachment(BaseModel):
    """Inline file payload attached to a message or a session context."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str
    mime_type: str = Field(
        alias="mimeType",
        validation_alias=AliasChoices("mimeType", "mime_type"),
    )
    base64_data: str = Field(
        alias="base64Data",
        validation_alias=AliasChoices("base64Data", "base64_data", "data"),
    )


class ToolCallRecord(BaseModel):
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class ToolResultRecord(BaseModel):
    name: str
    result: Any = None


class Message(BaseModel):
    """A single entry in a chat session."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=generate_id)
    role: Role
    text: str = ""
    attachments: List[Attachment] = Field(default_factory=list)
    timestamp: int = Field(default_factory=now_ms)
    is_error: Optional[bool] = Field(default=None, alias="isError")
    tool_calls: Optional[List[ToolCallRecord]] = Field(default=None, alias="toolCalls")
    tool_results: Optional[List[ToolResultRecord]] = Field(
        default=None, alias="toolResults"
    )


class ChatSession(BaseModel):
    """An ordered, append-mostly conversation."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=generate_id)
    title: str = "New Chat"
    messages: List[Message] = Field(default_factory=list)
    created_at: int = Field(default_factory=now_ms, alias="createdAt")
    updated_at: int = Field(default_factory=now_ms, alias="updatedAt")


class ChatStreamRequest(BaseModel):
    """Incoming payload for a streamed chat turn."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: Optional[str] = Field(default=None, alias="sessionId")
    text: str = ""
    attachments: List[Attachment] = Field(default_factory=list)
    model: Optional[str] = None


__all__ = [
    "Attachment",
    "ChatSession",
    "ChatStreamRequest",
    "Message",
    "Role",
    "ToolCallRecord",
    "ToolResultRecord",
    "generate_id",
    "now_ms",
]
