"""Storage, session, and attachment services."""

from .attachments import AttachmentCodec
from .sessions import ChatSessionService
from .storage import JsonFileStore, KeyValueStore, MemoryStore

__all__ = [
    "AttachmentCodec",
    "ChatSessionService",
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
]
