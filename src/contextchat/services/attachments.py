"""Encode files into inline base64 attachments."""

from __future__ import annotations

import base64
import binascii
import logging
import mimetypes
from pathlib import Path

from fastapi import UploadFile

from ..schemas.chat import Attachment

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE_BYTES = 5 * 1024 * 1024
DEFAULT_MIME_TYPE = "application/octet-stream"


class AttachmentError(RuntimeError):
    """Base error raised for attachment failures."""


class AttachmentTooLarge(AttachmentError):
    """Raised when a file exceeds the configured size ceiling."""


class AttachmentReadError(AttachmentError):
    """Raised when the file contents cannot be read."""


def strip_data_url_prefix(value: str) -> str:
    """Return only the base64 payload of ``value``, dropping any data URL header."""

    if value.startswith("data:") and "," in value:
        return value.split(",", 1)[1]
    return value


def _mime_from_data_url(value: str) -> str | None:
    if not value.startswith("data:") or "," not in value:
        return None
    header = value[len("data:") : value.index(",")]
    mime_type = header.split(";", 1)[0].strip()
    return mime_type or None


def _resolve_mime_type(name: str, mime_type: str | None) -> str:
    if mime_type:
        return mime_type
    guessed, _ = mimetypes.guess_type(name)
    return guessed or DEFAULT_MIME_TYPE


class AttachmentCodec:
    """Turn raw file content into `Attachment` values with a size ceiling."""

    def __init__(self, *, max_size_bytes: int = DEFAULT_MAX_SIZE_BYTES) -> None:
        self._max_size_bytes = max_size_bytes

    @property
    def max_size_bytes(self) -> int:
        return self._max_size_bytes

    def _check_size(self, name: str, size: int) -> None:
        if size > self._max_size_bytes:
            limit_mb = self._max_size_bytes / (1024 * 1024)
            raise AttachmentTooLarge(
                f"File {name} is too large (max {limit_mb:g}MB)"
            )

    def encode_bytes(
        self,
        name: str,
        data: bytes,
        mime_type: str | None = None,
    ) -> Attachment:
        self._check_size(name, len(data))
        return Attachment(
            name=name,
            mime_type=_resolve_mime_type(name, mime_type),
            base64_data=base64.b64encode(data).decode("ascii"),
        )

    def encode_file(self, path: Path, mime_type: str | None = None) -> Attachment:
        """Read ``path`` and encode it, checking the size before reading."""

        try:
            size = path.stat().st_size
            self._check_size(path.name, size)
            data = path.read_bytes()
        except AttachmentError:
            raise
        except OSError as exc:
            logger.warning("Error reading file %s: %s", path, exc)
            raise AttachmentReadError(f"Could not read {path.name}: {exc}") from exc
        return self.encode_bytes(path.name, data, mime_type)

    async def encode_upload(self, upload: UploadFile) -> Attachment:
        name = upload.filename or "file.bin"
        try:
            data = await upload.read(self._max_size_bytes + 1)
        except OSError as exc:
            raise AttachmentReadError(f"Could not read {name}: {exc}") from exc
        return self.encode_bytes(name, data, upload.content_type)

    def encode_data_url(
        self,
        name: str,
        value: str,
        mime_type: str | None = None,
    ) -> Attachment:
        """Encode an already base64-encoded payload, with or without a data URL header."""

        payload = strip_data_url_prefix(value.strip())
        try:
            decoded = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise AttachmentError(f"Invalid base64 payload for {name}") from exc
        self._check_size(name, len(decoded))
        return Attachment(
            name=name,
            mime_type=_resolve_mime_type(name, mime_type or _mime_from_data_url(value)),
            base64_data=payload,
        )


__all__ = [
    "AttachmentCodec",
    "AttachmentError",
    "AttachmentReadError",
    "AttachmentTooLarge",
    "DEFAULT_MAX_SIZE_BYTES",
    "strip_data_url_prefix",
]
