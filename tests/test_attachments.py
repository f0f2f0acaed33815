from __future__ import annotations

import base64
import io
from pathlib import Path

import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers

from contextchat.services.attachments import (
    AttachmentCodec,
    AttachmentError,
    AttachmentReadError,
    AttachmentTooLarge,
    strip_data_url_prefix,
)

pytestmark = pytest.mark.anyio


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def test_encode_bytes_produces_base64_payload() -> None:
    codec = AttachmentCodec()

    attachment = codec.encode_bytes("notes.txt", b"hello", "text/plain")

    assert attachment.name == "notes.txt"
    assert attachment.mime_type == "text/plain"
    assert base64.b64decode(attachment.base64_data) == b"hello"
    assert attachment.model_dump(by_alias=True) == {
        "name": "notes.txt",
        "mimeType": "text/plain",
        "base64Data": "aGVsbG8=",
    }


def test_encode_bytes_guesses_missing_mime_type() -> None:
    codec = AttachmentCodec()

    assert codec.encode_bytes("report.pdf", b"%PDF").mime_type == "application/pdf"
    assert codec.encode_bytes("blob", b"\x00").mime_type == "application/octet-stream"


def test_size_limit_is_inclusive() -> None:
    codec = AttachmentCodec(max_size_bytes=4)

    codec.encode_bytes("ok.bin", b"1234")
    with pytest.raises(AttachmentTooLarge):
        codec.encode_bytes("big.bin", b"12345")


def test_default_limit_message_mentions_megabytes() -> None:
    codec = AttachmentCodec()

    with pytest.raises(AttachmentTooLarge) as excinfo:
        codec.encode_bytes("huge.bin", b"\x00" * (5 * 1024 * 1024 + 1))

    assert str(excinfo.value) == "File huge.bin is too large (max 5MB)"


def test_default_limit_rejects_six_megabytes() -> None:
    codec = AttachmentCodec()
    payload = base64.b64encode(b"\x01" * (6 * 1024 * 1024)).decode()

    assert codec.max_size_bytes == 5 * 1024 * 1024
    with pytest.raises(AttachmentTooLarge):
        codec.encode_bytes("six.bin", b"\x01" * (6 * 1024 * 1024))
    with pytest.raises(AttachmentTooLarge):
        codec.encode_data_url("six.bin", payload)


def test_default_limit_accepts_four_megabytes() -> None:
    codec = AttachmentCodec()
    data = bytes(range(256)) * (4 * 1024 * 4)

    attachment = codec.encode_bytes("four.bin", data, "application/octet-stream")

    assert len(data) == 4 * 1024 * 1024
    assert attachment.base64_data == base64.b64encode(data).decode()
    assert codec.encode_data_url("four.bin", attachment.base64_data) == attachment


def test_encode_file_checks_size_before_reading(tmp_path: Path) -> None:
    path = tmp_path / "big.txt"
    path.write_bytes(b"x" * 10)
    codec = AttachmentCodec(max_size_bytes=5)

    with pytest.raises(AttachmentTooLarge):
        codec.encode_file(path)


def test_encode_file_reads_small_file(tmp_path: Path) -> None:
    path = tmp_path / "data.json"
    path.write_text('{"a": 1}', encoding="utf-8")

    attachment = AttachmentCodec().encode_file(path)

    assert attachment.name == "data.json"
    assert attachment.mime_type == "application/json"
    assert base64.b64decode(attachment.base64_data) == b'{"a": 1}'


def test_encode_file_wraps_os_errors(tmp_path: Path) -> None:
    with pytest.raises(AttachmentReadError):
        AttachmentCodec().encode_file(tmp_path / "missing.txt")


def test_strip_data_url_prefix() -> None:
    assert strip_data_url_prefix("data:image/png;base64,AAAA") == "AAAA"
    assert strip_data_url_prefix("AAAA") == "AAAA"


def test_encode_data_url_uses_header_mime_type() -> None:
    attachment = AttachmentCodec().encode_data_url(
        "pixel", "data:image/png;base64,aGVsbG8="
    )

    assert attachment.mime_type == "image/png"
    assert attachment.base64_data == "aGVsbG8="


def test_encode_data_url_rejects_invalid_base64() -> None:
    with pytest.raises(AttachmentError):
        AttachmentCodec().encode_data_url("bad.txt", "not base64 !!")


def test_encode_data_url_checks_decoded_size() -> None:
    codec = AttachmentCodec(max_size_bytes=3)

    with pytest.raises(AttachmentTooLarge):
        codec.encode_data_url("x.txt", base64.b64encode(b"abcd").decode())


async def test_encode_upload_reads_bounded_content() -> None:
    upload = UploadFile(
        file=io.BytesIO(b"hello world"),
        filename="hello.txt",
        headers=Headers({"content-type": "text/plain"}),
    )

    attachment = await AttachmentCodec().encode_upload(upload)

    assert attachment.name == "hello.txt"
    assert attachment.mime_type == "text/plain"
    assert base64.b64decode(attachment.base64_data) == b"hello world"


async def test_encode_upload_rejects_oversized_content() -> None:
    upload = UploadFile(file=io.BytesIO(b"x" * 32), filename="big.bin")

    with pytest.raises(AttachmentTooLarge):
        await AttachmentCodec(max_size_bytes=16).encode_upload(upload)
