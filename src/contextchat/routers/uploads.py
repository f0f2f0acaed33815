"""Routes for encoding uploaded files into inline attachments."""

from __future__ import annotations

from typing import Sequence

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from pydantic import BaseModel

from ..schemas.chat import Attachment
from ..services.attachments import AttachmentCodec, AttachmentError, AttachmentTooLarge

router = APIRouter(prefix="/api/uploads", tags=["uploads"])


def get_attachment_codec(request: Request) -> AttachmentCodec:
    codec = getattr(request.app.state, "attachment_codec", None)
    if codec is None:
        raise HTTPException(status_code=500, detail="Attachment codec unavailable")
    return codec


def encode_inline_attachments(
    codec: AttachmentCodec, attachments: Sequence[Attachment]
) -> list[Attachment]:
    """Run client supplied attachments through the codec, as HTTP errors on failure."""

    try:
        return [
            codec.encode_data_url(item.name, item.base64_data, item.mime_type)
            for item in attachments
        ]
    except AttachmentTooLarge as exc:
        raise HTTPException(status_code=413, detail=str(exc)) from exc
    except AttachmentError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


class AttachmentUploadResponse(BaseModel):
    attachment: Attachment


@router.post(
    "",
    response_model=AttachmentUploadResponse,
    status_code=201,
    response_model_by_alias=True,
)
async def upload_attachment(
    codec: AttachmentCodec = Depends(get_attachment_codec),
    file: UploadFile = File(...),
) -> AttachmentUploadResponse:
    try:
        attachment = await codec.encode_upload(file)
    except AttachmentTooLarge as exc:
        raise HTTPException(status_code=413, detail=str(exc)) from exc
    except AttachmentError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    finally:
        await file.close()
    return AttachmentUploadResponse(attachment=attachment)


__all__ = [
    "AttachmentUploadResponse",
    "encode_inline_attachments",
    "get_attachment_codec",
    "router",
]
