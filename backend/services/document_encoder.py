"""Turn an uploaded statement into a transport-ready payload (base64 + media type)."""
import base64
import logging
from dataclasses import dataclass

from fastapi import UploadFile

logger = logging.getLogger("document_encoder")

SUPPORTED_MEDIA_TYPES = (
    "application/pdf",
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/heic",
)
PDF_MEDIA_TYPE = "application/pdf"


class DocumentReadError(Exception):
    """The uploaded document could not be read."""


@dataclass(frozen=True)
class EncodedDocument:
    data: str  # base64 text
    media_type: str

    def raw(self) -> bytes:
        return base64.b64decode(self.data)

    @property
    def is_pdf(self) -> bool:
        return self.media_type == PDF_MEDIA_TYPE


def is_supported_media_type(content_type: str | None) -> bool:
    if not content_type:
        return False
    return content_type.split(";")[0].strip().lower() in SUPPORTED_MEDIA_TYPES


def encode_bytes(content: bytes, media_type: str) -> EncodedDocument:
    if not content:
        raise DocumentReadError("Empty file")
    media_type = media_type.split(";")[0].strip().lower()
    return EncodedDocument(data=base64.b64encode(content).decode("ascii"), media_type=media_type)


async def encode_upload(file: UploadFile) -> EncodedDocument:
    """
    Read an upload and encode it with its declared content type.
    The content type is validated by the caller; any read failure is raised as DocumentReadError.
    """
    try:
        content = await file.read()
    except Exception as e:
        raise DocumentReadError(f"Could not read {file.filename or 'upload'}: {e}") from e
    logger.info("encode_upload: read %s, size=%d bytes", file.filename, len(content))
    return encode_bytes(content, file.content_type or "")
