"""File validation and transport encoding for the extraction pipeline.

Both steps run before any network call: a file that is too large or of
the wrong type never reaches the extraction service.
"""

import base64
import binascii
import os
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

from fastapi import UploadFile

from app.core.step_result import StepResult
from app.schemas.extraction import ExtractionErrorKind
from app.schemas.policy import AttachedFile
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Leading bytes of the accepted formats
_SIGNATURES = (
    (b"%PDF", "application/pdf"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
)


@dataclass
class DocumentFile:
    """A document handed to the pipeline, read lazily.

    ``size_bytes`` is None when the upload did not declare a size; the
    limit is then enforced once the content has been read.
    """

    filename: str
    content_type: str
    size_bytes: Optional[int]
    read: Callable[[], Awaitable[bytes]]

    @classmethod
    def from_bytes(cls, filename: str, content_type: str, content: bytes) -> "DocumentFile":
        async def _read() -> bytes:
            return content

        return cls(filename, content_type, len(content), _read)

    @classmethod
    def from_upload(cls, upload: UploadFile) -> "DocumentFile":
        async def _read() -> bytes:
            await upload.seek(0)
            return await upload.read()

        return cls(
            filename=upload.filename or "document",
            content_type=(upload.content_type or "").lower(),
            size_bytes=upload.size,
            read=_read,
        )

    @classmethod
    def from_attached(cls, attached: AttachedFile) -> "DocumentFile":
        """Rebuild a document from the encoded copy kept on a draft."""

        async def _read() -> bytes:
            return base64.b64decode(attached.payload, validate=True)

        return cls(attached.filename, attached.content_type, attached.size_bytes, _read)

    @property
    def extension(self) -> str:
        return os.path.splitext(self.filename)[1].lower()


def detect_content_type(content: bytes) -> Optional[str]:
    """Identify an accepted format from its leading bytes."""
    for signature, content_type in _SIGNATURES:
        if content.startswith(signature):
            return content_type
    if content[:4] == b"RIFF" and content[8:12] == b"WEBP":
        return "image/webp"
    return None


def validate_document(
    document: DocumentFile,
    max_bytes: int,
    allowed_types: Sequence[str],
    allowed_extensions: Sequence[str],
) -> StepResult[DocumentFile, ExtractionErrorKind]:
    """Enforce the size limit and the format allow-list."""
    if document.size_bytes is not None and document.size_bytes > max_bytes:
        LOGGER.info(
            "Rejected oversized document",
            extra={"document_name": document.filename, "size_bytes": document.size_bytes},
        )
        return StepResult.failed(
            ExtractionErrorKind.FILE_TOO_LARGE,
            f"{document.size_bytes} bytes exceeds the {max_bytes} byte limit",
        )

    type_allowed = document.content_type in allowed_types
    extension_allowed = document.extension in allowed_extensions
    if not (type_allowed or extension_allowed):
        LOGGER.info(
            "Rejected unsupported document",
            extra={"document_name": document.filename, "content_type": document.content_type},
        )
        return StepResult.failed(
            ExtractionErrorKind.UNSUPPORTED_FORMAT,
            f"{document.content_type or document.extension or 'unknown'} is not accepted",
        )

    return StepResult.ok(document)


async def encode_document(
    document: DocumentFile, max_bytes: int
) -> StepResult[AttachedFile, ExtractionErrorKind]:
    """Read the document and produce its base64 transport encoding."""
    try:
        content = await document.read()
    except (OSError, ValueError, binascii.Error) as e:
        LOGGER.warning(
            "Could not read document",
            exc_info=True,
            extra={"document_name": document.filename},
        )
        return StepResult.failed(ExtractionErrorKind.CORRUPT_FILE, str(e))

    if len(content) > max_bytes:
        return StepResult.failed(
            ExtractionErrorKind.FILE_TOO_LARGE,
            f"{len(content)} bytes exceeds the {max_bytes} byte limit",
        )

    detected_type = detect_content_type(content) if content else None
    if detected_type is None:
        return StepResult.failed(
            ExtractionErrorKind.CORRUPT_FILE,
            "File content is empty or not a readable PDF or image",
        )

    payload = base64.b64encode(content).decode("ascii")
    LOGGER.debug(
        "Encoded document",
        extra={"document_name": document.filename, "size_bytes": len(content)},
    )
    return StepResult.ok(
        AttachedFile(
            filename=document.filename,
            content_type=detected_type,
            size_bytes=len(content),
            payload=payload,
        )
    )
