"""Tests for document validation and encoding."""

import base64

import pytest

from app.schemas.extraction import ExtractionErrorKind
from app.schemas.policy import AttachedFile
from app.services.extraction.document_steps import (
    DocumentFile,
    detect_content_type,
    encode_document,
    validate_document,
)

MAX_BYTES = 10 * 1024 * 1024
TYPES = ["application/pdf", "image/jpeg", "image/jpg", "image/png", "image/webp"]
EXTENSIONS = [".pdf", ".jpg", ".jpeg", ".png", ".webp"]


def validate(document):
    return validate_document(document, MAX_BYTES, TYPES, EXTENSIONS)


class TestValidateDocument:

    def test_accepts_pdf(self, sample_pdf_content):
        document = DocumentFile.from_bytes("policy.pdf", "application/pdf", sample_pdf_content)

        assert validate(document).succeeded

    def test_rejects_oversized_file_from_declared_size(self):
        async def never_read() -> bytes:
            raise AssertionError("content must not be read")

        document = DocumentFile("big.pdf", "application/pdf", 12 * 1024 * 1024, never_read)

        result = validate(document)

        assert result.error is ExtractionErrorKind.FILE_TOO_LARGE

    def test_rejects_unsupported_format(self):
        document = DocumentFile.from_bytes("notes.docx", "application/msword", b"PK\x03\x04")

        assert validate(document).error is ExtractionErrorKind.UNSUPPORTED_FORMAT

    def test_extension_is_enough_when_type_is_missing(self, sample_pdf_content):
        document = DocumentFile.from_bytes("scan.PDF", "", sample_pdf_content)

        assert validate(document).succeeded


class TestEncodeDocument:

    @pytest.mark.asyncio
    async def test_encodes_to_base64(self, sample_pdf_content):
        document = DocumentFile.from_bytes("policy.pdf", "application/pdf", sample_pdf_content)

        result = await encode_document(document, MAX_BYTES)

        assert result.succeeded
        assert result.value.content_type == "application/pdf"
        assert result.value.size_bytes == len(sample_pdf_content)
        assert base64.b64decode(result.value.payload) == sample_pdf_content

    @pytest.mark.asyncio
    async def test_unreadable_stream_is_corrupt(self):
        async def broken() -> bytes:
            raise OSError("stream closed")

        document = DocumentFile("policy.pdf", "application/pdf", 100, broken)

        result = await encode_document(document, MAX_BYTES)

        assert result.error is ExtractionErrorKind.CORRUPT_FILE

    @pytest.mark.asyncio
    async def test_content_not_matching_any_format_is_corrupt(self):
        document = DocumentFile.from_bytes("policy.pdf", "application/pdf", b"not really a pdf")

        result = await encode_document(document, MAX_BYTES)

        assert result.error is ExtractionErrorKind.CORRUPT_FILE

    @pytest.mark.asyncio
    async def test_empty_file_is_corrupt(self):
        document = DocumentFile.from_bytes("policy.pdf", "application/pdf", b"")

        result = await encode_document(document, MAX_BYTES)

        assert result.error is ExtractionErrorKind.CORRUPT_FILE

    @pytest.mark.asyncio
    async def test_size_enforced_after_reading_undeclared_upload(self):
        content = b"%PDF" + b"0" * 64

        async def read() -> bytes:
            return content

        document = DocumentFile("policy.pdf", "application/pdf", None, read)

        result = await encode_document(document, max_bytes=32)

        assert result.error is ExtractionErrorKind.FILE_TOO_LARGE

    @pytest.mark.asyncio
    async def test_attached_copy_round_trips(self, sample_pdf_content):
        attached = AttachedFile(
            filename="policy.pdf",
            content_type="application/pdf",
            size_bytes=len(sample_pdf_content),
            payload=base64.b64encode(sample_pdf_content).decode("ascii"),
        )

        content = await DocumentFile.from_attached(attached).read()

        assert content == sample_pdf_content


@pytest.mark.parametrize(
    "content,expected",
    [
        (b"%PDF-1.7", "application/pdf"),
        (b"\xff\xd8\xff\xe0JFIF", "image/jpeg"),
        (b"\x89PNG\r\n\x1a\n\x00", "image/png"),
        (b"RIFF\x00\x00\x00\x00WEBPVP8 ", "image/webp"),
        (b"GIF89a", None),
    ],
)
def test_detect_content_type(content, expected):
    assert detect_content_type(content) == expected
