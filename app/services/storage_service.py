"""Document storage for policy files."""

import re
from abc import ABC, abstractmethod
from typing import List, Optional

from app.core.base_http_client import BaseHTTPClient
from app.core.exceptions import APIClientError, DocumentStoreError
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

_EXTENSIONS = {
    "application/pdf": "pdf",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}


def document_path(
    owner_id: str, policy_number: str, content_type: str, timestamp_ms: int
) -> str:
    """Build ``{owner}/{unix millis}_{sanitised policy number}.{ext}``."""
    sanitized = re.sub(r"[^a-zA-Z0-9]", "_", policy_number)
    extension = _EXTENSIONS.get(content_type, "bin")
    return f"{owner_id}/{timestamp_ms}_{sanitized}.{extension}"


class DocumentStore(ABC):
    """Interface to the external store holding uploaded policy documents."""

    @abstractmethod
    async def upload(self, path: str, content: bytes, content_type: str) -> str:
        """Store ``content`` at ``path`` and return the stored path."""

    @abstractmethod
    async def remove(self, paths: List[str]) -> None:
        """Delete the documents at ``paths``."""

    @abstractmethod
    async def download(self, path: str) -> bytes:
        """Return the content stored at ``path``."""


class SupabaseStorageService(DocumentStore):
    """Service for managing files in Supabase storage."""

    def __init__(self, storage_url: str, service_role_key: str,
                 bucket: str = "policy-documents", timeout: float = 30.0):
        self.bucket = bucket
        self.client = BaseHTTPClient(
            api_key=service_role_key,
            base_url=storage_url,
            timeout=timeout,
        )

    async def upload(self, path: str, content: bytes, content_type: str) -> str:
        """Upload a file to Supabase storage.

        Args:
            path: Target path within the bucket
            content: File bytes
            content_type: MIME type stored with the object

        Returns:
            The stored object's path

        Raises:
            DocumentStoreError: If the upload fails
        """
        try:
            response = await self.client.request(
                "POST",
                f"object/{self.bucket}/{path}",
                content=content,
                headers={
                    "Content-Type": content_type,
                    "Cache-Control": "3600",
                    "x-upsert": "false",
                },
            )
        except APIClientError as e:
            LOGGER.error(
                "Failed to upload document",
                exc_info=True,
                extra={"bucket": self.bucket, "path": path, "status_code": e.status_code},
            )
            raise DocumentStoreError(f"Upload failed: {e.reason}", original_error=e)

        try:
            body = response.json()
        except ValueError as e:
            LOGGER.error(
                "Unreadable upload response",
                extra={"bucket": self.bucket, "path": path, "status_code": response.status_code},
            )
            raise DocumentStoreError("Upload response was not valid JSON", original_error=e)

        stored_key: Optional[str] = body.get("Key") if isinstance(body, dict) else None
        LOGGER.info(
            "Document uploaded",
            extra={"bucket": self.bucket, "path": path, "size_bytes": len(content)},
        )
        # Supabase reports the key prefixed with the bucket name
        if stored_key and stored_key.startswith(f"{self.bucket}/"):
            return stored_key[len(self.bucket) + 1:]
        return path

    async def remove(self, paths: List[str]) -> None:
        try:
            await self.client.request(
                "DELETE",
                f"object/{self.bucket}",
                json={"prefixes": paths},
            )
        except APIClientError as e:
            LOGGER.error(
                "Failed to remove documents",
                exc_info=True,
                extra={"bucket": self.bucket, "count": len(paths)},
            )
            raise DocumentStoreError(f"Removal failed: {e.reason}", original_error=e)

    async def download(self, path: str) -> bytes:
        try:
            response = await self.client.request(
                "GET", f"object/authenticated/{self.bucket}/{path}"
            )
        except APIClientError as e:
            raise DocumentStoreError(f"Download failed: {e.reason}", original_error=e)
        return response.content
