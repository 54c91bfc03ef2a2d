"""Client for the document extraction edge function."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from app.core.base_http_client import BaseHTTPClient
from app.core.exceptions import APIClientError
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ExtractionServiceResponse(BaseModel):
    """Response envelope returned by the extraction service."""

    success: bool = False
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class ExtractionServiceClient:
    """Sends an encoded document to the extraction service.

    The call is made exactly once; retrying is a user decision taken by
    the extraction pipeline, never an automatic one.

    Attributes:
        function_name: Name of the edge function to invoke
        client: Underlying HTTP client
    """

    def __init__(
        self,
        functions_url: str,
        api_key: str,
        function_name: str = "parse-policy-pdf",
        timeout: float = 120.0,
    ):
        self.function_name = function_name
        self.client = BaseHTTPClient(
            api_key=api_key,
            base_url=functions_url,
            timeout=timeout,
            max_retries=1,
        )

    async def extract(
        self, document_payload: str, access_token: Optional[str] = None
    ) -> ExtractionServiceResponse:
        """Invoke the extraction service with a base64 document payload.

        Args:
            document_payload: Base64 encoded document
            access_token: The user's access token, forwarded as bearer

        Returns:
            ExtractionServiceResponse: Parsed response envelope

        Raises:
            APIClientError: On transport failure, non-2xx status or a malformed body
        """
        LOGGER.info(
            "Requesting document extraction",
            extra={"function": self.function_name, "payload_chars": len(document_payload)},
        )

        response = await self.client.request(
            "POST",
            self.function_name,
            json={"documentPayload": document_payload},
            access_token=access_token,
        )

        try:
            envelope = ExtractionServiceResponse.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            LOGGER.error("Extraction service returned a malformed body", exc_info=True)
            raise APIClientError(
                "Extraction service returned a malformed response",
                status_code=response.status_code,
                reason="Malformed response",
                original_error=e,
            ) from e

        LOGGER.info(
            "Extraction service responded",
            extra={
                "success": envelope.success,
                "field_count": len(envelope.data or {}),
                "has_error": bool(envelope.error),
            },
        )
        return envelope
