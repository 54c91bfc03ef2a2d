import asyncio
from typing import Any, Dict, Optional

import httpx
from httpx import HTTPStatusError, TimeoutException

from app.core.exceptions import APIClientError, APITimeoutError
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class BaseHTTPClient:
    """Base client for the Supabase collaborators.

    Handles request construction, timeouts, error translation and optional
    retries with exponential backoff. Failures surface as APIClientError
    carrying the status code and the collaborator's reported reason so the
    workflow layer can classify them.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: float = 30.0,
        max_retries: int = 1,
        retry_delay: float = 1.0,
    ):
        """Initialize the client.

        Args:
            api_key: Key sent as ``apikey`` and, absent a caller token, as bearer
            base_url: Base URL every endpoint is appended to
            timeout: Request timeout in seconds
            max_retries: Total attempts for retryable failures (1 disables retries)
            retry_delay: Base delay for exponential backoff
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.logger = LOGGER

    def _headers(
        self, access_token: Optional[str] = None, extra: Optional[Dict[str, str]] = None
    ) -> Dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {access_token or self.api_key}",
        }
        if extra:
            headers.update(extra)
        return headers

    async def request(
        self,
        method: str,
        endpoint: str = "",
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        content: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
        access_token: Optional[str] = None,
    ) -> httpx.Response:
        """Send a request and return the successful response.

        Raises:
            APIClientError: On a non-2xx response or transport failure
            APITimeoutError: When the request times out on every attempt
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}" if endpoint else self.base_url
        request_headers = self._headers(access_token, headers)

        self.logger.debug(
            f"Calling {method.upper()} {url}",
            extra={"timeout": self.timeout, "max_retries": self.max_retries},
        )

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for attempt in range(self.max_retries):
                try:
                    response = await client.request(
                        method.upper(),
                        url,
                        json=json,
                        params=params,
                        content=content,
                        headers=request_headers,
                    )
                    response.raise_for_status()
                    return response

                except HTTPStatusError as e:
                    await self._handle_http_error(e, attempt, url)

                except TimeoutException as e:
                    await self._handle_timeout_error(e, attempt, url)

                except httpx.RequestError as e:
                    await self._handle_transport_error(e, attempt, url)

        raise APIClientError(f"Failed to call {url} after {self.max_retries} attempts")

    async def _handle_http_error(self, error: HTTPStatusError, attempt: int, url: str):
        """Handle HTTP status errors."""
        status_code = error.response.status_code
        reason = _error_reason(error.response)

        self.logger.warning(
            f"HTTP error from collaborator (Attempt {attempt + 1}/{self.max_retries})",
            extra={"url": url, "status_code": status_code, "reason": reason[:500]},
        )

        # Don't retry on client errors (4xx) unless it's rate limiting (429)
        if 400 <= status_code < 500 and status_code != 429:
            raise APIClientError(
                f"Request failed with status {status_code}: {reason}",
                status_code=status_code,
                reason=reason,
                original_error=error,
            ) from error

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APIClientError(
                f"Request failed with status {status_code}: {reason}",
                status_code=status_code,
                reason=reason,
                original_error=error,
            ) from error

    async def _handle_timeout_error(self, error: TimeoutException, attempt: int, url: str):
        """Handle timeout errors."""
        self.logger.warning(
            f"Request timed out (Attempt {attempt + 1}/{self.max_retries})",
            extra={"url": url},
        )

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APITimeoutError(
                f"Request timed out after {self.timeout}s",
                reason="Network timeout",
                original_error=error,
            ) from error

    async def _handle_transport_error(self, error: httpx.RequestError, attempt: int, url: str):
        """Handle connection-level failures that produced no response."""
        self.logger.warning(
            f"Transport error (Attempt {attempt + 1}/{self.max_retries})",
            extra={"url": url, "error": str(error)},
        )

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APIClientError(
                f"Failed to send request: {error}",
                reason=f"Failed to send request: {error}",
                original_error=error,
            ) from error

    async def _wait_before_retry(self, attempt: int):
        """Exponential backoff wait."""
        await asyncio.sleep(self.retry_delay * (2 ** attempt))


def _error_reason(response: httpx.Response) -> str:
    """Pull the collaborator's error text out of a failed response."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        for key in ("error", "message", "msg", "error_description"):
            if body.get(key):
                return str(body[key])
    return response.text or response.reason_phrase
