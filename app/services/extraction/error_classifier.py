"""Classification of extraction service failures.

This is the only place that inspects failure text. Every failure maps to
exactly one ExtractionErrorKind, with UNKNOWN as the fallback.
"""

from typing import Optional, Tuple

from app.core.exceptions import APIClientError, APITimeoutError
from app.schemas.extraction import ExtractionErrorKind

_STATUS_KINDS = {
    401: ExtractionErrorKind.AUTH_EXPIRED,
    403: ExtractionErrorKind.AUTH_EXPIRED,
    402: ExtractionErrorKind.SERVICE_UNAVAILABLE,
    429: ExtractionErrorKind.RATE_LIMITED,
    502: ExtractionErrorKind.SERVICE_UNAVAILABLE,
    503: ExtractionErrorKind.SERVICE_UNAVAILABLE,
    504: ExtractionErrorKind.SERVICE_UNAVAILABLE,
}

# Checked in order; the first matching phrase wins.
_REASON_KINDS: Tuple[Tuple[Tuple[str, ...], ExtractionErrorKind], ...] = (
    (
        ("jwt expired", "token expired", "authentication", "unauthorized", "not authenticated"),
        ExtractionErrorKind.AUTH_EXPIRED,
    ),
    (("rate limit", "too many requests"), ExtractionErrorKind.RATE_LIMITED),
    (
        ("credits depleted", "service unavailable", "temporarily unavailable", "bad gateway",
         "not configured", "overloaded"),
        ExtractionErrorKind.SERVICE_UNAVAILABLE,
    ),
    (
        ("failed to fetch", "failed to send", "network", "connection", "timed out", "timeout"),
        ExtractionErrorKind.NETWORK_ERROR,
    ),
    (
        ("could not extract", "no data", "nothing usable", "no response from ai"),
        ExtractionErrorKind.NO_DATA_EXTRACTED,
    ),
)


def classify_failure(
    reason: Optional[str] = None, status_code: Optional[int] = None
) -> ExtractionErrorKind:
    """Map a reported failure to its kind.

    Args:
        reason: Failure text reported by the transport or the service
        status_code: HTTP status, if a response was received

    Returns:
        ExtractionErrorKind: The single kind the failure belongs to
    """
    if status_code in _STATUS_KINDS:
        return _STATUS_KINDS[status_code]

    text = (reason or "").lower()
    for phrases, kind in _REASON_KINDS:
        if any(phrase in text for phrase in phrases):
            return kind

    return ExtractionErrorKind.UNKNOWN


def classify_exception(error: Exception) -> ExtractionErrorKind:
    """Classify an exception raised while awaiting the extraction service."""
    if isinstance(error, APITimeoutError):
        return ExtractionErrorKind.NETWORK_ERROR
    if isinstance(error, APIClientError):
        if error.status_code is None and not _mentions_known_reason(error.reason):
            return ExtractionErrorKind.NETWORK_ERROR
        return classify_failure(error.reason, error.status_code)
    return classify_failure(str(error))


def _mentions_known_reason(reason: Optional[str]) -> bool:
    return classify_failure(reason) is not ExtractionErrorKind.UNKNOWN
