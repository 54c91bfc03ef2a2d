"""Extraction pipeline states, failure taxonomy and outcome."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from app.schemas.duplicates import DuplicateVerdict
from app.schemas.policy import ExtractionResult, PolicyDraft


class ExtractionState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    ENCODING = "encoding"
    AWAITING_SERVICE = "awaiting_service"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ExtractionErrorKind(str, Enum):
    FILE_TOO_LARGE = "file_too_large"
    UNSUPPORTED_FORMAT = "unsupported_format"
    CORRUPT_FILE = "corrupt_file"
    NETWORK_ERROR = "network_error"
    RATE_LIMITED = "rate_limited"
    SERVICE_UNAVAILABLE = "service_unavailable"
    AUTH_EXPIRED = "auth_expired"
    NO_DATA_EXTRACTED = "no_data_extracted"
    UNKNOWN = "unknown"

    @property
    def retryable(self) -> bool:
        """Every failure offers a retry except an expired session."""
        return self is not ExtractionErrorKind.AUTH_EXPIRED

    @property
    def user_message(self) -> str:
        return _USER_MESSAGES[self]


_USER_MESSAGES = {
    ExtractionErrorKind.FILE_TOO_LARGE: "File too large. Maximum size is 10MB.",
    ExtractionErrorKind.UNSUPPORTED_FORMAT: (
        "Unsupported file format. Please upload a PDF or image file (JPEG, PNG, WebP)."
    ),
    ExtractionErrorKind.CORRUPT_FILE: "Failed to read file. The file may be corrupted.",
    ExtractionErrorKind.NETWORK_ERROR: (
        "Network error. Please check your connection and try again."
    ),
    ExtractionErrorKind.RATE_LIMITED: "Too many requests. Please try again in a moment.",
    ExtractionErrorKind.SERVICE_UNAVAILABLE: (
        "The document reader is temporarily unavailable. Please try again later."
    ),
    ExtractionErrorKind.AUTH_EXPIRED: "Your session has expired. Please sign in again.",
    ExtractionErrorKind.NO_DATA_EXTRACTED: "Could not extract data from the document.",
    ExtractionErrorKind.UNKNOWN: "Something went wrong while reading the document.",
}


@dataclass
class ExtractionOutcome:
    """Result of one extraction attempt, as seen by the caller."""

    state: ExtractionState
    draft: PolicyDraft
    result: Optional[ExtractionResult] = None
    merged_fields: List[str] = field(default_factory=list)
    duplicate: Optional[DuplicateVerdict] = None
    error_kind: Optional[ExtractionErrorKind] = None
    error_detail: Optional[str] = None
    progress: int = 0
    stale: bool = False

    @property
    def succeeded(self) -> bool:
        return self.state is ExtractionState.SUCCEEDED

    @property
    def retryable(self) -> bool:
        return self.error_kind is not None and self.error_kind.retryable

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "progress": self.progress,
            "merged_fields": self.merged_fields,
            "duplicate": self.duplicate.to_dict() if self.duplicate else None,
            "error": (
                {
                    "kind": self.error_kind.value,
                    "message": self.error_kind.user_message,
                    "detail": self.error_detail,
                    "retryable": self.error_kind.retryable,
                }
                if self.error_kind
                else None
            ),
            "draft": self.draft.model_dump(mode="json", exclude={"attached_file"}),
        }
