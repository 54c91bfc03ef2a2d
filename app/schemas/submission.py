"""Submission modes and the discriminated submission result."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

from app.schemas.duplicates import DuplicateVerdict
from app.schemas.policy import PolicyRecord


class SubmitMode(str, Enum):
    CREATE = "create"
    UPDATE = "update"


class SubmissionStatus(str, Enum):
    COMMITTED = "committed"
    FAILED = "failed"
    SKIPPED = "skipped"


class SubmissionErrorKind(str, Enum):
    VALIDATION = "validation"
    DUPLICATE = "duplicate"
    BACKEND = "backend"


@dataclass(frozen=True)
class SubmissionError:
    """Why a submission was not committed. Always safe to show to the user."""

    kind: SubmissionErrorKind
    message: str
    field_errors: Dict[str, str] = field(default_factory=dict)
    duplicate: Optional[DuplicateVerdict] = None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "field_errors": dict(self.field_errors),
            "duplicate": self.duplicate.to_dict() if self.duplicate else None,
        }


@dataclass(frozen=True)
class SubmissionResult:
    """Outcome of ``SubmissionService.submit``.

    A committed result may still carry ``upload_error``: the record was
    saved but its document was not.
    """

    status: SubmissionStatus
    record: Optional[PolicyRecord] = None
    error: Optional[SubmissionError] = None
    upload_error: Optional[str] = None

    @classmethod
    def committed(
        cls, record: PolicyRecord, upload_error: Optional[str] = None
    ) -> "SubmissionResult":
        return cls(SubmissionStatus.COMMITTED, record=record, upload_error=upload_error)

    @classmethod
    def failed(cls, error: SubmissionError) -> "SubmissionResult":
        return cls(SubmissionStatus.FAILED, error=error)

    @classmethod
    def skipped(cls) -> "SubmissionResult":
        return cls(SubmissionStatus.SKIPPED)

    @property
    def succeeded(self) -> bool:
        return self.status is SubmissionStatus.COMMITTED

    @property
    def saved_without_document(self) -> bool:
        return self.succeeded and self.upload_error is not None

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "record": self.record.model_dump(mode="json") if self.record else None,
            "error": self.error.to_dict() if self.error else None,
            "upload_error": self.upload_error,
            "saved_without_document": self.saved_without_document,
        }
