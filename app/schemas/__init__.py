from .duplicates import DuplicateKind, DuplicateVerdict
from .extraction import ExtractionErrorKind, ExtractionOutcome, ExtractionState
from .policy import PolicyCategory, PolicyDraft, PolicyRecord
from .renewal import RenewalState, RenewalStatus
from .submission import SubmissionResult, SubmissionStatus, SubmitMode

__all__ = [
    "DuplicateKind",
    "DuplicateVerdict",
    "ExtractionErrorKind",
    "ExtractionOutcome",
    "ExtractionState",
    "PolicyCategory",
    "PolicyDraft",
    "PolicyRecord",
    "RenewalState",
    "RenewalStatus",
    "SubmissionResult",
    "SubmissionStatus",
    "SubmitMode",
]
