"""Duplicate screening verdicts."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from app.schemas.policy import PolicyRecord


class DuplicateKind(str, Enum):
    NONE = "no_duplicate"
    EXACT = "exact_duplicate"
    RANGE_OVERLAP = "range_overlap"


@dataclass(frozen=True)
class DuplicateVerdict:
    """Outcome of screening a candidate against existing records."""

    kind: DuplicateKind
    matched_record: Optional[PolicyRecord] = None

    @classmethod
    def none(cls) -> "DuplicateVerdict":
        return cls(DuplicateKind.NONE)

    @classmethod
    def exact(cls, record: PolicyRecord) -> "DuplicateVerdict":
        return cls(DuplicateKind.EXACT, record)

    @classmethod
    def range_overlap(cls, record: PolicyRecord) -> "DuplicateVerdict":
        return cls(DuplicateKind.RANGE_OVERLAP, record)

    @property
    def is_duplicate(self) -> bool:
        return self.kind is not DuplicateKind.NONE

    @property
    def message(self) -> str:
        if self.kind is DuplicateKind.EXACT:
            return (
                f"Policy number {self.matched_record.policy_number} already exists "
                f"for {self.matched_record.client_name}."
            )
        if self.kind is DuplicateKind.RANGE_OVERLAP:
            record = self.matched_record
            return (
                f"Vehicle {record.vehicle_number} already has a {record.insurer_name} policy "
                f"({record.policy_number}) covering {record.active_date.isoformat()} "
                f"to {record.expiry_date.isoformat()}."
            )
        return "No duplicate found."

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "matched_record_id": self.matched_record.id if self.matched_record else None,
            "matched_policy_number": (
                self.matched_record.policy_number if self.matched_record else None
            ),
        }
