"""Duplicate and coverage-overlap screening for policy records.

Two independent identity axes are checked, in order:

1. Policy number: a normalized policy number already on file is an exact
   duplicate. This short-circuits the interval check.
2. Vehicle + insurer + coverage interval: a record for the same vehicle
   with the same insurer whose ``[active, expiry]`` interval intersects
   the candidate's (inclusive on both ends) is a range overlap.

The detector is a pure function over the records it is handed. Records
are scanned in the order supplied and the first match is reported, so
callers should pass them in a stable order (the record store returns
them by creation time).
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Optional

from app.config import settings
from app.schemas.duplicates import DuplicateVerdict
from app.schemas.policy import PolicyDraft, PolicyRecord
from app.utils.field_normalization import normalize_key

DEFAULT_TERM = timedelta(days=settings.default_term_days)


@dataclass(frozen=True)
class DuplicateCandidate:
    """Identity fields of a policy that has not been committed yet."""

    policy_number: Optional[str] = None
    vehicle_number: Optional[str] = None
    insurer_name: Optional[str] = None
    active_date: Optional[date] = None
    expiry_date: Optional[date] = None

    @classmethod
    def from_draft(cls, draft: PolicyDraft) -> "DuplicateCandidate":
        return cls(
            policy_number=draft.policy_number,
            vehicle_number=draft.vehicle_number,
            insurer_name=draft.insurer_name,
            active_date=draft.active_date,
            expiry_date=draft.expiry_date,
        )

    @property
    def coverage_end(self) -> Optional[date]:
        """Expiry date, defaulting to a standard term when only the start is known."""
        if self.expiry_date is not None:
            return self.expiry_date
        if self.active_date is not None:
            return self.active_date + DEFAULT_TERM
        return None


def intervals_overlap(
    first_start: date, first_end: date, second_start: date, second_end: date
) -> bool:
    """Inclusive interval intersection test."""
    return first_start <= second_end and first_end >= second_start


def check_duplicate(
    candidate: DuplicateCandidate,
    existing_records: Iterable[PolicyRecord],
    exclude_id: Optional[str] = None,
) -> DuplicateVerdict:
    """Screen ``candidate`` against ``existing_records``.

    Args:
        candidate: Identity fields of the policy being created or edited
        existing_records: Records owned by the same account, in a stable order
        exclude_id: Id of the record being edited, never reported against itself

    Returns:
        DuplicateVerdict: exact duplicate, range overlap, or no duplicate
    """
    records = [record for record in existing_records if record.id != exclude_id]

    policy_key = normalize_key(candidate.policy_number)
    if policy_key:
        for record in records:
            if normalize_key(record.policy_number) == policy_key:
                return DuplicateVerdict.exact(record)

    vehicle_key = normalize_key(candidate.vehicle_number)
    insurer_key = normalize_key(candidate.insurer_name)
    if not (vehicle_key and insurer_key and candidate.active_date):
        return DuplicateVerdict.none()

    new_start = candidate.active_date
    new_end = candidate.coverage_end
    for record in records:
        if normalize_key(record.vehicle_number) != vehicle_key:
            continue
        if normalize_key(record.insurer_name) != insurer_key:
            continue
        if intervals_overlap(new_start, new_end, record.active_date, record.expiry_date):
            return DuplicateVerdict.range_overlap(record)

    return DuplicateVerdict.none()
