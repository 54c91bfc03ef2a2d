"""Final validation and at-most-once commit of a policy draft.

Order of effects for one submission:

1. validate the draft locally
2. re-screen for duplicates against the latest records
3. upload the attached document, if any (failure degrades, never aborts)
4. create or update the record
5. remove the replaced document (update only) and clear the draft

Every failure comes back as a ``SubmissionResult``; nothing raises out of
``submit``.
"""

import base64
import binascii
import time
from datetime import timedelta
from typing import Any, Callable, Dict, Optional, Tuple

from app.core.exceptions import (
    DocumentStoreError,
    RecordNotFoundError,
    RecordStoreError,
)
from app.repositories.policy_repository import PolicyRecordStore
from app.schemas.policy import (
    AMOUNT_FIELDS,
    COUNT_FIELDS,
    TERM_FIELDS,
    PolicyCategory,
    PolicyDraft,
    PolicyRecord,
)
from app.schemas.submission import (
    SubmissionError,
    SubmissionErrorKind,
    SubmissionResult,
    SubmitMode,
)
from app.services.draft_store import DraftStore
from app.services.overlap_detector import DuplicateCandidate, check_duplicate
from app.services.storage_service import DocumentStore, document_path
from app.utils.field_normalization import CONTACT_NUMBER_LENGTH, contact_digits
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

# field -> (minimum, maximum) length after trimming
TEXT_LIMITS: Dict[str, Tuple[int, int]] = {
    "policy_number": (3, 100),
    "client_name": (2, 200),
    "vehicle_number": (0, 20),
    "vehicle_make": (0, 100),
    "vehicle_model": (0, 100),
    "agent_code": (0, 100),
    "insurer_name": (0, 200),
    "reference": (0, 200),
}

_LABELS = {
    "policy_number": "Policy number",
    "client_name": "Client name",
    "vehicle_number": "Vehicle number",
    "vehicle_make": "Vehicle make",
    "vehicle_model": "Vehicle model",
    "agent_code": "Agent name",
    "insurer_name": "Insurance company",
    "reference": "Reference",
}

_TEXT_FIELDS = (
    "policy_number",
    "client_name",
    "insurer_name",
    "vehicle_number",
    "vehicle_make",
    "vehicle_model",
    "contact_number",
    "agent_code",
    "reference",
    "product_name",
    "status",
    "premium_frequency",
    "plan_type",
)


def _parse_amount(raw: Optional[str]) -> Optional[float]:
    """Parse user-typed numeric text; raises ValueError when unparseable."""
    if raw is None or not raw.strip():
        return None
    return float(raw.replace(",", "").strip())


def _store_column(field_name: str) -> str:
    alias = PolicyRecord.model_fields[field_name].alias
    return alias or field_name


def validate_draft(
    draft: PolicyDraft, default_term_days: int = 364
) -> Tuple[Dict[str, Any], Dict[str, str]]:
    """Check a draft and convert it into record values.

    Returns:
        (values, field_errors): ``values`` is keyed by record field name and
        is only meaningful when ``field_errors`` is empty.
    """
    errors: Dict[str, str] = {}
    values: Dict[str, Any] = {"category": draft.category}

    for field_name in _TEXT_FIELDS:
        raw = getattr(draft, field_name)
        values[field_name] = raw.strip() if isinstance(raw, str) and raw.strip() else None

    for field_name, (minimum, maximum) in TEXT_LIMITS.items():
        value = values[field_name] or ""
        label = _LABELS[field_name]
        if minimum and len(value) < minimum:
            errors[field_name] = f"{label} must be at least {minimum} characters"
        elif len(value) > maximum:
            errors[field_name] = f"{label} must be at most {maximum} characters"

    if values["policy_number"]:
        values["policy_number"] = values["policy_number"].upper()
    values["status"] = values["status"] or "Active"

    if draft.category is PolicyCategory.VEHICLE and not values["vehicle_number"]:
        errors["vehicle_number"] = "Vehicle number is required for vehicle insurance"

    if values["contact_number"] is not None:
        digits = contact_digits(values["contact_number"])
        if len(digits) != CONTACT_NUMBER_LENGTH:
            errors["contact_number"] = (
                f"Contact number must be exactly {CONTACT_NUMBER_LENGTH} digits"
            )
        values["contact_number"] = digits

    for field_name in AMOUNT_FIELDS + COUNT_FIELDS + TERM_FIELDS:
        try:
            number = _parse_amount(getattr(draft, field_name))
        except ValueError:
            errors[field_name] = "Must be a number"
            continue
        if number is not None and number < 0:
            errors[field_name] = "Must not be negative"
            continue
        if field_name in AMOUNT_FIELDS:
            values[field_name] = number or 0
        elif field_name in COUNT_FIELDS:
            values[field_name] = int(number or 0)
        else:
            values[field_name] = int(number) if number else None

    if draft.active_date is None:
        errors["active_date"] = "Policy start date is required"
    else:
        expiry = draft.expiry_date or draft.active_date + timedelta(days=default_term_days)
        if expiry < draft.active_date:
            errors["expiry_date"] = "Expiry date must not be before the start date"
        values["active_date"] = draft.active_date
        values["expiry_date"] = expiry

    return values, errors


def to_store_fields(values: Dict[str, Any]) -> Dict[str, Any]:
    """Map record field names to record store columns with JSON-safe values."""
    fields: Dict[str, Any] = {}
    for field_name, value in values.items():
        if isinstance(value, PolicyCategory):
            value = value.value
        elif hasattr(value, "isoformat"):
            value = value.isoformat()
        fields[_store_column(field_name)] = value
    return fields


class SubmissionService:
    """Commits drafts to the record store, at most once per submission."""

    def __init__(
        self,
        record_store: PolicyRecordStore,
        document_store: DocumentStore,
        draft_store: Optional[DraftStore] = None,
        scope: Optional[str] = None,
        default_term_days: int = 364,
        clock: Callable[[], float] = time.time,
    ):
        self.record_store = record_store
        self.document_store = document_store
        self.draft_store = draft_store
        self.scope = scope
        self.default_term_days = default_term_days
        self._clock = clock
        self._submitting = False

    @property
    def submitting(self) -> bool:
        return self._submitting

    async def submit(
        self, owner_id: str, draft: PolicyDraft, mode: SubmitMode
    ) -> SubmissionResult:
        """Validate, screen and commit ``draft``.

        A call made while another is in flight returns a skipped result
        without touching any store.
        """
        if self._submitting:
            LOGGER.info("Submission already in flight; ignoring repeat", extra={"mode": mode.value})
            return SubmissionResult.skipped()

        self._submitting = True
        try:
            return await self._submit(owner_id, draft, mode)
        finally:
            self._submitting = False

    async def _submit(
        self, owner_id: str, draft: PolicyDraft, mode: SubmitMode
    ) -> SubmissionResult:
        if mode is SubmitMode.UPDATE and not draft.record_id:
            return SubmissionResult.failed(
                SubmissionError(SubmissionErrorKind.VALIDATION, "No record selected to update")
            )

        values, field_errors = validate_draft(draft, self.default_term_days)
        if field_errors:
            return SubmissionResult.failed(
                SubmissionError(
                    SubmissionErrorKind.VALIDATION,
                    "Please correct the highlighted fields",
                    field_errors=field_errors,
                )
            )

        exclude_id = draft.record_id if mode is SubmitMode.UPDATE else None
        try:
            existing = await self.record_store.query(owner_id)
        except RecordStoreError as e:
            return self._backend_failure(e)

        candidate = DuplicateCandidate(
            policy_number=values["policy_number"],
            vehicle_number=values["vehicle_number"],
            insurer_name=values["insurer_name"],
            active_date=values["active_date"],
            expiry_date=values["expiry_date"],
        )
        verdict = check_duplicate(candidate, existing, exclude_id=exclude_id)
        if verdict.is_duplicate:
            LOGGER.info(
                "Submission blocked by duplicate",
                extra={"kind": verdict.kind.value, "matched_record_id": verdict.matched_record.id},
            )
            return SubmissionResult.failed(
                SubmissionError(SubmissionErrorKind.DUPLICATE, verdict.message, duplicate=verdict)
            )

        new_path, upload_error = await self._upload_attachment(owner_id, draft, values)
        if new_path is not None:
            values["document_path"] = new_path

        fields = to_store_fields(values)
        try:
            if mode is SubmitMode.CREATE:
                record = await self.record_store.insert(owner_id, fields)
            else:
                record = await self.record_store.update(owner_id, draft.record_id, fields)
        except RecordStoreError as e:
            if new_path is not None:
                await self._remove_quietly(new_path)
            return self._backend_failure(e)

        if new_path is not None and draft.existing_document_path:
            await self._remove_quietly(draft.existing_document_path)

        if self.draft_store is not None and self.scope is not None:
            await self.draft_store.clear(self.scope)

        LOGGER.info(
            "Policy submitted",
            extra={
                "mode": mode.value,
                "record_id": record.id,
                "with_document": new_path is not None,
            },
        )
        return SubmissionResult.committed(record, upload_error=upload_error)

    async def _upload_attachment(
        self, owner_id: str, draft: PolicyDraft, values: Dict[str, Any]
    ) -> Tuple[Optional[str], Optional[str]]:
        attached = draft.attached_file
        if attached is None:
            return None, None

        path = document_path(
            owner_id,
            values["policy_number"],
            attached.content_type,
            int(self._clock() * 1000),
        )
        try:
            content = base64.b64decode(attached.payload, validate=True)
            stored = await self.document_store.upload(path, content, attached.content_type)
        except (binascii.Error, DocumentStoreError) as e:
            LOGGER.warning(
                "Document upload failed; saving policy without it",
                extra={"document_name": attached.filename, "error": str(e)},
            )
            return None, "The policy was saved, but the document could not be uploaded."
        return stored, None

    async def _remove_quietly(self, path: str) -> None:
        try:
            await self.document_store.remove([path])
        except DocumentStoreError:
            LOGGER.warning("Failed to remove stale document", exc_info=True, extra={"path": path})

    @staticmethod
    def _backend_failure(error: RecordStoreError) -> SubmissionResult:
        LOGGER.error("Submission failed in the record store", extra={"error": error.message})
        return SubmissionResult.failed(
            SubmissionError(SubmissionErrorKind.BACKEND, error.message)
        )

    async def remove_document(self, owner_id: str, record_id: str) -> PolicyRecord:
        """Delete a record's stored document and clear its reference.

        Raises:
            RecordNotFoundError: If the owner has no such record
            DocumentStoreError: If the document store refuses the removal
        """
        record = await self.record_store.get(owner_id, record_id)
        if record is None:
            raise RecordNotFoundError(f"Policy {record_id} not found")
        if not record.document_path:
            return record

        await self.document_store.remove([record.document_path])
        updated = await self.record_store.update(
            owner_id, record_id, {_store_column("document_path"): None}
        )
        LOGGER.info("Policy document removed", extra={"record_id": record_id})
        return updated
