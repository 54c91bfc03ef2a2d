"""Document-to-draft extraction pipeline.

    Idle -> Validating -> Encoding -> AwaitingService -> Succeeded | Failed(kind)

Each step returns a StepResult; the first failure moves the pipeline to
Failed with a single ExtractionErrorKind. Failed only leaves through an
explicit retry (or a new document), never automatically. A successful
extraction is merged into the draft (empty fields only) and immediately
screened for duplicates so conflicts surface before the user reviews the
rest of the form.

With a draft store attached, every write starts from the stored draft as it
is at that moment, so edits made while the service is busy or between a
failure and its retry are kept.
"""

from typing import Dict, Optional

from app.config import Settings, settings as default_settings
from app.core.exceptions import APIClientError, InvalidTransitionError, RecordStoreError
from app.core.extraction_client import ExtractionServiceClient
from app.core.step_result import StepResult
from app.repositories.policy_repository import PolicyRecordStore
from app.schemas.duplicates import DuplicateVerdict
from app.schemas.extraction import ExtractionErrorKind, ExtractionOutcome, ExtractionState
from app.schemas.policy import ExtractionResult, ParseErrorState, PolicyDraft
from app.services.draft_store import DraftStore
from app.services.extraction.document_steps import (
    DocumentFile,
    encode_document,
    validate_document,
)
from app.services.extraction.error_classifier import classify_exception, classify_failure
from app.services.extraction.progress import ProgressEstimator
from app.services.extraction.result_mapper import map_service_fields, merge_into_draft
from app.services.overlap_detector import DuplicateCandidate, check_duplicate
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

S = ExtractionState

_TRANSITIONS: Dict[ExtractionState, Dict[str, ExtractionState]] = {
    S.IDLE: {"start": S.VALIDATING},
    S.VALIDATING: {"validated": S.ENCODING, "fail": S.FAILED},
    S.ENCODING: {"encoded": S.AWAITING_SERVICE, "fail": S.FAILED},
    S.AWAITING_SERVICE: {"respond": S.SUCCEEDED, "fail": S.FAILED},
    S.SUCCEEDED: {"start": S.VALIDATING},
    S.FAILED: {"retry": S.VALIDATING, "start": S.VALIDATING},
}


class ExtractionPipeline:
    """Runs one document through validation, encoding and the extraction service.

    One instance belongs to one draft workflow. ``close`` tears it down:
    the progress timer is cancelled and a service response arriving
    afterwards is ignored.
    """

    def __init__(
        self,
        client: ExtractionServiceClient,
        record_store: PolicyRecordStore,
        config: Optional[Settings] = None,
        draft_store: Optional[DraftStore] = None,
        scope: Optional[str] = None,
    ):
        self.client = client
        self.record_store = record_store
        self.config = config or default_settings
        self.draft_store = draft_store
        self.scope = scope
        self.progress = self._new_progress()

        self._state = ExtractionState.IDLE
        self._generation = 0
        self._closed = False
        self._document: Optional[DocumentFile] = None
        self._draft: Optional[PolicyDraft] = None
        self._owner_id: Optional[str] = None
        self._access_token: Optional[str] = None
        self._exclude_id: Optional[str] = None
        self.last_error: Optional[ExtractionErrorKind] = None

    def _new_progress(self) -> ProgressEstimator:
        return ProgressEstimator(
            start=self.config.progress_start,
            step=self.config.progress_step,
            cap=self.config.progress_cap,
            interval=self.config.progress_tick_seconds,
        )

    @property
    def state(self) -> ExtractionState:
        return self._state

    def _fire(self, event: str) -> None:
        allowed = _TRANSITIONS[self._state]
        if event not in allowed:
            raise InvalidTransitionError("ExtractionPipeline", self._state.value, event)
        LOGGER.debug(
            "Extraction transition",
            extra={"from_state": self._state.value, "event": event,
                   "to_state": allowed[event].value},
        )
        self._state = allowed[event]

    async def run(
        self,
        document: DocumentFile,
        draft: PolicyDraft,
        owner_id: str,
        access_token: Optional[str] = None,
        exclude_id: Optional[str] = None,
    ) -> ExtractionOutcome:
        """Extract fields from ``document`` into ``draft``.

        Args:
            document: The uploaded document
            draft: Current draft; user-set fields are preserved. With a draft
                store attached the stored draft takes precedence.
            owner_id: Account whose records are screened for duplicates
            access_token: User token forwarded to the extraction service
            exclude_id: Record being edited, excluded from duplicate screening

        Returns:
            ExtractionOutcome: Succeeded with the merged draft, or Failed(kind)
        """
        if self._closed:
            raise InvalidTransitionError("ExtractionPipeline", "closed", "start")
        self._fire("start")
        self._document = document
        self._draft = draft
        self._owner_id = owner_id
        self._access_token = access_token
        self._exclude_id = exclude_id
        return await self._execute()

    async def retry(self) -> ExtractionOutcome:
        """Replay the last document after a retryable failure."""
        if self._state is not ExtractionState.FAILED or self._document is None:
            raise InvalidTransitionError("ExtractionPipeline", self._state.value, "retry")
        if self.last_error is not None and not self.last_error.retryable:
            raise InvalidTransitionError(
                "ExtractionPipeline", f"failed({self.last_error.value})", "retry"
            )
        self._fire("retry")
        return await self._execute()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Cancel the progress timer, disown any in-flight call and drop the document."""
        self._closed = True
        self._generation += 1
        self.progress.stop()
        self._document = None
        if self._draft is not None:
            self._draft = self._draft.model_copy(update={"attached_file": None})

    async def _execute(self) -> ExtractionOutcome:
        self._generation += 1
        generation = self._generation
        self.progress.reset()
        document = self._document

        self.progress.advance_to(10)
        validated = validate_document(
            document,
            self.config.max_document_bytes,
            self.config.allowed_document_types,
            self.config.allowed_document_extensions,
        )
        if not validated.succeeded:
            return await self._fail(generation, validated)
        self._fire("validated")

        self.progress.advance_to(20)
        encoded = await encode_document(document, self.config.max_document_bytes)
        if generation != self._generation:
            return self._stale(self._draft)
        if not encoded.succeeded:
            return await self._fail(generation, encoded)
        self._fire("encoded")
        # The upload stream does not outlive its request; retries replay this copy.
        self._document = DocumentFile.from_attached(encoded.value)
        draft = await self._current_draft()
        if generation != self._generation:
            return self._stale(draft)
        await self._persist(draft.model_copy(update={"attached_file": encoded.value}))

        response = await self._await_service(encoded.value.payload)
        if generation != self._generation:
            LOGGER.info("Ignoring extraction response for a closed workflow")
            return self._stale(self._draft)
        if not response.succeeded:
            return await self._fail(generation, response)

        draft = await self._current_draft()
        if generation != self._generation:
            return self._stale(draft)
        merged, merged_fields = merge_into_draft(draft, response.value)
        merged = merged.model_copy(
            update={"attached_file": encoded.value, "parse_error": None}
        )
        self._fire("respond")
        await self._persist(merged)
        self.last_error = None

        duplicate = await self._screen_duplicates(merged)
        if generation != self._generation:
            return self._stale(merged)

        LOGGER.info(
            "Extraction succeeded",
            extra={"merged_fields": merged_fields, "duplicate": duplicate.kind.value
                   if duplicate else None},
        )
        return ExtractionOutcome(
            state=self._state,
            draft=merged,
            result=response.value,
            merged_fields=merged_fields,
            duplicate=duplicate,
            progress=self.progress.value,
        )

    async def _await_service(
        self, payload: str
    ) -> StepResult[ExtractionResult, ExtractionErrorKind]:
        self.progress.start()
        try:
            envelope = await self.client.extract(payload, access_token=self._access_token)
        except APIClientError as e:
            self.progress.stop()
            kind = classify_exception(e)
            LOGGER.warning(
                "Extraction service call failed",
                extra={"kind": kind.value, "status_code": e.status_code},
            )
            return StepResult.failed(kind, e.reason)

        self.progress.stop(completed=True)

        if not envelope.success or envelope.error:
            if envelope.error:
                kind = classify_failure(envelope.error)
            else:
                kind = ExtractionErrorKind.NO_DATA_EXTRACTED
            return StepResult.failed(kind, envelope.error)

        result = map_service_fields(
            envelope.data,
            self.config.extraction_date_format,
            self.config.default_term_days,
        )
        if result.is_empty:
            return StepResult.failed(
                ExtractionErrorKind.NO_DATA_EXTRACTED, "No usable fields in the response"
            )
        return StepResult.ok(result)

    async def _screen_duplicates(self, draft: PolicyDraft) -> Optional[DuplicateVerdict]:
        try:
            records = await self.record_store.query(self._owner_id)
        except RecordStoreError:
            # Submission screens again against fresh records before committing.
            LOGGER.warning("Skipped post-extraction duplicate check", exc_info=True)
            return None
        return check_duplicate(
            DuplicateCandidate.from_draft(draft), records, exclude_id=self._exclude_id
        )

    async def _current_draft(self) -> PolicyDraft:
        """The draft as it stands now, including edits made since the run began."""
        if self.draft_store is not None:
            stored = await self.draft_store.load(self.scope)
            if stored is not None:
                self._draft = stored
        return self._draft

    async def _persist(self, draft: PolicyDraft) -> None:
        self._draft = draft
        if self.draft_store is not None:
            await self.draft_store.save(self.scope, draft)

    async def _fail(self, generation: int, step: StepResult) -> ExtractionOutcome:
        kind: ExtractionErrorKind = step.error
        self._fire("fail")
        self.last_error = kind
        self.progress.reset()
        draft = await self._current_draft()
        if generation != self._generation:
            return self._stale(draft)
        failed_draft = draft.model_copy(
            update={
                "parse_error": ParseErrorState(
                    kind=kind.value, message=kind.user_message, retryable=kind.retryable
                )
            }
        )
        await self._persist(failed_draft)
        LOGGER.info(
            "Extraction failed", extra={"kind": kind.value, "detail": step.detail}
        )
        return ExtractionOutcome(
            state=self._state,
            draft=failed_draft,
            error_kind=kind,
            error_detail=step.detail,
            progress=self.progress.value,
        )

    def _stale(self, draft: PolicyDraft) -> ExtractionOutcome:
        return ExtractionOutcome(
            state=self._state, draft=draft, progress=self.progress.value, stale=True
        )
