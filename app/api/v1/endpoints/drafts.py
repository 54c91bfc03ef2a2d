"""Draft endpoints: field edits, document extraction, duplicate screening, submission.

A draft scope is ``new-record`` or ``record:{id}``; each scope is an
independent workflow within the caller's browser session.
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.responses import JSONResponse

from app.core.auth import get_current_user
from app.dependencies import Registry, SessionId
from app.models.request.drafts import DraftEditRequest
from app.schemas.auth import CurrentUser
from app.schemas.extraction import ExtractionErrorKind, ExtractionOutcome, ExtractionState
from app.schemas.policy import PolicyDraft
from app.schemas.submission import SubmissionErrorKind, SubmissionStatus, SubmitMode
from app.services.draft_store import NEW_RECORD_SCOPE, record_id_from_scope
from app.services.extraction.document_steps import DocumentFile
from app.services.overlap_detector import DuplicateCandidate, check_duplicate
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

router = APIRouter()

_EXTRACTION_STATUS = {
    ExtractionErrorKind.FILE_TOO_LARGE: status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    ExtractionErrorKind.UNSUPPORTED_FORMAT: status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
    ExtractionErrorKind.CORRUPT_FILE: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ExtractionErrorKind.NO_DATA_EXTRACTED: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ExtractionErrorKind.AUTH_EXPIRED: status.HTTP_401_UNAUTHORIZED,
    ExtractionErrorKind.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    ExtractionErrorKind.NETWORK_ERROR: status.HTTP_502_BAD_GATEWAY,
    ExtractionErrorKind.SERVICE_UNAVAILABLE: status.HTTP_502_BAD_GATEWAY,
    ExtractionErrorKind.UNKNOWN: status.HTTP_502_BAD_GATEWAY,
}

_SUBMISSION_STATUS = {
    SubmissionErrorKind.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    SubmissionErrorKind.DUPLICATE: status.HTTP_409_CONFLICT,
    SubmissionErrorKind.BACKEND: status.HTTP_502_BAD_GATEWAY,
}


def validate_scope(scope: str) -> str:
    if scope != NEW_RECORD_SCOPE and record_id_from_scope(scope) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown draft scope '{scope}'",
        )
    return scope


Scope = Annotated[str, Depends(validate_scope)]


def draft_payload(draft: PolicyDraft) -> dict:
    """Serialise a draft for the browser; the encoded file stays server side."""
    payload = draft.model_dump(mode="json", exclude={"attached_file"})
    attached = draft.attached_file
    payload["attached_file"] = (
        {
            "filename": attached.filename,
            "content_type": attached.content_type,
            "size_bytes": attached.size_bytes,
        }
        if attached
        else None
    )
    return payload


def extraction_response(outcome: ExtractionOutcome) -> JSONResponse:
    body = outcome.to_dict()
    body["draft"] = draft_payload(outcome.draft)
    if outcome.stale:
        status_code = status.HTTP_409_CONFLICT
    elif outcome.error_kind is not None:
        status_code = _EXTRACTION_STATUS[outcome.error_kind]
    else:
        status_code = status.HTTP_200_OK
    return JSONResponse(status_code=status_code, content=body)


async def load_draft(registry, session_id: str, scope: str, owner_id: str) -> PolicyDraft:
    """Load the scope's draft, seeding an edit draft from its record on first use."""
    draft_store = registry.draft_store(session_id)
    draft = await draft_store.load(scope)
    if draft is not None:
        return draft

    record_id = record_id_from_scope(scope)
    if record_id is None:
        return PolicyDraft()

    record = await registry.record_store.get(owner_id, record_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Policy not found")
    draft = PolicyDraft.from_record(record)
    await draft_store.save(scope, draft)
    return draft


@router.get(
    "/{scope}",
    summary="Get a draft",
    description="Return the draft for a scope, seeding edit drafts from the stored policy",
    operation_id="get_draft",
)
async def get_draft(
    scope: Scope,
    session_id: SessionId,
    registry: Registry,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
) -> dict:
    draft = await load_draft(registry, session_id, scope, current_user.id)
    return draft_payload(draft)


@router.patch(
    "/{scope}",
    summary="Edit draft fields",
    description="Apply field edits in order; each edit is saved immediately",
    operation_id="edit_draft",
)
async def edit_draft(
    scope: Scope,
    request: DraftEditRequest,
    session_id: SessionId,
    registry: Registry,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
) -> dict:
    """Apply field edits to a draft.

    Args:
        scope: Draft scope
        request: Field edits
        session_id: Browser session
        registry: Workflow registry
        current_user: Current authenticated user from JWT

    Returns:
        dict: The updated draft
    """
    await load_draft(registry, session_id, scope, current_user.id)
    draft_store = registry.draft_store(session_id)
    draft = None
    for field_name, value in request.changes.items():
        draft = await draft_store.apply_edit(scope, field_name, value)
    return draft_payload(draft)


@router.delete(
    "/{scope}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Discard a draft",
    operation_id="discard_draft",
)
async def discard_draft(
    scope: Scope,
    session_id: SessionId,
    registry: Registry,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
) -> None:
    registry.close_scope(session_id, scope)
    await registry.draft_store(session_id).clear(scope)
    LOGGER.info("Draft discarded", extra={"scope": scope})


@router.post(
    "/{scope}/extraction",
    summary="Extract fields from a policy document",
    description="Upload a PDF or image; extracted values fill empty draft fields",
    operation_id="extract_document",
)
async def extract_document(
    scope: Scope,
    session_id: SessionId,
    registry: Registry,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    file: UploadFile = File(..., description="Policy document (PDF, JPEG, PNG or WebP)"),
) -> JSONResponse:
    """Run the extraction pipeline on an uploaded document.

    The response carries the pipeline state, the merged draft and, on
    success, the duplicate verdict for the extracted identity fields. The
    pipeline writes the draft itself, on top of any edit made meanwhile.
    """
    draft = await load_draft(registry, session_id, scope, current_user.id)
    pipeline = registry.pipeline(session_id, scope)
    outcome = await pipeline.run(
        DocumentFile.from_upload(file),
        draft,
        owner_id=current_user.id,
        access_token=current_user.access_token,
        exclude_id=record_id_from_scope(scope),
    )
    return extraction_response(outcome)


@router.post(
    "/{scope}/extraction/retry",
    summary="Retry a failed extraction",
    description="Replay the last document after a retryable failure",
    operation_id="retry_extraction",
)
async def retry_extraction(
    scope: Scope,
    session_id: SessionId,
    registry: Registry,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
) -> JSONResponse:
    # Loading first lets an expired session release its workflows before lookup.
    draft = await registry.draft_store(session_id).load(scope)
    pipeline = registry.pipeline(session_id, scope)

    if pipeline.state is ExtractionState.FAILED:
        outcome = await pipeline.retry()
    else:
        # The workflow was rebuilt (e.g. after a restart); replay the attached file.
        if draft is None or draft.attached_file is None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Nothing to retry. Please upload the document again.",
            )
        if draft.parse_error is not None and not draft.parse_error.retryable:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=ExtractionErrorKind.AUTH_EXPIRED.user_message,
            )
        outcome = await pipeline.run(
            DocumentFile.from_attached(draft.attached_file),
            draft,
            owner_id=current_user.id,
            access_token=current_user.access_token,
            exclude_id=record_id_from_scope(scope),
        )
    return extraction_response(outcome)


@router.post(
    "/{scope}/duplicates",
    summary="Screen a draft for duplicates",
    description="Check the draft's policy number and coverage against existing policies",
    operation_id="check_draft_duplicates",
)
async def check_draft_duplicates(
    scope: Scope,
    session_id: SessionId,
    registry: Registry,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
) -> dict:
    draft = await load_draft(registry, session_id, scope, current_user.id)
    renewal = registry.renewal(session_id, current_user.id)
    if renewal.head is not None and record_id_from_scope(scope) == renewal.head:
        verdict = await renewal.check_duplicates(draft)
        return verdict.to_dict()

    records = await registry.record_store.query(current_user.id)
    verdict = check_duplicate(
        DuplicateCandidate.from_draft(draft), records, exclude_id=record_id_from_scope(scope)
    )
    return verdict.to_dict()


@router.post(
    "/{scope}/submit",
    summary="Submit a draft",
    description="Validate, screen for duplicates and save the draft as a policy",
    operation_id="submit_draft",
)
async def submit_draft(
    scope: Scope,
    session_id: SessionId,
    registry: Registry,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    mode: Optional[SubmitMode] = Query(None, description="create or update"),
) -> JSONResponse:
    """Commit the draft.

    Defaults to ``create`` for the new-record scope and ``update`` for an
    edit scope. When the draft is the head of an active renewal queue, a
    successful submission advances the queue.
    """
    draft = await registry.draft_store(session_id).load(scope)
    if draft is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No draft to submit")

    if mode is None:
        mode = SubmitMode.CREATE if scope == NEW_RECORD_SCOPE else SubmitMode.UPDATE

    result = await registry.submission(session_id, scope).submit(current_user.id, draft, mode)
    body = result.to_dict()

    if result.status is SubmissionStatus.SKIPPED:
        return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=body)
    if result.status is SubmissionStatus.FAILED:
        return JSONResponse(status_code=_SUBMISSION_STATUS[result.error.kind], content=body)

    registry.close_scope(session_id, scope)
    renewal = registry.renewal(session_id, current_user.id)
    if renewal.head is not None and renewal.head == result.record.id:
        await renewal.on_submitted(result.record.id)
        body["renewal"] = renewal.status().model_dump(mode="json")

    status_code = status.HTTP_201_CREATED if mode is SubmitMode.CREATE else status.HTTP_200_OK
    return JSONResponse(status_code=status_code, content=body)
