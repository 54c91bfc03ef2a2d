"""Policy document endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends

from app.core.auth import get_current_user
from app.dependencies import Registry, SessionId
from app.schemas.auth import CurrentUser
from app.services.draft_store import draft_scope
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

router = APIRouter()


@router.delete(
    "/{record_id}/document",
    summary="Remove a policy's document",
    description="Delete the stored document and clear the policy's reference to it",
    operation_id="remove_policy_document",
)
async def remove_policy_document(
    record_id: str,
    session_id: SessionId,
    registry: Registry,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
) -> dict:
    """Remove the document attached to a policy.

    An edit draft open for the policy stops pointing at the removed file.

    Args:
        record_id: Policy id
        session_id: Browser session
        registry: Workflow registry
        current_user: Current authenticated user from JWT

    Returns:
        dict: The updated policy
    """
    scope = draft_scope(record_id)
    record = await registry.submission(session_id, scope).remove_document(
        current_user.id, record_id
    )

    draft_store = registry.draft_store(session_id)
    draft = await draft_store.load(scope)
    if draft is not None and draft.existing_document_path:
        await draft_store.save(scope, draft.model_copy(update={"existing_document_path": None}))

    return record.model_dump(mode="json")
