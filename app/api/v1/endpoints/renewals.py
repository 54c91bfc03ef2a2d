"""Renewal queue endpoints."""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, status

from app.core.auth import get_current_user
from app.dependencies import Registry, SessionId
from app.schemas.auth import CurrentUser
from app.schemas.policy import PolicyDraft
from app.schemas.renewal import RenewalStartRequest, RenewalState
from app.api.v1.endpoints.drafts import draft_payload
from app.services.draft_store import draft_scope
from app.services.renewal_coordinator import RenewalCoordinator
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

router = APIRouter()


def renewal_payload(coordinator: RenewalCoordinator, draft: Optional[PolicyDraft]) -> dict:
    return {
        "renewal": coordinator.status().model_dump(mode="json"),
        "draft": draft_payload(draft) if draft else None,
    }


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Start renewing policies",
    description="Queue policies for renewal and open the first one for editing",
    operation_id="start_renewal",
)
async def start_renewal(
    request: RenewalStartRequest,
    session_id: SessionId,
    registry: Registry,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
) -> dict:
    """Start a renewal queue.

    Args:
        request: Policy ids in renewal order
        session_id: Browser session
        registry: Workflow registry
        current_user: Current authenticated user from JWT

    Returns:
        dict: Renewal status and the draft for the first policy
    """
    coordinator = registry.renewal(session_id, current_user.id)
    draft = await coordinator.start(request.record_ids)
    return renewal_payload(coordinator, draft)


@router.get(
    "",
    summary="Resume renewing policies",
    description="Return the renewal in progress, resuming a persisted queue after a reload",
    operation_id="get_renewal",
)
async def get_renewal(
    session_id: SessionId,
    registry: Registry,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
) -> dict:
    coordinator = registry.renewal(session_id, current_user.id)
    if coordinator.state is RenewalState.AWAITING_NEXT:
        return renewal_payload(coordinator, None)
    draft = await coordinator.resume()
    return renewal_payload(coordinator, draft)


@router.post(
    "/next",
    summary="Continue with the next policy",
    operation_id="advance_renewal",
)
async def advance_renewal(
    session_id: SessionId,
    registry: Registry,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
) -> dict:
    coordinator = registry.renewal(session_id, current_user.id)
    draft = await coordinator.advance()
    return renewal_payload(coordinator, draft)


@router.delete(
    "",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Stop renewing policies",
    description="Discard the renewal queue and the draft being edited",
    operation_id="abort_renewal",
)
async def abort_renewal(
    session_id: SessionId,
    registry: Registry,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
) -> None:
    coordinator = registry.renewal(session_id, current_user.id)
    if coordinator.state not in (RenewalState.EDITING, RenewalState.AWAITING_NEXT):
        await coordinator.resume()

    if coordinator.state in (RenewalState.EDITING, RenewalState.AWAITING_NEXT):
        head = coordinator.head
        await coordinator.abort()
        if head is not None:
            registry.close_scope(session_id, draft_scope(head))
    else:
        await registry.queue_store(session_id).clear()
