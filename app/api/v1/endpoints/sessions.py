"""Browser session endpoints."""

from fastapi import APIRouter, status

from app.dependencies import Registry, SessionId

router = APIRouter()


@router.delete(
    "",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="End the browser session",
    description="Drop every draft and renewal queue held for the session",
    operation_id="end_session",
)
async def end_session(session_id: SessionId, registry: Registry) -> None:
    await registry.end_session(session_id)
