"""Health check API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends

from app.config import settings
from app.core.session_storage import InMemorySessionStorage, SessionStorage
from app.dependencies import get_session_storage
from app.models.response.response import HealthCheckResponse

router = APIRouter()


@router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check endpoint",
    description="Check if the service is running and healthy",
    operation_id="get_service_health_status",
)
async def health_check(
    session_storage: Annotated[SessionStorage, Depends(get_session_storage)],
) -> HealthCheckResponse:
    """Health check endpoint.

    Returns:
        HealthCheckResponse: Service health status
    """
    active_sessions = None
    if isinstance(session_storage, InMemorySessionStorage):
        active_sessions = session_storage.session_count
    return HealthCheckResponse(
        status="healthy",
        version=settings.app_version,
        service=settings.app_name,
        active_sessions=active_sessions,
    )
