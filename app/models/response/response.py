from typing import Optional

from pydantic import BaseModel, Field


class HealthCheckResponse(BaseModel):
    """Health check response model.

    Attributes:
        status: Service status
        version: Application version
        service: Service name
        active_sessions: Browser sessions currently holding drafts
    """

    status: str = Field(
        default="healthy",
        description="Service health status",
        examples=["healthy", "unhealthy"],
    )
    version: str = Field(
        ...,
        description="Application version",
        examples=["0.1.0"],
    )
    service: str = Field(
        ...,
        description="Service name",
        examples=["Policy Onboarding Service"],
    )
    active_sessions: Optional[int] = Field(
        None,
        description="Sessions with stored drafts or renewal queues",
        examples=[3],
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "status": "healthy",
                    "version": "0.1.0",
                    "service": "Policy Onboarding Service",
                    "active_sessions": 3,
                }
            ]
        }
    }

