from fastapi import APIRouter

from app.api.v1.endpoints import drafts, health, policies, renewals, sessions

# Create API router
api_router = APIRouter()

# Include routers
api_router.include_router(health.router, prefix="", tags=["Health"])
api_router.include_router(drafts.router, prefix="/drafts", tags=["Drafts"])
api_router.include_router(renewals.router, prefix="/renewals", tags=["Renewals"])
api_router.include_router(policies.router, prefix="/policies", tags=["Policies"])
api_router.include_router(sessions.router, prefix="/session", tags=["Session"])

__all__ = ["api_router"]
