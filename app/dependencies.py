"""Centralized dependency injection for FastAPI application.

Collaborator adapters and the workflow registry are process-wide
singletons; tests replace them through ``app.dependency_overrides``.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from app.config import settings
from app.core.extraction_client import ExtractionServiceClient
from app.core.session_storage import InMemorySessionStorage, SessionStorage
from app.repositories.policy_repository import PolicyRecordStore, SupabasePolicyRepository
from app.services.storage_service import DocumentStore, SupabaseStorageService
from app.services.workflow_registry import WorkflowRegistry


@lru_cache
def get_session_storage() -> SessionStorage:
    """Get the process-wide session storage.

    Returns:
        SessionStorage: In-memory storage purging idle sessions
    """
    return InMemorySessionStorage(idle_timeout_seconds=settings.session_idle_timeout_seconds)


@lru_cache
def get_record_store() -> PolicyRecordStore:
    """Get the policy record store.

    Returns:
        PolicyRecordStore: Supabase-backed record store
    """
    return SupabasePolicyRepository(
        rest_url=settings.rest_url,
        service_role_key=settings.supabase_service_role_key,
        table=settings.records_table,
        timeout=settings.http_timeout,
    )


@lru_cache
def get_document_store() -> DocumentStore:
    """Get the policy document store.

    Returns:
        DocumentStore: Supabase storage bucket for policy documents
    """
    return SupabaseStorageService(
        storage_url=settings.storage_url,
        service_role_key=settings.supabase_service_role_key,
        bucket=settings.document_bucket,
        timeout=settings.http_timeout,
    )


@lru_cache
def get_extraction_client() -> ExtractionServiceClient:
    """Get the extraction service client.

    Returns:
        ExtractionServiceClient: Client for the extraction edge function
    """
    return ExtractionServiceClient(
        functions_url=settings.functions_url,
        api_key=settings.supabase_anon_key,
        function_name=settings.extraction_function,
        timeout=settings.extraction_timeout,
    )


@lru_cache
def get_workflow_registry() -> WorkflowRegistry:
    """Get the registry holding per-session workflows.

    Returns:
        WorkflowRegistry: Registry wired to the configured collaborators
    """
    return WorkflowRegistry(
        session_storage=get_session_storage(),
        record_store=get_record_store(),
        document_store=get_document_store(),
        extraction_client=get_extraction_client(),
        config=settings,
    )


async def get_session_id(
    x_session_id: Annotated[str, Header(description="Browser session identifier")] = "",
) -> str:
    """Read the browser session id.

    Raises:
        HTTPException: 400 when the header is missing
    """
    session_id = x_session_id.strip()
    if not session_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Session-ID header is required",
        )
    return session_id


Registry = Annotated[WorkflowRegistry, Depends(get_workflow_registry)]
SessionId = Annotated[str, Depends(get_session_id)]
