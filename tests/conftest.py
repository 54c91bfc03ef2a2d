"""Pytest configuration and shared fixtures."""

from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.core.auth import get_current_user
from app.core.extraction_client import ExtractionServiceClient, ExtractionServiceResponse
from app.core.session_storage import InMemorySessionStorage
from app.dependencies import get_session_storage, get_workflow_registry
from app.main import app
from app.schemas.auth import CurrentUser
from app.services.draft_store import DraftStore, QueueStore
from app.services.workflow_registry import WorkflowRegistry
from tests.fakes import (
    OWNER_ID,
    PDF_BYTES,
    InMemoryDocumentStore,
    InMemoryRecordStore,
    make_record,
)

SESSION_ID = "session-1"


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}


@pytest.fixture
def test_settings() -> Settings:
    """Settings with a fast progress tick.

    Returns:
        Settings: Configuration used by workflow components under test
    """
    return Settings(progress_tick_seconds=0.01, supabase_jwt_secret="test-secret")


@pytest.fixture
def existing_record():
    return make_record()


@pytest.fixture
def record_store(existing_record) -> InMemoryRecordStore:
    """Record store holding one committed vehicle policy."""
    return InMemoryRecordStore([existing_record])


@pytest.fixture
def document_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def session_storage() -> InMemorySessionStorage:
    return InMemorySessionStorage(idle_timeout_seconds=3600)


@pytest.fixture
def draft_store(session_storage) -> DraftStore:
    return DraftStore(session_storage, SESSION_ID)


@pytest.fixture
def queue_store(session_storage) -> QueueStore:
    return QueueStore(session_storage, SESSION_ID)


@pytest.fixture
def service_fields() -> dict:
    """Fields as the extraction service reports them for a motor policy."""
    return {
        "policyNumber": " pol-2002 ",
        "clientName": "ravi kumar",
        "vehicleNumber": "mh 02 cd 5678",
        "vehicleMake": "Maruti",
        "vehicleModel": "Swift",
        "insurerName": "ICICI LOMBARD GIC",
        "contactNumber": "98765-43210",
        "netPremium": "Rs. 8,450",
        "insuranceType": "Vehicle Insurance",
        "activeDate": "2025-03-01",
    }


@pytest.fixture
def extraction_client(service_fields) -> Mock:
    """Extraction client answering with ``service_fields``.

    Returns:
        Mock: Mocked client whose ``extract`` is an AsyncMock
    """
    client = Mock(spec=ExtractionServiceClient)
    client.extract = AsyncMock(
        return_value=ExtractionServiceResponse(success=True, data=service_fields)
    )
    return client


@pytest.fixture
def registry(session_storage, record_store, document_store, extraction_client, test_settings):
    return WorkflowRegistry(
        session_storage=session_storage,
        record_store=record_store,
        document_store=document_store,
        extraction_client=extraction_client,
        config=test_settings,
    )


@pytest.fixture
def current_user() -> CurrentUser:
    return CurrentUser(id=OWNER_ID, email="agent@example.com", access_token="user-token")


@pytest.fixture
def test_client(registry, session_storage, current_user) -> TestClient:
    """Create FastAPI test client wired to in-memory collaborators.

    Returns:
        TestClient: FastAPI test client instance
    """
    app.dependency_overrides[get_workflow_registry] = lambda: registry
    app.dependency_overrides[get_session_storage] = lambda: session_storage
    app.dependency_overrides[get_current_user] = lambda: current_user
    return TestClient(app, headers={"X-Session-ID": SESSION_ID})


@pytest.fixture
def sample_pdf_content() -> bytes:
    """Sample PDF content for testing.

    Returns:
        bytes: Minimal PDF content
    """
    return PDF_BYTES
