"""Tests for API endpoints."""

import time
from datetime import date

import jwt
import pytest
from fastapi.testclient import TestClient

from app.core.exceptions import APIClientError
from app.core.jwt import jwt_verifier
from app.dependencies import get_session_storage, get_workflow_registry
from app.main import app
from tests.fakes import make_record

API = "/api/v1"


@pytest.fixture
def pdf_upload(sample_pdf_content):
    return {"file": ("policy.pdf", sample_pdf_content, "application/pdf")}


class TestHealthEndpoints:
    """Test suite for service metadata endpoints."""

    def test_health_check(self, test_client: TestClient) -> None:
        response = test_client.get(f"{API}/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["active_sessions"] == 0

    def test_root(self, test_client: TestClient) -> None:
        response = test_client.get("/")

        assert response.status_code == 200
        assert response.json()["health"] == f"{API}/health"


class TestRequestGuards:

    def test_missing_session_header(self, test_client: TestClient) -> None:
        response = test_client.get(f"{API}/drafts/new-record", headers={"X-Session-ID": ""})

        assert response.status_code == 400

    def test_missing_bearer_token(self, registry, session_storage) -> None:
        app.dependency_overrides[get_workflow_registry] = lambda: registry
        app.dependency_overrides[get_session_storage] = lambda: session_storage
        client = TestClient(app, headers={"X-Session-ID": "session-1"})

        response = client.get(f"{API}/drafts/new-record")

        assert response.status_code == 401

    @pytest.mark.parametrize("expires_in,expected_status", [(3600, 200), (-60, 401)])
    def test_bearer_token_is_verified(
        self, registry, session_storage, monkeypatch, expires_in, expected_status
    ) -> None:
        monkeypatch.setattr(jwt_verifier, "jwt_secret", "test-secret")
        app.dependency_overrides[get_workflow_registry] = lambda: registry
        app.dependency_overrides[get_session_storage] = lambda: session_storage
        token = jwt.encode(
            {"sub": "user-1", "aud": "authenticated", "exp": int(time.time()) + expires_in},
            "test-secret",
            algorithm="HS256",
        )
        client = TestClient(
            app, headers={"X-Session-ID": "session-1", "Authorization": f"Bearer {token}"}
        )

        response = client.get(f"{API}/drafts/record:rec-1")

        assert response.status_code == expected_status

    def test_unknown_scope(self, test_client: TestClient) -> None:
        response = test_client.get(f"{API}/drafts/somewhere")

        assert response.status_code == 404


class TestDraftEndpoints:
    """Test suite for draft editing."""

    def test_new_draft_starts_empty(self, test_client: TestClient) -> None:
        response = test_client.get(f"{API}/drafts/new-record")

        assert response.status_code == 200
        data = response.json()
        assert data["policy_number"] is None
        assert data["category"] == "Vehicle Insurance"

    def test_edit_draft_is_seeded_from_record(self, test_client: TestClient) -> None:
        response = test_client.get(f"{API}/drafts/record:rec-1")

        assert response.status_code == 200
        assert response.json()["policy_number"] == "POL-1001"
        assert response.json()["record_id"] == "rec-1"

    def test_edit_draft_for_missing_record(self, test_client: TestClient) -> None:
        response = test_client.get(f"{API}/drafts/record:missing")

        assert response.status_code == 404

    def test_patch_applies_and_persists_edits(self, test_client: TestClient) -> None:
        response = test_client.patch(
            f"{API}/drafts/new-record",
            json={"changes": {"client_name": "meera shah", "active_date": "2025-04-01"}},
        )

        assert response.status_code == 200
        assert response.json()["client_name"] == "Meera Shah"
        assert response.json()["expiry_date"] == "2026-03-31"

        reloaded = test_client.get(f"{API}/drafts/new-record").json()
        assert reloaded["client_name"] == "Meera Shah"

    def test_patch_rejects_unknown_field(self, test_client: TestClient) -> None:
        response = test_client.patch(
            f"{API}/drafts/new-record", json={"changes": {"record_id": "rec-9"}}
        )

        assert response.status_code == 422
        assert response.json()["error_type"] == "ValidationError"

    def test_patch_rejects_empty_changes(self, test_client: TestClient) -> None:
        response = test_client.patch(f"{API}/drafts/new-record", json={"changes": {}})

        assert response.status_code == 422

    def test_discard_draft(self, test_client: TestClient) -> None:
        test_client.patch(f"{API}/drafts/new-record", json={"changes": {"reference": "walk-in"}})

        response = test_client.delete(f"{API}/drafts/new-record")

        assert response.status_code == 204
        assert test_client.get(f"{API}/drafts/new-record").json()["reference"] is None

    def test_duplicate_screening(self, test_client: TestClient) -> None:
        test_client.patch(
            f"{API}/drafts/new-record", json={"changes": {"policy_number": "pol-1001"}}
        )

        response = test_client.post(f"{API}/drafts/new-record/duplicates")

        assert response.status_code == 200
        assert response.json()["kind"] == "exact_duplicate"
        assert response.json()["matched_record_id"] == "rec-1"

    def test_end_session_drops_drafts(self, test_client: TestClient) -> None:
        test_client.patch(f"{API}/drafts/new-record", json={"changes": {"reference": "walk-in"}})

        response = test_client.delete(f"{API}/session")

        assert response.status_code == 204
        assert test_client.get(f"{API}/drafts/new-record").json()["reference"] is None


class TestExtractionEndpoints:
    """Test suite for document extraction."""

    def test_extract_success(self, test_client: TestClient, pdf_upload, extraction_client) -> None:
        response = test_client.post(f"{API}/drafts/new-record/extraction", files=pdf_upload)

        assert response.status_code == 200
        data = response.json()
        assert data["state"] == "succeeded"
        assert data["progress"] == 100
        assert data["duplicate"]["kind"] == "no_duplicate"
        assert data["draft"]["policy_number"] == "POL-2002"
        assert data["draft"]["attached_file"]["filename"] == "policy.pdf"
        assert "payload" not in data["draft"]["attached_file"]
        assert extraction_client.extract.await_args.kwargs["access_token"] == "user-token"

    def test_extract_unsupported_format(self, test_client: TestClient, extraction_client) -> None:
        response = test_client.post(
            f"{API}/drafts/new-record/extraction",
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )

        assert response.status_code == 415
        assert response.json()["error"]["kind"] == "unsupported_format"
        extraction_client.extract.assert_not_awaited()

    def test_extract_failure_then_retry(
        self, test_client: TestClient, pdf_upload, extraction_client
    ) -> None:
        extraction_client.extract.side_effect = APIClientError(
            "Request failed", status_code=429, reason="Rate limit exceeded"
        )

        failed = test_client.post(f"{API}/drafts/new-record/extraction", files=pdf_upload)

        assert failed.status_code == 429
        assert failed.json()["error"]["retryable"] is True
        assert failed.json()["draft"]["parse_error"]["kind"] == "rate_limited"

        extraction_client.extract.side_effect = None
        retried = test_client.post(f"{API}/drafts/new-record/extraction/retry")

        assert retried.status_code == 200
        assert retried.json()["draft"]["parse_error"] is None
        assert extraction_client.extract.await_count == 2

    def test_retry_keeps_edits_made_after_failure(
        self, test_client: TestClient, pdf_upload, extraction_client
    ) -> None:
        extraction_client.extract.side_effect = APIClientError(
            "Request failed", status_code=503, reason="Service unavailable"
        )
        failed = test_client.post(f"{API}/drafts/new-record/extraction", files=pdf_upload)
        edited = test_client.patch(
            f"{API}/drafts/new-record",
            json={"changes": {"client_name": "anita sharma", "reference": "REF-9"}},
        )

        extraction_client.extract.side_effect = None
        retried = test_client.post(f"{API}/drafts/new-record/extraction/retry")
        draft = test_client.get(f"{API}/drafts/new-record").json()

        assert failed.status_code == 502
        assert edited.status_code == 200
        assert retried.status_code == 200
        assert draft["client_name"] == "Anita Sharma"
        assert draft["reference"] == "REF-9"
        assert draft["policy_number"] == "POL-2002"
        assert draft["parse_error"] is None

    def test_expired_session_is_not_retried(
        self, test_client: TestClient, pdf_upload, extraction_client
    ) -> None:
        extraction_client.extract.side_effect = APIClientError(
            "Request failed", status_code=401, reason="JWT expired"
        )

        failed = test_client.post(f"{API}/drafts/new-record/extraction", files=pdf_upload)
        retried = test_client.post(f"{API}/drafts/new-record/extraction/retry")

        assert failed.status_code == 401
        assert retried.status_code == 409

    def test_retry_without_document(self, test_client: TestClient) -> None:
        response = test_client.post(f"{API}/drafts/new-record/extraction/retry")

        assert response.status_code == 409


class TestSubmitEndpoints:
    """Test suite for submitting drafts."""

    def test_extract_then_create(
        self, test_client: TestClient, pdf_upload, record_store, document_store
    ) -> None:
        test_client.post(f"{API}/drafts/new-record/extraction", files=pdf_upload)

        response = test_client.post(f"{API}/drafts/new-record/submit")

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "committed"
        assert data["record"]["policy_number"] == "POL-2002"
        assert data["record"]["document_path"].startswith("user-1/")
        assert len(document_store.objects) == 1
        assert test_client.get(f"{API}/drafts/new-record").json()["policy_number"] is None

    def test_validation_errors(self, test_client: TestClient) -> None:
        test_client.patch(f"{API}/drafts/new-record", json={"changes": {"policy_number": "ab"}})

        response = test_client.post(f"{API}/drafts/new-record/submit")

        assert response.status_code == 422
        field_errors = response.json()["error"]["field_errors"]
        assert {"policy_number", "client_name", "active_date"} <= set(field_errors)

    def test_duplicate_is_conflict(self, test_client: TestClient, record_store) -> None:
        test_client.patch(
            f"{API}/drafts/new-record",
            json={
                "changes": {
                    "policy_number": "pol-1001",
                    "client_name": "asha rao",
                    "vehicle_number": "mh01zz0001",
                    "active_date": "2025-06-01",
                }
            },
        )

        response = test_client.post(f"{API}/drafts/new-record/submit")

        assert response.status_code == 409
        assert response.json()["error"]["duplicate"]["kind"] == "exact_duplicate"
        assert record_store.inserted == []

    def test_update_existing_record(self, test_client: TestClient, record_store) -> None:
        test_client.patch(
            f"{API}/drafts/record:rec-1", json={"changes": {"contact_number": "98765 43210"}}
        )

        response = test_client.post(f"{API}/drafts/record:rec-1/submit")

        assert response.status_code == 200
        assert response.json()["record"]["contact_number"] == "9876543210"
        assert record_store.updated[0].id == "rec-1"

    def test_submit_without_draft(self, test_client: TestClient) -> None:
        response = test_client.post(f"{API}/drafts/new-record/submit")

        assert response.status_code == 404


class TestRenewalEndpoints:
    """Test suite for sequential renewals."""

    @pytest.fixture(autouse=True)
    def second_record(self, record_store):
        record_store.records.append(
            make_record(id="rec-2", policy_number="POL-1002", vehicle_number="MH01AB9999")
        )

    def test_renewal_flow(self, test_client: TestClient, record_store) -> None:
        started = test_client.post(f"{API}/renewals", json={"record_ids": ["rec-1", "rec-2"]})

        assert started.status_code == 201
        assert started.json()["renewal"]["head"] == "rec-1"
        assert started.json()["renewal"]["draft_scope"] == "record:rec-1"
        assert started.json()["draft"]["policy_number"] == "POL-1001"

        test_client.patch(
            f"{API}/drafts/record:rec-1", json={"changes": {"active_date": "2025-06-01"}}
        )
        submitted = test_client.post(f"{API}/drafts/record:rec-1/submit")

        assert submitted.status_code == 200
        assert submitted.json()["renewal"]["state"] == "awaiting_next"
        assert submitted.json()["renewal"]["remaining"] == ["rec-2"]
        assert record_store.records[0].expiry_date == date(2026, 5, 31)

        advanced = test_client.post(f"{API}/renewals/next")

        assert advanced.json()["renewal"]["head"] == "rec-2"

        test_client.patch(
            f"{API}/drafts/record:rec-2", json={"changes": {"active_date": "2025-06-01"}}
        )
        finished = test_client.post(f"{API}/drafts/record:rec-2/submit")

        assert finished.json()["renewal"]["state"] == "finished"
        assert finished.json()["renewal"]["remaining"] == []

    def test_resume_after_reload(self, test_client: TestClient, registry) -> None:
        test_client.post(f"{API}/renewals", json={"record_ids": ["rec-2", "rec-1"]})
        registry.close()

        response = test_client.get(f"{API}/renewals")

        assert response.json()["renewal"]["state"] == "editing"
        assert response.json()["renewal"]["head"] == "rec-2"
        assert response.json()["draft"]["record_id"] == "rec-2"

    def test_abort(self, test_client: TestClient) -> None:
        test_client.post(f"{API}/renewals", json={"record_ids": ["rec-1", "rec-2"]})

        response = test_client.delete(f"{API}/renewals")

        assert response.status_code == 204
        assert test_client.get(f"{API}/renewals").json()["renewal"]["state"] == "aborted"

    def test_start_with_unknown_record(self, test_client: TestClient) -> None:
        response = test_client.post(f"{API}/renewals", json={"record_ids": ["missing"]})

        assert response.status_code == 404

    def test_start_requires_records(self, test_client: TestClient) -> None:
        response = test_client.post(f"{API}/renewals", json={"record_ids": []})

        assert response.status_code == 422

    def test_advance_before_submitting_is_conflict(self, test_client: TestClient) -> None:
        test_client.post(f"{API}/renewals", json={"record_ids": ["rec-1", "rec-2"]})

        response = test_client.post(f"{API}/renewals/next")

        assert response.status_code == 409


class TestPolicyDocumentEndpoints:

    def test_remove_document(self, test_client: TestClient, record_store, document_store) -> None:
        record_store.records[0] = make_record(document_path="user-1/old.pdf")
        document_store.objects["user-1/old.pdf"] = b"%PDF"

        response = test_client.delete(f"{API}/policies/rec-1/document")

        assert response.status_code == 200
        assert response.json()["document_path"] is None
        assert document_store.objects == {}

    def test_remove_document_missing_record(self, test_client: TestClient) -> None:
        response = test_client.delete(f"{API}/policies/missing/document")

        assert response.status_code == 404
