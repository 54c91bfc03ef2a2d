"""Per-session workflow instances.

HTTP requests are stateless, but the workflows are not: the submitting
flag, the extraction state and the renewal state must outlive a single
request. The registry keeps one pipeline and one submission service per
(session, draft scope) and one renewal coordinator per (session, owner).
"""

from typing import Dict, Optional, Tuple

from app.config import Settings, settings as default_settings
from app.core.extraction_client import ExtractionServiceClient
from app.core.session_storage import SessionStorage
from app.repositories.policy_repository import PolicyRecordStore
from app.services.draft_store import DraftStore, QueueStore
from app.services.extraction.extraction_pipeline import ExtractionPipeline
from app.services.renewal_coordinator import RenewalCoordinator
from app.services.storage_service import DocumentStore
from app.services.submission_service import SubmissionService
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class WorkflowRegistry:
    """Creates and caches workflow components for browser sessions."""

    def __init__(
        self,
        session_storage: SessionStorage,
        record_store: PolicyRecordStore,
        document_store: DocumentStore,
        extraction_client: ExtractionServiceClient,
        config: Optional[Settings] = None,
    ):
        self.session_storage = session_storage
        self.record_store = record_store
        self.document_store = document_store
        self.extraction_client = extraction_client
        self.config = config or default_settings
        self._pipelines: Dict[Tuple[str, str], ExtractionPipeline] = {}
        self._submissions: Dict[Tuple[str, str], SubmissionService] = {}
        self._renewals: Dict[Tuple[str, str], RenewalCoordinator] = {}
        session_storage.add_expiry_listener(self.release_session)

    def draft_store(self, session_id: str) -> DraftStore:
        return DraftStore(
            self.session_storage, session_id, default_term_days=self.config.default_term_days
        )

    def queue_store(self, session_id: str) -> QueueStore:
        return QueueStore(self.session_storage, session_id)

    def pipeline(self, session_id: str, scope: str) -> ExtractionPipeline:
        key = (session_id, scope)
        if key not in self._pipelines:
            self._pipelines[key] = ExtractionPipeline(
                self.extraction_client,
                self.record_store,
                config=self.config,
                draft_store=self.draft_store(session_id),
                scope=scope,
            )
        return self._pipelines[key]

    def submission(self, session_id: str, scope: str) -> SubmissionService:
        key = (session_id, scope)
        if key not in self._submissions:
            self._submissions[key] = SubmissionService(
                self.record_store,
                self.document_store,
                draft_store=self.draft_store(session_id),
                scope=scope,
                default_term_days=self.config.default_term_days,
            )
        return self._submissions[key]

    def renewal(self, session_id: str, owner_id: str) -> RenewalCoordinator:
        key = (session_id, owner_id)
        if key not in self._renewals:
            self._renewals[key] = RenewalCoordinator(
                self.queue_store(session_id),
                self.draft_store(session_id),
                self.record_store,
                owner_id,
            )
        return self._renewals[key]

    def close_scope(self, session_id: str, scope: str) -> None:
        """Tear down the workflow for one draft scope."""
        pipeline = self._pipelines.pop((session_id, scope), None)
        if pipeline is not None:
            pipeline.close()
        self._submissions.pop((session_id, scope), None)

    def release_session(self, session_id: str) -> None:
        """Close and forget every workflow of a session.

        Registered as the storage's expiry listener, so workflows of purged
        sessions do not keep drafts or document payloads in memory.
        """
        for key in [key for key in self._pipelines if key[0] == session_id]:
            self.close_scope(*key)
        for key in [key for key in self._submissions if key[0] == session_id]:
            self._submissions.pop(key)
        for key in [key for key in self._renewals if key[0] == session_id]:
            self._renewals.pop(key)

    async def end_session(self, session_id: str) -> None:
        """Close every workflow of a session and drop its stored data."""
        self.release_session(session_id)
        await self.session_storage.end_session(session_id)
        LOGGER.info("Session ended")

    def close(self) -> None:
        for pipeline in self._pipelines.values():
            pipeline.close()
        self._pipelines.clear()
        self._submissions.clear()
        self._renewals.clear()
