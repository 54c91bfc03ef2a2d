"""Sequential renewal of several policy records.

The queue is persisted head first: while ``b`` is being edited out of
``[b, c, d]`` the stored queue is ``[b, c, d]``. A successful submission of
the head pops it and stores ``[c, d]``, so a reload mid-queue resumes at
the right record. Popping is the only mutation; an empty queue is removed
from storage.

    Idle -> Editing(head) -> AwaitingNext -> Editing(next head) ... -> Finished
                  \\________________ abort ________________/-> Aborted
"""

from typing import Dict, List, Optional

from app.core.exceptions import InvalidTransitionError, RecordNotFoundError, ValidationError
from app.repositories.policy_repository import PolicyRecordStore
from app.schemas.duplicates import DuplicateVerdict
from app.schemas.policy import PolicyDraft
from app.schemas.renewal import RenewalState, RenewalStatus
from app.services.draft_store import DraftStore, QueueStore, draft_scope
from app.services.overlap_detector import DuplicateCandidate, check_duplicate
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

R = RenewalState

_TRANSITIONS: Dict[RenewalState, Dict[str, RenewalState]] = {
    R.IDLE: {"start": R.EDITING, "resume": R.EDITING},
    R.EDITING: {"submitted": R.AWAITING_NEXT, "finish": R.FINISHED, "abort": R.ABORTED},
    R.AWAITING_NEXT: {"advance": R.EDITING, "abort": R.ABORTED},
    R.FINISHED: {"start": R.EDITING, "resume": R.EDITING},
    R.ABORTED: {"start": R.EDITING, "resume": R.EDITING},
}


class RenewalCoordinator:
    """Drives the edit/submit loop over a persisted renewal queue for one owner."""

    def __init__(
        self,
        queue_store: QueueStore,
        draft_store: DraftStore,
        record_store: PolicyRecordStore,
        owner_id: str,
    ):
        self.queue_store = queue_store
        self.draft_store = draft_store
        self.record_store = record_store
        self.owner_id = owner_id
        self._state = RenewalState.IDLE
        self._queue: List[str] = []

    @property
    def state(self) -> RenewalState:
        return self._state

    @property
    def head(self) -> Optional[str]:
        if self._state is RenewalState.EDITING and self._queue:
            return self._queue[0]
        return None

    @property
    def queue(self) -> List[str]:
        return list(self._queue)

    def status(self) -> RenewalStatus:
        head = self.head
        return RenewalStatus(
            state=self._state,
            head=head,
            remaining=self.queue,
            draft_scope=draft_scope(head) if head else None,
        )

    def _fire(self, event: str) -> None:
        allowed = _TRANSITIONS[self._state]
        if event not in allowed:
            raise InvalidTransitionError("RenewalCoordinator", self._state.value, event)
        LOGGER.debug(
            "Renewal transition",
            extra={"from_state": self._state.value, "event": event,
                   "to_state": allowed[event].value},
        )
        self._state = allowed[event]

    async def start(self, record_ids: List[str]) -> PolicyDraft:
        """Queue ``record_ids`` for renewal and open the first one for editing.

        Repeated ids are dropped, keeping the first occurrence.

        Raises:
            ValidationError: If no record ids are given
            RecordNotFoundError: If the first record does not exist
        """
        queue = list(dict.fromkeys(record_id for record_id in record_ids if record_id))
        if not queue:
            raise ValidationError("Select at least one policy to renew")

        if "start" not in _TRANSITIONS[self._state]:
            raise InvalidTransitionError("RenewalCoordinator", self._state.value, "start")
        draft = await self.seed_draft(queue[0])

        self._fire("start")
        self._queue = queue
        await self.queue_store.save(self._queue)
        LOGGER.info("Renewal started", extra={"queue_length": len(queue)})
        return draft

    async def resume(self) -> Optional[PolicyDraft]:
        """Rebuild from the persisted queue after a reload.

        Returns the head draft, reusing one already in progress, or None
        when there is nothing to resume.
        """
        if self._state is RenewalState.AWAITING_NEXT:
            return None
        if self._state is RenewalState.EDITING:
            existing = await self.draft_store.load(draft_scope(self._queue[0]))
            return existing or await self.seed_draft(self._queue[0])

        queue = await self.queue_store.load()
        if not queue:
            return None

        self._fire("resume")
        self._queue = queue
        existing = await self.draft_store.load(draft_scope(queue[0]))
        if existing is not None:
            LOGGER.info("Renewal resumed with saved draft", extra={"queue_length": len(queue)})
            return existing
        return await self.seed_draft(queue[0])

    async def seed_draft(self, record_id: str) -> PolicyDraft:
        """Copy the committed record into the draft store for editing."""
        record = await self.record_store.get(self.owner_id, record_id)
        if record is None:
            raise RecordNotFoundError(f"Policy {record_id} not found")
        draft = PolicyDraft.from_record(record)
        await self.draft_store.save(draft_scope(record_id), draft)
        return draft

    async def check_duplicates(self, draft: PolicyDraft) -> DuplicateVerdict:
        """Screen the head draft, ignoring the record being renewed."""
        if self._state is not RenewalState.EDITING:
            raise InvalidTransitionError(
                "RenewalCoordinator", self._state.value, "check_duplicates"
            )
        records = await self.record_store.query(self.owner_id)
        return check_duplicate(
            DuplicateCandidate.from_draft(draft), records, exclude_id=self._queue[0]
        )

    async def on_submitted(self, record_id: str) -> RenewalState:
        """Pop the head after its successful submission."""
        if self._state is not RenewalState.EDITING or record_id != self._queue[0]:
            raise InvalidTransitionError("RenewalCoordinator", self._state.value, "submitted")

        self._queue.pop(0)
        if self._queue:
            await self.queue_store.save(self._queue)
            self._fire("submitted")
        else:
            await self.queue_store.clear()
            self._fire("finish")
        LOGGER.info(
            "Renewal record submitted",
            extra={"record_id": record_id, "remaining": len(self._queue)},
        )
        return self._state

    async def advance(self) -> PolicyDraft:
        """Continue with the next queued record."""
        self._fire("advance")
        await self.queue_store.save(self._queue)
        return await self.seed_draft(self._queue[0])

    async def abort(self) -> None:
        """Stop renewing; the queue and the head draft are discarded."""
        head = self.head
        self._fire("abort")
        await self.queue_store.clear()
        if head is not None:
            await self.draft_store.clear(draft_scope(head))
        self._queue = []
        LOGGER.info("Renewal aborted")
