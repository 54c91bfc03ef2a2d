"""Session-scoped persistence for in-progress drafts and the renewal queue.

Each workflow writes under its own scope key ("new-record", or one per
record being edited) so concurrent workflows in one session never
collide. Every field edit is written through immediately.
"""

import json
from datetime import timedelta
from typing import Any, List, Optional

from pydantic import ValidationError as PydanticValidationError

from app.core.exceptions import ValidationError
from app.core.session_storage import SessionStorage
from app.schemas.policy import PolicyDraft
from app.utils.field_normalization import sanitize_field
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

NEW_RECORD_SCOPE = "new-record"

# Fields that belong to the workflow, not the user
_INTERNAL_FIELDS = {
    "record_id",
    "existing_document_path",
    "attached_file",
    "parse_error",
    "touched_fields",
}
EDITABLE_FIELDS = frozenset(set(PolicyDraft.model_fields) - _INTERNAL_FIELDS)


def draft_scope(record_id: Optional[str] = None) -> str:
    """Scope key for creating a new record or editing ``record_id``."""
    return NEW_RECORD_SCOPE if record_id is None else f"record:{record_id}"


def record_id_from_scope(scope: str) -> Optional[str]:
    if scope.startswith("record:"):
        return scope[len("record:"):] or None
    return None


class DraftStore:
    """Saves, loads and clears drafts for one browser session."""

    KEY_PREFIX = "draft:"

    def __init__(self, storage: SessionStorage, session_id: str, default_term_days: int = 364):
        self.storage = storage
        self.session_id = session_id
        self.default_term_days = default_term_days

    def _key(self, scope: str) -> str:
        return f"{self.KEY_PREFIX}{scope}"

    async def save(self, scope: str, draft: PolicyDraft) -> None:
        await self.storage.set_item(self.session_id, self._key(scope), draft.model_dump_json())

    async def load(self, scope: str) -> Optional[PolicyDraft]:
        raw = await self.storage.get_item(self.session_id, self._key(scope))
        if raw is None:
            return None
        try:
            return PolicyDraft.model_validate_json(raw)
        except PydanticValidationError:
            LOGGER.warning("Discarding unreadable draft", extra={"scope": scope})
            await self.clear(scope)
            return None

    async def clear(self, scope: str) -> None:
        await self.storage.remove_item(self.session_id, self._key(scope))

    async def load_or_new(self, scope: str) -> PolicyDraft:
        draft = await self.load(scope)
        if draft is None:
            draft = PolicyDraft(record_id=record_id_from_scope(scope))
        return draft

    async def apply_edit(self, scope: str, field_name: str, value: Any) -> PolicyDraft:
        """Apply one user edit and write the draft through.

        The value is sanitised the way the entry form does it. Setting the
        active date also moves the expiry date to the end of a default term.

        Raises:
            ValidationError: If the field is unknown or the value has the wrong type
        """
        if field_name not in EDITABLE_FIELDS:
            raise ValidationError(f"'{field_name}' is not an editable field")

        draft = await self.load_or_new(scope)
        values = draft.model_dump()
        values[field_name] = sanitize_field(field_name, value)
        try:
            updated = PolicyDraft.model_validate(values)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid value for '{field_name}'", original_error=e)

        if field_name == "active_date" and updated.active_date is not None:
            updated.expiry_date = updated.active_date + timedelta(days=self.default_term_days)
        if field_name not in updated.touched_fields:
            updated.touched_fields.append(field_name)

        await self.save(scope, updated)
        return updated


class QueueStore:
    """Persists the renewal queue for one browser session."""

    KEY = "renewal-queue"

    def __init__(self, storage: SessionStorage, session_id: str):
        self.storage = storage
        self.session_id = session_id

    async def save(self, queue: List[str]) -> None:
        await self.storage.set_item(self.session_id, self.KEY, json.dumps(list(queue)))

    async def load(self) -> Optional[List[str]]:
        raw = await self.storage.get_item(self.session_id, self.KEY)
        if raw is None:
            return None
        try:
            queue = json.loads(raw)
        except json.JSONDecodeError:
            LOGGER.warning("Discarding unreadable renewal queue")
            await self.clear()
            return None
        if not isinstance(queue, list) or not all(isinstance(item, str) for item in queue):
            LOGGER.warning("Discarding malformed renewal queue")
            await self.clear()
            return None
        return queue

    async def clear(self) -> None:
        await self.storage.remove_item(self.session_id, self.KEY)
