"""Tests for session storage, draft persistence and the renewal queue store."""

from datetime import date

import pytest

from app.core.exceptions import ValidationError
from app.core.session_storage import InMemorySessionStorage
from app.schemas.policy import AttachedFile, ParseErrorState, PolicyCategory, PolicyDraft
from app.services.draft_store import (
    NEW_RECORD_SCOPE,
    DraftStore,
    QueueStore,
    draft_scope,
    record_id_from_scope,
)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestSessionStorage:

    @pytest.mark.asyncio
    async def test_sessions_are_isolated(self, session_storage):
        await session_storage.set_item("a", "key", "1")

        assert await session_storage.get_item("b", "key") is None
        assert await session_storage.get_item("a", "key") == "1"

    @pytest.mark.asyncio
    async def test_idle_sessions_are_purged(self):
        clock = FakeClock()
        storage = InMemorySessionStorage(idle_timeout_seconds=60, clock=clock)
        await storage.set_item("a", "key", "1")

        clock.now = 61
        assert await storage.get_item("a", "key") is None
        assert storage.session_count == 0

    @pytest.mark.asyncio
    async def test_activity_keeps_session_alive(self):
        clock = FakeClock()
        storage = InMemorySessionStorage(idle_timeout_seconds=60, clock=clock)
        await storage.set_item("a", "key", "1")

        clock.now = 50
        assert await storage.get_item("a", "key") == "1"
        clock.now = 100
        assert await storage.get_item("a", "key") == "1"

    @pytest.mark.asyncio
    async def test_end_session_drops_everything(self, session_storage):
        await session_storage.set_item("a", "draft:new-record", "{}")
        await session_storage.set_item("a", "renewal-queue", "[]")

        await session_storage.end_session("a")

        assert await session_storage.get_item("a", "renewal-queue") is None
        assert session_storage.session_count == 0


class TestDraftStore:

    @pytest.mark.asyncio
    async def test_round_trip_with_unset_optional_fields(self, draft_store):
        draft = PolicyDraft(
            policy_number="POL-1",
            category=PolicyCategory.HEALTH,
            sum_insured="500000",
            active_date=date(2025, 1, 1),
        )

        await draft_store.save(NEW_RECORD_SCOPE, draft)

        loaded = await draft_store.load(NEW_RECORD_SCOPE)
        assert loaded.model_dump() == draft.model_dump()
        assert loaded.idv is None and loaded.policy_term is None

    @pytest.mark.asyncio
    async def test_round_trip_with_transient_fields(self, draft_store):
        draft = PolicyDraft(
            attached_file=AttachedFile(
                filename="p.pdf", content_type="application/pdf", size_bytes=4, payload="JVBERg=="
            ),
            parse_error=ParseErrorState(kind="rate_limited", message="Too many requests"),
            touched_fields=["client_name"],
        )

        await draft_store.save("record:rec-1", draft)

        loaded = await draft_store.load("record:rec-1")
        assert loaded.model_dump() == draft.model_dump()

    @pytest.mark.asyncio
    async def test_scopes_do_not_collide(self, draft_store):
        await draft_store.save(NEW_RECORD_SCOPE, PolicyDraft(policy_number="NEW"))
        await draft_store.save(draft_scope("rec-1"), PolicyDraft(policy_number="EDIT"))

        assert (await draft_store.load(NEW_RECORD_SCOPE)).policy_number == "NEW"
        assert (await draft_store.load("record:rec-1")).policy_number == "EDIT"

    @pytest.mark.asyncio
    async def test_clear(self, draft_store):
        await draft_store.save(NEW_RECORD_SCOPE, PolicyDraft())

        await draft_store.clear(NEW_RECORD_SCOPE)

        assert await draft_store.load(NEW_RECORD_SCOPE) is None

    @pytest.mark.asyncio
    async def test_unreadable_draft_is_discarded(self, session_storage, draft_store):
        await session_storage.set_item(draft_store.session_id, "draft:new-record", "{not json")

        assert await draft_store.load(NEW_RECORD_SCOPE) is None
        assert await session_storage.get_item(draft_store.session_id, "draft:new-record") is None

    @pytest.mark.asyncio
    async def test_load_or_new_carries_record_id(self, draft_store):
        draft = await draft_store.load_or_new("record:rec-9")

        assert draft.record_id == "rec-9"


class TestApplyEdit:

    @pytest.mark.asyncio
    async def test_every_edit_is_written_through(self, draft_store):
        await draft_store.apply_edit(NEW_RECORD_SCOPE, "client_name", "asha rao")

        stored = await draft_store.load(NEW_RECORD_SCOPE)
        assert stored.client_name == "Asha Rao"
        assert stored.touched_fields == ["client_name"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "field_name,raw,expected",
        [
            ("policy_number", "pol-12", "POL-12"),
            ("client_name", "ravi k2umar", "Ravi Kumar"),
            ("vehicle_number", "mh 01-ab 1234", "MH01AB1234"),
            ("contact_number", "+91 98765 43210 99", "9198765432"),
            ("agent_code", "sunil.m", "Sunilm"),
        ],
    )
    async def test_values_are_sanitised(self, draft_store, field_name, raw, expected):
        draft = await draft_store.apply_edit(NEW_RECORD_SCOPE, field_name, raw)

        assert getattr(draft, field_name) == expected

    @pytest.mark.asyncio
    async def test_active_date_sets_expiry(self, draft_store):
        draft = await draft_store.apply_edit(NEW_RECORD_SCOPE, "active_date", "2025-01-01")

        assert draft.active_date == date(2025, 1, 1)
        assert draft.expiry_date == date(2025, 12, 31)

    @pytest.mark.asyncio
    async def test_category_edit_is_remembered(self, draft_store):
        draft = await draft_store.apply_edit(NEW_RECORD_SCOPE, "category", "Life Insurance")

        assert draft.category is PolicyCategory.LIFE
        assert draft.is_user_set("category")

    @pytest.mark.asyncio
    async def test_unknown_field_is_rejected(self, draft_store):
        with pytest.raises(ValidationError):
            await draft_store.apply_edit(NEW_RECORD_SCOPE, "attached_file", None)

    @pytest.mark.asyncio
    async def test_invalid_value_is_rejected(self, draft_store):
        with pytest.raises(ValidationError):
            await draft_store.apply_edit(NEW_RECORD_SCOPE, "active_date", "next tuesday")

        assert await draft_store.load(NEW_RECORD_SCOPE) is None


class TestQueueStore:

    @pytest.mark.asyncio
    async def test_round_trip(self, queue_store):
        await queue_store.save(["b", "c", "d"])

        assert await queue_store.load() == ["b", "c", "d"]

    @pytest.mark.asyncio
    async def test_clear_removes_key(self, queue_store, session_storage):
        await queue_store.save(["b"])

        await queue_store.clear()

        assert await session_storage.get_item(queue_store.session_id, QueueStore.KEY) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["not json", '{"a": 1}', "[1, 2]"])
    async def test_malformed_queue_is_discarded(self, queue_store, session_storage, raw):
        await session_storage.set_item(queue_store.session_id, QueueStore.KEY, raw)

        assert await queue_store.load() is None


@pytest.mark.parametrize(
    "scope,record_id",
    [("new-record", None), ("record:rec-1", "rec-1"), ("record:", None), ("other", None)],
)
def test_record_id_from_scope(scope, record_id):
    assert record_id_from_scope(scope) == record_id


@pytest.mark.asyncio
async def test_separate_sessions_use_separate_drafts(session_storage):
    await DraftStore(session_storage, "a").save(NEW_RECORD_SCOPE, PolicyDraft(policy_number="A"))

    assert await DraftStore(session_storage, "b").load(NEW_RECORD_SCOPE) is None
