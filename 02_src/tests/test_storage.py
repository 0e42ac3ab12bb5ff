"""Tests for Storage."""

from datetime import datetime, timedelta, timezone

import pytest

from pairchat.errors import StoreUnavailable
from pairchat.models import (
    Conversation,
    ConversationStatus,
    Delivery,
    ParticipantStatus,
    TraceEvent,
)
from pairchat.storage import Storage

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def pending(conv_id: str, a: str, b: str, created_at: datetime = T0) -> Conversation:
    return Conversation(
        id=conv_id,
        member_a=a,
        member_b=b,
        status=ConversationStatus.PENDING,
        created_at=created_at,
    )


class TestStorageInit:
    """Tests for Storage initialization."""

    async def test_init_creates_tables(self, storage):
        """Test that init creates all tables."""
        async with storage._conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        ) as cursor:
            tables = [row[0] for row in await cursor.fetchall()]
            assert "participants" in tables
            assert "conversations" in tables
            assert "deliveries" in tables
            assert "trace_events" in tables

    async def test_use_before_init_raises(self):
        """Test that calls before init() fail loudly."""
        st = Storage(":memory:")
        with pytest.raises(RuntimeError, match="not initialized"):
            await st.get_participant("alice")

    async def test_driver_error_is_store_unavailable(self):
        """Driver errors surface as StoreUnavailable."""
        st = Storage(":memory:")
        await st.init()
        await st._conn.execute("DROP TABLE participants")

        with pytest.raises(StoreUnavailable):
            await st.get_participant("alice")
        await st.close()


class TestStorageParticipants:
    """Tests for participant rows."""

    async def test_get_unknown_participant(self, storage):
        """Unknown participant returns None."""
        assert await storage.get_participant("ghost") is None

    async def test_insert_participant_once(self, storage):
        """insert_participant creates an offline row only the first time."""
        assert await storage.insert_participant("alice", T0) is True
        assert await storage.insert_participant("alice", T0) is False

        participant = await storage.get_participant("alice")
        assert participant.status is ParticipantStatus.OFFLINE
        assert participant.updated_at == T0

    async def test_upsert_available_creates_row(self, storage):
        """upsert_available works for unseen participants."""
        status = await storage.upsert_available("alice", T0)
        assert status is ParticipantStatus.AVAILABLE

    async def test_upsert_available_keeps_paired(self, storage):
        """upsert_available leaves a paired participant untouched."""
        await storage.write_participant_status("alice", ParticipantStatus.PAIRED, T0)

        later = T0 + timedelta(seconds=5)
        status = await storage.upsert_available("alice", later)

        assert status is ParticipantStatus.PAIRED
        participant = await storage.get_participant("alice")
        assert participant.updated_at == T0

    async def test_list_participants_excludes_caller(self, storage):
        """list_participants filters by status and excludes one id."""
        await storage.upsert_available("alice", T0)
        await storage.upsert_available("bob", T0)
        await storage.write_participant_status("carol", ParticipantStatus.OFFLINE, T0)

        ids = await storage.list_participants(
            ParticipantStatus.AVAILABLE, exclude="alice"
        )
        assert ids == ["bob"]


class TestStorageConversations:
    """Tests for conversation rows."""

    async def test_insert_if_free(self, storage):
        """A conversation is inserted when both members are free."""
        blocking = await storage.insert_conversation_if_free(
            pending("c1", "alice", "bob"), stale_before=T0 - timedelta(seconds=30)
        )
        assert blocking is None

        stored = await storage.get_conversation("c1")
        assert stored.status is ConversationStatus.PENDING
        assert stored.created_at == T0

    async def test_insert_blocked_by_open_conversation(self, storage):
        """A member with an open conversation blocks a new one."""
        cutoff = T0 - timedelta(seconds=30)
        await storage.insert_conversation_if_free(pending("c1", "alice", "bob"), cutoff)

        blocking = await storage.insert_conversation_if_free(
            pending("c2", "carol", "bob"), cutoff
        )

        assert blocking is not None
        assert blocking.id == "c1"
        assert await storage.get_conversation("c2") is None

    async def test_insert_purges_stale_pending(self, storage):
        """Expired pending rows are removed before the check."""
        await storage.insert_conversation_if_free(
            pending("c1", "alice", "bob", created_at=T0),
            stale_before=T0 - timedelta(seconds=30),
        )

        later = T0 + timedelta(seconds=60)
        blocking = await storage.insert_conversation_if_free(
            pending("c2", "carol", "bob", created_at=later),
            stale_before=later - timedelta(seconds=30),
        )

        assert blocking is None
        assert await storage.get_conversation("c1") is None

    async def test_ended_conversation_does_not_block(self, storage):
        """Ended conversations are kept but do not block."""
        cutoff = T0 - timedelta(seconds=30)
        await storage.insert_conversation_if_free(pending("c1", "alice", "bob"), cutoff)
        await storage.transition_conversation(
            "c1", ConversationStatus.PENDING, ConversationStatus.ACTIVE
        )
        await storage.transition_conversation(
            "c1", ConversationStatus.ACTIVE, ConversationStatus.ENDED, ended_at=T0
        )

        blocking = await storage.insert_conversation_if_free(
            pending("c2", "alice", "bob"), cutoff
        )
        assert blocking is None

    async def test_transition_is_conditional(self, storage):
        """transition_conversation only applies from the expected status."""
        await storage.insert_conversation_if_free(
            pending("c1", "alice", "bob"), T0 - timedelta(seconds=30)
        )

        assert not await storage.transition_conversation(
            "c1", ConversationStatus.ACTIVE, ConversationStatus.ENDED
        )
        assert await storage.transition_conversation(
            "c1", ConversationStatus.PENDING, ConversationStatus.ACTIVE
        )

    async def test_delete_only_with_status(self, storage):
        """delete_conversation refuses rows in another status."""
        await storage.insert_conversation_if_free(
            pending("c1", "alice", "bob"), T0 - timedelta(seconds=30)
        )
        await storage.transition_conversation(
            "c1", ConversationStatus.PENDING, ConversationStatus.ACTIVE
        )

        assert not await storage.delete_conversation("c1", ConversationStatus.PENDING)
        assert await storage.get_conversation("c1") is not None

    async def test_settled_conversation_is_not_unsettled(self, storage):
        """find_unsettled_conversation only sees ended, unsettled rows by the ender."""
        await storage.insert_conversation_if_free(
            pending("c1", "alice", "bob"), T0 - timedelta(seconds=30)
        )
        await storage.transition_conversation(
            "c1", ConversationStatus.PENDING, ConversationStatus.ACTIVE
        )
        await storage.transition_conversation(
            "c1",
            ConversationStatus.ACTIVE,
            ConversationStatus.ENDED,
            ended_at=T0,
            ended_by="alice",
        )

        assert (await storage.find_unsettled_conversation("alice")).id == "c1"
        assert await storage.mark_conversation_settled("c1", T0)
        assert await storage.find_unsettled_conversation("alice") is None

    async def test_find_open_ignores_stale_pending(self, storage):
        """find_open_conversation skips pending rows past the cutoff."""
        await storage.insert_conversation_if_free(
            pending("c1", "alice", "bob"), T0 - timedelta(seconds=30)
        )

        fresh = await storage.find_open_conversation(
            "alice", stale_before=T0 - timedelta(seconds=30)
        )
        stale = await storage.find_open_conversation(
            "alice", stale_before=T0 + timedelta(seconds=1)
        )
        active_only = await storage.find_open_conversation(
            "alice", stale_before=T0, include_pending=False
        )

        assert fresh.id == "c1"
        assert stale is None
        assert active_only is None

    async def test_self_pairing_rejected_by_schema(self, storage):
        """The CHECK constraint rejects identical members."""
        with pytest.raises(StoreUnavailable):
            await _insert_raw(storage)


async def _insert_raw(storage):
    async with storage._guard() as conn:
        await conn.execute(
            "INSERT INTO conversations (id, member_a, member_b, status, created_at) "
            "VALUES ('x', 'alice', 'alice', 'active', '2024-01-01T12:00:00.000000+00:00')"
        )


class TestStorageDeliveries:
    """Tests for outbox deliveries."""

    async def test_save_and_get_deliveries(self, storage):
        """Deliveries come back oldest first per participant."""
        await storage.save_delivery(
            Delivery(id="d2", participant_id="bob", content="second", timestamp=T0 + timedelta(seconds=1))
        )
        await storage.save_delivery(
            Delivery(id="d1", participant_id="bob", content="first", timestamp=T0)
        )
        await storage.save_delivery(
            Delivery(id="d3", participant_id="alice", content="other", timestamp=T0)
        )

        deliveries = await storage.get_deliveries("bob")
        assert [d.content for d in deliveries] == ["first", "second"]

    async def test_save_delivery_generates_id(self, storage):
        """Missing delivery ids are generated."""
        delivery = Delivery(id=None, participant_id="bob", content="hi", timestamp=T0)  # type: ignore
        await storage.save_delivery(delivery)
        assert delivery.id is not None


class TestStorageTraceEvents:
    """Tests for TraceEvent storage."""

    async def test_get_trace_events_filters(self, storage):
        """Filters by type, actor and time; newest first."""
        for i, (event_type, actor) in enumerate(
            [("match_created", "chat_service"), ("conversation_ended", "chat_service"), ("sim_started", "sim")]
        ):
            await storage.save_trace_event(
                TraceEvent(
                    id=f"e{i}",
                    event_type=event_type,
                    actor=actor,
                    data={"i": i},
                    timestamp=T0 + timedelta(seconds=i),
                )
            )

        by_actor = await storage.get_trace_events(actor="chat_service")
        assert [e.id for e in by_actor] == ["e1", "e0"]

        by_type = await storage.get_trace_events(event_types=["sim_started"])
        assert [e.data for e in by_type] == [{"i": 2}]

        after = await storage.get_trace_events(after=T0)
        assert {e.id for e in after} == {"e1", "e2"}


class TestStorageClear:
    """Tests for Storage.clear()."""

    async def test_clear_removes_everything(self, storage):
        """clear() empties all tables."""
        await storage.upsert_available("alice", T0)
        await storage.insert_conversation_if_free(
            pending("c1", "alice", "bob"), T0 - timedelta(seconds=30)
        )

        await storage.clear()

        assert await storage.get_participant("alice") is None
        assert await storage.get_conversation("c1") is None
