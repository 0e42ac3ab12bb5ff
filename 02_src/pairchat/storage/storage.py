"""SQLite storage implementation."""

import asyncio
import json
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Protocol

import aiosqlite

from ..config import resolve_db_path
from ..errors import StoreUnavailable
from ..models import (
    Conversation,
    ConversationStatus,
    Delivery,
    Participant,
    ParticipantStatus,
    TraceEvent,
)

# How long a second process waits on a locked database file.
BUSY_TIMEOUT_MS = 5000

_CONVERSATION_COLUMNS = (
    "id, member_a, member_b, status, created_at, ended_at, ended_by, settled_at"
)


def _ts(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _row_to_conversation(row) -> Conversation:
    return Conversation(
        id=row[0],
        member_a=row[1],
        member_b=row[2],
        status=ConversationStatus(row[3]),
        created_at=_parse_ts(row[4]),
        ended_at=_parse_ts(row[5]),
        ended_by=row[6],
        settled_at=_parse_ts(row[7]),
    )


class IStorage(Protocol):
    """Persistent storage for participants, conversations and audit data."""

    async def init(self) -> None:
        """Initialize database and create tables."""
        ...

    async def close(self) -> None:
        """Close database connection."""
        ...

    # Participants
    async def get_participant(self, participant_id: str) -> Participant | None:
        """Get a participant by ID."""
        ...

    async def insert_participant(
        self, participant_id: str, updated_at: datetime
    ) -> bool:
        """Create an offline participant unless it exists. Return True if created."""
        ...

    async def upsert_available(
        self, participant_id: str, updated_at: datetime
    ) -> ParticipantStatus:
        """Mark available unless paired, in one conditional write. Return resulting status."""
        ...

    async def write_participant_status(
        self, participant_id: str, status: ParticipantStatus, updated_at: datetime
    ) -> None:
        """Unconditionally write a participant status."""
        ...

    async def list_participants(
        self, status: ParticipantStatus, exclude: str | None = None
    ) -> list[str]:
        """List participant IDs with the given status."""
        ...

    # Conversations
    async def insert_conversation_if_free(
        self, conversation: Conversation, stale_before: datetime
    ) -> Conversation | None:
        """Insert a conversation unless a member already has an open one.

        Returns the blocking conversation on conflict, None on success.
        """
        ...

    async def transition_conversation(
        self,
        conversation_id: str,
        from_status: ConversationStatus,
        to_status: ConversationStatus,
        ended_at: datetime | None = None,
        ended_by: str | None = None,
    ) -> bool:
        """Conditionally change a conversation status. Return True if changed."""
        ...

    async def delete_conversation(
        self, conversation_id: str, status: ConversationStatus
    ) -> bool:
        """Delete a conversation only while it has the given status."""
        ...

    async def delete_stale_pending(self, stale_before: datetime) -> int:
        """Delete pending conversations created before the cutoff."""
        ...

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        """Get a conversation by ID."""
        ...

    async def find_open_conversation(
        self,
        participant_id: str,
        stale_before: datetime,
        include_pending: bool = True,
    ) -> Conversation | None:
        """Get the open conversation of a participant, ignoring expired pending ones."""
        ...

    async def get_conversations_for(
        self, participant_id: str, limit: int = 100
    ) -> list[Conversation]:
        """Get conversations of a participant (newest first)."""
        ...

    async def mark_conversation_settled(
        self, conversation_id: str, settled_at: datetime
    ) -> bool:
        """Record that an ended conversation's follow-up is complete."""
        ...

    async def find_unsettled_conversation(
        self, participant_id: str
    ) -> Conversation | None:
        """Get the latest conversation ended by a participant and not yet settled."""
        ...

    # Deliveries
    async def save_delivery(self, delivery: Delivery) -> None:
        """Save an outbox delivery."""
        ...

    async def get_deliveries(
        self, participant_id: str, limit: int = 100
    ) -> list[Delivery]:
        """Get deliveries for a participant (oldest first)."""
        ...

    # TraceEvents
    async def save_trace_event(self, event: TraceEvent) -> None:
        """Save a trace event."""
        ...

    async def get_trace_events(
        self,
        after: datetime | None = None,
        event_types: list[str] | None = None,
        actor: str | None = None,
        limit: int = 100,
    ) -> list[TraceEvent]:
        """Get trace events with optional filters."""
        ...

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        ...


class Storage:
    """SQLite storage implementation.

    The connection runs in autocommit mode. Multi-statement writes use
    BEGIN IMMEDIATE, which takes the database write lock up front, so a
    check-then-insert is a single critical section even across processes
    sharing the file. Coroutines sharing this connection are serialized by
    an asyncio.Lock so their statements never interleave inside a transaction.
    """

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            self._db_path = resolve_db_path()
        else:
            self._db_path = resolve_db_path(db_path)
        self._conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def init(self) -> None:
        """Initialize database and create tables."""
        try:
            self._conn = await aiosqlite.connect(self._db_path, isolation_level=None)
            await self._conn.execute(f"PRAGMA busy_timeout = {BUSY_TIMEOUT_MS}")

            schema_path = Path(__file__).parent / "schema.sql"
            with open(schema_path, "r", encoding="utf-8") as f:
                schema_sql = f.read()
            await self._conn.executescript(schema_sql)
        except aiosqlite.Error as e:
            raise StoreUnavailable(f"Cannot open store at {self._db_path}: {e}") from e

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    @asynccontextmanager
    async def _guard(self) -> AsyncIterator[aiosqlite.Connection]:
        if not self._conn:
            raise RuntimeError("Storage not initialized")

        async with self._lock:
            try:
                yield self._conn
            except aiosqlite.Error as e:
                raise StoreUnavailable(str(e)) from e

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        async with self._guard() as conn:
            await conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                await conn.execute("ROLLBACK")
                raise
            await conn.execute("COMMIT")

    # Participants
    async def get_participant(self, participant_id: str) -> Participant | None:
        """Get a participant by ID."""
        async with self._guard() as conn:
            cursor = await conn.execute(
                """
                SELECT id, status, updated_at
                FROM participants
                WHERE id = ?
                """,
                (participant_id,),
            )
            row = await cursor.fetchone()

        if not row:
            return None

        return Participant(
            id=row[0],
            status=ParticipantStatus(row[1]),
            updated_at=_parse_ts(row[2]),
        )

    async def insert_participant(
        self, participant_id: str, updated_at: datetime
    ) -> bool:
        """Create an offline participant unless it exists. Return True if created."""
        async with self._guard() as conn:
            cursor = await conn.execute(
                """
                INSERT OR IGNORE INTO participants (id, status, updated_at)
                VALUES (?, ?, ?)
                """,
                (participant_id, ParticipantStatus.OFFLINE.value, _ts(updated_at)),
            )
            return cursor.rowcount == 1

    async def upsert_available(
        self, participant_id: str, updated_at: datetime
    ) -> ParticipantStatus:
        """Mark available unless paired, in one conditional write. Return resulting status."""
        async with self._guard() as conn:
            await conn.execute(
                """
                INSERT INTO participants (id, status, updated_at)
                VALUES (?, 'available', ?)
                ON CONFLICT (id) DO UPDATE
                SET status = 'available', updated_at = excluded.updated_at
                WHERE participants.status != 'paired'
                """,
                (participant_id, _ts(updated_at)),
            )
            cursor = await conn.execute(
                "SELECT status FROM participants WHERE id = ?",
                (participant_id,),
            )
            row = await cursor.fetchone()

        return ParticipantStatus(row[0])

    async def write_participant_status(
        self, participant_id: str, status: ParticipantStatus, updated_at: datetime
    ) -> None:
        """Unconditionally write a participant status."""
        async with self._guard() as conn:
            await conn.execute(
                """
                INSERT INTO participants (id, status, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT (id) DO UPDATE
                SET status = excluded.status, updated_at = excluded.updated_at
                """,
                (participant_id, status.value, _ts(updated_at)),
            )

    async def list_participants(
        self, status: ParticipantStatus, exclude: str | None = None
    ) -> list[str]:
        """List participant IDs with the given status."""
        async with self._guard() as conn:
            if exclude is not None:
                cursor = await conn.execute(
                    "SELECT id FROM participants WHERE status = ? AND id != ?",
                    (status.value, exclude),
                )
            else:
                cursor = await conn.execute(
                    "SELECT id FROM participants WHERE status = ?",
                    (status.value,),
                )
            rows = await cursor.fetchall()

        return [row[0] for row in rows]

    # Conversations
    async def insert_conversation_if_free(
        self, conversation: Conversation, stale_before: datetime
    ) -> Conversation | None:
        """Insert a conversation unless a member already has an open one.

        Expired pending reservations are purged in the same transaction.
        Returns the blocking conversation on conflict, None on success.
        """
        members = (conversation.member_a, conversation.member_b)

        async with self._transaction() as conn:
            await conn.execute(
                "DELETE FROM conversations WHERE status = 'pending' AND created_at < ?",
                (_ts(stale_before),),
            )

            cursor = await conn.execute(
                f"""
                SELECT {_CONVERSATION_COLUMNS}
                FROM conversations
                WHERE status IN ('pending', 'active')
                  AND (member_a IN (?, ?) OR member_b IN (?, ?))
                LIMIT 1
                """,
                members + members,
            )
            row = await cursor.fetchone()
            if row:
                return _row_to_conversation(row)

            await conn.execute(
                f"""
                INSERT INTO conversations ({_CONVERSATION_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    conversation.id,
                    conversation.member_a,
                    conversation.member_b,
                    conversation.status.value,
                    _ts(conversation.created_at),
                    _ts(conversation.ended_at) if conversation.ended_at else None,
                    conversation.ended_by,
                    _ts(conversation.settled_at) if conversation.settled_at else None,
                ),
            )

        return None

    async def transition_conversation(
        self,
        conversation_id: str,
        from_status: ConversationStatus,
        to_status: ConversationStatus,
        ended_at: datetime | None = None,
        ended_by: str | None = None,
    ) -> bool:
        """Conditionally change a conversation status. Return True if changed."""
        async with self._guard() as conn:
            cursor = await conn.execute(
                """
                UPDATE conversations
                SET status = ?,
                    ended_at = COALESCE(?, ended_at),
                    ended_by = COALESCE(?, ended_by)
                WHERE id = ? AND status = ?
                """,
                (
                    to_status.value,
                    _ts(ended_at) if ended_at else None,
                    ended_by,
                    conversation_id,
                    from_status.value,
                ),
            )
            return cursor.rowcount == 1

    async def delete_conversation(
        self, conversation_id: str, status: ConversationStatus
    ) -> bool:
        """Delete a conversation only while it has the given status."""
        async with self._guard() as conn:
            cursor = await conn.execute(
                "DELETE FROM conversations WHERE id = ? AND status = ?",
                (conversation_id, status.value),
            )
            return cursor.rowcount == 1

    async def delete_stale_pending(self, stale_before: datetime) -> int:
        """Delete pending conversations created before the cutoff."""
        async with self._guard() as conn:
            cursor = await conn.execute(
                "DELETE FROM conversations WHERE status = 'pending' AND created_at < ?",
                (_ts(stale_before),),
            )
            return cursor.rowcount

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        """Get a conversation by ID."""
        async with self._guard() as conn:
            cursor = await conn.execute(
                f"SELECT {_CONVERSATION_COLUMNS} FROM conversations WHERE id = ?",
                (conversation_id,),
            )
            row = await cursor.fetchone()

        return _row_to_conversation(row) if row else None

    async def find_open_conversation(
        self,
        participant_id: str,
        stale_before: datetime,
        include_pending: bool = True,
    ) -> Conversation | None:
        """Get the open conversation of a participant, ignoring expired pending ones."""
        if include_pending:
            status_clause = (
                "(status = 'active' OR (status = 'pending' AND created_at >= ?))"
            )
            params = (participant_id, participant_id, _ts(stale_before))
        else:
            status_clause = "status = 'active'"
            params = (participant_id, participant_id)

        async with self._guard() as conn:
            cursor = await conn.execute(
                f"""
                SELECT {_CONVERSATION_COLUMNS}
                FROM conversations
                WHERE (member_a = ? OR member_b = ?) AND {status_clause}
                ORDER BY created_at DESC
                LIMIT 1
                """,
                params,
            )
            row = await cursor.fetchone()

        return _row_to_conversation(row) if row else None

    async def get_conversations_for(
        self, participant_id: str, limit: int = 100
    ) -> list[Conversation]:
        """Get conversations of a participant (newest first)."""
        async with self._guard() as conn:
            cursor = await conn.execute(
                f"""
                SELECT {_CONVERSATION_COLUMNS}
                FROM conversations
                WHERE member_a = ? OR member_b = ?
                ORDER BY created_at DESC
                LIMIT ?
                """,
                (participant_id, participant_id, limit),
            )
            rows = await cursor.fetchall()

        return [_row_to_conversation(row) for row in rows]

    async def mark_conversation_settled(
        self, conversation_id: str, settled_at: datetime
    ) -> bool:
        """Record that an ended conversation's follow-up is complete."""
        async with self._guard() as conn:
            cursor = await conn.execute(
                """
                UPDATE conversations SET settled_at = ?
                WHERE id = ? AND status = 'ended' AND settled_at IS NULL
                """,
                (_ts(settled_at), conversation_id),
            )
            return cursor.rowcount == 1

    async def find_unsettled_conversation(
        self, participant_id: str
    ) -> Conversation | None:
        """Get the latest conversation ended by a participant and not yet settled."""
        async with self._guard() as conn:
            cursor = await conn.execute(
                f"""
                SELECT {_CONVERSATION_COLUMNS}
                FROM conversations
                WHERE ended_by = ? AND status = 'ended' AND settled_at IS NULL
                ORDER BY ended_at DESC
                LIMIT 1
                """,
                (participant_id,),
            )
            row = await cursor.fetchone()

        return _row_to_conversation(row) if row else None

    # Deliveries
    async def save_delivery(self, delivery: Delivery) -> None:
        """Save an outbox delivery."""
        if not delivery.id:
            delivery.id = str(uuid.uuid4())

        async with self._guard() as conn:
            await conn.execute(
                """
                INSERT INTO deliveries (id, participant_id, content, timestamp)
                VALUES (?, ?, ?, ?)
                """,
                (
                    delivery.id,
                    delivery.participant_id,
                    delivery.content,
                    _ts(delivery.timestamp),
                ),
            )

    async def get_deliveries(
        self, participant_id: str, limit: int = 100
    ) -> list[Delivery]:
        """Get deliveries for a participant (oldest first)."""
        async with self._guard() as conn:
            cursor = await conn.execute(
                """
                SELECT id, participant_id, content, timestamp
                FROM deliveries
                WHERE participant_id = ?
                ORDER BY timestamp ASC, rowid ASC
                LIMIT ?
                """,
                (participant_id, limit),
            )
            rows = await cursor.fetchall()

        return [
            Delivery(
                id=row[0],
                participant_id=row[1],
                content=row[2],
                timestamp=_parse_ts(row[3]),
            )
            for row in rows
        ]

    # TraceEvents
    async def save_trace_event(self, event: TraceEvent) -> None:
        """Save a trace event."""
        async with self._guard() as conn:
            await conn.execute(
                """
                INSERT INTO trace_events (id, event_type, actor, data, timestamp)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    event.id or str(uuid.uuid4()),
                    event.event_type,
                    event.actor,
                    json.dumps(event.data),
                    _ts(event.timestamp),
                ),
            )

    async def get_trace_events(
        self,
        after: datetime | None = None,
        event_types: list[str] | None = None,
        actor: str | None = None,
        limit: int = 100,
    ) -> list[TraceEvent]:
        """Get trace events with optional filters."""
        # Build query dynamically
        conditions = []
        params = []

        if after:
            conditions.append("timestamp > ?")
            params.append(_ts(after))
        if event_types:
            placeholders = ",".join("?" * len(event_types))
            conditions.append(f"event_type IN ({placeholders})")
            params.extend(event_types)
        if actor:
            conditions.append("actor = ?")
            params.append(actor)

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        query = f"""
            SELECT id, event_type, actor, data, timestamp
            FROM trace_events
            {where_clause}
            ORDER BY timestamp DESC
            LIMIT ?
        """
        params.append(limit)

        async with self._guard() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()

        return [
            TraceEvent(
                id=row[0],
                event_type=row[1],
                actor=row[2],
                data=json.loads(row[3]),
                timestamp=_parse_ts(row[4]),
            )
            for row in rows
        ]

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        tables = [
            "deliveries",
            "conversations",
            "participants",
            "trace_events",
        ]

        async with self._transaction() as conn:
            for table in tables:
                await conn.execute(f"DELETE FROM {table}")
