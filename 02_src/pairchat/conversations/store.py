"""ConversationStore implementation."""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Protocol

from ..config import DEFAULT_PENDING_TTL_SECONDS
from ..errors import ConversationNotFound, InvalidTransition, ReservationConflict
from ..logging_config import get_logger
from ..models import Conversation, ConversationStatus, TerminationResult
from ..storage import IStorage

logger = get_logger(__name__)


class IConversationStore(Protocol):
    """Owns conversation records and their state transitions."""

    async def reserve(self, member_a: str, member_b: str) -> Conversation:
        """Create a pending conversation, or raise ReservationConflict."""
        ...

    async def confirm(self, conversation_id: str) -> Conversation:
        """Promote a pending conversation to active."""
        ...

    async def abort(self, conversation_id: str) -> bool:
        """Remove a pending conversation."""
        ...

    async def terminate(
        self, conversation_id: str, initiator_id: str
    ) -> TerminationResult:
        """End an active conversation. Idempotent on ended ones."""
        ...

    async def active_for(
        self, participant_id: str, include_pending: bool = False
    ) -> Conversation | None:
        """Get the single open conversation of a participant."""
        ...

    async def open_for(self, participant_id: str) -> Conversation | None:
        """Get the pending or active conversation of a participant."""
        ...

    async def settle(self, conversation_id: str) -> bool:
        """Mark an ended conversation's follow-up as done."""
        ...

    async def unsettled_for(self, participant_id: str) -> Conversation | None:
        """Get a conversation this participant ended whose follow-up never finished."""
        ...

    async def get(self, conversation_id: str) -> Conversation | None:
        """Get a conversation by ID."""
        ...

    async def history(
        self, participant_id: str, limit: int = 100
    ) -> list[Conversation]:
        """Get past and current conversations of a participant."""
        ...

    async def expire_stale(self) -> int:
        """Drop pending reservations whose lease ran out."""
        ...


class ConversationStore:
    """Conversation lifecycle: pending -> active -> ended.

    Pending conversations hold a lease of `pending_ttl` seconds. A
    reservation that is never confirmed (the matching process died between
    reserve and confirm) stops blocking its members once the lease expires,
    and is purged by the next reservation.
    """

    def __init__(
        self,
        storage: IStorage,
        pending_ttl: float = DEFAULT_PENDING_TTL_SECONDS,
        clock: Callable[[], datetime] | None = None,
    ):
        self._storage = storage
        self._pending_ttl = timedelta(seconds=pending_ttl)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _stale_before(self) -> datetime:
        return self._clock() - self._pending_ttl

    async def reserve(self, member_a: str, member_b: str) -> Conversation:
        """Create a pending conversation, or raise ReservationConflict.

        The existence check for both members and the insert run in one
        store transaction.
        """
        conversation = Conversation(
            id=str(uuid.uuid4()),
            member_a=member_a,
            member_b=member_b,
            status=ConversationStatus.PENDING,
            created_at=self._clock(),
        )

        blocking = await self._storage.insert_conversation_if_free(
            conversation, stale_before=self._stale_before()
        )
        if blocking is not None:
            busy = member_a if blocking.has_member(member_a) else member_b
            logger.debug(
                f"Reservation {member_a}/{member_b} blocked by {blocking.id} ({busy})"
            )
            raise ReservationConflict(busy, blocking.id)

        logger.debug(f"Reserved conversation {conversation.id}")
        return conversation

    async def confirm(self, conversation_id: str) -> Conversation:
        """Promote a pending conversation to active."""
        changed = await self._storage.transition_conversation(
            conversation_id,
            ConversationStatus.PENDING,
            ConversationStatus.ACTIVE,
        )
        conversation = await self._storage.get_conversation(conversation_id)
        if conversation is None:
            raise ConversationNotFound(conversation_id)
        if not changed:
            raise InvalidTransition(
                conversation_id, conversation.status.value, "confirm"
            )

        logger.info(
            f"Conversation {conversation_id} active: "
            f"{conversation.member_a} <-> {conversation.member_b}"
        )
        return conversation

    async def abort(self, conversation_id: str) -> bool:
        """Remove a pending conversation. No ended record is kept."""
        removed = await self._storage.delete_conversation(
            conversation_id, ConversationStatus.PENDING
        )
        if removed:
            logger.debug(f"Aborted pending conversation {conversation_id}")
        return removed

    async def terminate(
        self, conversation_id: str, initiator_id: str
    ) -> TerminationResult:
        """End an active conversation. Idempotent on ended ones.

        Raises ValueError if the initiator is not a member.
        """
        conversation = await self._storage.get_conversation(conversation_id)
        if conversation is None:
            raise ConversationNotFound(conversation_id)
        partner_id = conversation.partner_of(initiator_id)

        changed = await self._storage.transition_conversation(
            conversation_id,
            ConversationStatus.ACTIVE,
            ConversationStatus.ENDED,
            ended_at=self._clock(),
            ended_by=initiator_id,
        )
        conversation = await self._storage.get_conversation(conversation_id)
        if conversation is None:
            raise ConversationNotFound(conversation_id)

        if not changed and conversation.status is not ConversationStatus.ENDED:
            raise InvalidTransition(
                conversation_id, conversation.status.value, "terminate"
            )

        if changed:
            logger.info(f"Conversation {conversation_id} ended by {initiator_id}")

        return TerminationResult(
            conversation=conversation,
            partner_id=partner_id,
            already_ended=not changed,
        )

    async def active_for(
        self, participant_id: str, include_pending: bool = False
    ) -> Conversation | None:
        """Get the single open conversation of a participant.

        Only active conversations are returned unless include_pending is set;
        pending ones past their lease are never returned.
        """
        return await self._storage.find_open_conversation(
            participant_id,
            stale_before=self._stale_before(),
            include_pending=include_pending,
        )

    async def open_for(self, participant_id: str) -> Conversation | None:
        """Get the pending or active conversation of a participant."""
        return await self.active_for(participant_id, include_pending=True)

    async def settle(self, conversation_id: str) -> bool:
        """Mark an ended conversation's follow-up as done.

        Follow-up is releasing both members and telling the partner. Until it
        is settled, a repeated stop from the member who ended it redoes that
        work instead of reporting no conversation.
        """
        return await self._storage.mark_conversation_settled(
            conversation_id, self._clock()
        )

    async def unsettled_for(self, participant_id: str) -> Conversation | None:
        """Get a conversation this participant ended whose follow-up never finished."""
        return await self._storage.find_unsettled_conversation(participant_id)

    async def get(self, conversation_id: str) -> Conversation | None:
        """Get a conversation by ID."""
        return await self._storage.get_conversation(conversation_id)

    async def history(
        self, participant_id: str, limit: int = 100
    ) -> list[Conversation]:
        """Get past and current conversations of a participant (newest first)."""
        return await self._storage.get_conversations_for(participant_id, limit=limit)

    async def expire_stale(self) -> int:
        """Drop pending reservations whose lease ran out."""
        removed = await self._storage.delete_stale_pending(self._stale_before())
        if removed:
            logger.warning(f"Expired {removed} stale pending conversation(s)")
        return removed
