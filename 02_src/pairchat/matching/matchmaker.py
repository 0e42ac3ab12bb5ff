"""MatchMaker implementation."""

import random
from typing import Protocol

from ..config import DEFAULT_MATCH_MAX_ATTEMPTS
from ..conversations import IConversationStore
from ..directory import IParticipantDirectory
from ..errors import (
    ConversationNotFound,
    InvalidTransition,
    ReservationConflict,
    StoreUnavailable,
)
from ..logging_config import get_logger
from ..models import Conversation, MatchOutcome, MatchResult, ParticipantStatus

logger = get_logger(__name__)


class IMatchMaker(Protocol):
    """Selects a partner and opens a conversation."""

    async def try_match(self, requester_id: str) -> MatchResult:
        """Pair the requester with a random available participant."""
        ...


class MatchMaker:
    """Random partner selection with per-candidate reservation.

    The random choice is only a tie-break: two concurrent requests may pick
    the same candidate. Exclusion comes from ConversationStore.reserve(),
    which refuses a second open conversation for either member. The loser
    drops that candidate and tries another, at most `max_attempts` times.

    Notifying the chosen partner is left to the caller.
    """

    def __init__(
        self,
        directory: IParticipantDirectory,
        conversations: IConversationStore,
        max_attempts: int = DEFAULT_MATCH_MAX_ATTEMPTS,
        rng: random.Random | None = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._directory = directory
        self._conversations = conversations
        self._max_attempts = max_attempts
        self._rng = rng or random.Random()

    async def try_match(self, requester_id: str) -> MatchResult:
        """Pair the requester with a random available participant."""
        existing = await self._conversations.open_for(requester_id)
        if existing is not None:
            return self._already_paired(requester_id, existing)

        status = await self._directory.set_available(requester_id)
        if status is ParticipantStatus.PAIRED:
            # Either matched concurrently since the check above, or left
            # over from an interrupted match or an expired reservation.
            existing = await self._conversations.open_for(requester_id)
            if existing is not None:
                return self._already_paired(requester_id, existing)
            logger.warning(f"Releasing stale paired status of {requester_id}")
            await self._directory.release(requester_id)

        pool = await self._directory.list_available(excluding=requester_id)

        attempts = 0
        while pool and attempts < self._max_attempts:
            attempts += 1
            candidate_id = self._rng.choice(pool)
            pool.remove(candidate_id)

            try:
                conversation = await self._conversations.reserve(
                    requester_id, candidate_id
                )
            except ReservationConflict as conflict:
                if conflict.participant_id == requester_id:
                    # A concurrent match claimed the requester first.
                    logger.info(
                        f"{requester_id} was paired concurrently in {conflict.conversation_id}"
                    )
                    return MatchResult(
                        outcome=MatchOutcome.ALREADY_PAIRED,
                        conversation=await self._conversations.get(
                            conflict.conversation_id
                        ),
                        conversation_id=conflict.conversation_id,
                    )
                logger.debug(
                    f"Candidate {candidate_id} taken, attempt {attempts}/{self._max_attempts}"
                )
                continue

            try:
                conversation = await self._open(conversation)
            except (InvalidTransition, ConversationNotFound):
                # Reservation expired before it could be confirmed.
                logger.warning(
                    f"Reservation {conversation.id} lapsed before confirmation"
                )
                continue

            return MatchResult(
                outcome=MatchOutcome.MATCHED,
                conversation=conversation,
                conversation_id=conversation.id,
            )

        logger.info(f"No partner for {requester_id} after {attempts} attempt(s)")
        return MatchResult(outcome=MatchOutcome.NO_PARTNER)

    @staticmethod
    def _already_paired(requester_id: str, existing: Conversation) -> MatchResult:
        logger.info(f"{requester_id} already in conversation {existing.id}")
        return MatchResult(
            outcome=MatchOutcome.ALREADY_PAIRED,
            conversation=existing,
            conversation_id=existing.id,
        )

    async def _open(self, conversation: Conversation) -> Conversation:
        """Mark both members paired, then promote the reservation to active."""
        try:
            await self._directory.set_paired(conversation.member_a)
            await self._directory.set_paired(conversation.member_b)
            return await self._conversations.confirm(conversation.id)
        except (StoreUnavailable, InvalidTransition, ConversationNotFound):
            await self._compensate(conversation)
            raise

    async def _compensate(self, conversation: Conversation) -> None:
        """Undo a reservation that could not be opened."""
        try:
            await self._conversations.abort(conversation.id)
            await self._directory.release(conversation.member_a)
            await self._directory.release(conversation.member_b)
        except StoreUnavailable:
            # The pending lease and the stale-status check in try_match
            # clean up whatever is left.
            logger.error(
                "Could not undo reservation",
                exc_info=True,
                extra={"context": {"conversation_id": conversation.id}},
            )
