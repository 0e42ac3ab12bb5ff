"""ChatService: handles inbound participant events."""

from typing import Protocol

from ..conversations import IConversationStore
from ..directory import IParticipantDirectory
from ..errors import StoreUnavailable
from ..logging_config import get_logger
from ..matching import IMatchMaker
from ..models import (
    Conversation,
    MatchOutcome,
    MatchResult,
    Participant,
    RelayOutcome,
    RelayResult,
    StopOutcome,
    StopResult,
)
from ..notifications import INotificationSink, notices
from ..relay import IMessageRelay
from ..tracker import ITracker

logger = get_logger(__name__)

ACTOR = "chat_service"
COMMAND_PREFIX = "/"


class IChatService(Protocol):
    """Entry point for RequestAvailable, RequestMatch, TextMessage and RequestStop."""

    async def request_available(self, participant_id: str) -> MatchResult:
        """Mark the participant available and try to match them."""
        ...

    async def request_match(self, participant_id: str) -> MatchResult:
        """Try to match the participant."""
        ...

    async def send_text(self, participant_id: str, text: str) -> RelayResult:
        """Relay text to the participant's partner."""
        ...

    async def request_stop(self, participant_id: str) -> StopResult:
        """End the participant's active conversation."""
        ...

    async def go_offline(self, participant_id: str) -> StopResult:
        """End any active conversation and leave the pool."""
        ...

    async def describe(
        self, participant_id: str
    ) -> tuple[Participant, Conversation | None]:
        """Return participant record and active conversation."""
        ...


class ChatService:
    """Routes participant events to the pairing core and notifies partners.

    Notifications to the partner are best-effort: a failed send is logged
    and recorded but never undoes a state change.
    """

    def __init__(
        self,
        directory: IParticipantDirectory,
        conversations: IConversationStore,
        matchmaker: IMatchMaker,
        relay: IMessageRelay,
        sink: INotificationSink,
        tracker: ITracker,
    ):
        self._directory = directory
        self._conversations = conversations
        self._matchmaker = matchmaker
        self._relay = relay
        self._sink = sink
        self._tracker = tracker

    async def request_available(self, participant_id: str) -> MatchResult:
        """Mark the participant available and try to match them."""
        await self._directory.touch(participant_id)
        status = await self._directory.set_available(participant_id)

        await self._track(
            "availability_requested",
            {"participant_id": participant_id, "status": status.value},
        )

        return await self._match(participant_id)

    async def request_match(self, participant_id: str) -> MatchResult:
        """Try to match the participant."""
        await self._directory.touch(participant_id)
        return await self._match(participant_id)

    async def _match(self, participant_id: str) -> MatchResult:
        result = await self._matchmaker.try_match(participant_id)

        data = {
            "participant_id": participant_id,
            "outcome": result.outcome.value,
            "conversation_id": result.conversation_id,
        }

        if result.outcome is MatchOutcome.MATCHED:
            partner_id = result.conversation.partner_of(participant_id)
            result.partner_notified = await self._sink.send(
                partner_id, notices.MATCH_FOUND
            )
            if not result.partner_notified:
                logger.warning(
                    "Match notice not delivered",
                    extra={
                        "context": {
                            "partner_id": partner_id,
                            "conversation_id": result.conversation_id,
                        }
                    },
                )

            data["partner_id"] = partner_id
            data["partner_notified"] = result.partner_notified
            await self._track("match_created", data)
        else:
            await self._track("match_not_made", data)

        return result

    async def send_text(self, participant_id: str, text: str) -> RelayResult:
        """Relay text to the participant's partner. Commands are not relayed."""
        if text.startswith(COMMAND_PREFIX):
            logger.debug(f"Ignoring command from {participant_id}: {text[:32]}")
            return RelayResult(outcome=RelayOutcome.COMMAND_IGNORED)

        result = await self._relay.forward(participant_id, text)

        # Message content is not recorded.
        await self._track(
            "message_relayed",
            {
                "sender_id": participant_id,
                "recipient_id": result.recipient_id,
                "conversation_id": result.conversation_id,
                "outcome": result.outcome.value,
                "length": len(text),
            },
        )
        return result

    async def request_stop(self, participant_id: str) -> StopResult:
        """End the participant's active conversation.

        Both members go back to available. The partner is released and
        notified only by the call that actually ended the conversation. If
        that call failed halfway, the next stop from the same participant
        finishes it.
        """
        conversation = await self._conversations.active_for(participant_id)
        if conversation is None:
            interrupted = await self._conversations.unsettled_for(participant_id)
            if interrupted is None:
                logger.debug(f"Stop from {participant_id} without a conversation")
                return StopResult(outcome=StopOutcome.NO_ACTIVE_CONVERSATION)

            logger.warning(
                "Finishing interrupted stop",
                extra={
                    "context": {
                        "participant_id": participant_id,
                        "conversation_id": interrupted.id,
                    }
                },
            )
            return await self._settle(participant_id, interrupted)

        termination = await self._conversations.terminate(
            conversation.id, participant_id
        )

        if termination.already_ended:
            # The partner's stop won; their call handles the follow-up.
            await self._release_if_free(participant_id)
            return StopResult(
                outcome=StopOutcome.ENDED,
                conversation_id=conversation.id,
                partner_id=termination.partner_id,
            )

        return await self._settle(participant_id, termination.conversation)

    async def _settle(
        self, participant_id: str, conversation: Conversation
    ) -> StopResult:
        """Release both members, tell the partner, then mark it settled."""
        partner_id = conversation.partner_of(participant_id)

        await self._release_if_free(participant_id)
        await self._release_if_free(partner_id)

        notified = await self._sink.send(partner_id, notices.PARTNER_LEFT)
        if not notified:
            logger.warning(
                "End notice not delivered",
                extra={
                    "context": {
                        "partner_id": partner_id,
                        "conversation_id": conversation.id,
                    }
                },
            )

        await self._conversations.settle(conversation.id)

        await self._track(
            "conversation_ended",
            {
                "conversation_id": conversation.id,
                "ended_by": participant_id,
                "partner_id": partner_id,
                "partner_notified": notified,
            },
        )

        return StopResult(
            outcome=StopOutcome.ENDED,
            conversation_id=conversation.id,
            partner_id=partner_id,
            partner_notified=notified,
        )

    async def _release_if_free(self, participant_id: str) -> None:
        # A member matched again in the meantime keeps their paired status.
        if await self._conversations.open_for(participant_id) is None:
            await self._directory.release(participant_id)

    async def _track(self, event_type: str, data: dict) -> None:
        # Audit writes never turn a completed state change into an error.
        try:
            await self._tracker.track(event_type, ACTOR, data)
        except StoreUnavailable:
            logger.error(f"Could not record {event_type}", exc_info=True)

    async def go_offline(self, participant_id: str) -> StopResult:
        """End any active conversation and leave the pool."""
        result = await self.request_stop(participant_id)
        await self._directory.set_offline(participant_id)

        await self._track(
            "participant_offline",
            {
                "participant_id": participant_id,
                "conversation_id": result.conversation_id,
            },
        )
        return result

    async def describe(
        self, participant_id: str
    ) -> tuple[Participant, Conversation | None]:
        """Return participant record and active conversation."""
        participant = await self._directory.get(participant_id)
        if participant is None:
            participant = Participant(id=participant_id)
        conversation = await self._conversations.active_for(participant_id)
        return participant, conversation
