"""MessageRelay implementation."""

from typing import Protocol

from ..conversations import IConversationStore
from ..logging_config import get_logger
from ..models import RelayOutcome, RelayResult
from ..notifications import INotificationSink

logger = get_logger(__name__)


class IMessageRelay(Protocol):
    """Forwards a message between the two conversation members."""

    async def forward(self, sender_id: str, content: str) -> RelayResult:
        """Deliver content to the sender's partner."""
        ...


class MessageRelay:
    """Relays text to the other member of the sender's active conversation.

    A failed delivery leaves the conversation active: the partner may still
    be there, and the sender can retry. Commands are expected to be filtered
    out by the caller.
    """

    def __init__(
        self,
        conversations: IConversationStore,
        sink: INotificationSink,
    ):
        self._conversations = conversations
        self._sink = sink

    async def forward(self, sender_id: str, content: str) -> RelayResult:
        """Deliver content verbatim to the sender's partner."""
        conversation = await self._conversations.active_for(sender_id)
        if conversation is None:
            logger.debug(f"{sender_id} has no active conversation")
            return RelayResult(outcome=RelayOutcome.NO_ACTIVE_CONVERSATION)

        recipient_id = conversation.partner_of(sender_id)

        if not await self._sink.send(recipient_id, content):
            logger.warning(
                f"Relay {sender_id} -> {recipient_id} failed",
                extra={"context": {"conversation_id": conversation.id}},
            )
            return RelayResult(
                outcome=RelayOutcome.DELIVERY_FAILED,
                conversation_id=conversation.id,
                recipient_id=recipient_id,
            )

        return RelayResult(
            outcome=RelayOutcome.DELIVERED,
            conversation_id=conversation.id,
            recipient_id=recipient_id,
        )
