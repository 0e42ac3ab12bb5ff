"""Exceptions raised by the pairing core."""


class PairingError(Exception):
    """Base class for pairchat errors."""


class StoreUnavailable(PairingError):
    """The backing store did not respond. Retryable by reissuing the event."""


class ConversationNotFound(PairingError):
    """No conversation exists with the given id."""

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation {conversation_id} not found")
        self.conversation_id = conversation_id


class InvalidTransition(PairingError):
    """A conversation status change is not allowed from its current status."""

    def __init__(self, conversation_id: str, current: str, requested: str):
        super().__init__(
            f"Cannot {requested} conversation {conversation_id} in status {current}"
        )
        self.conversation_id = conversation_id
        self.current = current
        self.requested = requested


class ReservationConflict(PairingError):
    """A participant already owns a pending or active conversation."""

    def __init__(self, participant_id: str, conversation_id: str):
        super().__init__(
            f"Participant {participant_id} is already in conversation {conversation_id}"
        )
        self.participant_id = participant_id
        self.conversation_id = conversation_id
