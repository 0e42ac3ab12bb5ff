"""Conversation-related data models."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class ConversationStatus(str, Enum):
    """Lifecycle of a conversation: pending -> active -> ended."""

    PENDING = "pending"
    ACTIVE = "active"
    ENDED = "ended"


OPEN_STATUSES = (ConversationStatus.PENDING, ConversationStatus.ACTIVE)


@dataclass
class Conversation:
    """A reserved pairing between exactly two participants."""

    id: str
    member_a: str
    member_b: str
    status: ConversationStatus
    created_at: datetime
    ended_at: datetime | None = None
    ended_by: str | None = None
    # Set once both members are released and the partner was told.
    settled_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.member_a == self.member_b:
            raise ValueError(
                f"Conversation {self.id} cannot pair {self.member_a} with itself"
            )

    @property
    def is_open(self) -> bool:
        """Pending or active conversations count against the one-per-member rule."""
        return self.status in OPEN_STATUSES

    def has_member(self, participant_id: str) -> bool:
        return participant_id in (self.member_a, self.member_b)

    def partner_of(self, participant_id: str) -> str:
        """Return the other member of the conversation."""
        if participant_id == self.member_a:
            return self.member_b
        if participant_id == self.member_b:
            return self.member_a
        raise ValueError(
            f"Participant {participant_id} is not a member of conversation {self.id}"
        )
