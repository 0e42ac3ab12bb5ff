"""Outcome values returned by the pairing core.

Transient outcomes (no partner, already paired, no active conversation) are
normal results the caller renders as guidance, not errors.
"""

from dataclasses import dataclass
from enum import Enum

from .conversations import Conversation


class MatchOutcome(str, Enum):
    """Result of a match attempt."""

    MATCHED = "matched"
    NO_PARTNER = "no_partner"
    ALREADY_PAIRED = "already_paired"


class RelayOutcome(str, Enum):
    """Result of relaying a text message."""

    DELIVERED = "delivered"
    NO_ACTIVE_CONVERSATION = "no_active_conversation"
    DELIVERY_FAILED = "delivery_failed"
    COMMAND_IGNORED = "command_ignored"


class StopOutcome(str, Enum):
    """Result of a stop request."""

    ENDED = "ended"
    NO_ACTIVE_CONVERSATION = "no_active_conversation"


@dataclass
class MatchResult:
    """Outcome of MatchMaker.try_match()."""

    outcome: MatchOutcome
    conversation: Conversation | None = None
    conversation_id: str | None = None
    partner_notified: bool | None = None


@dataclass
class RelayResult:
    """Outcome of MessageRelay.forward()."""

    outcome: RelayOutcome
    conversation_id: str | None = None
    recipient_id: str | None = None


@dataclass
class TerminationResult:
    """Outcome of ConversationStore.terminate()."""

    conversation: Conversation
    partner_id: str
    already_ended: bool = False


@dataclass
class StopResult:
    """Outcome of a participant's stop request."""

    outcome: StopOutcome
    conversation_id: str | None = None
    partner_id: str | None = None
    partner_notified: bool = False
