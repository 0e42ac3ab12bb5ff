"""Core data models for pairchat."""

from .participants import Participant, ParticipantStatus
from .conversations import OPEN_STATUSES, Conversation, ConversationStatus
from .notifications import Delivery
from .outcomes import (
    MatchOutcome,
    MatchResult,
    RelayOutcome,
    RelayResult,
    StopOutcome,
    StopResult,
    TerminationResult,
)
from .tracing import TraceEvent

__all__ = [
    # Participants
    "Participant",
    "ParticipantStatus",
    # Conversations
    "Conversation",
    "ConversationStatus",
    "OPEN_STATUSES",
    # Notifications
    "Delivery",
    # Outcomes
    "MatchOutcome",
    "MatchResult",
    "RelayOutcome",
    "RelayResult",
    "StopOutcome",
    "StopResult",
    "TerminationResult",
    # Tracing
    "TraceEvent",
]
