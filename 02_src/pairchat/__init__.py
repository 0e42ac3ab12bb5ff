"""pairchat: anonymous one-to-one pairing and message relay."""

from .app import Application, IApplication
from .conversations import ConversationStore, IConversationStore
from .directory import IParticipantDirectory, ParticipantDirectory
from .errors import (
    ConversationNotFound,
    InvalidTransition,
    PairingError,
    ReservationConflict,
    StoreUnavailable,
)
from .matching import IMatchMaker, MatchMaker
from .models import (
    Conversation,
    ConversationStatus,
    Delivery,
    MatchOutcome,
    MatchResult,
    Participant,
    ParticipantStatus,
    RelayOutcome,
    RelayResult,
    StopOutcome,
    StopResult,
    TerminationResult,
    TraceEvent,
)
from .notifications import (
    BotApiNotificationSink,
    INotificationSink,
    OutboxNotificationSink,
)
from .relay import IMessageRelay, MessageRelay
from .service import ChatService, IChatService
from .storage import IStorage, Storage
from .tracker import ITracker, Tracker

__all__ = [
    # Application
    "Application",
    "IApplication",
    # Models
    "Participant",
    "ParticipantStatus",
    "Conversation",
    "ConversationStatus",
    "Delivery",
    "MatchOutcome",
    "MatchResult",
    "RelayOutcome",
    "RelayResult",
    "StopOutcome",
    "StopResult",
    "TerminationResult",
    "TraceEvent",
    # Errors
    "PairingError",
    "StoreUnavailable",
    "ConversationNotFound",
    "InvalidTransition",
    "ReservationConflict",
    # Components
    "IStorage",
    "Storage",
    "ITracker",
    "Tracker",
    "IParticipantDirectory",
    "ParticipantDirectory",
    "IConversationStore",
    "ConversationStore",
    "IMatchMaker",
    "MatchMaker",
    "IMessageRelay",
    "MessageRelay",
    "INotificationSink",
    "OutboxNotificationSink",
    "BotApiNotificationSink",
    "IChatService",
    "ChatService",
]
