"""Tracing and audit data models."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class TraceEvent:
    """A single audit event."""

    id: str
    event_type: str  # e.g. "match_created", "conversation_ended"
    actor: str  # component that recorded it
    data: dict  # self-contained data for reporting
    timestamp: datetime
