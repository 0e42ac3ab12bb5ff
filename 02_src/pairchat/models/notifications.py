"""Notification-related data models."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Delivery:
    """A notification written to a participant's outbox."""

    id: str
    participant_id: str
    content: str
    timestamp: datetime
