"""Participant-related data models."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class ParticipantStatus(str, Enum):
    """Availability of a participant."""

    OFFLINE = "offline"
    AVAILABLE = "available"
    PAIRED = "paired"


@dataclass
class Participant:
    """An addressable party that can be paired with another one."""

    id: str
    status: ParticipantStatus = ParticipantStatus.OFFLINE
    updated_at: datetime | None = None
