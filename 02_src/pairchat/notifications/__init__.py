"""Notification module."""

from . import notices
from .sink import BotApiNotificationSink, INotificationSink, OutboxNotificationSink

__all__ = [
    "BotApiNotificationSink",
    "INotificationSink",
    "OutboxNotificationSink",
    "notices",
]
