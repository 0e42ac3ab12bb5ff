"""MessageRelay module."""

from .relay import IMessageRelay, MessageRelay

__all__ = ["IMessageRelay", "MessageRelay"]
