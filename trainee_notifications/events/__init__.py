"""Inbound entity event handling."""

from .handlers import KeyedLock, NotificationEventHandler

__all__ = ["NotificationEventHandler", "KeyedLock"]
