"""Notification service package."""

from .service import NotificationEvent, NotificationService

__all__ = ["NotificationEvent", "NotificationService"]
