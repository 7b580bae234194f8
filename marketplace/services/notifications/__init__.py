"""
Notification services.

Handles in-app notification creation.
"""

from marketplace.services.notifications.notification_service import NotificationService

__all__ = ["NotificationService"]
