"""Notifications module: durable inbox plus real-time push.

Note: Router is imported directly in main.py to avoid circular imports.
"""

from learnhub.notifications.models import (
    NOTIFICATIONS_TABLES_CQL,
    Notification,
    NotificationCategory,
)
from learnhub.notifications.service import NotificationGateway


__all__ = [
    "NOTIFICATIONS_TABLES_CQL",
    "Notification",
    "NotificationCategory",
    "NotificationGateway",
]
