"""Pydantic schemas for notifications."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from learnhub.notifications.models import Notification, NotificationCategory


class NotificationResponse(BaseModel):
    """Single notification response."""

    id: UUID = Field(description="Notification ID")
    category: NotificationCategory
    title: str
    message: str
    related_entity_id: UUID | None = None
    related_entity_type: str | None = None
    is_read: bool
    created_at: datetime

    @classmethod
    def from_notification(cls, notification: Notification) -> "NotificationResponse":
        """Create response from notification entity."""
        return cls(
            id=notification.notification_id,
            category=notification.category,
            title=notification.title,
            message=notification.message,
            related_entity_id=notification.related_entity_id,
            related_entity_type=notification.related_entity_type,
            is_read=notification.is_read,
            created_at=notification.created_at,
        )


class NotificationListResponse(BaseModel):
    """Latest notifications plus unread count."""

    items: list[NotificationResponse]
    unread_count: int = 0
