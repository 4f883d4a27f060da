"""Database models for the notification inbox.

Cassandra table definitions for:
- Notifications: durable inbox, partitioned by the target user
- Unread counts: counter per user

Categories mirror the engine events that produce them.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


# ==============================================================================
# Constants
# ==============================================================================

NOTIFICATION_MESSAGE_MAX_LENGTH = 500


class NotificationCategory(str, Enum):
    """Categories of engine notifications."""

    ENROLLMENT = "enrollment"
    ENROLLMENT_STATUS = "enrollment_status"
    MODULE_COMPLETED = "module_completed"
    COMPLETION = "completion"
    CERTIFICATE = "certificate"
    SCHOLARSHIP = "scholarship"
    SYSTEM = "system"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

NOTIFICATION_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.notifications (
    user_id UUID,
    notification_id UUID,
    category TEXT,
    title TEXT,
    message TEXT,
    related_entity_id UUID,
    related_entity_type TEXT,
    is_read BOOLEAN,
    created_at TIMESTAMP,
    PRIMARY KEY ((user_id), created_at, notification_id)
) WITH CLUSTERING ORDER BY (created_at DESC, notification_id ASC)
"""

UNREAD_COUNT_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.notification_unread_counts (
    user_id UUID PRIMARY KEY,
    count COUNTER
)
"""

NOTIFICATIONS_TABLES_CQL = [
    NOTIFICATION_TABLE_CQL,
    UNREAD_COUNT_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass
class Notification:
    """Inbox record for a single user."""

    notification_id: UUID
    user_id: UUID
    category: NotificationCategory
    title: str
    message: str
    related_entity_id: UUID | None
    related_entity_type: str | None
    is_read: bool
    created_at: datetime

    @classmethod
    def from_row(cls, row: Any) -> "Notification":
        """Create Notification from Cassandra row."""
        created_at = row.created_at
        if created_at is not None and created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=UTC)
        return cls(
            notification_id=row.notification_id,
            user_id=row.user_id,
            category=NotificationCategory(row.category),
            title=row.title,
            message=row.message,
            related_entity_id=row.related_entity_id,
            related_entity_type=row.related_entity_type,
            is_read=row.is_read or False,
            created_at=created_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (pub/sub payload)."""
        return {
            "id": str(self.notification_id),
            "user_id": str(self.user_id),
            "category": self.category.value,
            "title": self.title,
            "message": self.message,
            "related_entity_id": str(self.related_entity_id)
            if self.related_entity_id
            else None,
            "related_entity_type": self.related_entity_type,
            "is_read": self.is_read,
            "created_at": self.created_at.isoformat(),
        }


def create_notification(
    user_id: UUID,
    category: NotificationCategory,
    title: str,
    message: str,
    related_entity_id: UUID | None = None,
    related_entity_type: str | None = None,
) -> Notification:
    """Create a new unread notification."""
    if len(message) > NOTIFICATION_MESSAGE_MAX_LENGTH:
        message = message[:NOTIFICATION_MESSAGE_MAX_LENGTH]
    return Notification(
        notification_id=uuid4(),
        user_id=user_id,
        category=category,
        title=title,
        message=message,
        related_entity_id=related_entity_id,
        related_entity_type=related_entity_type,
        is_read=False,
        created_at=datetime.now(UTC),
    )
