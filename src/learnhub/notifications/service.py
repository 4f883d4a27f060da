# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Notification gateway.

Durable inbox record in Cassandra plus an ephemeral real-time push over
Redis Pub/Sub. Engine services never inspect the result; they go through
`EngineContext.notify`, which swallows failures.
"""

import contextlib
import json
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from learnhub.core.redis import notification_channel

from .models import Notification, NotificationCategory, create_notification


if TYPE_CHECKING:
    from cassandra.cluster import Session
    from redis.asyncio import Redis


logger = structlog.get_logger(__name__)


class NotificationGateway:
    """Inbox writer and real-time publisher."""

    def __init__(self, session: "Session", keyspace: str, redis: "Redis | None" = None):
        """Initialize with Cassandra session and optional Redis."""
        self.session = session
        self.keyspace = keyspace
        self.redis = redis
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient queries."""
        self._insert_notification = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.notifications
            (user_id, notification_id, category, title, message,
             related_entity_id, related_entity_type, is_read, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._get_notifications = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.notifications
            WHERE user_id = ?
            LIMIT ?
        """)

        self._incr_unread = self.session.prepare(f"""
            UPDATE {self.keyspace}.notification_unread_counts
            SET count = count + 1
            WHERE user_id = ?
        """)

        self._get_unread_count = self.session.prepare(f"""
            SELECT count FROM {self.keyspace}.notification_unread_counts
            WHERE user_id = ?
        """)

    # ==========================================================================
    # Delivery
    # ==========================================================================

    async def notify(
        self,
        target_user_id: UUID,
        category: NotificationCategory,
        title: str,
        message: str,
        related_entity_id: UUID | None = None,
        related_entity_type: str | None = None,
    ) -> Notification:
        """Write the inbox record and push it to connected clients."""
        notification = create_notification(
            user_id=target_user_id,
            category=category,
            title=title,
            message=message,
            related_entity_id=related_entity_id,
            related_entity_type=related_entity_type,
        )

        await self.session.aexecute(
            self._insert_notification,
            [
                notification.user_id,
                notification.notification_id,
                notification.category.value,
                notification.title,
                notification.message,
                notification.related_entity_id,
                notification.related_entity_type,
                notification.is_read,
                notification.created_at,
            ],
        )
        await self.session.aexecute(self._incr_unread, [notification.user_id])

        await self._publish(notification)

        logger.debug(
            "notification_created",
            user_id=str(target_user_id),
            category=category.value,
        )
        return notification

    async def _publish(self, notification: Notification) -> None:
        """Publish notification to Redis Pub/Sub for real-time delivery."""
        if not self.redis:
            return

        channel = notification_channel(str(notification.user_id))
        message = {"type": "notification", "data": notification.to_dict()}

        # Non-critical: the inbox row is the durable copy
        with contextlib.suppress(Exception):
            await self.redis.publish(channel, json.dumps(message))

    # ==========================================================================
    # Queries
    # ==========================================================================

    async def list_for_user(self, user_id: UUID, limit: int = 20) -> list[Notification]:
        """Latest notifications for a user (newest first)."""
        rows = await self.session.aexecute(self._get_notifications, [user_id, limit])
        return [Notification.from_row(row) for row in rows]

    async def get_unread_count(self, user_id: UUID) -> int:
        """Unread counter for a user."""
        result = await self.session.aexecute(self._get_unread_count, [user_id])
        row = result.one()
        return max(0, row.count) if row and row.count else 0
