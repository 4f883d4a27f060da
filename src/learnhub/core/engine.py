"""Explicit engine context passed into every service.

Holds storage handles and gateway references so no service reaches for
module-level state. Redis is optional and only used for advisory caches and
real-time push.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from uuid import UUID

from learnhub.core.side_effects import best_effort


if TYPE_CHECKING:
    from cassandra.cluster import Session
    from redis.asyncio import Redis

    from learnhub.config.settings import Settings
    from learnhub.email.service import EmailService
    from learnhub.notifications.models import NotificationCategory
    from learnhub.notifications.service import NotificationGateway


@dataclass
class EngineContext:
    """Shared handles for the enrollment engine."""

    session: "Session"
    keyspace: str
    settings: "Settings"
    redis: "Redis | None" = None
    notifications: "NotificationGateway | None" = None
    email: "EmailService | None" = None

    async def notify(
        self,
        target_user_id: UUID,
        category: "NotificationCategory",
        title: str,
        message: str,
        related_entity_id: UUID | None = None,
        related_entity_type: str | None = None,
    ) -> None:
        """Emit a notification without letting delivery failures escape."""
        if self.notifications is None:
            return
        await best_effort(
            self.notifications.notify(
                target_user_id=target_user_id,
                category=category,
                title=title,
                message=message,
                related_entity_id=related_entity_id,
                related_entity_type=related_entity_type,
            ),
            "notification_dispatch_failed",
            target_user_id=str(target_user_id),
            category=str(category),
        )

    async def send_email(self, method: str, **kwargs: Any) -> None:
        """Call a templated EmailService method, logging failures only."""
        if self.email is None:
            return
        # Transport errors come back as SendEmailResponse(success=False), already logged
        send = getattr(self.email, method)
        await best_effort(send(**kwargs), "email_dispatch_failed", template=method)
