"""Dependencies for notification routes."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from learnhub.notifications.service import NotificationGateway


def get_notification_gateway(request: Request) -> NotificationGateway:
    """Get NotificationGateway from app state."""
    gateway = getattr(request.app.state, "notification_gateway", None)
    if gateway is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Notification service unavailable",
        )
    return gateway


NotificationGatewayDep = Annotated[
    NotificationGateway, Depends(get_notification_gateway)
]
