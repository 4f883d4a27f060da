"""Notification API routes.

Endpoints for:
- GET /v1/notifications - Latest notifications of the authenticated user
"""

from fastapi import APIRouter, Query

from learnhub.auth.dependencies import CurrentUser
from learnhub.notifications.dependencies import NotificationGatewayDep
from learnhub.notifications.schemas import (
    NotificationListResponse,
    NotificationResponse,
)


router = APIRouter(
    prefix="/v1/notifications",
    tags=["notifications"],
)


@router.get(
    "",
    response_model=NotificationListResponse,
    summary="List user notifications",
)
async def list_notifications(
    current_user: CurrentUser,
    gateway: NotificationGatewayDep,
    limit: int = Query(default=20, ge=1, le=100, description="Items to return"),
) -> NotificationListResponse:
    """List notifications for the current user."""
    notifications = await gateway.list_for_user(current_user.id, limit=limit)
    unread = await gateway.get_unread_count(current_user.id)
    return NotificationListResponse(
        items=[NotificationResponse.from_notification(n) for n in notifications],
        unread_count=unread,
    )
