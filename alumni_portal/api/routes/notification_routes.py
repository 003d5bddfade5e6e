"""
Notification Routes

GET /notifications - Latest notifications for the caller
GET /notifications/unread-count - Number of unread notifications
PUT /notifications/{notification_id}/read - Mark as read
DELETE /notifications/{notification_id} - Delete
"""

from fastapi import APIRouter, Depends, Query

from alumni_portal.api.deps import get_notification_service
from alumni_portal.core.auth import get_current_user
from alumni_portal.core.errors import NotFoundError
from alumni_portal.schemas.schemas import (
    MessageResponse, NotificationListResponse, NotificationResponse, UnreadCountResponse
)
from alumni_portal.services.mongo_service import serialize_doc, serialize_docs
from alumni_portal.services.notification_service import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    limit: int = Query(50, ge=1, le=100),
    user: dict = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    """Newest first."""
    result = service.list_for(user["_id"], limit)
    return {"notifications": serialize_docs(result["notifications"]), "unread": result["unread"]}


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    user: dict = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    return {"unread": service.unread_count(user["_id"])}


@router.put("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: str,
    user: dict = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    """Mark one of the caller's notifications as read."""
    notification = service.mark_read(notification_id, user["_id"])
    if not notification:
        raise NotFoundError("Notification not found")
    return serialize_doc(notification)


@router.delete("/{notification_id}", response_model=MessageResponse)
async def delete_notification(
    notification_id: str,
    user: dict = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    if not service.delete(notification_id, user["_id"]):
        raise NotFoundError("Notification not found")
    return MessageResponse(message="Notification deleted")
