"""
StackIt Backend — Notification Route Handlers
===============================================

What:  /api/notifications: the caller's own inbox. Every handler is scoped to
       the authenticated user; someone else's notification is a 404.
"""

from fastapi import APIRouter, Depends, Query

from stackit.database import MonitoredSession, get_db_session
from stackit.dependencies import get_current_user
from stackit.models import User
from stackit.schemas.common import ApiResponse
from stackit.schemas.notification import (
    BulkDeleteResult,
    BulkUpdateResult,
    NotificationList,
    NotificationOut,
    UnreadCount,
)
from stackit.services.notification_service import notification_service

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


@router.get("", response_model=ApiResponse[NotificationList], summary="List notifications")
async def list_notifications(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=50),
    unread_only: bool = Query(default=False),
    user: User = Depends(get_current_user),
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[NotificationList]:
    result = await notification_service.list_for_user(
        db, user.id, page=page, limit=limit, unread_only=unread_only
    )
    return ApiResponse(data=result)


@router.get("/count", response_model=ApiResponse[UnreadCount], summary="Unread count")
async def unread_count(
    user: User = Depends(get_current_user),
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[UnreadCount]:
    return ApiResponse(data=UnreadCount(unread=await notification_service.count_unread(db, user.id)))


@router.put("/read-all", response_model=ApiResponse[BulkUpdateResult], summary="Mark all as read")
async def mark_all_read(
    user: User = Depends(get_current_user),
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[BulkUpdateResult]:
    updated = await notification_service.mark_all_read(db, user.id)
    return ApiResponse(message="All notifications marked as read", data=BulkUpdateResult(updated=updated))


@router.get("/{notification_id}", response_model=ApiResponse[NotificationOut], summary="Single notification")
async def get_notification(
    notification_id: int,
    user: User = Depends(get_current_user),
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[NotificationOut]:
    return ApiResponse(data=await notification_service.get(db, user.id, notification_id))


@router.put("/{notification_id}/read", response_model=ApiResponse[NotificationOut], summary="Mark as read")
async def mark_read(
    notification_id: int,
    user: User = Depends(get_current_user),
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[NotificationOut]:
    notification = await notification_service.mark_read(db, user.id, notification_id)
    return ApiResponse(message="Notification marked as read", data=notification)


@router.delete("/{notification_id}", response_model=ApiResponse[None], summary="Delete a notification")
async def delete_notification(
    notification_id: int,
    user: User = Depends(get_current_user),
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[None]:
    await notification_service.delete(db, user.id, notification_id)
    return ApiResponse(message="Notification deleted")


@router.delete("", response_model=ApiResponse[BulkDeleteResult], summary="Delete all notifications")
async def delete_all_notifications(
    user: User = Depends(get_current_user),
    db: MonitoredSession = Depends(get_db_session),
) -> ApiResponse[BulkDeleteResult]:
    deleted = await notification_service.delete_all(db, user.id)
    return ApiResponse(message="All notifications deleted", data=BulkDeleteResult(deleted=deleted))
