"""Notification endpoints for the signed-in recipient."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from campuswatch.api.deps import get_notification_service_dep, ok, require_user
from campuswatch.domain.notifications.service import NotificationService
from campuswatch.infra.auth import AuthenticatedUser

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("")
async def list_notifications(
	unread_only: bool = Query(default=False),
	limit: int = Query(default=50, ge=1, le=100),
	user: AuthenticatedUser = Depends(require_user),
	service: NotificationService = Depends(get_notification_service_dep),
):
	items = await service.list(user.id, unread_only=unread_only, limit=limit)
	return ok({"notifications": [item.to_dict() for item in items], "count": len(items)})


@router.get("/unread-count")
async def unread_count(
	user: AuthenticatedUser = Depends(require_user),
	service: NotificationService = Depends(get_notification_service_dep),
):
	return ok({"unread": await service.unread_count(user.id)})


@router.post("/read-all")
async def mark_all_read(
	user: AuthenticatedUser = Depends(require_user),
	service: NotificationService = Depends(get_notification_service_dep),
):
	updated = await service.mark_all_read(user.id)
	return ok({"updated": updated}, "Notifications marked as read")


@router.post("/{notification_id}/read")
async def mark_read(
	notification_id: str,
	user: AuthenticatedUser = Depends(require_user),
	service: NotificationService = Depends(get_notification_service_dep),
):
	notification = await service.mark_read(user.id, notification_id)
	return ok(notification.to_dict())
