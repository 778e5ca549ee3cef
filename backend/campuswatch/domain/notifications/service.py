"""Notification records created by report lifecycle transitions."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional
from uuid import uuid4

from campuswatch.domain.notifications.models import (
    CommentReplyData,
    Notification,
    NotificationType,
    Priority,
    StatusChangeData,
)
from campuswatch.domain.notifications.repo import NotificationRepository
from campuswatch.domain.reports.exceptions import NotFound
from campuswatch.domain.reports.models import Report, ReportStatus

MAX_LIST_LIMIT = 100


def comment_reply(report: Report, comment_id: str, now: datetime) -> Notification:
    return Notification(
        id=str(uuid4()),
        user_id=report.reporter_id,
        report_id=report.id,
        type=NotificationType.COMMENT_REPLY.value,
        title="New comment on your report",
        message=f"Someone commented on your report: {report.title}",
        data=CommentReplyData(comment_id=comment_id),
        priority=Priority.LOW.value,
        created_at=now,
    )


def status_changed(report: Report, old_status: str, now: datetime) -> Notification:
    resolved = report.status == ReportStatus.RESOLVED.value
    return Notification(
        id=str(uuid4()),
        user_id=report.reporter_id,
        report_id=report.id,
        type=NotificationType.MODERATOR_ACTION.value,
        title="Report Status Updated",
        message=f"Your report has been {report.status}",
        data=StatusChangeData(old_status=old_status, new_status=report.status),
        priority=Priority.MEDIUM.value if resolved else Priority.LOW.value,
        created_at=now,
    )


class NotificationService:
    """Recipient-facing reads and read-flag updates."""

    def __init__(self, repo: NotificationRepository) -> None:
        self._repo = repo

    async def list(self, user_id: str, *, unread_only: bool = False, limit: int = 50) -> List[Notification]:
        limit = max(1, min(MAX_LIST_LIMIT, int(limit)))
        return await self._repo.list_for_user(user_id, unread_only=unread_only, limit=limit)

    async def unread_count(self, user_id: str) -> int:
        return await self._repo.unread_count(user_id)

    async def mark_read(self, user_id: str, notification_id: str, *, now: Optional[datetime] = None) -> Notification:
        notification = await self._repo.mark_read(user_id, notification_id, now or datetime.now(timezone.utc))
        if notification is None:
            raise NotFound("notification_not_found", "Notification not found")
        return notification

    async def mark_all_read(self, user_id: str, *, now: Optional[datetime] = None) -> int:
        return await self._repo.mark_all_read(user_id, now or datetime.now(timezone.utc))
