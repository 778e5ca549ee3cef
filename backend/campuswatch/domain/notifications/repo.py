"""Notification storage."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, AsyncContextManager, Callable, List, Optional, Protocol

from campuswatch.domain.notifications.models import Notification

if TYPE_CHECKING:  # pragma: no cover - type-only imports
    from campuswatch.domain.store import MemoryState


class NotificationRepository(Protocol):
    async def create(self, notification: Notification) -> Notification:
        ...

    async def list_for_user(self, user_id: str, *, unread_only: bool = False, limit: int = 50) -> List[Notification]:
        ...

    async def unread_count(self, user_id: str) -> int:
        ...

    async def mark_read(self, user_id: str, notification_id: str, at: datetime) -> Optional[Notification]:
        ...

    async def mark_all_read(self, user_id: str, at: datetime) -> int:
        ...


class InMemoryNotificationRepository(NotificationRepository):
    def __init__(self, state: "MemoryState", guard: Callable[[], AsyncContextManager[None]]) -> None:
        self._state = state
        self._guard = guard

    async def create(self, notification: Notification) -> Notification:
        async with self._guard():
            self._state.notifications[notification.id] = notification
        return notification

    async def list_for_user(self, user_id: str, *, unread_only: bool = False, limit: int = 50) -> List[Notification]:
        rows = [
            n
            for n in self._state.notifications.values()
            if n.user_id == str(user_id) and (not unread_only or not n.is_read)
        ]
        rows.sort(key=lambda n: n.created_at, reverse=True)
        return rows[:limit]

    async def unread_count(self, user_id: str) -> int:
        return sum(1 for n in self._state.notifications.values() if n.user_id == str(user_id) and not n.is_read)

    async def mark_read(self, user_id: str, notification_id: str, at: datetime) -> Optional[Notification]:
        async with self._guard():
            notification = self._state.notifications.get(str(notification_id))
            if notification is None or notification.user_id != str(user_id):
                return None
            if not notification.is_read:
                notification.is_read = True
                notification.read_at = at
            return notification

    async def mark_all_read(self, user_id: str, at: datetime) -> int:
        async with self._guard():
            updated = 0
            for notification in self._state.notifications.values():
                if notification.user_id == str(user_id) and not notification.is_read:
                    notification.is_read = True
                    notification.read_at = at
                    updated += 1
            return updated
