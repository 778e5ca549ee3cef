"""Unit of work spanning reports, comments, audit entries and notifications.

A lifecycle mutation opens `store.transaction()` and performs its report
write and audit append through the yielded session; both commit together or
neither does. Reads and single-statement atomic updates may use the store's
top-level repositories directly.
"""

from __future__ import annotations

import asyncio
import contextlib
import copy
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List, Protocol

from campuswatch.domain.audit.models import AuditLogEntry
from campuswatch.domain.audit.repo import AuditRepository, InMemoryAuditRepository
from campuswatch.domain.notifications.models import Notification
from campuswatch.domain.notifications.repo import InMemoryNotificationRepository, NotificationRepository
from campuswatch.domain.reports.models import Comment, Report
from campuswatch.domain.reports.repo import (
	CommentRepository,
	InMemoryCommentRepository,
	InMemoryReportRepository,
	ReportRepository,
)


@dataclass(slots=True)
class StoreSession:
	reports: ReportRepository
	comments: CommentRepository
	audit: AuditRepository
	notifications: NotificationRepository


class UnitOfWork(Protocol):
	reports: ReportRepository
	comments: CommentRepository
	audit: AuditRepository
	notifications: NotificationRepository

	def transaction(self) -> contextlib.AbstractAsyncContextManager[StoreSession]:
		...


@dataclass
class MemoryState:
	reports: Dict[str, Report] = field(default_factory=dict)
	comments: Dict[str, Comment] = field(default_factory=dict)
	audit: List[AuditLogEntry] = field(default_factory=list)
	notifications: Dict[str, Notification] = field(default_factory=dict)


class InMemoryStore(UnitOfWork):
	"""Process-local store; transactions serialise on one lock and roll back from a snapshot."""

	def __init__(self) -> None:
		self.state = MemoryState()
		self._lock = asyncio.Lock()
		self.reports = InMemoryReportRepository(self.state, self._locked)
		self.comments = InMemoryCommentRepository(self.state, self._locked)
		self.audit = InMemoryAuditRepository(self.state, self._locked)
		self.notifications = InMemoryNotificationRepository(self.state, self._locked)

	def _locked(self) -> contextlib.AbstractAsyncContextManager[None]:
		return self._lock  # type: ignore[return-value]

	@staticmethod
	def _held() -> contextlib.AbstractAsyncContextManager[None]:
		return contextlib.nullcontext()  # type: ignore[return-value]

	@contextlib.asynccontextmanager
	async def transaction(self) -> AsyncIterator[StoreSession]:
		async with self._lock:
			snapshot = copy.deepcopy(self.state)
			session = StoreSession(
				reports=InMemoryReportRepository(self.state, self._held),
				comments=InMemoryCommentRepository(self.state, self._held),
				audit=InMemoryAuditRepository(self.state, self._held),
				notifications=InMemoryNotificationRepository(self.state, self._held),
			)
			try:
				yield session
			except BaseException:
				self.state.reports = snapshot.reports
				self.state.comments = snapshot.comments
				self.state.audit = snapshot.audit
				self.state.notifications = snapshot.notifications
				raise
