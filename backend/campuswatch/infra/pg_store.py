"""Unit of work over one asyncpg transaction."""

from __future__ import annotations

import contextlib
from typing import AsyncIterator

import asyncpg

from campuswatch.domain.reports.exceptions import StorageUnavailable
from campuswatch.domain.store import StoreSession, UnitOfWork
from campuswatch.infra.pg_records import PostgresAuditRepository, PostgresNotificationRepository
from campuswatch.infra.pg_reports import PostgresCommentRepository, PostgresReportRepository
from campuswatch.infra.postgres import TRANSIENT_ERRORS


class PostgresStore(UnitOfWork):
	def __init__(self, pool: asyncpg.Pool) -> None:
		self._pool = pool
		self.reports = PostgresReportRepository(pool)
		self.comments = PostgresCommentRepository(pool)
		self.audit = PostgresAuditRepository(pool)
		self.notifications = PostgresNotificationRepository(pool)

	@contextlib.asynccontextmanager
	async def transaction(self) -> AsyncIterator[StoreSession]:
		try:
			async with self._pool.acquire() as conn:
				async with conn.transaction():
					yield StoreSession(
						reports=PostgresReportRepository(conn),
						comments=PostgresCommentRepository(conn),
						audit=PostgresAuditRepository(conn),
						notifications=PostgresNotificationRepository(conn),
					)
		except TRANSIENT_ERRORS as exc:
			raise StorageUnavailable("storage_unavailable", "Storage is temporarily unavailable") from exc
