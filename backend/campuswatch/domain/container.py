"""Lightweight service container shared by the API, sockets and tests."""

from __future__ import annotations

from typing import Optional

import asyncpg

from campuswatch.domain.directory.repo import DirectoryRepository, InMemoryDirectoryRepository
from campuswatch.domain.moderation.service import ModerationService
from campuswatch.domain.notifications.service import NotificationService
from campuswatch.domain.realtime.hub import FanoutHub
from campuswatch.domain.reports.service import LoggingPushSignal, PushSignal, ReportLifecycleService
from campuswatch.domain.store import InMemoryStore, UnitOfWork
from campuswatch.infra.pg_records import PostgresDirectoryRepository
from campuswatch.infra.pg_store import PostgresStore

_store: UnitOfWork = InMemoryStore()
_directory: DirectoryRepository = InMemoryDirectoryRepository()
_hub: FanoutHub = FanoutHub()
_push: PushSignal = LoggingPushSignal()
_reports = ReportLifecycleService(_store, _directory, _hub, _push)
_moderation = ModerationService(_store, _directory, _hub)
_notifications = NotificationService(_store.notifications)


def _rebuild() -> None:
	global _reports, _moderation, _notifications
	_reports = ReportLifecycleService(_store, _directory, _hub, _push)
	_moderation = ModerationService(_store, _directory, _hub)
	_notifications = NotificationService(_store.notifications)


def configure(
	*,
	store: Optional[UnitOfWork] = None,
	directory: Optional[DirectoryRepository] = None,
	hub: Optional[FanoutHub] = None,
	push: Optional[PushSignal] = None,
) -> None:
	global _store, _directory, _hub, _push
	if store is not None:
		_store = store
	if directory is not None:
		_directory = directory
	if hub is not None:
		_hub = hub
	if push is not None:
		_push = push
	_rebuild()


def configure_postgres(pool: asyncpg.Pool, *, hub: Optional[FanoutHub] = None) -> None:
	configure(store=PostgresStore(pool), directory=PostgresDirectoryRepository(pool), hub=hub)


def reset() -> None:
	"""Back to fresh in-memory state; the hub instance is kept so sockets stay wired."""
	global _store, _directory, _push
	_store = InMemoryStore()
	_directory = InMemoryDirectoryRepository()
	_push = LoggingPushSignal()
	_rebuild()


def get_store() -> UnitOfWork:
	return _store


def get_directory() -> DirectoryRepository:
	return _directory


def get_hub() -> FanoutHub:
	return _hub


def get_report_service() -> ReportLifecycleService:
	return _reports


def get_moderation_service() -> ModerationService:
	return _moderation


def get_notification_service() -> NotificationService:
	return _notifications
