"""PostgreSQL persistence for audit entries, notifications and the user directory."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import asyncpg

from campuswatch.domain.audit.models import AuditLogEntry, RequestMetadata, changes_adapter, payload_adapter
from campuswatch.domain.audit.repo import AuditRepository
from campuswatch.domain.directory.models import Campus, CampusSettings, UserRecord
from campuswatch.domain.directory.repo import DirectoryRepository
from campuswatch.domain.notifications.models import Notification, data_adapter
from campuswatch.domain.notifications.repo import NotificationRepository
from campuswatch.infra.postgres import translate_errors

Executor = Union[asyncpg.Pool, asyncpg.Connection]

AUDIT_COLUMNS = "id, actor_id, action, entity_type, entity_id, report_id, payload, changes, metadata, created_at"
NOTIFICATION_COLUMNS = """
	id, user_id, report_id, type, title, message, data, priority, is_read, read_at,
	is_pushed, pushed_at, is_emailed, emailed_at, created_at
"""
USER_COLUMNS = "id, campus_id, name, email, role, is_active, is_verified, is_banned, banned_reason, banned_at"


def _json_in(raw: Any) -> Any:
	if raw is None:
		return None
	return json.loads(raw) if isinstance(raw, str) else raw


def _json_out(model: Any) -> Optional[str]:
	if model is None:
		return None
	return json.dumps(model.model_dump(mode="json", exclude_none=True))


def _opt_str(value: Any) -> Optional[str]:
	return str(value) if value is not None else None


def _row_to_entry(row: asyncpg.Record) -> AuditLogEntry:
	payload = _json_in(row["payload"])
	changes = _json_in(row["changes"])
	metadata = _json_in(row["metadata"])
	return AuditLogEntry(
		id=str(row["id"]),
		actor_id=str(row["actor_id"]),
		action=str(row["action"]),
		entity_type=str(row["entity_type"]),
		entity_id=_opt_str(row["entity_id"]),
		created_at=row["created_at"],
		report_id=_opt_str(row["report_id"]),
		payload=payload_adapter.validate_python(payload) if payload else None,
		changes=changes_adapter.validate_python(changes) if changes else None,
		metadata=RequestMetadata.model_validate(metadata) if metadata else None,
	)


def _row_to_notification(row: asyncpg.Record) -> Notification:
	data = _json_in(row["data"])
	return Notification(
		id=str(row["id"]),
		user_id=str(row["user_id"]),
		type=str(row["type"]),
		title=str(row["title"]),
		message=str(row["message"]),
		created_at=row["created_at"],
		report_id=_opt_str(row["report_id"]),
		data=data_adapter.validate_python(data) if data else None,
		priority=str(row["priority"]),
		is_read=bool(row["is_read"]),
		read_at=row["read_at"],
		is_pushed=bool(row["is_pushed"]),
		pushed_at=row["pushed_at"],
		is_emailed=bool(row["is_emailed"]),
		emailed_at=row["emailed_at"],
	)


def _row_to_user(row: asyncpg.Record) -> UserRecord:
	return UserRecord(
		id=str(row["id"]),
		campus_id=str(row["campus_id"]),
		name=str(row["name"]),
		role=str(row["role"]),
		email=row["email"],
		is_active=bool(row["is_active"]),
		is_verified=bool(row["is_verified"]),
		is_banned=bool(row["is_banned"]),
		banned_reason=row["banned_reason"],
		banned_at=row["banned_at"],
	)


class PostgresAuditRepository(AuditRepository):
	def __init__(self, executor: Executor) -> None:
		self._db = executor

	@translate_errors
	async def append(self, entry: AuditLogEntry) -> AuditLogEntry:
		await self._db.execute(
			"""
			INSERT INTO audit_logs (id, actor_id, action, entity_type, entity_id, report_id, payload, changes, metadata, created_at)
			VALUES ($1, $2, $3, $4, $5, $6, $7::jsonb, $8::jsonb, $9::jsonb, $10)
			""",
			entry.id,
			entry.actor_id,
			entry.action,
			entry.entity_type,
			entry.entity_id,
			entry.report_id,
			_json_out(entry.payload),
			_json_out(entry.changes),
			_json_out(entry.metadata),
			entry.created_at,
		)
		return entry

	async def _list(self, where: str, params: List[Any], limit: int, offset: int) -> Sequence[AuditLogEntry]:
		params = [*params, int(limit), int(offset)]
		rows = await self._db.fetch(
			f"""
			SELECT {AUDIT_COLUMNS} FROM audit_logs
			{where}
			ORDER BY created_at DESC
			LIMIT ${len(params) - 1} OFFSET ${len(params)}
			""",
			*params,
		)
		return [_row_to_entry(row) for row in rows]

	@translate_errors
	async def list_for_report(self, report_id: str, *, limit: int, offset: int = 0) -> Sequence[AuditLogEntry]:
		return await self._list("WHERE report_id = $1::uuid", [str(report_id)], limit, offset)

	@translate_errors
	async def list_for_actor(self, actor_id: str, *, limit: int, offset: int = 0) -> Sequence[AuditLogEntry]:
		return await self._list("WHERE actor_id = $1::uuid", [str(actor_id)], limit, offset)

	@translate_errors
	async def list_recent(
		self,
		*,
		limit: int,
		offset: int = 0,
		actions: Optional[Sequence[str]] = None,
	) -> Sequence[AuditLogEntry]:
		if actions is None:
			return await self._list("", [], limit, offset)
		return await self._list("WHERE action = ANY($1::text[])", [list(actions)], limit, offset)

	@translate_errors
	async def count(self, *, report_id: Optional[str] = None, actor_id: Optional[str] = None) -> int:
		clauses: List[str] = []
		params: List[Any] = []
		if report_id is not None:
			params.append(str(report_id))
			clauses.append(f"report_id = ${len(params)}::uuid")
		if actor_id is not None:
			params.append(str(actor_id))
			clauses.append(f"actor_id = ${len(params)}::uuid")
		where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
		value = await self._db.fetchval(f"SELECT COUNT(*) FROM audit_logs {where}", *params)
		return int(value or 0)


class PostgresNotificationRepository(NotificationRepository):
	def __init__(self, executor: Executor) -> None:
		self._db = executor

	@translate_errors
	async def create(self, notification: Notification) -> Notification:
		await self._db.execute(
			"""
			INSERT INTO notifications (id, user_id, report_id, type, title, message, data, priority, created_at)
			VALUES ($1, $2, $3, $4, $5, $6, $7::jsonb, $8, $9)
			""",
			notification.id,
			notification.user_id,
			notification.report_id,
			notification.type,
			notification.title,
			notification.message,
			_json_out(notification.data),
			notification.priority,
			notification.created_at,
		)
		return notification

	@translate_errors
	async def list_for_user(self, user_id: str, *, unread_only: bool = False, limit: int = 50) -> List[Notification]:
		rows = await self._db.fetch(
			f"""
			SELECT {NOTIFICATION_COLUMNS} FROM notifications
			WHERE user_id = $1::uuid AND (NOT $2 OR NOT is_read)
			ORDER BY created_at DESC
			LIMIT $3
			""",
			str(user_id),
			bool(unread_only),
			int(limit),
		)
		return [_row_to_notification(row) for row in rows]

	@translate_errors
	async def unread_count(self, user_id: str) -> int:
		value = await self._db.fetchval(
			"SELECT COUNT(*) FROM notifications WHERE user_id = $1::uuid AND NOT is_read",
			str(user_id),
		)
		return int(value or 0)

	@translate_errors
	async def mark_read(self, user_id: str, notification_id: str, at: datetime) -> Optional[Notification]:
		row = await self._db.fetchrow(
			f"""
			UPDATE notifications
			SET is_read = TRUE, read_at = COALESCE(read_at, $3)
			WHERE id = $1::uuid AND user_id = $2::uuid
			RETURNING {NOTIFICATION_COLUMNS}
			""",
			str(notification_id),
			str(user_id),
			at,
		)
		return _row_to_notification(row) if row else None

	@translate_errors
	async def mark_all_read(self, user_id: str, at: datetime) -> int:
		result = await self._db.execute(
			"UPDATE notifications SET is_read = TRUE, read_at = $2 WHERE user_id = $1::uuid AND NOT is_read",
			str(user_id),
			at,
		)
		# asyncpg returns the command tag, e.g. "UPDATE 3"
		return int(result.split()[-1]) if result else 0


class PostgresDirectoryRepository(DirectoryRepository):
	def __init__(self, executor: Executor) -> None:
		self._db = executor

	@translate_errors
	async def get_user(self, user_id: str) -> Optional[UserRecord]:
		row = await self._db.fetchrow(f"SELECT {USER_COLUMNS} FROM users WHERE id = $1::uuid", str(user_id))
		return _row_to_user(row) if row else None

	@translate_errors
	async def get_users(self, user_ids: Iterable[str]) -> Dict[str, UserRecord]:
		ids = sorted({str(uid) for uid in user_ids})
		if not ids:
			return {}
		rows = await self._db.fetch(f"SELECT {USER_COLUMNS} FROM users WHERE id = ANY($1::uuid[])", ids)
		users = [_row_to_user(row) for row in rows]
		return {user.id: user for user in users}

	@translate_errors
	async def set_banned(
		self,
		user_id: str,
		*,
		banned: bool,
		reason: Optional[str],
		at: Optional[datetime],
	) -> Optional[UserRecord]:
		row = await self._db.fetchrow(
			f"""
			UPDATE users SET is_banned = $2, banned_reason = $3, banned_at = $4
			WHERE id = $1::uuid
			RETURNING {USER_COLUMNS}
			""",
			str(user_id),
			banned,
			reason,
			at,
		)
		return _row_to_user(row) if row else None

	@translate_errors
	async def get_campus(self, campus_id: str) -> Optional[Campus]:
		row = await self._db.fetchrow(
			"SELECT id, name, code, is_active, settings FROM campuses WHERE id = $1::uuid",
			str(campus_id),
		)
		if row is None:
			return None
		raw = _json_in(row["settings"]) or {}
		return Campus(
			id=str(row["id"]),
			name=str(row["name"]),
			code=str(row["code"]),
			is_active=bool(row["is_active"]),
			settings=CampusSettings(
				**{key: raw[key] for key in CampusSettings.__dataclass_fields__ if key in raw}
			),
		)
