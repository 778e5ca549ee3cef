"""PostgreSQL persistence for reports and comments."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, List, Optional, Tuple, Union

import asyncpg

from campuswatch.domain.reports import geo
from campuswatch.domain.reports.exceptions import StaleVersion
from campuswatch.domain.reports.models import (
	SPAM_THRESHOLD,
	Comment,
	EditSnapshot,
	FeedSort,
	GeoPoint,
	Page,
	Report,
	ReportFilters,
	ReportStatus,
	VoteType,
)
from campuswatch.domain.reports.repo import CampusCounts, CommentRepository, ReportRepository, SpamFlagResult
from campuswatch.infra.postgres import translate_errors

Executor = Union[asyncpg.Pool, asyncpg.Connection]

REPORT_COLUMNS = """
	id, reporter_id, campus_id, category, severity, title, description, lon, lat, media_urls,
	is_anonymous, status, resolved_by, resolved_at, moderator_notes, assigned_to, confirms, disputes,
	comments_count, views_count, spam_reports, is_spam, is_edited, edited_at, edit_history, version,
	created_at, updated_at
"""

COMMENT_COLUMNS = """
	id, report_id, user_id, content, is_anonymous, is_moderator_comment, is_edited, edited_at,
	is_deleted, deleted_at, created_at, updated_at
"""

_FEED_ORDER = {
	FeedSort.NEWEST: "created_at DESC",
	FeedSort.OLDEST: "created_at ASC",
	FeedSort.SEVERITY_DESC: "severity DESC, created_at DESC",
	FeedSort.SEVERITY_ASC: "severity ASC, created_at DESC",
	FeedSort.POPULAR: "views_count DESC, created_at DESC",
}


def _opt_str(value: Any) -> Optional[str]:
	return str(value) if value is not None else None


def _history_from_db(raw: Any) -> List[EditSnapshot]:
	if raw is None:
		return []
	items = json.loads(raw) if isinstance(raw, str) else raw
	return [
		EditSnapshot(edited_at=datetime.fromisoformat(item["edited_at"]), changes=dict(item.get("changes") or {}))
		for item in items
	]


def _history_to_db(history: List[EditSnapshot]) -> str:
	return json.dumps(
		[{"edited_at": snap.edited_at.isoformat(), "changes": snap.changes} for snap in history],
		default=str,
	)


def _row_to_report(row: asyncpg.Record) -> Report:
	return Report(
		id=str(row["id"]),
		reporter_id=str(row["reporter_id"]),
		campus_id=str(row["campus_id"]),
		category=str(row["category"]),
		severity=int(row["severity"]),
		title=str(row["title"]),
		description=str(row["description"]),
		location=GeoPoint(longitude=float(row["lon"]), latitude=float(row["lat"])),
		created_at=row["created_at"],
		updated_at=row["updated_at"],
		media_urls=list(row["media_urls"] or []),
		is_anonymous=bool(row["is_anonymous"]),
		status=str(row["status"]),
		resolved_by=_opt_str(row["resolved_by"]),
		resolved_at=row["resolved_at"],
		moderator_notes=row["moderator_notes"],
		assigned_to=_opt_str(row["assigned_to"]),
		confirms=[str(v) for v in row["confirms"] or []],
		disputes=[str(v) for v in row["disputes"] or []],
		comments_count=int(row["comments_count"]),
		views_count=int(row["views_count"]),
		spam_reports=[str(v) for v in row["spam_reports"] or []],
		is_spam=bool(row["is_spam"]),
		is_edited=bool(row["is_edited"]),
		edited_at=row["edited_at"],
		edit_history=_history_from_db(row["edit_history"]),
		version=int(row["version"]),
	)


def _row_to_comment(row: asyncpg.Record) -> Comment:
	return Comment(
		id=str(row["id"]),
		report_id=str(row["report_id"]),
		user_id=str(row["user_id"]),
		content=str(row["content"]),
		created_at=row["created_at"],
		updated_at=row["updated_at"],
		is_anonymous=bool(row["is_anonymous"]),
		is_moderator_comment=bool(row["is_moderator_comment"]),
		is_edited=bool(row["is_edited"]),
		edited_at=row["edited_at"],
		is_deleted=bool(row["is_deleted"]),
		deleted_at=row["deleted_at"],
	)


def _filter_clauses(filters: ReportFilters, params: List[Any], campus_id: Optional[str]) -> List[str]:
	clauses: List[str] = []
	if campus_id is not None:
		params.append(str(campus_id))
		clauses.append(f"campus_id = ${len(params)}::uuid")
	params.append(list(filters.statuses()))
	clauses.append(f"status = ANY(${len(params)}::text[])")
	if filters.category:
		params.append(filters.category)
		clauses.append(f"category = ${len(params)}")
	if filters.min_severity is not None:
		params.append(int(filters.min_severity))
		clauses.append(f"severity >= ${len(params)}")
	if filters.since is not None:
		params.append(filters.since)
		clauses.append(f"created_at >= ${len(params)}")
	return clauses


class PostgresReportRepository(ReportRepository):
	"""Reports table access; `executor` is the pool or a transaction's connection."""

	def __init__(self, executor: Executor) -> None:
		self._db = executor

	@translate_errors
	async def get(self, report_id: str) -> Optional[Report]:
		row = await self._db.fetchrow(f"SELECT {REPORT_COLUMNS} FROM reports WHERE id = $1::uuid", str(report_id))
		return _row_to_report(row) if row else None

	@translate_errors
	async def insert(self, report: Report) -> Report:
		row = await self._db.fetchrow(
			f"""
			INSERT INTO reports (
				id, reporter_id, campus_id, category, severity, title, description, lon, lat,
				media_urls, is_anonymous, status, version, created_at, updated_at
			)
			VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15)
			RETURNING {REPORT_COLUMNS}
			""",
			report.id,
			report.reporter_id,
			report.campus_id,
			report.category,
			report.severity,
			report.title,
			report.description,
			report.location.longitude,
			report.location.latitude,
			report.media_urls,
			report.is_anonymous,
			report.status,
			report.version,
			report.created_at,
			report.updated_at,
		)
		if row is None:  # pragma: no cover - asyncpg always returns a row for RETURNING
			raise RuntimeError("Failed to insert report")
		return _row_to_report(row)

	@translate_errors
	async def replace(self, report: Report, *, expected_version: int) -> Report:
		row = await self._db.fetchrow(
			f"""
			UPDATE reports
			SET category = $2, severity = $3, title = $4, description = $5, lon = $6, lat = $7,
				media_urls = $8, status = $9, resolved_by = $10, resolved_at = $11,
				moderator_notes = $12, assigned_to = $13, is_edited = $14, edited_at = $15,
				edit_history = $16::jsonb, updated_at = $17, version = version + 1
			WHERE id = $1::uuid AND version = $18
			RETURNING {REPORT_COLUMNS}
			""",
			report.id,
			report.category,
			report.severity,
			report.title,
			report.description,
			report.location.longitude,
			report.location.latitude,
			report.media_urls,
			report.status,
			report.resolved_by,
			report.resolved_at,
			report.moderator_notes,
			report.assigned_to,
			report.is_edited,
			report.edited_at,
			_history_to_db(report.edit_history),
			report.updated_at,
			expected_version,
		)
		if row is None:
			raise StaleVersion("stale_version", "Report was modified concurrently; reload and retry")
		return _row_to_report(row)

	@translate_errors
	async def cast_vote(self, report_id: str, user_id: str, vote: VoteType, now: datetime) -> Optional[Report]:
		keep, drop = ("confirms", "disputes") if vote is VoteType.CONFIRM else ("disputes", "confirms")
		row = await self._db.fetchrow(
			f"""
			UPDATE reports
			SET {drop} = array_remove({drop}, $2::uuid),
				{keep} = CASE WHEN $2::uuid = ANY({keep}) THEN {keep} ELSE array_append({keep}, $2::uuid) END,
				updated_at = $3
			WHERE id = $1::uuid
			RETURNING {REPORT_COLUMNS}
			""",
			str(report_id),
			str(user_id),
			now,
		)
		return _row_to_report(row) if row else None

	@translate_errors
	async def flag_spam(self, report_id: str, user_id: str, now: datetime) -> Optional[SpamFlagResult]:
		row = await self._db.fetchrow(
			f"""
			WITH cur AS (
				SELECT id, is_spam AS was_spam, NOT ($2::uuid = ANY(spam_reports)) AS added,
					CASE WHEN $2::uuid = ANY(spam_reports) THEN spam_reports
						ELSE array_append(spam_reports, $2::uuid) END AS flags
				FROM reports WHERE id = $1::uuid
				FOR UPDATE
			), upd AS (
				UPDATE reports AS r
				SET spam_reports = cur.flags,
					is_spam = r.is_spam OR cardinality(cur.flags) >= $4,
					status = CASE WHEN NOT cur.was_spam AND cardinality(cur.flags) >= $4 THEN $5 ELSE r.status END,
					resolved_by = CASE WHEN NOT cur.was_spam AND cardinality(cur.flags) >= $4 THEN NULL ELSE r.resolved_by END,
					resolved_at = CASE WHEN NOT cur.was_spam AND cardinality(cur.flags) >= $4 THEN NULL ELSE r.resolved_at END,
					version = r.version + CASE WHEN NOT cur.was_spam AND cardinality(cur.flags) >= $4 THEN 1 ELSE 0 END,
					updated_at = CASE WHEN cur.added THEN $3 ELSE r.updated_at END
				FROM cur
				WHERE r.id = cur.id
				RETURNING r.*
			)
			SELECT upd.*, cur.added, (NOT cur.was_spam AND upd.is_spam) AS auto_flagged
			FROM upd JOIN cur ON cur.id = upd.id
			""",
			str(report_id),
			str(user_id),
			now,
			SPAM_THRESHOLD,
			ReportStatus.SPAM.value,
		)
		if row is None:
			return None
		return SpamFlagResult(report=_row_to_report(row), added=bool(row["added"]), auto_flagged=bool(row["auto_flagged"]))

	@translate_errors
	async def increment_views(self, report_id: str) -> Optional[Report]:
		row = await self._db.fetchrow(
			f"UPDATE reports SET views_count = views_count + 1 WHERE id = $1::uuid RETURNING {REPORT_COLUMNS}",
			str(report_id),
		)
		return _row_to_report(row) if row else None

	@translate_errors
	async def adjust_comments(self, report_id: str, delta: int) -> None:
		await self._db.execute(
			"UPDATE reports SET comments_count = GREATEST(0, comments_count + $2) WHERE id = $1::uuid",
			str(report_id),
			int(delta),
		)

	@translate_errors
	async def find_nearby(
		self,
		campus_id: str,
		center: GeoPoint,
		radius_m: float,
		filters: ReportFilters,
		*,
		limit: int,
	) -> List[Report]:
		params: List[Any] = [center.latitude, center.longitude]
		clauses = _filter_clauses(filters, params, campus_id)
		min_lon, min_lat, max_lon, max_lat = geo.bounding_box(center, radius_m)
		params.extend([min_lat, max_lat, min_lon, max_lon])
		n = len(params)
		clauses.append(f"lat BETWEEN ${n - 3} AND ${n - 2}")
		clauses.append(f"lon BETWEEN ${n - 1} AND ${n}")
		params.extend([float(radius_m), int(limit)])
		rows = await self._db.fetch(
			f"""
			SELECT {REPORT_COLUMNS}
			FROM (
				SELECT *,
					{geo.EARTH_RADIUS_M} * acos(LEAST(1.0, GREATEST(-1.0,
						cos(radians($1)) * cos(radians(lat)) * cos(radians(lon) - radians($2))
						+ sin(radians($1)) * sin(radians(lat))
					))) AS distance_m
				FROM reports
				WHERE {" AND ".join(clauses)}
			) AS hits
			WHERE distance_m <= ${len(params) - 1}
			ORDER BY created_at DESC
			LIMIT ${len(params)}
			""",
			*params,
		)
		return [_row_to_report(row) for row in rows]

	async def _page(
		self,
		campus_id: Optional[str],
		filters: ReportFilters,
		order_by: str,
		page: int,
		limit: int,
	) -> Page:
		params: List[Any] = []
		where = " AND ".join(_filter_clauses(filters, params, campus_id))
		total = await self._db.fetchval(f"SELECT COUNT(*) FROM reports WHERE {where}", *params)
		params.extend([int(limit), (page - 1) * int(limit)])
		rows = await self._db.fetch(
			f"""
			SELECT {REPORT_COLUMNS} FROM reports
			WHERE {where}
			ORDER BY {order_by}
			LIMIT ${len(params) - 1} OFFSET ${len(params)}
			""",
			*params,
		)
		return Page(items=[_row_to_report(row) for row in rows], total=int(total or 0), page=page, limit=limit)

	@translate_errors
	async def find_feed(
		self,
		campus_id: str,
		filters: ReportFilters,
		sort: FeedSort,
		*,
		page: int,
		limit: int,
	) -> Page:
		return await self._page(campus_id, filters, _FEED_ORDER[sort], page, limit)

	@translate_errors
	async def list_for_moderation(
		self,
		campus_id: Optional[str],
		filters: ReportFilters,
		*,
		page: int,
		limit: int,
	) -> Page:
		return await self._page(campus_id, filters, _FEED_ORDER[FeedSort.SEVERITY_DESC], page, limit)

	@translate_errors
	async def campus_counts(self, campus_id: Optional[str], since: datetime) -> CampusCounts:
		params: List[Any] = [since]
		where = ""
		if campus_id is not None:
			params.append(str(campus_id))
			where = "WHERE campus_id = $2::uuid"
		row = await self._db.fetchrow(
			f"""
			SELECT
				COUNT(*) FILTER (WHERE status = 'reported') AS pending,
				COUNT(*) FILTER (WHERE status = 'verified' AND updated_at >= $1) AS verified_today,
				COUNT(*) FILTER (WHERE resolved_at >= $1) AS resolved_today,
				COUNT(*) AS total,
				COUNT(*) FILTER (WHERE is_spam) AS spam
			FROM reports
			{where}
			""",
			*params,
		)
		return CampusCounts(
			pending=int(row["pending"]),
			verified_today=int(row["verified_today"]),
			resolved_today=int(row["resolved_today"]),
			total=int(row["total"]),
			spam=int(row["spam"]),
		)


class PostgresCommentRepository(CommentRepository):
	def __init__(self, executor: Executor) -> None:
		self._db = executor

	@translate_errors
	async def get(self, comment_id: str) -> Optional[Comment]:
		row = await self._db.fetchrow(f"SELECT {COMMENT_COLUMNS} FROM comments WHERE id = $1::uuid", str(comment_id))
		return _row_to_comment(row) if row else None

	@translate_errors
	async def insert(self, comment: Comment) -> Comment:
		row = await self._db.fetchrow(
			f"""
			INSERT INTO comments (id, report_id, user_id, content, is_anonymous, is_moderator_comment, created_at, updated_at)
			VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
			RETURNING {COMMENT_COLUMNS}
			""",
			comment.id,
			comment.report_id,
			comment.user_id,
			comment.content,
			comment.is_anonymous,
			comment.is_moderator_comment,
			comment.created_at,
			comment.updated_at,
		)
		if row is None:  # pragma: no cover - asyncpg always returns a row for RETURNING
			raise RuntimeError("Failed to insert comment")
		return _row_to_comment(row)

	@translate_errors
	async def save(self, comment: Comment) -> Comment:
		row = await self._db.fetchrow(
			f"""
			UPDATE comments
			SET content = $2, is_edited = $3, edited_at = $4, is_deleted = $5, deleted_at = $6, updated_at = $7
			WHERE id = $1::uuid
			RETURNING {COMMENT_COLUMNS}
			""",
			comment.id,
			comment.content,
			comment.is_edited,
			comment.edited_at,
			comment.is_deleted,
			comment.deleted_at,
			comment.updated_at,
		)
		return _row_to_comment(row) if row else comment

	@translate_errors
	async def list_for_report(self, report_id: str, *, limit: int, offset: int = 0) -> Tuple[List[Comment], int]:
		total = await self._db.fetchval(
			"SELECT COUNT(*) FROM comments WHERE report_id = $1::uuid AND NOT is_deleted",
			str(report_id),
		)
		rows = await self._db.fetch(
			f"""
			SELECT {COMMENT_COLUMNS} FROM comments
			WHERE report_id = $1::uuid AND NOT is_deleted
			ORDER BY created_at ASC
			LIMIT $2 OFFSET $3
			""",
			str(report_id),
			int(limit),
			int(offset),
		)
		return [_row_to_comment(row) for row in rows], int(total or 0)
