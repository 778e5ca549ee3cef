"""Report lifecycle: creation, edits, votes, comments, spam flags and moderator updates.

Every mutation runs in one unit of work so the report write and its audit
entry commit together. Fan-out to connected clients happens only after the
commit and never fails the operation.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Tuple
from uuid import uuid4

from campuswatch.domain.audit.models import (
	AuditAction,
	CommentEvent,
	ContentChange,
	ContentSnapshot,
	EntityType,
	ModeratorUpdate,
	ReportCreated,
	ReportRetracted,
	RequestMetadata,
	SpamFlagged,
	StatusChange,
	StatusSnapshot,
	VoteCast,
)
from campuswatch.domain.audit.service import append_entry, build_entry
from campuswatch.domain.directory.models import Campus, CampusSettings, Role, UserRecord
from campuswatch.domain.directory.repo import DirectoryRepository
from campuswatch.domain.notifications import service as notices
from campuswatch.domain.realtime.hub import FanoutHub
from campuswatch.domain.reports import geo, policy
from campuswatch.domain.reports.exceptions import InvalidArgument, NotFound, RateLimited, StaleVersion
from campuswatch.domain.reports.models import (
	Comment,
	EditSnapshot,
	Page,
	Report,
	ReportFilters,
	ReportStatus,
	VoteType,
)
from campuswatch.domain.reports.policy import Capability
from campuswatch.domain.reports.repo import SpamFlagResult
from campuswatch.domain.reports.schemas import (
	CommentCreate,
	CommentEdit,
	FeedQuery,
	ModerationQuery,
	ModeratorUpdateIn,
	NearbyQuery,
	ReportCreate,
	ReportEdit,
	comment_view,
	report_view,
)
from campuswatch.domain.store import UnitOfWork
from campuswatch.infra import rate_limit
from campuswatch.obs import metrics as obs_metrics
from campuswatch.settings import settings

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_STATUS_ACTIONS = {
	ReportStatus.VERIFIED.value: AuditAction.VERIFY_REPORT,
	ReportStatus.INVESTIGATING.value: AuditAction.INVESTIGATE_REPORT,
	ReportStatus.INVALID.value: AuditAction.INVALIDATE_REPORT,
	ReportStatus.RESOLVED.value: AuditAction.RESOLVE_REPORT,
}

REPORT_CREATE_WINDOW_SECONDS = 3600
MAX_COMMENTS_PAGE = 100


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


def _content(report: Report) -> ContentSnapshot:
	return ContentSnapshot(
		category=report.category,
		severity=report.severity,
		title=report.title,
		description=report.description,
	)


def public_viewer(campus_id: str) -> Capability:
	"""Viewer used for broadcasts: sees what any campus member sees."""
	return Capability(user_id="", role=Role.STUDENT.value, campus_id=campus_id)


def status_action(new_status: Optional[str], *, assigned: bool = False, notes: bool = False) -> AuditAction:
	if new_status is not None:
		return _STATUS_ACTIONS.get(new_status, AuditAction.UPDATE_REPORT_STATUS)
	if assigned:
		return AuditAction.ASSIGN_REPORT
	if notes:
		return AuditAction.ADD_MODERATOR_NOTE
	return AuditAction.UPDATE_REPORT_STATUS


class PushSignal(Protocol):
	"""Hand-off point to the external push/email delivery side."""

	def high_severity_report(self, report: Report, campus_settings: CampusSettings) -> None:
		...


class LoggingPushSignal:
	def high_severity_report(self, report: Report, campus_settings: CampusSettings) -> None:
		obs_metrics.inc_push_signal("logged")
		logger.info(
			"high severity report",
			extra={
				"report_id": report.id,
				"campus_id": report.campus_id,
				"severity": report.severity,
				"radius_m": campus_settings.notification_radius_m,
			},
		)


class ReportLifecycleService:
	def __init__(
		self,
		store: UnitOfWork,
		directory: DirectoryRepository,
		hub: FanoutHub,
		push: Optional[PushSignal] = None,
		*,
		clock: Optional[Clock] = None,
	) -> None:
		self.store = store
		self.directory = directory
		self.hub = hub
		self.push = push or LoggingPushSignal()
		self._now = clock or _utcnow

	# helpers

	async def _campus_settings(self, campus_id: str) -> CampusSettings:
		campus: Optional[Campus] = await self.directory.get_campus(campus_id)
		if campus is None:
			return CampusSettings(
				notification_radius_m=settings.default_notification_radius_m,
				min_severity_for_push=settings.min_severity_for_push,
				reports_per_hour=settings.reports_per_hour,
			)
		return campus.settings

	async def _load(self, cap: Capability, report_id: str) -> Report:
		report = await self.store.reports.get(report_id)
		if report is None:
			raise NotFound("report_not_found", "Report not found")
		policy.ensure_campus_scope(cap, report.campus_id)
		return report

	async def _load_comment(self, cap: Capability, comment_id: str) -> Tuple[Comment, Report]:
		comment = await self.store.comments.get(comment_id)
		if comment is None or comment.is_deleted:
			raise NotFound("comment_not_found", "Comment not found")
		report = await self._load(cap, comment.report_id)
		return comment, report

	@staticmethod
	def _check_version(report: Report, expected_version: Optional[int]) -> None:
		if expected_version is not None and expected_version != report.version:
			raise StaleVersion("stale_version", "Report was modified concurrently; reload and retry")

	async def people(self, user_ids: Iterable[Optional[str]]) -> Dict[str, UserRecord]:
		return await self.directory.get_users(uid for uid in user_ids if uid)

	async def _enforce_create_quota(self, cap: Capability, campus_settings: CampusSettings) -> None:
		limit = settings.reports_per_hour_dev if settings.is_dev() else campus_settings.reports_per_hour
		quota = await rate_limit.consume(
			"report_create",
			cap.user_id,
			limit=limit,
			window_seconds=REPORT_CREATE_WINDOW_SECONDS,
		)
		if not quota.allowed:
			obs_metrics.inc_rate_limited("report_create")
			raise RateLimited(
				"rate_limited",
				"Too many reports created, please try again later",
				retry_after=quota.reset_in,
			)

	def _signal_push(self, report: Report, campus_settings: CampusSettings) -> None:
		if report.severity < campus_settings.min_severity_for_push:
			return
		try:
			self.push.high_severity_report(report, campus_settings)
		except Exception:
			obs_metrics.inc_push_signal("failed")
			logger.warning("push signal failed", exc_info=True, extra={"report_id": report.id})

	# operations

	async def create(self, actor, draft: ReportCreate, *, metadata: Optional[RequestMetadata] = None) -> Report:
		cap = Capability.of(actor)
		campus_settings = await self._campus_settings(cap.campus_id)
		if draft.is_anonymous and not campus_settings.allow_anonymous:
			raise InvalidArgument("anonymous_disabled", "Anonymous reports are disabled on this campus", field="is_anonymous")
		point = geo.validate_point(draft.location.longitude, draft.location.latitude)
		await self._enforce_create_quota(cap, campus_settings)

		now = self._now()
		report = Report(
			id=str(uuid4()),
			reporter_id=cap.user_id,
			campus_id=cap.campus_id,
			category=draft.category.value,
			severity=draft.severity,
			title=draft.title,
			description=draft.description,
			location=point,
			created_at=now,
			updated_at=now,
			media_urls=list(draft.media_urls),
			is_anonymous=draft.is_anonymous,
		)
		async with self.store.transaction() as tx:
			report = await tx.reports.insert(report)
			await append_entry(
				tx.audit,
				build_entry(
					actor_id=cap.user_id,
					action=AuditAction.CREATE_REPORT.value,
					now=now,
					entity_id=report.id,
					report_id=report.id,
					payload=ReportCreated(
						category=report.category,
						severity=report.severity,
						is_anonymous=report.is_anonymous,
					),
					metadata=metadata,
				),
			)
		obs_metrics.inc_report_created(report.category)
		logger.info("report created", extra={"report_id": report.id, "campus_id": report.campus_id})
		self.hub.new_report(report.campus_id, report_view(report, public_viewer(report.campus_id)))
		self._signal_push(report, campus_settings)
		return report

	async def get(self, viewer, report_id: str) -> Report:
		cap = Capability.of(viewer)
		await self._load(cap, report_id)
		report = await self.store.reports.increment_views(report_id)
		if report is None:
			raise NotFound("report_not_found", "Report not found")
		return report

	async def nearby(self, viewer, query: NearbyQuery) -> List[Tuple[Report, float]]:
		cap = Capability.of(viewer)
		center = geo.validate_point(query.lon, query.lat)
		radius = geo.validate_radius(query.radius)
		filters = ReportFilters(
			category=query.category.value if query.category else None,
			min_severity=query.severity,
			status=query.status.value if query.status else None,
			since=query.since,
		)
		reports = await self.store.reports.find_nearby(cap.campus_id, center, radius, filters, limit=query.limit)
		obs_metrics.inc_nearby_query(radius)
		return [(report, geo.haversine_m(center, report.location)) for report in reports]

	async def feed(self, viewer, query: FeedQuery) -> Page:
		cap = Capability.of(viewer)
		filters = ReportFilters(
			category=query.category.value if query.category else None,
			min_severity=query.severity,
			status=query.status.value if query.status else None,
		)
		return await self.store.reports.find_feed(
			cap.campus_id,
			filters,
			query.sort,
			page=query.page,
			limit=query.limit,
		)

	async def edit(
		self,
		actor,
		report_id: str,
		patch: ReportEdit,
		*,
		expected_version: Optional[int] = None,
		metadata: Optional[RequestMetadata] = None,
	) -> Report:
		cap = Capability.of(actor)
		report = await self._load(cap, report_id)
		now = self._now()
		policy.ensure_can_edit(cap, report, now)
		self._check_version(report, expected_version)

		read_version = report.version
		before = _content(report)
		changes = patch.changes()
		previous = {name: getattr(report, name) for name in changes}
		for name, value in changes.items():
			setattr(report, name, value)
		report.edit_history.append(EditSnapshot(edited_at=now, changes=previous))
		report.is_edited = True
		report.edited_at = now
		report.updated_at = now

		async with self.store.transaction() as tx:
			report = await tx.reports.replace(report, expected_version=read_version)
			await append_entry(
				tx.audit,
				build_entry(
					actor_id=cap.user_id,
					action=AuditAction.EDIT_REPORT.value,
					now=now,
					entity_id=report.id,
					report_id=report.id,
					changes=ContentChange(before=before, after=_content(report)),
					metadata=metadata,
				),
			)
		self.hub.report_update(
			report.campus_id,
			report.id,
			{
				"category": report.category,
				"severity": report.severity,
				"title": report.title,
				"description": report.description,
				"media_urls": list(report.media_urls),
				"is_edited": True,
				"edited_at": now.isoformat(),
				"version": report.version,
			},
		)
		return report

	async def retract(
		self,
		actor,
		report_id: str,
		*,
		expected_version: Optional[int] = None,
		metadata: Optional[RequestMetadata] = None,
	) -> Report:
		cap = Capability.of(actor)
		report = await self._load(cap, report_id)
		policy.ensure_owner_or_admin(cap, report.reporter_id)
		if report.status == ReportStatus.INVALID.value:
			return report
		self._check_version(report, expected_version)

		now = self._now()
		read_version = report.version
		old_status = report.status
		report.set_status(ReportStatus.INVALID.value, cap.user_id, now)
		report.updated_at = now
		async with self.store.transaction() as tx:
			report = await tx.reports.replace(report, expected_version=read_version)
			await append_entry(
				tx.audit,
				build_entry(
					actor_id=cap.user_id,
					action=AuditAction.DELETE_REPORT.value,
					now=now,
					entity_id=report.id,
					report_id=report.id,
					payload=ReportRetracted(by_admin=cap.user_id != report.reporter_id),
					changes=StatusChange(
						before=StatusSnapshot(status=old_status),
						after=StatusSnapshot(status=report.status),
					),
					metadata=metadata,
				),
			)
		self.hub.report_update(report.campus_id, report.id, {"status": report.status})
		return report

	async def vote(self, actor, report_id: str, vote: VoteType) -> Report:
		cap = Capability.of(actor)
		await self._load(cap, report_id)
		now = self._now()
		async with self.store.transaction() as tx:
			report = await tx.reports.cast_vote(report_id, cap.user_id, vote, now)
			if report is None:
				raise NotFound("report_not_found", "Report not found")
			await append_entry(
				tx.audit,
				build_entry(
					actor_id=cap.user_id,
					action=AuditAction.VOTE_REPORT.value,
					now=now,
					entity_id=report.id,
					report_id=report.id,
					payload=VoteCast(vote=vote.value),
				),
			)
		return report

	async def comment(self, actor, report_id: str, body: CommentCreate) -> Comment:
		cap = Capability.of(actor)
		report = await self._load(cap, report_id)
		now = self._now()
		comment = Comment(
			id=str(uuid4()),
			report_id=report.id,
			user_id=cap.user_id,
			content=body.content,
			created_at=now,
			updated_at=now,
			is_anonymous=body.is_anonymous,
			is_moderator_comment=cap.moderator,
		)
		async with self.store.transaction() as tx:
			comment = await tx.comments.insert(comment)
			await tx.reports.adjust_comments(report.id, 1)
			await append_entry(
				tx.audit,
				build_entry(
					actor_id=cap.user_id,
					action=AuditAction.CREATE_COMMENT.value,
					now=now,
					entity_type=EntityType.COMMENT.value,
					entity_id=comment.id,
					report_id=report.id,
					payload=CommentEvent(comment_id=comment.id, by_moderator=cap.moderator),
				),
			)
			if report.reporter_id != cap.user_id:
				await tx.notifications.create(notices.comment_reply(report, comment.id, now))
		users = await self.people([comment.user_id])
		self.hub.new_comment(report.id, comment_view(comment, public_viewer(report.campus_id), users))
		return comment

	async def list_comments(self, viewer, report_id: str, *, page: int = 1, limit: int = 50) -> Page:
		cap = Capability.of(viewer)
		await self._load(cap, report_id)
		limit = max(1, min(MAX_COMMENTS_PAGE, int(limit)))
		page = max(1, int(page))
		items, total = await self.store.comments.list_for_report(report_id, limit=limit, offset=(page - 1) * limit)
		return Page(items=items, total=total, page=page, limit=limit)

	async def edit_comment(self, actor, comment_id: str, body: CommentEdit) -> Comment:
		cap = Capability.of(actor)
		comment, report = await self._load_comment(cap, comment_id)
		now = self._now()
		policy.ensure_can_edit_comment(cap, comment, now)
		comment.content = body.content
		comment.is_edited = True
		comment.edited_at = now
		comment.updated_at = now
		async with self.store.transaction() as tx:
			comment = await tx.comments.save(comment)
			await append_entry(
				tx.audit,
				build_entry(
					actor_id=cap.user_id,
					action=AuditAction.EDIT_COMMENT.value,
					now=now,
					entity_type=EntityType.COMMENT.value,
					entity_id=comment.id,
					report_id=report.id,
					payload=CommentEvent(comment_id=comment.id, by_moderator=cap.moderator),
				),
			)
		return comment

	async def delete_comment(self, actor, comment_id: str) -> Comment:
		cap = Capability.of(actor)
		comment, report = await self._load_comment(cap, comment_id)
		policy.ensure_can_delete_comment(cap, comment)
		now = self._now()
		comment.is_deleted = True
		comment.deleted_at = now
		comment.updated_at = now
		async with self.store.transaction() as tx:
			comment = await tx.comments.save(comment)
			await tx.reports.adjust_comments(report.id, -1)
			await append_entry(
				tx.audit,
				build_entry(
					actor_id=cap.user_id,
					action=AuditAction.DELETE_COMMENT.value,
					now=now,
					entity_type=EntityType.COMMENT.value,
					entity_id=comment.id,
					report_id=report.id,
					payload=CommentEvent(comment_id=comment.id, by_moderator=cap.user_id != comment.user_id),
				),
			)
		return comment

	async def flag_spam(self, actor, report_id: str) -> SpamFlagResult:
		cap = Capability.of(actor)
		await self._load(cap, report_id)
		now = self._now()
		async with self.store.transaction() as tx:
			result = await tx.reports.flag_spam(report_id, cap.user_id, now)
			if result is None:
				raise NotFound("report_not_found", "Report not found")
			if result.added:
				await append_entry(
					tx.audit,
					build_entry(
						actor_id=cap.user_id,
						action=AuditAction.REPORT_SPAM.value,
						now=now,
						entity_id=report_id,
						report_id=report_id,
						payload=SpamFlagged(
							flag_count=len(result.report.spam_reports),
							auto_flagged=result.auto_flagged,
						),
					),
				)
		if result.auto_flagged:
			obs_metrics.inc_spam_auto_flag()
			logger.info("report auto-flagged as spam", extra={"report_id": report_id})
			self.hub.report_update(
				result.report.campus_id,
				result.report.id,
				{"status": result.report.status, "is_spam": True},
			)
		return result

	async def moderator_update(
		self,
		moderator,
		report_id: str,
		body: ModeratorUpdateIn,
		*,
		expected_version: Optional[int] = None,
		metadata: Optional[RequestMetadata] = None,
	) -> Report:
		cap = Capability.of(moderator)
		policy.ensure_moderator(cap)
		report = await self._load(cap, report_id)
		self._check_version(report, expected_version)

		now = self._now()
		read_version = report.version
		old_status = report.status
		new_status = body.status.value if body.status is not None else None
		if new_status is not None and new_status != old_status:
			report.set_status(new_status, cap.user_id, now)
		notes_changed = body.moderator_notes is not None and body.moderator_notes != report.moderator_notes
		if body.moderator_notes is not None:
			report.moderator_notes = body.moderator_notes
		assignment_rejected = False
		if body.assigned_to is not None:
			target = await self.directory.get_user(body.assigned_to)
			if target is not None and policy.is_assignable(target.role):
				report.assigned_to = target.id
			else:
				# silently ignored; recorded in the audit payload only
				assignment_rejected = True
		report.updated_at = now
		status_changed = report.status != old_status
		action = status_action(
			new_status,
			assigned=body.assigned_to is not None and not assignment_rejected,
			notes=notes_changed,
		)

		async with self.store.transaction() as tx:
			report = await tx.reports.replace(report, expected_version=read_version)
			await append_entry(
				tx.audit,
				build_entry(
					actor_id=cap.user_id,
					action=action.value,
					now=now,
					entity_id=report.id,
					report_id=report.id,
					payload=ModeratorUpdate(
						notes_changed=notes_changed,
						assigned_to=report.assigned_to if body.assigned_to is not None else None,
						assignment_rejected=assignment_rejected,
					),
					changes=StatusChange(
						before=StatusSnapshot(status=old_status),
						after=StatusSnapshot(status=report.status),
					),
					metadata=metadata,
				),
			)
			if status_changed and report.reporter_id != cap.user_id:
				await tx.notifications.create(notices.status_changed(report, old_status, now))

		updates = {
			"status": report.status,
			"assigned_to": report.assigned_to,
			"resolved_by": report.resolved_by,
			"resolved_at": report.resolved_at.isoformat() if report.resolved_at else None,
			"version": report.version,
		}
		self.hub.report_update(report.campus_id, report.id, updates)
		self.hub.moderator_action(
			report.campus_id,
			{"action": action.value, "report_id": report.id, "actor_id": cap.user_id, "status": report.status},
		)
		return report

	async def list_for_moderation(self, moderator, query: ModerationQuery) -> Page:
		cap = Capability.of(moderator)
		policy.ensure_moderator(cap)
		filters = ReportFilters(
			category=query.category.value if query.category else None,
			min_severity=query.severity,
			status=query.status.value,
		)
		return await self.store.reports.list_for_moderation(
			cap.campus_id,
			filters,
			page=query.page,
			limit=query.limit,
		)
