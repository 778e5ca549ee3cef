"""Moderation dashboard, user bans and the audit listing."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from campuswatch.domain.audit.models import AuditAction, EntityType, RequestMetadata, SystemAlertSent, UserBanned, UserUnbanned
from campuswatch.domain.audit.service import AuditQueries, append_entry, build_entry
from campuswatch.domain.directory.models import UserRecord, can_moderate
from campuswatch.domain.directory.repo import DirectoryRepository
from campuswatch.domain.realtime.hub import FanoutHub
from campuswatch.domain.reports import policy
from campuswatch.domain.reports.exceptions import Forbidden, InvalidArgument, NotFound
from campuswatch.domain.reports.models import Page
from campuswatch.domain.reports.policy import Capability
from campuswatch.domain.store import UnitOfWork

logger = logging.getLogger(__name__)

DEFAULT_BAN_REASON = "Violation of community guidelines"
RECENT_ACTIONS_LIMIT = 10
MAX_AUDIT_PAGE = 100


def start_of_day(now: datetime) -> datetime:
	return now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)


class ModerationService:
	def __init__(
		self,
		store: UnitOfWork,
		directory: DirectoryRepository,
		hub: FanoutHub,
		*,
		clock: Optional[Callable[[], datetime]] = None,
	) -> None:
		self.store = store
		self.directory = directory
		self.hub = hub
		self.audit = AuditQueries(store.audit, directory)
		self._now = clock or (lambda: datetime.now(timezone.utc))

	async def summary(self, moderator) -> Dict[str, Any]:
		"""Counts for the caller's campus plus the latest moderation actions."""
		cap = Capability.of(moderator)
		policy.ensure_moderator(cap)
		counts = await self.store.reports.campus_counts(cap.campus_id, start_of_day(self._now()))
		recent = await self.audit.recent_moderation_actions(limit=RECENT_ACTIONS_LIMIT)
		return {
			"stats": {
				"pending_reports": counts.pending,
				"verified_today": counts.verified_today,
				"resolved_today": counts.resolved_today,
				"total_reports": counts.total,
				"spam_reports": counts.spam,
			},
			"recent_actions": [summary.to_dict() for summary in recent],
		}

	async def _target(self, cap: Capability, user_id: str) -> UserRecord:
		policy.ensure_moderator(cap)
		target = await self.directory.get_user(user_id)
		if target is None:
			raise NotFound("user_not_found", "User not found")
		policy.ensure_campus_scope(cap, target.campus_id)
		if target.id == cap.user_id:
			raise InvalidArgument("self_ban", "You cannot ban yourself", field="user_id")
		if can_moderate(target.role) and not cap.admin:
			raise Forbidden("protected_user", "Only admins may ban moderators")
		return target

	async def ban_user(
		self,
		moderator,
		user_id: str,
		reason: Optional[str] = None,
		*,
		metadata: Optional[RequestMetadata] = None,
	) -> UserRecord:
		cap = Capability.of(moderator)
		target = await self._target(cap, user_id)
		if target.is_banned:
			return target
		reason = (reason or "").strip() or DEFAULT_BAN_REASON
		now = self._now()
		async with self.store.transaction() as tx:
			await append_entry(
				tx.audit,
				build_entry(
					actor_id=cap.user_id,
					action=AuditAction.BAN_USER.value,
					now=now,
					entity_type=EntityType.USER.value,
					entity_id=target.id,
					payload=UserBanned(reason=reason),
					metadata=metadata,
				),
			)
			updated = await self.directory.set_banned(target.id, banned=True, reason=reason, at=now)
		if updated is None:
			raise NotFound("user_not_found", "User not found")
		logger.info("user banned", extra={"user_id": target.id, "actor_id": cap.user_id})
		self.hub.moderator_action(
			target.campus_id,
			{"action": AuditAction.BAN_USER.value, "user_id": target.id, "actor_id": cap.user_id, "reason": reason},
		)
		return updated

	async def unban_user(self, moderator, user_id: str, *, metadata: Optional[RequestMetadata] = None) -> UserRecord:
		cap = Capability.of(moderator)
		target = await self._target(cap, user_id)
		if not target.is_banned:
			return target
		now = self._now()
		async with self.store.transaction() as tx:
			await append_entry(
				tx.audit,
				build_entry(
					actor_id=cap.user_id,
					action=AuditAction.UNBAN_USER.value,
					now=now,
					entity_type=EntityType.USER.value,
					entity_id=target.id,
					payload=UserUnbanned(),
					metadata=metadata,
				),
			)
			updated = await self.directory.set_banned(target.id, banned=False, reason=None, at=None)
		if updated is None:
			raise NotFound("user_not_found", "User not found")
		logger.info("user unbanned", extra={"user_id": target.id, "actor_id": cap.user_id})
		self.hub.moderator_action(
			target.campus_id,
			{"action": AuditAction.UNBAN_USER.value, "user_id": target.id, "actor_id": cap.user_id},
		)
		return updated

	async def system_alert(
		self,
		admin,
		message: str,
		level: str = "warning",
		*,
		campus_id: Optional[str] = None,
		metadata: Optional[RequestMetadata] = None,
	) -> Dict[str, Any]:
		"""Broadcast an alert to everyone connected on a campus. Super-admins may target any campus."""
		cap = Capability.of(admin)
		policy.ensure_admin(cap)
		target = campus_id or cap.campus_id
		policy.ensure_campus_scope(cap, target)
		now = self._now()
		async with self.store.transaction() as tx:
			entry = await append_entry(
				tx.audit,
				build_entry(
					actor_id=cap.user_id,
					action=AuditAction.SYSTEM_ALERT.value,
					now=now,
					entity_type=EntityType.CAMPUS.value,
					entity_id=target,
					payload=SystemAlertSent(message=message, level=level),
					metadata=metadata,
				),
			)
		alert = {"id": entry.id, "message": message, "level": level, "sent_by": cap.user_id, "sent_at": now.isoformat()}
		logger.info("system alert sent", extra={"campus_id": target, "actor_id": cap.user_id})
		self.hub.system_alert(target, alert)
		return alert

	async def audit_log(
		self,
		moderator,
		*,
		report_id: Optional[str] = None,
		actor_id: Optional[str] = None,
		page: int = 1,
		limit: int = MAX_AUDIT_PAGE,
	) -> Page:
		cap = Capability.of(moderator)
		policy.ensure_moderator(cap)
		page = max(1, int(page))
		limit = max(1, min(MAX_AUDIT_PAGE, int(limit)))
		if report_id:
			report = await self.store.reports.get(report_id)
			if report is None:
				raise NotFound("report_not_found", "Report not found")
			policy.ensure_campus_scope(cap, report.campus_id)
			return await self.audit.for_report(report_id, page=page, limit=limit)
		if actor_id:
			return await self.audit.for_actor(actor_id, page=page, limit=limit)
		return await self.audit.recent(page=page, limit=limit)
