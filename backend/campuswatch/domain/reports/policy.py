"""Authorization rules for report operations.

Each operation builds one `Capability` for the caller and evaluates the named
rules it needs; handlers never compare roles or campus ids themselves.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from campuswatch.domain.directory.models import Role, can_admin, can_moderate, is_super_admin
from campuswatch.domain.reports.exceptions import EditWindowClosed, Forbidden
from campuswatch.domain.reports.models import Comment, Report, ReportStatus


@dataclass(frozen=True, slots=True)
class Capability:
	user_id: str
	role: str
	campus_id: str

	@classmethod
	def of(cls, user) -> "Capability":
		return cls(user_id=str(user.id), role=str(user.role), campus_id=str(user.campus_id))

	@property
	def moderator(self) -> bool:
		return can_moderate(self.role)

	@property
	def admin(self) -> bool:
		return can_admin(self.role)

	@property
	def super_admin(self) -> bool:
		return is_super_admin(self.role)


def ensure_campus_scope(cap: Capability, campus_id: str) -> None:
	if cap.super_admin:
		return
	if str(campus_id) != cap.campus_id:
		raise Forbidden("campus_scope", "Report belongs to a different campus")


def ensure_owner_or_admin(cap: Capability, owner_id: str) -> None:
	if str(owner_id) == cap.user_id or cap.admin:
		return
	raise Forbidden("not_owner", "Only the author or an admin may do this")


def ensure_moderator(cap: Capability) -> None:
	if not cap.moderator:
		raise Forbidden("moderator_required", "Moderator access required")


def ensure_admin(cap: Capability) -> None:
	if not cap.admin:
		raise Forbidden("admin_required", "Admin access required")


def ensure_can_edit(cap: Capability, report: Report, now: datetime) -> None:
	if report.reporter_id != cap.user_id:
		raise Forbidden("not_owner", "You can only edit your own reports")
	if report.status != ReportStatus.REPORTED.value:
		raise EditWindowClosed("status_locked", "Report can no longer be edited")
	if not report.can_edit(cap.user_id, now):
		raise EditWindowClosed("edit_window_closed", "Reports can only be edited within 30 minutes of creation")


def ensure_can_edit_comment(cap: Capability, comment: Comment, now: datetime) -> None:
	if comment.user_id != cap.user_id:
		raise Forbidden("not_owner", "You can only edit your own comments")
	if not comment.can_edit(cap.user_id, now):
		raise EditWindowClosed("edit_window_closed", "Comments can only be edited within 10 minutes")


def ensure_can_delete_comment(cap: Capability, comment: Comment) -> None:
	if comment.user_id == cap.user_id or cap.moderator:
		return
	raise Forbidden("not_owner", "You can only delete your own comments")


def is_assignable(role: str) -> bool:
	return role == Role.SECURITY.value
