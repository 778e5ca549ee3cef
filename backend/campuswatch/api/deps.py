"""FastAPI dependencies shared by the routers."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Depends, Header, Request

from campuswatch.domain import container
from campuswatch.domain.audit.models import RequestMetadata
from campuswatch.domain.directory.repo import DirectoryRepository
from campuswatch.domain.moderation.service import ModerationService
from campuswatch.domain.notifications.service import NotificationService
from campuswatch.domain.reports import policy
from campuswatch.domain.reports.exceptions import Forbidden, InvalidArgument, Unauthenticated
from campuswatch.domain.reports.policy import Capability
from campuswatch.domain.reports.service import ReportLifecycleService
from campuswatch.infra.auth import AuthenticatedUser, get_current_user


def get_directory_dep() -> DirectoryRepository:
	return container.get_directory()


def get_report_service_dep() -> ReportLifecycleService:
	return container.get_report_service()


def get_moderation_service_dep() -> ModerationService:
	return container.get_moderation_service()


def get_notification_service_dep() -> NotificationService:
	return container.get_notification_service()


async def require_user(
	claims: AuthenticatedUser = Depends(get_current_user),
	directory: DirectoryRepository = Depends(get_directory_dep),
) -> AuthenticatedUser:
	"""Resolve the token identity against the directory; role and campus come from the record."""
	record = await directory.get_user(claims.id)
	if record is None:
		raise Unauthenticated("unknown_user", "User not found")
	if not record.is_active:
		raise Forbidden("account_inactive", "Account is inactive")
	if record.is_banned:
		raise Forbidden("account_banned", "Account is banned")
	return AuthenticatedUser(
		id=record.id,
		campus_id=record.campus_id,
		role=record.role,
		name=record.name,
		email_verified=record.is_verified,
	)


async def require_verified(user: AuthenticatedUser = Depends(require_user)) -> AuthenticatedUser:
	if not user.email_verified:
		raise Forbidden("email_unverified", "Please verify your email before creating reports")
	return user


async def require_moderator(user: AuthenticatedUser = Depends(require_user)) -> AuthenticatedUser:
	policy.ensure_moderator(Capability.of(user))
	return user


def request_metadata(request: Request) -> RequestMetadata:
	client = request.client
	return RequestMetadata(
		ip_address=client.host if client else None,
		user_agent=request.headers.get("user-agent"),
	)


def expected_version(if_match: Optional[str] = Header(default=None, alias="If-Match")) -> Optional[int]:
	if if_match is None:
		return None
	value = if_match.strip().strip('"')
	if value.startswith("W/"):
		value = value[2:].strip('"')
	try:
		return int(value)
	except ValueError:
		raise InvalidArgument("invalid_version", "If-Match must carry the report version", field="If-Match") from None


def ok(data: Any = None, message: Optional[str] = None) -> Dict[str, Any]:
	body: Dict[str, Any] = {"success": True}
	if message:
		body["message"] = message
	body["data"] = data
	return body


def page_body(items: list, page) -> Dict[str, Any]:
	return {
		"items": items,
		"pagination": {
			"page": page.page,
			"limit": page.limit,
			"total": page.total,
			"pages": page.pages,
		},
	}
