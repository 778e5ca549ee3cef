"""Moderator endpoints: dashboard, queue, status updates, bans and the audit trail."""

from __future__ import annotations

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request

from campuswatch.api.deps import (
	expected_version,
	get_moderation_service_dep,
	get_report_service_dep,
	ok,
	page_body,
	request_metadata,
	require_moderator,
)
from campuswatch.domain.moderation.service import ModerationService
from campuswatch.domain.reports.policy import Capability
from campuswatch.domain.reports.schemas import BanUserIn, ModerationQuery, ModeratorUpdateIn, SystemAlertIn, report_view
from campuswatch.domain.reports.service import ReportLifecycleService
from campuswatch.infra.auth import AuthenticatedUser

router = APIRouter(prefix="/api/moderation", tags=["moderation"])


def _user_out(user) -> dict:
	return {
		"id": user.id,
		"name": user.name,
		"role": user.role,
		"campus_id": user.campus_id,
		"is_banned": user.is_banned,
		"banned_reason": user.banned_reason,
		"banned_at": user.banned_at.isoformat() if user.banned_at else None,
	}


@router.get("/summary")
async def moderation_summary(
	user: AuthenticatedUser = Depends(require_moderator),
	service: ModerationService = Depends(get_moderation_service_dep),
):
	return ok(await service.summary(user))


@router.get("/reports")
async def moderation_queue(
	query: Annotated[ModerationQuery, Query()],
	user: AuthenticatedUser = Depends(require_moderator),
	reports: ReportLifecycleService = Depends(get_report_service_dep),
):
	page = await reports.list_for_moderation(user, query)
	viewer = Capability.of(user)
	users = await reports.people(report.reporter_id for report in page.items)
	return ok(page_body([report_view(report, viewer, users) for report in page.items], page))


@router.patch("/reports/{report_id}")
async def update_report(
	request: Request,
	report_id: str,
	payload: ModeratorUpdateIn,
	version: Optional[int] = Depends(expected_version),
	user: AuthenticatedUser = Depends(require_moderator),
	reports: ReportLifecycleService = Depends(get_report_service_dep),
):
	report = await reports.moderator_update(
		user,
		report_id,
		payload,
		expected_version=version,
		metadata=request_metadata(request),
	)
	users = await reports.people([report.reporter_id, report.resolved_by])
	return ok(report_view(report, Capability.of(user), users), "Report updated successfully")


@router.post("/ban-user")
async def ban_user(
	request: Request,
	payload: BanUserIn,
	user: AuthenticatedUser = Depends(require_moderator),
	service: ModerationService = Depends(get_moderation_service_dep),
):
	banned = await service.ban_user(user, payload.user_id, payload.reason, metadata=request_metadata(request))
	return ok(_user_out(banned), "User banned successfully")


@router.post("/unban-user")
async def unban_user(
	request: Request,
	payload: BanUserIn,
	user: AuthenticatedUser = Depends(require_moderator),
	service: ModerationService = Depends(get_moderation_service_dep),
):
	unbanned = await service.unban_user(user, payload.user_id, metadata=request_metadata(request))
	return ok(_user_out(unbanned), "User unbanned successfully")


@router.post("/system-alert")
async def system_alert(
	request: Request,
	payload: SystemAlertIn,
	user: AuthenticatedUser = Depends(require_moderator),
	service: ModerationService = Depends(get_moderation_service_dep),
):
	alert = await service.system_alert(
		user,
		payload.message,
		payload.level,
		campus_id=payload.campus_id,
		metadata=request_metadata(request),
	)
	return ok(alert, "Alert sent")


@router.get("/audit")
async def audit_log(
	report_id: Optional[str] = Query(default=None),
	actor_id: Optional[str] = Query(default=None),
	page: int = Query(default=1, ge=1),
	limit: int = Query(default=100, ge=1, le=100),
	user: AuthenticatedUser = Depends(require_moderator),
	service: ModerationService = Depends(get_moderation_service_dep),
):
	result = await service.audit_log(user, report_id=report_id, actor_id=actor_id, page=page, limit=limit)
	return ok(page_body([entry.to_dict() for entry in result.items], result))
