"""Report endpoints: CRUD, nearby search, feed, votes, comments and spam flags."""

from __future__ import annotations

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request, status

from campuswatch.api.deps import (
	expected_version,
	get_report_service_dep,
	ok,
	page_body,
	request_metadata,
	require_user,
	require_verified,
)
from campuswatch.domain.reports.policy import Capability
from campuswatch.domain.reports.schemas import (
	CommentCreate,
	CommentEdit,
	FeedQuery,
	NearbyQuery,
	ReportCreate,
	ReportEdit,
	VoteIn,
	comment_view,
	report_view,
)
from campuswatch.domain.reports.service import ReportLifecycleService
from campuswatch.infra.auth import AuthenticatedUser

router = APIRouter(prefix="/api", tags=["reports"])


async def _render(service: ReportLifecycleService, report, viewer: AuthenticatedUser, **extra) -> dict:
	users = await service.people([report.reporter_id, report.resolved_by])
	return report_view(report, Capability.of(viewer), users, **extra)


@router.post("/reports", status_code=status.HTTP_201_CREATED)
async def create_report(
	request: Request,
	payload: ReportCreate,
	user: AuthenticatedUser = Depends(require_verified),
	service: ReportLifecycleService = Depends(get_report_service_dep),
):
	report = await service.create(user, payload, metadata=request_metadata(request))
	return ok(await _render(service, report, user), "Report created successfully")


@router.get("/reports/nearby")
async def nearby_reports(
	query: Annotated[NearbyQuery, Query()],
	user: AuthenticatedUser = Depends(require_user),
	service: ReportLifecycleService = Depends(get_report_service_dep),
):
	results = await service.nearby(user, query)
	viewer = Capability.of(user)
	users = await service.people(report.reporter_id for report, _ in results)
	items = [report_view(report, viewer, users, distance_m=distance) for report, distance in results]
	return ok({"reports": items, "count": len(items)})


@router.get("/reports/feed")
async def report_feed(
	query: Annotated[FeedQuery, Query()],
	user: AuthenticatedUser = Depends(require_user),
	service: ReportLifecycleService = Depends(get_report_service_dep),
):
	page = await service.feed(user, query)
	viewer = Capability.of(user)
	users = await service.people(report.reporter_id for report in page.items)
	return ok(page_body([report_view(report, viewer, users) for report in page.items], page))


@router.get("/reports/{report_id}")
async def get_report(
	report_id: str,
	user: AuthenticatedUser = Depends(require_user),
	service: ReportLifecycleService = Depends(get_report_service_dep),
):
	report = await service.get(user, report_id)
	return ok(await _render(service, report, user))


@router.put("/reports/{report_id}")
async def edit_report(
	request: Request,
	report_id: str,
	payload: ReportEdit,
	version: Optional[int] = Depends(expected_version),
	user: AuthenticatedUser = Depends(require_user),
	service: ReportLifecycleService = Depends(get_report_service_dep),
):
	report = await service.edit(
		user,
		report_id,
		payload,
		expected_version=version,
		metadata=request_metadata(request),
	)
	return ok(await _render(service, report, user), "Report updated successfully")


@router.delete("/reports/{report_id}")
async def retract_report(
	request: Request,
	report_id: str,
	version: Optional[int] = Depends(expected_version),
	user: AuthenticatedUser = Depends(require_user),
	service: ReportLifecycleService = Depends(get_report_service_dep),
):
	await service.retract(user, report_id, expected_version=version, metadata=request_metadata(request))
	return ok(None, "Report deleted successfully")


@router.post("/reports/{report_id}/vote")
async def vote_report(
	report_id: str,
	payload: VoteIn,
	user: AuthenticatedUser = Depends(require_user),
	service: ReportLifecycleService = Depends(get_report_service_dep),
):
	report = await service.vote(user, report_id, payload.vote)
	return ok(
		{
			"confirm_count": report.confirm_count,
			"dispute_count": report.dispute_count,
			"net_votes": report.net_votes,
			"my_vote": payload.vote.value,
		},
		"Vote recorded successfully",
	)


@router.post("/reports/{report_id}/spam")
async def flag_spam(
	report_id: str,
	user: AuthenticatedUser = Depends(require_user),
	service: ReportLifecycleService = Depends(get_report_service_dep),
):
	result = await service.flag_spam(user, report_id)
	message = "Report flagged as spam" if result.added else "Report already flagged"
	return ok(
		{
			"spam_reports_count": len(result.report.spam_reports),
			"is_spam": result.report.is_spam,
			"status": result.report.status,
		},
		message,
	)


@router.get("/reports/{report_id}/comments")
async def list_comments(
	report_id: str,
	page: int = Query(default=1, ge=1),
	limit: int = Query(default=50, ge=1, le=100),
	user: AuthenticatedUser = Depends(require_user),
	service: ReportLifecycleService = Depends(get_report_service_dep),
):
	result = await service.list_comments(user, report_id, page=page, limit=limit)
	viewer = Capability.of(user)
	users = await service.people(comment.user_id for comment in result.items)
	return ok(page_body([comment_view(comment, viewer, users) for comment in result.items], result))


@router.post("/reports/{report_id}/comments", status_code=status.HTTP_201_CREATED)
async def add_comment(
	report_id: str,
	payload: CommentCreate,
	user: AuthenticatedUser = Depends(require_user),
	service: ReportLifecycleService = Depends(get_report_service_dep),
):
	comment = await service.comment(user, report_id, payload)
	users = await service.people([comment.user_id])
	return ok(comment_view(comment, Capability.of(user), users), "Comment added successfully")


@router.put("/comments/{comment_id}")
async def edit_comment(
	comment_id: str,
	payload: CommentEdit,
	user: AuthenticatedUser = Depends(require_user),
	service: ReportLifecycleService = Depends(get_report_service_dep),
):
	comment = await service.edit_comment(user, comment_id, payload)
	users = await service.people([comment.user_id])
	return ok(comment_view(comment, Capability.of(user), users), "Comment updated successfully")


@router.delete("/comments/{comment_id}")
async def delete_comment(
	comment_id: str,
	user: AuthenticatedUser = Depends(require_user),
	service: ReportLifecycleService = Depends(get_report_service_dep),
):
	await service.delete_comment(user, comment_id)
	return ok(None, "Comment deleted successfully")
