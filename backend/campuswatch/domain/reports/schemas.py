"""Pydantic schemas for report endpoints and the views they return."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator

from campuswatch.domain.directory.models import UserRecord
from campuswatch.domain.reports.models import (
	MAX_MEDIA_URLS,
	MAX_RADIUS_M,
	MAX_SEVERITY,
	MIN_RADIUS_M,
	MIN_SEVERITY,
	Category,
	Comment,
	FeedSort,
	Report,
	ReportStatus,
	VoteType,
)
from campuswatch.domain.reports.policy import Capability


def _check_media(urls: List[str]) -> List[str]:
	for url in urls:
		if not url.lower().startswith(("http://", "https://")):
			raise ValueError("media URLs must be http(s) URIs")
	return urls


MediaUrls = Annotated[List[str], AfterValidator(_check_media)]


class LocationIn(BaseModel):
	"""GeoJSON point; coordinates are [longitude, latitude]."""

	type: Literal["Point"] = "Point"
	coordinates: List[float] = Field(..., min_length=2, max_length=2)

	@property
	def longitude(self) -> float:
		return self.coordinates[0]

	@property
	def latitude(self) -> float:
		return self.coordinates[1]


class ReportCreate(BaseModel):
	model_config = ConfigDict(str_strip_whitespace=True)

	category: Category
	severity: int = Field(..., ge=MIN_SEVERITY, le=MAX_SEVERITY)
	title: str = Field(..., min_length=5, max_length=200)
	description: str = Field(..., min_length=10, max_length=2000)
	location: LocationIn
	media_urls: MediaUrls = Field(default_factory=list, max_length=MAX_MEDIA_URLS)
	is_anonymous: bool = False


class ReportEdit(BaseModel):
	model_config = ConfigDict(str_strip_whitespace=True)

	category: Optional[Category] = None
	severity: Optional[int] = Field(default=None, ge=MIN_SEVERITY, le=MAX_SEVERITY)
	title: Optional[str] = Field(default=None, min_length=5, max_length=200)
	description: Optional[str] = Field(default=None, min_length=10, max_length=2000)
	media_urls: Optional[MediaUrls] = Field(default=None, max_length=MAX_MEDIA_URLS)

	@model_validator(mode="after")
	def _at_least_one(self) -> "ReportEdit":
		if not self.model_fields_set or all(getattr(self, name) is None for name in self.model_fields_set):
			raise ValueError("at least one field must be provided")
		return self

	def changes(self) -> Dict[str, Any]:
		data = self.model_dump(exclude_none=True)
		if "category" in data:
			data["category"] = Category(data["category"]).value
		return data


class VoteIn(BaseModel):
	vote: VoteType


class CommentCreate(BaseModel):
	model_config = ConfigDict(str_strip_whitespace=True)

	content: str = Field(..., min_length=1, max_length=500)
	is_anonymous: bool = False


class CommentEdit(BaseModel):
	model_config = ConfigDict(str_strip_whitespace=True)

	content: str = Field(..., min_length=1, max_length=500)


class ModeratorUpdateIn(BaseModel):
	model_config = ConfigDict(str_strip_whitespace=True)

	status: Optional[ReportStatus] = None
	moderator_notes: Optional[str] = Field(default=None, max_length=1000)
	assigned_to: Optional[str] = None


class NearbyQuery(BaseModel):
	lat: float = Field(..., ge=-90.0, le=90.0)
	lon: float = Field(..., ge=-180.0, le=180.0)
	radius: float = Field(default=1000, ge=MIN_RADIUS_M, le=MAX_RADIUS_M)
	category: Optional[Category] = None
	severity: Optional[int] = Field(default=None, ge=MIN_SEVERITY, le=MAX_SEVERITY)
	status: Optional[ReportStatus] = None
	since: Optional[datetime] = None
	limit: int = Field(default=100, ge=1, le=500)


class FeedQuery(BaseModel):
	page: int = Field(default=1, ge=1)
	limit: int = Field(default=20, ge=1, le=100)
	category: Optional[Category] = None
	severity: Optional[int] = Field(default=None, ge=MIN_SEVERITY, le=MAX_SEVERITY)
	status: Optional[ReportStatus] = None
	sort: FeedSort = FeedSort.NEWEST


class ModerationQuery(BaseModel):
	page: int = Field(default=1, ge=1)
	limit: int = Field(default=50, ge=1, le=100)
	status: ReportStatus = ReportStatus.REPORTED
	severity: Optional[int] = Field(default=None, ge=MIN_SEVERITY, le=MAX_SEVERITY)
	category: Optional[Category] = None


class BanUserIn(BaseModel):
	model_config = ConfigDict(str_strip_whitespace=True)

	user_id: str = Field(..., min_length=1)
	reason: Optional[str] = Field(default=None, max_length=500)


class SystemAlertIn(BaseModel):
	model_config = ConfigDict(str_strip_whitespace=True)

	message: str = Field(..., min_length=1, max_length=500)
	level: Literal["info", "warning", "critical"] = "warning"
	campus_id: Optional[str] = None


def _person(user_id: Optional[str], users: Mapping[str, UserRecord], *, with_role: bool = False) -> Optional[dict]:
	if user_id is None:
		return None
	user = users.get(user_id)
	person: Dict[str, Any] = {"id": user_id, "name": user.name if user else None}
	if with_role:
		person["role"] = user.role if user else None
	return person


def report_view(
	report: Report,
	viewer: Capability,
	users: Mapping[str, UserRecord] | None = None,
	*,
	distance_m: Optional[float] = None,
) -> Dict[str, Any]:
	"""Render a report for `viewer`; moderator-only fields never reach other roles."""
	users = users or {}
	privileged = viewer.moderator
	hide_reporter = report.is_anonymous and not privileged and report.reporter_id != viewer.user_id
	data: Dict[str, Any] = {
		"id": report.id,
		"campus_id": report.campus_id,
		"reporter": None if hide_reporter else _person(report.reporter_id, users),
		"category": report.category,
		"severity": report.severity,
		"title": report.title,
		"description": report.description,
		"location": {"type": "Point", "coordinates": report.location.as_coordinates()},
		"media_urls": list(report.media_urls),
		"is_anonymous": report.is_anonymous,
		"status": report.status,
		"resolved_by": _person(report.resolved_by, users, with_role=True),
		"resolved_at": report.resolved_at.isoformat() if report.resolved_at else None,
		"assigned_to": report.assigned_to,
		"confirm_count": report.confirm_count,
		"dispute_count": report.dispute_count,
		"net_votes": report.net_votes,
		"comments_count": report.comments_count,
		"views_count": report.views_count,
		"is_spam": report.is_spam,
		"is_edited": report.is_edited,
		"edited_at": report.edited_at.isoformat() if report.edited_at else None,
		"version": report.version,
		"created_at": report.created_at.isoformat(),
		"updated_at": report.updated_at.isoformat(),
	}
	if viewer.user_id in report.confirms:
		data["my_vote"] = VoteType.CONFIRM.value
	elif viewer.user_id in report.disputes:
		data["my_vote"] = VoteType.DISPUTE.value
	else:
		data["my_vote"] = None
	if distance_m is not None:
		data["distance_m"] = round(distance_m, 1)
	if privileged:
		data["moderator_notes"] = report.moderator_notes
		data["spam_reports"] = list(report.spam_reports)
		data["edit_history"] = [
			{"edited_at": snap.edited_at.isoformat(), "changes": snap.changes} for snap in report.edit_history
		]
	return data


def comment_view(
	comment: Comment,
	viewer: Capability,
	users: Mapping[str, UserRecord] | None = None,
) -> Dict[str, Any]:
	users = users or {}
	hide_author = comment.is_anonymous and not viewer.moderator and comment.user_id != viewer.user_id
	return {
		"id": comment.id,
		"report_id": comment.report_id,
		"author": None if hide_author else _person(comment.user_id, users, with_role=True),
		"content": comment.display_content,
		"is_anonymous": comment.is_anonymous,
		"is_moderator_comment": comment.is_moderator_comment,
		"is_edited": comment.is_edited,
		"is_deleted": comment.is_deleted,
		"created_at": comment.created_at.isoformat(),
		"updated_at": comment.updated_at.isoformat(),
	}
