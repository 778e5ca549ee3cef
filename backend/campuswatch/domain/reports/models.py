"""Domain models for incident reports and their comments."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional


class Category(str, Enum):
	SAFETY = "safety"
	EMERGENCY = "emergency"
	THEFT = "theft"
	SUSPICIOUS = "suspicious"
	SUSPICIOUS_ACTIVITY = "suspicious_activity"
	HARASSMENT = "harassment"
	VANDALISM = "vandalism"
	MEDICAL = "medical"
	FIRE = "fire"
	HAZARD = "hazard"
	ASSAULT = "assault"
	OTHER = "other"


class ReportStatus(str, Enum):
	REPORTED = "reported"
	VERIFIED = "verified"
	INVESTIGATING = "investigating"
	RESOLVED = "resolved"
	INVALID = "invalid"
	SPAM = "spam"


class VoteType(str, Enum):
	CONFIRM = "confirm"
	DISPUTE = "dispute"


class FeedSort(str, Enum):
	NEWEST = "newest"
	OLDEST = "oldest"
	SEVERITY_DESC = "severity_desc"
	SEVERITY_ASC = "severity_asc"
	POPULAR = "popular"


# Statuses shown to the community when the caller does not ask for one
VISIBLE_STATUSES = (
	ReportStatus.REPORTED.value,
	ReportStatus.VERIFIED.value,
	ReportStatus.INVESTIGATING.value,
	ReportStatus.RESOLVED.value,
)

EDIT_WINDOW = timedelta(minutes=30)
COMMENT_EDIT_WINDOW = timedelta(minutes=10)
SPAM_THRESHOLD = 5
MAX_MEDIA_URLS = 10
MIN_SEVERITY = 1
MAX_SEVERITY = 5
MIN_RADIUS_M = 100
MAX_RADIUS_M = 10_000
DELETED_COMMENT_PLACEHOLDER = "[Comment deleted]"


@dataclass(slots=True, frozen=True)
class GeoPoint:
	longitude: float
	latitude: float

	def as_coordinates(self) -> List[float]:
		return [self.longitude, self.latitude]


@dataclass(slots=True)
class EditSnapshot:
	edited_at: datetime
	changes: Dict[str, Any]


@dataclass(slots=True)
class Report:
	id: str
	reporter_id: str
	campus_id: str
	category: str
	severity: int
	title: str
	description: str
	location: GeoPoint
	created_at: datetime
	updated_at: datetime
	media_urls: List[str] = field(default_factory=list)
	is_anonymous: bool = False
	status: str = ReportStatus.REPORTED.value
	resolved_by: Optional[str] = None
	resolved_at: Optional[datetime] = None
	moderator_notes: Optional[str] = None
	assigned_to: Optional[str] = None
	confirms: List[str] = field(default_factory=list)
	disputes: List[str] = field(default_factory=list)
	comments_count: int = 0
	views_count: int = 0
	spam_reports: List[str] = field(default_factory=list)
	is_spam: bool = False
	is_edited: bool = False
	edited_at: Optional[datetime] = None
	edit_history: List[EditSnapshot] = field(default_factory=list)
	version: int = 1

	@property
	def confirm_count(self) -> int:
		return len(self.confirms)

	@property
	def dispute_count(self) -> int:
		return len(self.disputes)

	@property
	def net_votes(self) -> int:
		return len(self.confirms) - len(self.disputes)

	def can_edit(self, user_id: str, now: datetime) -> bool:
		if self.status != ReportStatus.REPORTED.value:
			return False
		if self.reporter_id != str(user_id):
			return False
		return now - self.created_at < EDIT_WINDOW

	def apply_vote(self, user_id: str, vote: VoteType) -> None:
		"""Move the user into the requested vote set, leaving the opposite one."""
		uid = str(user_id)
		if vote is VoteType.CONFIRM:
			self.disputes = [v for v in self.disputes if v != uid]
			if uid not in self.confirms:
				self.confirms.append(uid)
		else:
			self.confirms = [v for v in self.confirms if v != uid]
			if uid not in self.disputes:
				self.disputes.append(uid)

	def add_spam_flag(self, user_id: str) -> bool:
		"""Record a spam flag; returns True when the report just crossed the threshold."""
		uid = str(user_id)
		if uid not in self.spam_reports:
			self.spam_reports.append(uid)
		if len(self.spam_reports) >= SPAM_THRESHOLD and not self.is_spam:
			self.is_spam = True
			self.status = ReportStatus.SPAM.value
			self.resolved_by = None
			self.resolved_at = None
			return True
		return False

	def set_status(self, status: str, actor_id: str, now: datetime) -> None:
		self.status = status
		if status == ReportStatus.RESOLVED.value:
			self.resolved_by = str(actor_id)
			self.resolved_at = now
		else:
			# resolved_* describe the current resolution only
			self.resolved_by = None
			self.resolved_at = None


@dataclass(slots=True)
class Comment:
	id: str
	report_id: str
	user_id: str
	content: str
	created_at: datetime
	updated_at: datetime
	is_anonymous: bool = False
	is_moderator_comment: bool = False
	is_edited: bool = False
	edited_at: Optional[datetime] = None
	is_deleted: bool = False
	deleted_at: Optional[datetime] = None

	def can_edit(self, user_id: str, now: datetime) -> bool:
		if self.is_deleted:
			return False
		if self.user_id != str(user_id):
			return False
		return now - self.created_at < COMMENT_EDIT_WINDOW

	@property
	def display_content(self) -> str:
		return DELETED_COMMENT_PLACEHOLDER if self.is_deleted else self.content


@dataclass(slots=True)
class ReportFilters:
	category: Optional[str] = None
	min_severity: Optional[int] = None
	status: Optional[str] = None
	since: Optional[datetime] = None

	def statuses(self) -> tuple[str, ...]:
		if self.status:
			return (self.status,)
		return VISIBLE_STATUSES


@dataclass(slots=True)
class Page:
	items: List[Any]
	total: int
	page: int
	limit: int

	@property
	def pages(self) -> int:
		if self.limit <= 0:
			return 0
		return (self.total + self.limit - 1) // self.limit
