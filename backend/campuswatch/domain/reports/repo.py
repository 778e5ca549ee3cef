"""Report and comment storage contracts with the in-memory implementation."""

from __future__ import annotations

import copy
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, AsyncContextManager, Callable, Dict, List, Optional, Protocol, Tuple

from campuswatch.domain.reports import geo
from campuswatch.domain.reports.exceptions import StaleVersion
from campuswatch.domain.reports.models import (
	Comment,
	FeedSort,
	GeoPoint,
	Page,
	Report,
	ReportFilters,
	ReportStatus,
	VoteType,
)

if TYPE_CHECKING:  # pragma: no cover - type-only imports
	from campuswatch.domain.store import MemoryState


@dataclass(slots=True)
class SpamFlagResult:
	report: Report
	added: bool
	auto_flagged: bool


@dataclass(slots=True)
class CampusCounts:
	pending: int
	verified_today: int
	resolved_today: int
	total: int
	spam: int


class ReportRepository(Protocol):
	async def get(self, report_id: str) -> Optional[Report]:
		...

	async def insert(self, report: Report) -> Report:
		...

	async def replace(self, report: Report, *, expected_version: int) -> Report:
		"""Persist a full document; raises StaleVersion when the stored version moved on."""
		...

	async def cast_vote(self, report_id: str, user_id: str, vote: VoteType, now: datetime) -> Optional[Report]:
		...

	async def flag_spam(self, report_id: str, user_id: str, now: datetime) -> Optional[SpamFlagResult]:
		...

	async def increment_views(self, report_id: str) -> Optional[Report]:
		...

	async def adjust_comments(self, report_id: str, delta: int) -> None:
		...

	async def find_nearby(
		self,
		campus_id: str,
		center: GeoPoint,
		radius_m: float,
		filters: ReportFilters,
		*,
		limit: int,
	) -> List[Report]:
		...

	async def find_feed(
		self,
		campus_id: str,
		filters: ReportFilters,
		sort: FeedSort,
		*,
		page: int,
		limit: int,
	) -> Page:
		...

	async def list_for_moderation(
		self,
		campus_id: Optional[str],
		filters: ReportFilters,
		*,
		page: int,
		limit: int,
	) -> Page:
		...

	async def campus_counts(self, campus_id: Optional[str], since: datetime) -> CampusCounts:
		...


class CommentRepository(Protocol):
	async def get(self, comment_id: str) -> Optional[Comment]:
		...

	async def insert(self, comment: Comment) -> Comment:
		...

	async def save(self, comment: Comment) -> Comment:
		...

	async def list_for_report(self, report_id: str, *, limit: int, offset: int = 0) -> Tuple[List[Comment], int]:
		...


def _matches(report: Report, filters: ReportFilters) -> bool:
	if report.status not in filters.statuses():
		return False
	if filters.category and report.category != filters.category:
		return False
	if filters.min_severity is not None and report.severity < filters.min_severity:
		return False
	if filters.since is not None and report.created_at < filters.since:
		return False
	return True


def _newest(report: Report) -> float:
	return report.created_at.timestamp()


def sort_feed(reports: List[Report], sort: FeedSort) -> List[Report]:
	"""Order feed rows; ties always fall back to newest first."""
	if sort is FeedSort.OLDEST:
		return sorted(reports, key=_newest)
	if sort is FeedSort.SEVERITY_DESC:
		return sorted(reports, key=lambda r: (-r.severity, -_newest(r)))
	if sort is FeedSort.SEVERITY_ASC:
		return sorted(reports, key=lambda r: (r.severity, -_newest(r)))
	if sort is FeedSort.POPULAR:
		return sorted(reports, key=lambda r: (-r.views_count, -_newest(r)))
	return sorted(reports, key=_newest, reverse=True)


def _paginate(rows: List, page: int, limit: int) -> Page:
	start = (page - 1) * limit
	return Page(items=rows[start : start + limit], total=len(rows), page=page, limit=limit)


# written by replace(); votes, spam flags and counters only move through their own operations
DOCUMENT_FIELDS = (
	"category",
	"severity",
	"title",
	"description",
	"location",
	"media_urls",
	"status",
	"resolved_by",
	"resolved_at",
	"moderator_notes",
	"assigned_to",
	"is_edited",
	"edited_at",
	"edit_history",
	"updated_at",
)


class InMemoryReportRepository(ReportRepository):
	def __init__(self, state: "MemoryState", guard: Callable[[], AsyncContextManager[None]]) -> None:
		self._state = state
		self._guard = guard

	@property
	def _rows(self) -> Dict[str, Report]:
		return self._state.reports

	async def get(self, report_id: str) -> Optional[Report]:
		# callers mutate what they read; the stored row only changes through replace()
		report = self._rows.get(str(report_id))
		return copy.deepcopy(report) if report is not None else None

	async def insert(self, report: Report) -> Report:
		async with self._guard():
			self._rows[report.id] = report
		return report

	async def replace(self, report: Report, *, expected_version: int) -> Report:
		async with self._guard():
			current = self._rows.get(report.id)
			if current is None or current.version != expected_version:
				raise StaleVersion("stale_version", "Report was modified concurrently; reload and retry")
			for name in DOCUMENT_FIELDS:
				setattr(current, name, copy.deepcopy(getattr(report, name)))
			current.version = expected_version + 1
			return copy.deepcopy(current)

	async def cast_vote(self, report_id: str, user_id: str, vote: VoteType, now: datetime) -> Optional[Report]:
		async with self._guard():
			report = self._rows.get(str(report_id))
			if report is None:
				return None
			report.apply_vote(user_id, vote)
			report.updated_at = now
			return copy.deepcopy(report)

	async def flag_spam(self, report_id: str, user_id: str, now: datetime) -> Optional[SpamFlagResult]:
		async with self._guard():
			report = self._rows.get(str(report_id))
			if report is None:
				return None
			before = len(report.spam_reports)
			crossed = report.add_spam_flag(user_id)
			added = len(report.spam_reports) > before
			if added:
				report.updated_at = now
			if crossed:
				# status changed under the document, so full writers must re-read
				report.version += 1
			return SpamFlagResult(report=copy.deepcopy(report), added=added, auto_flagged=crossed)

	async def increment_views(self, report_id: str) -> Optional[Report]:
		async with self._guard():
			report = self._rows.get(str(report_id))
			if report is not None:
				report.views_count += 1
			return copy.deepcopy(report) if report is not None else None

	async def adjust_comments(self, report_id: str, delta: int) -> None:
		async with self._guard():
			report = self._rows.get(str(report_id))
			if report is not None:
				report.comments_count = max(0, report.comments_count + delta)

	async def find_nearby(
		self,
		campus_id: str,
		center: GeoPoint,
		radius_m: float,
		filters: ReportFilters,
		*,
		limit: int,
	) -> List[Report]:
		hits = [
			r
			for r in self._rows.values()
			if r.campus_id == str(campus_id)
			and _matches(r, filters)
			and geo.haversine_m(center, r.location) <= radius_m
		]
		hits.sort(key=_newest, reverse=True)
		return hits[:limit]

	async def find_feed(
		self,
		campus_id: str,
		filters: ReportFilters,
		sort: FeedSort,
		*,
		page: int,
		limit: int,
	) -> Page:
		rows = [r for r in self._rows.values() if r.campus_id == str(campus_id) and _matches(r, filters)]
		return _paginate(sort_feed(rows, sort), page, limit)

	async def list_for_moderation(
		self,
		campus_id: Optional[str],
		filters: ReportFilters,
		*,
		page: int,
		limit: int,
	) -> Page:
		rows = [
			r
			for r in self._rows.values()
			if (campus_id is None or r.campus_id == str(campus_id)) and _matches(r, filters)
		]
		return _paginate(sort_feed(rows, FeedSort.SEVERITY_DESC), page, limit)

	async def campus_counts(self, campus_id: Optional[str], since: datetime) -> CampusCounts:
		rows = [r for r in self._rows.values() if campus_id is None or r.campus_id == str(campus_id)]
		return CampusCounts(
			pending=sum(1 for r in rows if r.status == ReportStatus.REPORTED.value),
			verified_today=sum(
				1 for r in rows if r.status == ReportStatus.VERIFIED.value and r.updated_at >= since
			),
			resolved_today=sum(1 for r in rows if r.resolved_at is not None and r.resolved_at >= since),
			total=len(rows),
			spam=sum(1 for r in rows if r.is_spam),
		)


class InMemoryCommentRepository(CommentRepository):
	def __init__(self, state: "MemoryState", guard: Callable[[], AsyncContextManager[None]]) -> None:
		self._state = state
		self._guard = guard

	async def get(self, comment_id: str) -> Optional[Comment]:
		comment = self._state.comments.get(str(comment_id))
		return copy.deepcopy(comment) if comment is not None else None

	async def insert(self, comment: Comment) -> Comment:
		async with self._guard():
			self._state.comments[comment.id] = comment
		return comment

	async def save(self, comment: Comment) -> Comment:
		async with self._guard():
			self._state.comments[comment.id] = comment
		return comment

	async def list_for_report(self, report_id: str, *, limit: int, offset: int = 0) -> Tuple[List[Comment], int]:
		rows = [
			c for c in self._state.comments.values() if c.report_id == str(report_id) and not c.is_deleted
		]
		rows.sort(key=lambda c: c.created_at)
		return rows[offset : offset + limit], len(rows)
