import pytest

from campuswatch.domain import container
from campuswatch.domain.audit.models import AuditAction
from campuswatch.domain.audit.repo import InMemoryAuditRepository
from campuswatch.domain.directory.models import CampusSettings
from campuswatch.domain.reports.exceptions import (
	Conflict,
	EditWindowClosed,
	Forbidden,
	InvalidArgument,
	NotFound,
	RateLimited,
)
from campuswatch.domain.reports.models import ReportStatus, VoteType
from campuswatch.domain.reports.schemas import (
	CommentCreate,
	CommentEdit,
	FeedQuery,
	ModeratorUpdateIn,
	NearbyQuery,
	ReportEdit,
)
from campuswatch.settings import settings

LIBRARY = (-122.41, 37.78)


def _audit(action: str):
	return [entry for entry in container.get_store().state.audit if entry.action == action]


def _notifications_for(user_id: str):
	return [n for n in container.get_store().state.notifications.values() if n.user_id == user_id]


@pytest.mark.asyncio
async def test_create_then_fetch_round_trip_counts_views(service, make_draft, people):
	created = await service.create(people.student, make_draft())

	first = await service.get(people.other, created.id)
	second = await service.get(people.other, created.id)

	assert first.category == "safety"
	assert first.severity == 3
	assert first.title == "Suspicious person near library"
	assert first.location.as_coordinates() == list(LIBRARY)
	assert first.views_count == 1
	assert second.views_count == 2
	assert len(_audit(AuditAction.CREATE_REPORT.value)) == 1


@pytest.mark.asyncio
async def test_get_unknown_report_is_not_found(service, people):
	with pytest.raises(NotFound):
		await service.get(people.student, "missing")


@pytest.mark.asyncio
async def test_get_from_other_campus_is_forbidden(service, make_draft, people):
	created = await service.create(people.student, make_draft())
	with pytest.raises(Forbidden):
		await service.get(people.outsider, created.id)


@pytest.mark.asyncio
async def test_edit_allowed_just_inside_window(service, make_draft, people, clock):
	created = await service.create(people.student, make_draft())
	clock.advance(minutes=29, seconds=59)

	edited = await service.edit(people.student, created.id, ReportEdit(title="Person checking car doors"))

	assert edited.title == "Person checking car doors"
	assert edited.is_edited is True
	assert edited.version == created.version + 1
	assert edited.edit_history[0].changes == {"title": "Suspicious person near library"}
	entry = _audit(AuditAction.EDIT_REPORT.value)[0]
	assert entry.changes.before.title == "Suspicious person near library"
	assert entry.changes.after.title == "Person checking car doors"


@pytest.mark.asyncio
async def test_edit_rejected_just_after_window(service, make_draft, people, clock):
	created = await service.create(people.student, make_draft())
	clock.advance(minutes=30, seconds=1)

	with pytest.raises(EditWindowClosed):
		await service.edit(people.student, created.id, ReportEdit(severity=4))


@pytest.mark.asyncio
async def test_edit_rejected_once_status_moved_on(service, make_draft, people):
	created = await service.create(people.student, make_draft())
	await service.moderator_update(people.moderator, created.id, ModeratorUpdateIn(status=ReportStatus.VERIFIED))

	with pytest.raises(EditWindowClosed) as exc:
		await service.edit(people.student, created.id, ReportEdit(severity=4))
	assert exc.value.reason == "status_locked"


@pytest.mark.asyncio
async def test_edit_by_someone_else_is_forbidden(service, make_draft, people):
	created = await service.create(people.student, make_draft())
	with pytest.raises(Forbidden):
		await service.edit(people.other, created.id, ReportEdit(severity=4))


@pytest.mark.asyncio
async def test_edit_with_stale_version_conflicts(service, make_draft, people):
	created = await service.create(people.student, make_draft())
	with pytest.raises(Conflict):
		await service.edit(people.student, created.id, ReportEdit(severity=4), expected_version=created.version + 5)


@pytest.mark.asyncio
async def test_vote_switch_keeps_sets_disjoint(service, make_draft, people):
	created = await service.create(people.student, make_draft())

	await service.vote(people.other, created.id, VoteType.CONFIRM)
	await service.vote(people.security, created.id, VoteType.CONFIRM)
	report = await service.vote(people.security, created.id, VoteType.DISPUTE)

	assert report.confirm_count == 1
	assert report.dispute_count == 1
	assert report.net_votes == 0
	assert not set(report.confirms) & set(report.disputes)
	assert len(_audit(AuditAction.VOTE_REPORT.value)) == 3


@pytest.mark.asyncio
async def test_repeated_vote_is_idempotent(service, make_draft, people):
	created = await service.create(people.student, make_draft())
	await service.vote(people.other, created.id, VoteType.CONFIRM)
	report = await service.vote(people.other, created.id, VoteType.CONFIRM)
	assert report.confirms == [people.other.id]


@pytest.mark.asyncio
async def test_fourth_spam_flag_does_not_flip_status(service, make_draft, people):
	created = await service.create(people.student, make_draft())
	for reporter in (people.other, people.security, people.moderator, people.admin):
		result = await service.flag_spam(reporter, created.id)

	assert result.report.status == ReportStatus.REPORTED.value
	assert result.report.is_spam is False
	assert result.auto_flagged is False


@pytest.mark.asyncio
async def test_fifth_spam_flag_marks_report_as_spam(service, make_draft, people):
	created = await service.create(people.student, make_draft())
	for reporter in (people.other, people.security, people.moderator, people.admin):
		await service.flag_spam(reporter, created.id)

	result = await service.flag_spam(people.unverified, created.id)

	assert result.auto_flagged is True
	assert result.report.status == ReportStatus.SPAM.value
	assert result.report.is_spam is True
	assert _audit(AuditAction.REPORT_SPAM.value)[0].payload.auto_flagged is True


@pytest.mark.asyncio
async def test_flagging_twice_is_a_no_op(service, make_draft, people):
	created = await service.create(people.student, make_draft())
	first = await service.flag_spam(people.other, created.id)
	second = await service.flag_spam(people.other, created.id)

	assert first.added is True
	assert second.added is False
	assert len(second.report.spam_reports) == 1
	assert len(_audit(AuditAction.REPORT_SPAM.value)) == 1


@pytest.mark.asyncio
async def test_moderator_resolve_records_audit_and_notifies_reporter(service, make_draft, people):
	created = await service.create(people.student, make_draft())

	report = await service.moderator_update(
		people.moderator,
		created.id,
		ModeratorUpdateIn(status=ReportStatus.RESOLVED, moderator_notes="Campus security responded"),
	)

	assert report.resolved_by == people.moderator.id
	assert report.resolved_at is not None
	entries = _audit(AuditAction.RESOLVE_REPORT.value)
	assert len(entries) == 1
	assert entries[0].changes.before.status == "reported"
	assert entries[0].changes.after.status == "resolved"
	notices = _notifications_for(people.student.id)
	assert [n.type for n in notices] == ["moderator_action"]
	assert notices[0].priority == "medium"


@pytest.mark.asyncio
async def test_leaving_resolved_clears_resolution(service, make_draft, people):
	created = await service.create(people.student, make_draft())
	await service.moderator_update(people.moderator, created.id, ModeratorUpdateIn(status=ReportStatus.RESOLVED))
	report = await service.moderator_update(
		people.moderator, created.id, ModeratorUpdateIn(status=ReportStatus.INVESTIGATING)
	)

	assert report.resolved_by is None
	assert report.resolved_at is None
	assert len(_audit(AuditAction.INVESTIGATE_REPORT.value)) == 1


@pytest.mark.asyncio
async def test_moderator_update_requires_moderator(service, make_draft, people):
	created = await service.create(people.student, make_draft())
	with pytest.raises(Forbidden):
		await service.moderator_update(people.other, created.id, ModeratorUpdateIn(status=ReportStatus.VERIFIED))


@pytest.mark.asyncio
async def test_assignment_only_accepts_security_staff(service, make_draft, people):
	created = await service.create(people.student, make_draft())

	ignored = await service.moderator_update(people.moderator, created.id, ModeratorUpdateIn(assigned_to=people.other.id))
	assert ignored.assigned_to is None
	assert _audit(AuditAction.UPDATE_REPORT_STATUS.value)[0].payload.assignment_rejected is True

	assigned = await service.moderator_update(
		people.moderator, created.id, ModeratorUpdateIn(assigned_to=people.security.id)
	)
	assert assigned.assigned_to == people.security.id
	assert len(_audit(AuditAction.ASSIGN_REPORT.value)) == 1


@pytest.mark.asyncio
async def test_retract_by_owner_invalidates(service, make_draft, people):
	created = await service.create(people.student, make_draft())

	report = await service.retract(people.student, created.id)

	assert report.status == ReportStatus.INVALID.value
	entry = _audit(AuditAction.DELETE_REPORT.value)[0]
	assert entry.payload.by_admin is False
	assert entry.changes.after.status == "invalid"


@pytest.mark.asyncio
async def test_retract_by_other_student_is_forbidden(service, make_draft, people):
	created = await service.create(people.student, make_draft())
	with pytest.raises(Forbidden):
		await service.retract(people.other, created.id)


@pytest.mark.asyncio
async def test_admin_can_retract_others_report(service, make_draft, people):
	created = await service.create(people.student, make_draft())
	await service.retract(people.admin, created.id)
	assert _audit(AuditAction.DELETE_REPORT.value)[0].payload.by_admin is True


@pytest.mark.asyncio
async def test_nearby_stays_within_campus_and_radius(service, make_draft, people):
	near = await service.create(people.student, make_draft())
	await service.create(people.student, make_draft(location={"coordinates": [-122.30, 37.78]}))
	await service.create(people.outsider, make_draft())

	query = NearbyQuery(lat=LIBRARY[1], lon=LIBRARY[0], radius=500)
	results = await service.nearby(people.other, query)

	assert [report.id for report, _ in results] == [near.id]
	assert all(report.campus_id == "campus-a" for report, _ in results)
	assert results[0][1] == pytest.approx(0.0, abs=1.0)


@pytest.mark.asyncio
async def test_nearby_hides_invalid_reports(service, make_draft, people):
	created = await service.create(people.student, make_draft())
	await service.retract(people.student, created.id)

	results = await service.nearby(people.other, NearbyQuery(lat=LIBRARY[1], lon=LIBRARY[0]))
	assert results == []


@pytest.mark.asyncio
async def test_feed_sorts_by_severity(service, make_draft, people):
	await service.create(people.student, make_draft(severity=2))
	await service.create(people.student, make_draft(severity=5))

	page = await service.feed(people.other, FeedQuery(sort="severity_desc"))

	assert [report.severity for report in page.items] == [5, 2]
	assert page.total == 2


@pytest.mark.asyncio
async def test_comment_notifies_reporter_and_counts(service, make_draft, people):
	created = await service.create(people.student, make_draft())

	comment = await service.comment(people.other, created.id, CommentCreate(content="I saw this too"))
	await service.comment(people.student, created.id, CommentCreate(content="Thanks"))

	report = await container.get_store().reports.get(created.id)
	assert report.comments_count == 2
	assert [n.type for n in _notifications_for(people.student.id)] == ["comment_reply"]
	assert comment.is_moderator_comment is False


@pytest.mark.asyncio
async def test_deleted_comments_leave_listing(service, make_draft, people):
	created = await service.create(people.student, make_draft())
	comment = await service.comment(people.other, created.id, CommentCreate(content="Wrong building"))

	await service.delete_comment(people.moderator, comment.id)
	page = await service.list_comments(people.student, created.id)

	assert page.items == []
	report = await container.get_store().reports.get(created.id)
	assert report.comments_count == 0


@pytest.mark.asyncio
async def test_comment_edit_window_is_ten_minutes(service, make_draft, people, clock):
	created = await service.create(people.student, make_draft())
	comment = await service.comment(people.other, created.id, CommentCreate(content="First version"))
	clock.advance(minutes=11)

	with pytest.raises(EditWindowClosed):
		await service.edit_comment(people.other, comment.id, CommentEdit(content="Second version"))


@pytest.mark.asyncio
async def test_high_severity_triggers_push_signal(service, make_draft, people, push):
	low = await service.create(people.student, make_draft(severity=2))
	high = await service.create(people.student, make_draft(severity=4))

	assert push.signals == [high.id]
	assert low.id not in push.signals


@pytest.mark.asyncio
async def test_push_failure_does_not_fail_creation(service, make_draft, people, push):
	def boom(report, campus_settings):
		raise RuntimeError("push gateway down")

	push.high_severity_report = boom
	report = await service.create(people.student, make_draft(severity=5))
	assert report.id in container.get_store().state.reports


@pytest.mark.asyncio
async def test_creation_quota_outside_dev(service, make_draft, people, monkeypatch):
	monkeypatch.setattr(settings, "environment", "production")
	for _ in range(5):
		await service.create(people.student, make_draft())

	with pytest.raises(RateLimited) as excinfo:
		await service.create(people.student, make_draft())
	assert 0 < excinfo.value.retry_after <= 3600


@pytest.mark.asyncio
async def test_anonymous_rejected_when_campus_disallows(service, make_draft, people):
	campus = await container.get_directory().get_campus("campus-a")
	campus.settings = CampusSettings(allow_anonymous=False)

	with pytest.raises(InvalidArgument):
		await service.create(people.student, make_draft(is_anonymous=True))


@pytest.mark.asyncio
async def test_audit_failure_rolls_back_report(service, make_draft, people, monkeypatch):
	async def failing_append(self, entry):
		raise RuntimeError("audit store down")

	monkeypatch.setattr(InMemoryAuditRepository, "append", failing_append)

	with pytest.raises(RuntimeError):
		await service.create(people.student, make_draft())
	assert container.get_store().state.reports == {}
