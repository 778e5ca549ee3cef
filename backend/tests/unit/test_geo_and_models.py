from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from campuswatch.domain.reports import geo
from campuswatch.domain.reports.exceptions import InvalidArgument
from campuswatch.domain.reports.models import GeoPoint, Report, ReportStatus, VoteType
from campuswatch.domain.reports.schemas import NearbyQuery, ReportCreate, ReportEdit

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _report(**overrides) -> Report:
	data = dict(
		id="r1",
		reporter_id="u1",
		campus_id="c1",
		category="safety",
		severity=3,
		title="Broken light on path",
		description="Lamp post out near the north gate.",
		location=GeoPoint(longitude=-73.57, latitude=45.50),
		created_at=T0,
		updated_at=T0,
	)
	data.update(overrides)
	return Report(**data)


def test_validate_point_rejects_out_of_range():
	with pytest.raises(InvalidArgument):
		geo.validate_point(181.0, 10.0)
	with pytest.raises(InvalidArgument):
		geo.validate_point(10.0, -91.0)
	with pytest.raises(InvalidArgument):
		geo.validate_point("abc", 10.0)


def test_validate_radius_bounds():
	assert geo.validate_radius(100) == 100.0
	assert geo.validate_radius(10_000) == 10_000.0
	with pytest.raises(InvalidArgument):
		geo.validate_radius(99)
	with pytest.raises(InvalidArgument):
		geo.validate_radius(10_001)


def test_haversine_one_degree_latitude():
	a = GeoPoint(longitude=0.0, latitude=0.0)
	b = GeoPoint(longitude=0.0, latitude=1.0)
	assert geo.haversine_m(a, b) == pytest.approx(111_195, rel=1e-3)


def test_bounding_box_contains_circle():
	center = GeoPoint(longitude=-73.57, latitude=45.50)
	min_lon, min_lat, max_lon, max_lat = geo.bounding_box(center, 1000)
	assert min_lon < center.longitude < max_lon
	assert min_lat < center.latitude < max_lat
	edge = GeoPoint(longitude=center.longitude, latitude=max_lat)
	assert geo.haversine_m(center, edge) == pytest.approx(1000, rel=1e-3)


def test_vote_sets_stay_disjoint():
	report = _report()
	report.apply_vote("a", VoteType.CONFIRM)
	report.apply_vote("b", VoteType.CONFIRM)
	report.apply_vote("b", VoteType.DISPUTE)
	assert report.confirms == ["a"]
	assert report.disputes == ["b"]
	assert report.net_votes == 0


def test_spam_threshold_is_five_distinct_flags():
	report = _report()
	crossed = [report.add_spam_flag(uid) for uid in ("a", "b", "c", "d")]
	assert crossed == [False] * 4
	assert report.add_spam_flag("d") is False
	assert report.add_spam_flag("e") is True
	assert report.status == ReportStatus.SPAM.value
	assert report.add_spam_flag("f") is False


def test_edit_window_boundaries():
	report = _report()
	assert report.can_edit("u1", T0 + timedelta(minutes=29, seconds=59))
	assert not report.can_edit("u1", T0 + timedelta(minutes=30, seconds=1))
	assert not report.can_edit("someone-else", T0)
	report.status = ReportStatus.VERIFIED.value
	assert not report.can_edit("u1", T0)


def test_resolution_fields_follow_status():
	report = _report()
	report.set_status(ReportStatus.RESOLVED.value, "mod", T0)
	assert (report.resolved_by, report.resolved_at) == ("mod", T0)
	report.set_status(ReportStatus.VERIFIED.value, "mod", T0)
	assert (report.resolved_by, report.resolved_at) == (None, None)


def test_report_create_validates_lengths_and_media():
	with pytest.raises(ValidationError):
		ReportCreate(
			category="safety",
			severity=3,
			title="shrt",
			description="long enough description",
			location={"coordinates": [0, 0]},
		)
	with pytest.raises(ValidationError):
		ReportCreate(
			category="safety",
			severity=6,
			title="Valid title",
			description="long enough description",
			location={"coordinates": [0, 0]},
		)
	with pytest.raises(ValidationError):
		ReportCreate(
			category="safety",
			severity=3,
			title="Valid title",
			description="long enough description",
			location={"coordinates": [0, 0]},
			media_urls=["ftp://files/photo.jpg"],
		)


def test_report_edit_requires_a_field():
	with pytest.raises(ValidationError):
		ReportEdit()
	assert ReportEdit(category="theft").changes() == {"category": "theft"}


def test_nearby_query_defaults():
	query = NearbyQuery(lat=45.5, lon=-73.57)
	assert query.radius == 1000
	assert query.limit == 100
	with pytest.raises(ValidationError):
		NearbyQuery(lat=45.5, lon=-73.57, limit=501)
