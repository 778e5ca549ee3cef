from datetime import datetime, timezone

import pytest

from campuswatch.domain.reports.exceptions import StaleVersion
from campuswatch.domain.reports.models import GeoPoint, Report, VoteType
from campuswatch.domain.store import InMemoryStore

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _report(report_id: str = "r1") -> Report:
	return Report(
		id=report_id,
		reporter_id="u1",
		campus_id="c1",
		category="theft",
		severity=2,
		title="Bike stolen from rack",
		description="Blue bike taken from the rack by the gym.",
		location=GeoPoint(longitude=-73.57, latitude=45.50),
		created_at=T0,
		updated_at=T0,
	)


@pytest.mark.asyncio
async def test_transaction_rolls_back_on_error():
	store = InMemoryStore()
	with pytest.raises(RuntimeError):
		async with store.transaction() as tx:
			await tx.reports.insert(_report())
			raise RuntimeError("boom")
	assert await store.reports.get("r1") is None


@pytest.mark.asyncio
async def test_transaction_commits():
	store = InMemoryStore()
	async with store.transaction() as tx:
		await tx.reports.insert(_report())
	assert (await store.reports.get("r1")).title == "Bike stolen from rack"


@pytest.mark.asyncio
async def test_replace_detects_stale_version():
	store = InMemoryStore()
	await store.reports.insert(_report())
	first = await store.reports.get("r1")
	second = await store.reports.get("r1")

	first.severity = 4
	await store.reports.replace(first, expected_version=1)

	second.severity = 1
	with pytest.raises(StaleVersion):
		await store.reports.replace(second, expected_version=1)
	assert (await store.reports.get("r1")).severity == 4


@pytest.mark.asyncio
async def test_reads_are_copies():
	store = InMemoryStore()
	await store.reports.insert(_report())
	copy = await store.reports.get("r1")
	copy.title = "changed locally"
	assert (await store.reports.get("r1")).title == "Bike stolen from rack"


@pytest.mark.asyncio
async def test_auto_spam_bumps_version():
	store = InMemoryStore()
	await store.reports.insert(_report())
	for uid in ("a", "b", "c", "d", "e"):
		result = await store.reports.flag_spam("r1", uid, T0)
	assert result.auto_flagged is True
	assert result.report.version == 2


@pytest.mark.asyncio
async def test_vote_and_counters_are_atomic_updates():
	store = InMemoryStore()
	await store.reports.insert(_report())
	await store.reports.cast_vote("r1", "u2", VoteType.CONFIRM, T0)
	await store.reports.adjust_comments("r1", 1)
	await store.reports.adjust_comments("r1", -5)
	report = await store.reports.increment_views("r1")
	assert report.confirms == ["u2"]
	assert report.comments_count == 0
	assert report.views_count == 1
	assert report.version == 1


@pytest.mark.asyncio
async def test_replace_keeps_votes_and_counters_from_concurrent_updates():
	store = InMemoryStore()
	await store.reports.insert(_report())
	read = await store.reports.get("r1")

	await store.reports.cast_vote("r1", "u2", VoteType.CONFIRM, T0)
	await store.reports.increment_views("r1")
	await store.reports.adjust_comments("r1", 1)

	read.title = "Bike stolen from the gym rack"
	saved = await store.reports.replace(read, expected_version=1)

	assert saved.title == "Bike stolen from the gym rack"
	assert saved.version == 2
	assert saved.confirms == ["u2"]
	assert saved.views_count == 1
	assert saved.comments_count == 1
	assert await store.reports.get("r1") == saved
