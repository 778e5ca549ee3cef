import pytest

from campuswatch.domain.realtime.hub import campus_channel, report_channel, role_channel
from campuswatch.domain.reports.models import ReportStatus, VoteType
from campuswatch.domain.reports.schemas import CommentCreate, ModeratorUpdateIn, ReportEdit

CAMPUS_ROOM = campus_channel("campus-a")


def _emitted(socket_server):
	return [(call.args[0], call.args[1], call.kwargs["room"]) for call in socket_server.emit.await_args_list]


async def _settle(hub, socket_server):
	await hub.drain()
	events = _emitted(socket_server)
	socket_server.emit.reset_mock()
	return events


@pytest.mark.asyncio
async def test_create_broadcasts_public_view_to_campus(service, make_draft, people, hub, socket_server):
	await hub.subscribe("sid-campus", CAMPUS_ROOM)

	created = await service.create(people.student, make_draft())
	events = await _settle(hub, socket_server)

	assert [(event, rooms) for event, _, rooms in events] == [("new_report", [CAMPUS_ROOM])]
	data = events[0][1]["data"]
	assert data["id"] == created.id
	assert data["title"] == "Suspicious person near library"
	assert "moderator_notes" not in data
	assert "spam_reports" not in data


@pytest.mark.asyncio
async def test_create_on_other_campus_is_not_delivered(service, make_draft, people, hub, socket_server):
	await hub.subscribe("sid-campus", CAMPUS_ROOM)

	await service.create(people.outsider, make_draft())

	assert await _settle(hub, socket_server) == []


@pytest.mark.asyncio
async def test_comment_goes_to_report_subscribers(service, make_draft, people, hub, socket_server):
	created = await service.create(people.student, make_draft())
	await hub.subscribe("sid-viewer", report_channel(created.id))

	await service.comment(people.other, created.id, CommentCreate(content="Saw them too, around 9pm"))
	events = await _settle(hub, socket_server)

	assert [(event, rooms) for event, _, rooms in events] == [("new_comment", [report_channel(created.id)])]
	assert events[0][1]["report_id"] == created.id
	assert events[0][1]["data"]["content"] == "Saw them too, around 9pm"


@pytest.mark.asyncio
async def test_edit_updates_campus_and_report_rooms(service, make_draft, people, hub, socket_server):
	created = await service.create(people.student, make_draft())
	await hub.subscribe("sid-campus", CAMPUS_ROOM)
	await hub.subscribe("sid-viewer", report_channel(created.id))
	await _settle(hub, socket_server)

	await service.edit(people.student, created.id, ReportEdit(severity=4))
	events = await _settle(hub, socket_server)

	assert [(event, rooms) for event, _, rooms in events] == [
		("report_update", [CAMPUS_ROOM, report_channel(created.id)])
	]
	assert events[0][1]["report_id"] == created.id


@pytest.mark.asyncio
async def test_retract_tells_campus_the_report_is_invalid(service, make_draft, people, hub, socket_server):
	created = await service.create(people.student, make_draft())
	await hub.subscribe("sid-campus", CAMPUS_ROOM)
	await _settle(hub, socket_server)

	await service.retract(people.student, created.id)
	events = await _settle(hub, socket_server)

	assert [(event, rooms) for event, _, rooms in events] == [("report_update", [CAMPUS_ROOM])]
	assert events[0][1]["data"] == {"status": ReportStatus.INVALID.value}


@pytest.mark.asyncio
async def test_fifth_spam_flag_broadcasts_status(service, make_draft, people, hub, socket_server):
	created = await service.create(people.student, make_draft())
	await hub.subscribe("sid-campus", CAMPUS_ROOM)
	await _settle(hub, socket_server)

	for reporter in (people.other, people.security, people.moderator, people.admin):
		await service.flag_spam(reporter, created.id)
	assert await _settle(hub, socket_server) == []

	await service.flag_spam(people.unverified, created.id)
	events = await _settle(hub, socket_server)

	assert [(event, rooms) for event, _, rooms in events] == [("report_update", [CAMPUS_ROOM])]
	assert events[0][1]["data"] == {"status": ReportStatus.SPAM.value, "is_spam": True}


@pytest.mark.asyncio
async def test_moderator_update_reaches_campus_and_staff(service, make_draft, people, hub, socket_server):
	created = await service.create(people.student, make_draft())
	await hub.subscribe("sid-campus", CAMPUS_ROOM)
	await hub.subscribe("sid-mod", role_channel("moderator", "campus-a"))
	await hub.subscribe("sid-admin", role_channel("admin", "campus-a"))
	await _settle(hub, socket_server)

	await service.moderator_update(people.moderator, created.id, ModeratorUpdateIn(status=ReportStatus.RESOLVED))
	events = await _settle(hub, socket_server)

	by_event = {event: (payload, rooms) for event, payload, rooms in events}
	assert set(by_event) == {"report_update", "moderator_action"}
	update, update_rooms = by_event["report_update"]
	assert update_rooms == [CAMPUS_ROOM]
	assert update["data"]["status"] == ReportStatus.RESOLVED.value
	assert update["data"]["resolved_by"] == people.moderator.id
	action, action_rooms = by_event["moderator_action"]
	assert action_rooms == [role_channel("moderator", "campus-a"), role_channel("admin", "campus-a")]
	assert action["data"]["action"] == "resolve_report"


@pytest.mark.asyncio
async def test_votes_are_not_broadcast(service, make_draft, people, hub, socket_server):
	created = await service.create(people.student, make_draft())
	await hub.subscribe("sid-campus", CAMPUS_ROOM)
	await hub.subscribe("sid-viewer", report_channel(created.id))
	await _settle(hub, socket_server)

	await service.vote(people.other, created.id, VoteType.CONFIRM)

	assert await _settle(hub, socket_server) == []
