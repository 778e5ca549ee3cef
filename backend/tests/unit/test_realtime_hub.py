import pytest

from campuswatch.domain.realtime.hub import (
	MODERATOR_ACTION,
	NEW_REPORT,
	REPORT_UPDATE,
	campus_channel,
	report_channel,
	role_channel,
)


@pytest.mark.asyncio
async def test_publish_reaches_subscribed_channel(hub, socket_server):
	await hub.subscribe("sid-1", campus_channel("c1"))

	hub.new_report("c1", {"id": "r1"})
	await hub.drain()

	socket_server.emit.assert_awaited_once()
	call = socket_server.emit.await_args
	assert call.args[0] == NEW_REPORT
	assert call.args[1]["type"] == NEW_REPORT
	assert call.args[1]["data"] == {"id": "r1"}
	assert call.kwargs["room"] == ["campus:c1"]


@pytest.mark.asyncio
async def test_publish_without_members_is_skipped(hub, socket_server):
	hub.new_report("c1", {"id": "r1"})
	await hub.drain()
	socket_server.emit.assert_not_awaited()


@pytest.mark.asyncio
async def test_report_update_targets_campus_and_report_channels(hub, socket_server):
	await hub.subscribe("sid-1", campus_channel("c1"))
	await hub.subscribe("sid-2", report_channel("r1"))

	hub.report_update("c1", "r1", {"status": "verified"})
	await hub.drain()

	call = socket_server.emit.await_args
	assert call.args[0] == REPORT_UPDATE
	assert call.kwargs["room"] == ["campus:c1", "report:r1"]
	assert call.args[1]["report_id"] == "r1"


@pytest.mark.asyncio
async def test_moderator_action_skips_plain_campus_members(hub, socket_server):
	await hub.subscribe("sid-student", campus_channel("c1"))
	await hub.subscribe("sid-mod", role_channel("moderator", "c1"))

	hub.moderator_action("c1", {"action": "ban_user"})
	await hub.drain()

	call = socket_server.emit.await_args
	assert call.args[0] == MODERATOR_ACTION
	assert call.kwargs["room"] == ["moderator:c1"]


@pytest.mark.asyncio
async def test_emit_failure_is_swallowed(hub, socket_server):
	socket_server.emit.side_effect = RuntimeError("transport closed")
	await hub.subscribe("sid-1", campus_channel("c1"))

	hub.system_alert("c1", {"message": "Shelter in place"})
	await hub.drain()

	socket_server.emit.assert_awaited_once()


@pytest.mark.asyncio
async def test_drop_forgets_every_channel(hub):
	await hub.subscribe("sid-1", campus_channel("c1"))
	await hub.subscribe("sid-1", report_channel("r1"))

	assert hub.drop("sid-1") == {"campus:c1", "report:r1"}
	assert hub.members(campus_channel("c1")) == set()
	assert hub.channels_of("sid-1") == set()


@pytest.mark.asyncio
async def test_unsubscribe_leaves_room(hub, socket_server):
	await hub.subscribe("sid-1", report_channel("r1"))
	await hub.unsubscribe("sid-1", report_channel("r1"))

	socket_server.leave_room.assert_awaited_once_with("sid-1", "report:r1", namespace="/")
	assert hub.members(report_channel("r1")) == set()
