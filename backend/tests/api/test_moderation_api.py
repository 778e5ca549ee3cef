import pytest

REPORT_BODY = {
	"category": "theft",
	"severity": 4,
	"title": "Laptop stolen in study hall",
	"description": "Left unattended for five minutes on the second floor.",
	"location": {"type": "Point", "coordinates": [-73.5772, 45.5048]},
}


async def _create(api_client, headers):
	response = await api_client.post("/api/reports", json=REPORT_BODY, headers=headers)
	assert response.status_code == 201, response.text
	return response.json()["data"]


@pytest.mark.asyncio
async def test_students_cannot_reach_moderation(api_client, people, auth_headers):
	response = await api_client.get("/api/moderation/summary", headers=auth_headers(people.student))
	assert response.status_code == 403


@pytest.mark.asyncio
async def test_queue_and_resolve(api_client, people, auth_headers):
	created = await _create(api_client, auth_headers(people.student))

	queue = await api_client.get("/api/moderation/reports", headers=auth_headers(people.moderator))
	assert [item["id"] for item in queue.json()["data"]["items"]] == [created["id"]]

	updated = await api_client.patch(
		f"/api/moderation/reports/{created['id']}",
		json={"status": "resolved", "moderator_notes": "Recovered by security"},
		headers=auth_headers(people.moderator),
	)
	data = updated.json()["data"]
	assert data["status"] == "resolved"
	assert data["resolved_by"]["id"] == people.moderator.id
	assert data["moderator_notes"] == "Recovered by security"

	audit = await api_client.get(
		"/api/moderation/audit",
		params={"report_id": created["id"]},
		headers=auth_headers(people.moderator),
	)
	actions = [entry["action"] for entry in audit.json()["data"]["items"]]
	assert actions == ["resolve_report", "create_report"]

	notices = await api_client.get("/api/notifications", headers=auth_headers(people.student))
	assert notices.json()["data"]["notifications"][0]["type"] == "moderator_action"


@pytest.mark.asyncio
async def test_summary_reports_counts(api_client, people, auth_headers):
	await _create(api_client, auth_headers(people.student))

	response = await api_client.get("/api/moderation/summary", headers=auth_headers(people.moderator))

	stats = response.json()["data"]["stats"]
	assert stats["pending_reports"] == 1
	assert stats["total_reports"] == 1


@pytest.mark.asyncio
async def test_ban_blocks_further_requests(api_client, people, auth_headers):
	banned = await api_client.post(
		"/api/moderation/ban-user",
		json={"user_id": people.other.id, "reason": "Repeated false reports"},
		headers=auth_headers(people.moderator),
	)
	assert banned.json()["data"]["is_banned"] is True

	blocked = await api_client.get("/api/reports/feed", headers=auth_headers(people.other))
	assert blocked.status_code == 403

	await api_client.post(
		"/api/moderation/unban-user",
		json={"user_id": people.other.id},
		headers=auth_headers(people.moderator),
	)
	allowed = await api_client.get("/api/reports/feed", headers=auth_headers(people.other))
	assert allowed.status_code == 200


@pytest.mark.asyncio
async def test_system_alert_is_admin_only(api_client, people, auth_headers):
	body = {"message": "Fire alarm in the science building", "level": "critical"}

	denied = await api_client.post("/api/moderation/system-alert", json=body, headers=auth_headers(people.moderator))
	assert denied.status_code == 403
	assert denied.json()["kind"] == "forbidden"

	sent = await api_client.post("/api/moderation/system-alert", json=body, headers=auth_headers(people.admin))
	assert sent.status_code == 200
	assert sent.json()["data"]["level"] == "critical"

	audit = await api_client.get("/api/moderation/audit", headers=auth_headers(people.admin))
	assert audit.json()["data"]["items"][0]["action"] == "system_alert"
