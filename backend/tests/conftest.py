import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

os.environ.setdefault("SECRET_KEY", "test-secret-key-for-campuswatch-suite")
os.environ.setdefault("ENV", "dev")
os.environ.setdefault("STORAGE_BACKEND", "memory")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from campuswatch.domain import container
from campuswatch.domain.directory.models import Campus, CampusSettings, Role, UserRecord
from campuswatch.domain.realtime.hub import FanoutHub
from campuswatch.domain.reports.schemas import LocationIn, ReportCreate
from campuswatch.domain.reports.service import ReportLifecycleService
from campuswatch.infra import postgres
from campuswatch.main import app
from campuswatch.settings import settings

CAMPUS_ID = "campus-a"
OTHER_CAMPUS_ID = "campus-b"
LIBRARY = (-122.41, 37.78)


class FakeClock:
	def __init__(self, start: datetime | None = None) -> None:
		self.now = start or datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

	def __call__(self) -> datetime:
		return self.now

	def advance(self, **kwargs) -> datetime:
		self.now = self.now + timedelta(**kwargs)
		return self.now


class RecordingPush:
	def __init__(self) -> None:
		self.signals = []

	def high_severity_report(self, report, campus_settings) -> None:
		self.signals.append(report.id)


def _draft(**overrides) -> ReportCreate:
	data = {
		"category": "safety",
		"severity": 3,
		"title": "Suspicious person near library",
		"description": "Someone trying door handles by the east entrance.",
		"location": LocationIn(coordinates=list(LIBRARY)),
	}
	data.update(overrides)
	return ReportCreate(**data)


@pytest.fixture
def make_draft():
	return _draft


@pytest.fixture
def auth_headers():
	def _headers(user: UserRecord) -> dict:
		return {"X-User-Id": user.id, "X-Campus-Id": user.campus_id, "X-User-Role": user.role}

	return _headers


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from campuswatch.infra.redis import redis_client, set_redis_client
	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def force_test_settings():
	"""API tests authenticate via X-User-* headers, which are only accepted in dev mode."""
	original_env = settings.environment
	settings.environment = "dev"
	try:
		yield
	finally:
		settings.environment = original_env


@pytest.fixture(autouse=True)
def fresh_container():
	container.reset()
	yield
	container.reset()


@pytest.fixture
def people():
	directory = container.get_directory()
	directory.add_campus(Campus(id=CAMPUS_ID, name="Campus A", code="CA", settings=CampusSettings()))
	directory.add_campus(Campus(id=OTHER_CAMPUS_ID, name="Campus B", code="CB", settings=CampusSettings()))
	users = {
		"student": UserRecord(id="u-student", campus_id=CAMPUS_ID, name="Sam Student"),
		"other": UserRecord(id="u-other", campus_id=CAMPUS_ID, name="Olive Other"),
		"moderator": UserRecord(id="u-mod", campus_id=CAMPUS_ID, name="Mo Derator", role=Role.MODERATOR.value),
		"admin": UserRecord(id="u-admin", campus_id=CAMPUS_ID, name="Ada Admin", role=Role.ADMIN.value),
		"security": UserRecord(id="u-sec", campus_id=CAMPUS_ID, name="Sid Security", role=Role.SECURITY.value),
		"outsider": UserRecord(id="u-far", campus_id=OTHER_CAMPUS_ID, name="Fay Faraway"),
		"unverified": UserRecord(id="u-new", campus_id=CAMPUS_ID, name="Nia New", is_verified=False),
	}
	for user in users.values():
		directory.add_user(user)
	return SimpleNamespace(**users)


@pytest.fixture
def clock():
	return FakeClock()


@pytest.fixture
def push():
	return RecordingPush()


@pytest.fixture
def socket_server():
	server = MagicMock()
	server.emit = AsyncMock()
	server.enter_room = AsyncMock()
	server.leave_room = AsyncMock()
	return server


@pytest.fixture
def hub(socket_server):
	return FanoutHub(socket_server)


@pytest.fixture
def service(people, hub, push, clock):
	return ReportLifecycleService(
		container.get_store(),
		container.get_directory(),
		hub,
		push,
		clock=clock,
	)


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
