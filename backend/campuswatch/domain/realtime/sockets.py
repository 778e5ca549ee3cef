"""Socket.IO namespace for live report updates."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import socketio

from campuswatch.domain.directory.repo import DirectoryRepository
from campuswatch.domain.realtime.hub import (
	PRIVILEGED_ROLES,
	FanoutHub,
	campus_channel,
	report_channel,
	role_channel,
)
from campuswatch.domain.reports import geo
from campuswatch.domain.reports.exceptions import ReportError
from campuswatch.domain.reports.models import GeoPoint
from campuswatch.infra.auth import AuthenticatedUser, parse_socket_token
from campuswatch.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


def _header(scope: dict, name: str) -> Optional[str]:
	target = name.encode().lower()
	for key, value in scope.get("headers", []):
		if key.lower() == target:
			return value.decode()
	return None


def _report_id(payload: Any) -> Optional[str]:
	# clients send either the bare id or {"report_id": ...}
	if isinstance(payload, dict):
		payload = payload.get("report_id") or payload.get("reportId")
	if payload is None:
		return None
	value = str(payload).strip()
	return value or None


@dataclass(slots=True)
class SocketSession:
	user: AuthenticatedUser
	location: Optional[GeoPoint] = None


class ReportsNamespace(socketio.AsyncNamespace):
	"""Authenticates once per connection and maps clients onto hub channels."""

	def __init__(self, hub: FanoutHub, directory: DirectoryRepository, namespace: str = "/") -> None:
		super().__init__(namespace)
		self.hub = hub
		self.directory = directory
		self._sessions: Dict[str, SocketSession] = {}

	async def _authenticate(self, environ: dict, auth: Optional[dict]) -> AuthenticatedUser:
		scope = environ.get("asgi.scope", environ)
		token = (auth or {}).get("token") or _header(scope, "authorization")
		try:
			claims = parse_socket_token(token)
		except ReportError as exc:
			raise ConnectionRefusedError(exc.message) from None
		record = await self.directory.get_user(claims.id)
		if record is None or not record.is_active:
			raise ConnectionRefusedError("User not found or inactive")
		if record.is_banned:
			raise ConnectionRefusedError("User is banned")
		return AuthenticatedUser(
			id=record.id,
			campus_id=record.campus_id,
			role=record.role,
			name=record.name,
			email_verified=record.is_verified,
		)

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		user = await self._authenticate(environ, auth)
		self._sessions[sid] = SocketSession(user=user)
		obs_metrics.socket_connected(self.namespace)
		await self.hub.subscribe(sid, campus_channel(user.campus_id))
		if user.role in PRIVILEGED_ROLES:
			await self.hub.subscribe(sid, role_channel(user.role, user.campus_id))
		logger.info("socket connected", extra={"sid": sid, "user_id": user.id, "campus_id": user.campus_id})

	async def on_disconnect(self, sid: str, reason: Optional[str] = None) -> None:
		session = self._sessions.pop(sid, None)
		self.hub.drop(sid)
		if session is not None:
			obs_metrics.socket_disconnected(self.namespace)

	def get_session(self, sid: str) -> Optional[SocketSession]:
		return self._sessions.get(sid)

	def _require(self, sid: str) -> SocketSession:
		session = self._sessions.get(sid)
		if session is None:
			raise ConnectionRefusedError("unauthenticated")
		return session

	async def on_join_report(self, sid: str, payload: Any = None) -> Dict[str, Any]:
		self._require(sid)
		obs_metrics.socket_event(self.namespace, "join_report")
		report_id = _report_id(payload)
		if report_id is None:
			return {"ok": False, "error": "report_id required"}
		await self.hub.subscribe(sid, report_channel(report_id))
		return {"ok": True, "report_id": report_id}

	async def on_leave_report(self, sid: str, payload: Any = None) -> Dict[str, Any]:
		self._require(sid)
		obs_metrics.socket_event(self.namespace, "leave_report")
		report_id = _report_id(payload)
		if report_id is None:
			return {"ok": False, "error": "report_id required"}
		await self.hub.unsubscribe(sid, report_channel(report_id))
		return {"ok": True, "report_id": report_id}

	async def on_update_location(self, sid: str, payload: Any = None) -> Dict[str, Any]:
		session = self._require(sid)
		obs_metrics.socket_event(self.namespace, "update_location")
		data = payload if isinstance(payload, dict) else {}
		try:
			session.location = geo.validate_point(data.get("longitude"), data.get("latitude"))
		except ReportError as exc:
			return {"ok": False, "error": exc.message}
		return {"ok": True}

	async def on_typing(self, sid: str, payload: Any = None) -> None:
		session = self._require(sid)
		obs_metrics.socket_event(self.namespace, "typing")
		report_id = _report_id(payload)
		if report_id is None or sid not in self.hub.members(report_channel(report_id)):
			return
		self.hub.user_typing(report_id, session.user.id, skip_sid=sid)
