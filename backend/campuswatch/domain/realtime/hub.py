"""Publish/subscribe fan-out of report events to connected Socket.IO clients.

Delivery is best effort: events reach only currently connected members of a
channel, nothing is queued, and emit failures are logged and dropped.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Set

import socketio

from campuswatch.domain.directory.models import Role
from campuswatch.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

NEW_REPORT = "new_report"
REPORT_UPDATE = "report_update"
NEW_COMMENT = "new_comment"
MODERATOR_ACTION = "moderator_action"
SYSTEM_ALERT = "system_alert"
USER_TYPING = "user_typing"

# roles that get a `<role>:<campus>` channel on connect
PRIVILEGED_ROLES = (Role.MODERATOR.value, Role.ADMIN.value, Role.SUPER_ADMIN.value)


def campus_channel(campus_id: str) -> str:
	return f"campus:{campus_id}"


def role_channel(role: str, campus_id: str) -> str:
	return f"{role}:{campus_id}"


def report_channel(report_id: str) -> str:
	return f"report:{report_id}"


def envelope(event: str, data: Any, *, report_id: Optional[str] = None) -> Dict[str, Any]:
	payload: Dict[str, Any] = {"type": event, "data": data, "timestamp": datetime.now(timezone.utc).isoformat()}
	if report_id is not None:
		payload["report_id"] = report_id
	return payload


class FanoutHub:
	"""Channel registry plus emitter, constructed once per process and injected."""

	def __init__(self, server: Optional[socketio.AsyncServer] = None, *, namespace: str = "/") -> None:
		self._server = server
		self.namespace = namespace
		self._members: Dict[str, Set[str]] = defaultdict(set)
		self._channels_by_sid: Dict[str, Set[str]] = defaultdict(set)
		self._pending: Set[asyncio.Task] = set()

	def attach(self, server: socketio.AsyncServer, *, namespace: Optional[str] = None) -> None:
		self._server = server
		if namespace is not None:
			self.namespace = namespace

	# membership

	async def subscribe(self, sid: str, channel: str) -> None:
		self._members[channel].add(sid)
		self._channels_by_sid[sid].add(channel)
		if self._server is not None:
			await self._server.enter_room(sid, channel, namespace=self.namespace)

	async def unsubscribe(self, sid: str, channel: str) -> None:
		self._forget(sid, channel)
		if self._server is not None:
			await self._server.leave_room(sid, channel, namespace=self.namespace)

	def drop(self, sid: str) -> Set[str]:
		"""Forget every channel of a disconnected sid; the transport already left its rooms."""
		channels = self._channels_by_sid.pop(sid, set())
		for channel in channels:
			members = self._members.get(channel)
			if members is None:
				continue
			members.discard(sid)
			if not members:
				del self._members[channel]
		return channels

	def _forget(self, sid: str, channel: str) -> None:
		members = self._members.get(channel)
		if members is not None:
			members.discard(sid)
			if not members:
				del self._members[channel]
		sid_channels = self._channels_by_sid.get(sid)
		if sid_channels is not None:
			sid_channels.discard(channel)
			if not sid_channels:
				del self._channels_by_sid[sid]

	def members(self, channel: str) -> Set[str]:
		return set(self._members.get(channel, ()))

	def channels_of(self, sid: str) -> Set[str]:
		return set(self._channels_by_sid.get(sid, ()))

	# delivery

	def publish(
		self,
		event: str,
		channels: Iterable[str],
		data: Any,
		*,
		report_id: Optional[str] = None,
		skip_sid: Optional[str] = None,
	) -> None:
		"""Schedule delivery without waiting on it."""
		targets = [channel for channel in dict.fromkeys(channels) if channel in self._members]
		if not targets or self._server is None:
			return
		payload = envelope(event, data, report_id=report_id)
		task = asyncio.get_running_loop().create_task(self._deliver(event, targets, payload, skip_sid))
		self._pending.add(task)
		task.add_done_callback(self._pending.discard)

	async def _deliver(self, event: str, targets: list[str], payload: Dict[str, Any], skip_sid: Optional[str]) -> None:
		assert self._server is not None
		try:
			await self._server.emit(event, payload, room=targets, skip_sid=skip_sid, namespace=self.namespace)
		except Exception:
			obs_metrics.inc_fanout_failure(event)
			logger.warning("fanout delivery failed", exc_info=True, extra={"event": event, "channels": targets})
			return
		obs_metrics.inc_fanout_published(event)
		obs_metrics.socket_event(self.namespace, event)

	async def drain(self) -> None:
		"""Wait for scheduled deliveries; used at shutdown and in tests."""
		while self._pending:
			await asyncio.gather(*list(self._pending), return_exceptions=True)

	# report events

	def new_report(self, campus_id: str, report: Dict[str, Any]) -> None:
		self.publish(NEW_REPORT, [campus_channel(campus_id)], report)

	def report_update(self, campus_id: str, report_id: str, updates: Dict[str, Any]) -> None:
		self.publish(
			REPORT_UPDATE,
			[campus_channel(campus_id), report_channel(report_id)],
			updates,
			report_id=report_id,
		)

	def new_comment(self, report_id: str, comment: Dict[str, Any]) -> None:
		self.publish(NEW_COMMENT, [report_channel(report_id)], comment, report_id=report_id)

	def moderator_action(self, campus_id: str, action: Dict[str, Any]) -> None:
		self.publish(
			MODERATOR_ACTION,
			[role_channel(Role.MODERATOR.value, campus_id), role_channel(Role.ADMIN.value, campus_id)],
			action,
		)

	def system_alert(self, campus_id: str, alert: Dict[str, Any]) -> None:
		self.publish(SYSTEM_ALERT, [campus_channel(campus_id)], alert)

	def user_typing(self, report_id: str, user_id: str, *, skip_sid: Optional[str] = None) -> None:
		self.publish(
			USER_TYPING,
			[report_channel(report_id)],
			{"user_id": user_id, "report_id": report_id},
			skip_sid=skip_sid,
		)
