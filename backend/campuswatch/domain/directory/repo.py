"""Directory lookups for users and campuses."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, Optional, Protocol, Sequence

from campuswatch.domain.directory.models import Campus, UserRecord


class DirectoryRepository(Protocol):
	async def get_user(self, user_id: str) -> Optional[UserRecord]:
		...

	async def get_users(self, user_ids: Iterable[str]) -> Dict[str, UserRecord]:
		...

	async def set_banned(
		self,
		user_id: str,
		*,
		banned: bool,
		reason: Optional[str],
		at: Optional[datetime],
	) -> Optional[UserRecord]:
		...

	async def get_campus(self, campus_id: str) -> Optional[Campus]:
		...


class InMemoryDirectoryRepository(DirectoryRepository):
	def __init__(
		self,
		users: Sequence[UserRecord] = (),
		campuses: Sequence[Campus] = (),
	) -> None:
		self.users: Dict[str, UserRecord] = {user.id: user for user in users}
		self.campuses: Dict[str, Campus] = {campus.id: campus for campus in campuses}

	def add_user(self, user: UserRecord) -> UserRecord:
		self.users[user.id] = user
		return user

	def add_campus(self, campus: Campus) -> Campus:
		self.campuses[campus.id] = campus
		return campus

	async def get_user(self, user_id: str) -> Optional[UserRecord]:
		return self.users.get(str(user_id))

	async def get_users(self, user_ids: Iterable[str]) -> Dict[str, UserRecord]:
		return {uid: self.users[uid] for uid in {str(u) for u in user_ids} if uid in self.users}

	async def set_banned(
		self,
		user_id: str,
		*,
		banned: bool,
		reason: Optional[str],
		at: Optional[datetime],
	) -> Optional[UserRecord]:
		user = self.users.get(str(user_id))
		if user is None:
			return None
		user.is_banned = banned
		user.banned_reason = reason
		user.banned_at = at
		return user

	async def get_campus(self, campus_id: str) -> Optional[Campus]:
		return self.campuses.get(str(campus_id))
