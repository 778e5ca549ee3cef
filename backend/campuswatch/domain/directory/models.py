"""User and campus records the report core reads from the identity side."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class Role(str, Enum):
	STUDENT = "student"
	SECURITY = "security"
	MODERATOR = "moderator"
	ADMIN = "admin"
	SUPER_ADMIN = "super-admin"


MODERATOR_ROLES = frozenset({Role.MODERATOR.value, Role.ADMIN.value, Role.SUPER_ADMIN.value})
ADMIN_ROLES = frozenset({Role.ADMIN.value, Role.SUPER_ADMIN.value})


def can_moderate(role: Optional[str]) -> bool:
	return role in MODERATOR_ROLES


def can_admin(role: Optional[str]) -> bool:
	return role in ADMIN_ROLES


def is_super_admin(role: Optional[str]) -> bool:
	return role == Role.SUPER_ADMIN.value


@dataclass(slots=True)
class UserRecord:
	id: str
	campus_id: str
	name: str
	role: str = Role.STUDENT.value
	email: Optional[str] = None
	is_active: bool = True
	is_verified: bool = True
	is_banned: bool = False
	banned_reason: Optional[str] = None
	banned_at: Optional[datetime] = None


@dataclass(slots=True)
class CampusSettings:
	"""Per-campus knobs that change report behaviour."""

	notification_radius_m: int = 500
	min_severity_for_push: int = 4
	reports_per_hour: int = 5
	require_moderation: bool = False
	allow_anonymous: bool = True


@dataclass(slots=True)
class Campus:
	id: str
	name: str
	code: str
	is_active: bool = True
	settings: CampusSettings = field(default_factory=CampusSettings)
