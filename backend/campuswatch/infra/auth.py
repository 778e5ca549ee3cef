"""Authentication helpers for FastAPI endpoints.

Bearer JWTs (HS256, settings.secret_key) are the only accepted credential
outside development. In development the X-User-* headers are honoured so
local tools can act as any user.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from campuswatch.domain.directory.models import can_admin, can_moderate, is_super_admin
from campuswatch.domain.reports.exceptions import Unauthenticated
from campuswatch.infra import jwt as jwt_helper
from campuswatch.settings import settings


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	campus_id: str
	role: str = "student"
	name: Optional[str] = None
	email_verified: bool = False

	def can_moderate(self) -> bool:
		return can_moderate(self.role)

	def can_admin(self) -> bool:
		return can_admin(self.role)

	def is_super_admin(self) -> bool:
		return is_super_admin(self.role)


_bearer_scheme = HTTPBearer(auto_error=False)


def verify_access_jwt(token: str) -> AuthenticatedUser:
	"""Decode and validate an access JWT and return an AuthenticatedUser.

	Requirements:
	- issuer="campuswatch-api", audience="campuswatch-app", type="access"
	- required claims: sub, campus_id, exp, iat
	"""
	try:
		payload = jwt_helper.decode_access(token)
	except Exception:
		# Normalise all decode failures to invalid_token for the API surface
		raise Unauthenticated("invalid_token", "Invalid or expired token") from None

	sub = str(payload.get("sub") or "").strip()
	campus_id = str(payload.get("campus_id") or "").strip()
	if not sub or not campus_id:
		raise Unauthenticated("invalid_token", "Invalid or expired token")

	name = payload.get("name")
	return AuthenticatedUser(
		id=sub,
		campus_id=campus_id,
		role=str(payload.get("role") or "student"),
		name=str(name) if name is not None else None,
		email_verified=bool(payload.get("email_verified", False)),
	)


def parse_socket_token(token: Optional[str]) -> AuthenticatedUser:
	token = (token or "").strip()
	if token.lower().startswith("bearer "):
		token = token[7:].strip()
	if not token:
		raise Unauthenticated("missing_token", "Authentication required")
	return verify_access_jwt(token)


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_campus_id: Optional[str] = Header(default=None, alias="X-Campus-Id"),
	x_user_role: Optional[str] = Header(default=None, alias="X-User-Role"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
	"""Resolve the authenticated user from the bearer token (or dev headers)."""
	if credentials and credentials.scheme.lower() == "bearer":
		return verify_access_jwt(credentials.credentials)

	if settings.is_dev() and x_user_id and x_campus_id:
		return AuthenticatedUser(
			id=x_user_id,
			campus_id=x_campus_id,
			role=(x_user_role or "student").strip(),
			email_verified=True,
		)

	raise Unauthenticated("missing_token", "No token provided")
