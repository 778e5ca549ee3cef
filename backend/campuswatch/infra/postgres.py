"""AsyncPG pool management for the backend."""

from __future__ import annotations

import asyncio
import functools
from typing import Any, Awaitable, Callable, Optional, TypeVar

import asyncpg

from campuswatch.domain.reports.exceptions import InvalidArgument, StorageUnavailable
from campuswatch.settings import settings

_pool: Optional[asyncpg.pool.Pool] = None

T = TypeVar("T")

# Driver failures that mean "the database is not reachable right now"
TRANSIENT_ERRORS = (
	asyncpg.exceptions.InterfaceError,
	asyncpg.exceptions.PostgresConnectionError,
	asyncpg.exceptions.CannotConnectNowError,
	asyncpg.exceptions.TooManyConnectionsError,
	asyncio.TimeoutError,
	OSError,
)


async def init_pool() -> asyncpg.pool.Pool:
	global _pool
	if _pool is None:
		# Force 127.0.0.1 instead of localhost to avoid IPv6 resolution stalls
		dsn = settings.postgres_url.replace("localhost", "127.0.0.1")
		_pool = await asyncpg.create_pool(
			dsn=dsn,
			min_size=settings.postgres_min_pool_size,
			max_size=settings.postgres_max_pool_size,
		)
	return _pool


def set_pool(pool: Optional[asyncpg.pool.Pool]) -> None:
	global _pool
	_pool = pool


async def get_pool() -> asyncpg.pool.Pool:
	if _pool is None:
		await init_pool()
	assert _pool is not None
	return _pool


async def close_pool() -> None:
	global _pool
	if _pool is not None:
		await _pool.close()
		_pool = None


def translate_errors(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
	"""Surface driver connectivity failures as StorageUnavailable and bad parameters as InvalidArgument."""

	@functools.wraps(fn)
	async def wrapper(*args: Any, **kwargs: Any) -> T:
		try:
			return await fn(*args, **kwargs)
		except asyncpg.exceptions.DataError as exc:
			# malformed uuid or out-of-range value in a parameter
			raise InvalidArgument("invalid_id", "Invalid ID format") from exc
		except TRANSIENT_ERRORS as exc:
			raise StorageUnavailable("storage_unavailable", "Storage is temporarily unavailable") from exc

	return wrapper
