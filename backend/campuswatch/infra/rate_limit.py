"""Fixed-window quotas kept in Redis."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional

from campuswatch.infra.redis import redis_client


@dataclass(slots=True, frozen=True)
class Quota:
	allowed: bool
	limit: int
	remaining: int
	reset_in: int


def _bucket(kind: str, actor_id: str, window: int, now: float) -> tuple[str, int]:
	slot = int(now // window)
	reset_in = max(1, (slot + 1) * window - int(now))
	return f"rl:{kind}:{actor_id}:{window}:{slot}", reset_in


async def consume(
	kind: str,
	actor_id: str,
	*,
	limit: int,
	window_seconds: int = 60,
	now: Optional[float] = None,
) -> Quota:
	"""Count one hit against the actor's current window."""
	window = max(1, int(window_seconds))
	if limit <= 0:
		return Quota(allowed=False, limit=0, remaining=0, reset_in=window)
	key, reset_in = _bucket(kind, actor_id, window, now if now is not None else time.time())
	async with redis_client.pipeline(transaction=True) as pipe:
		pipe.incr(key)
		pipe.expire(key, window)
		count, _ = await pipe.execute()
	count = int(count)
	return Quota(allowed=count <= limit, limit=limit, remaining=max(0, limit - count), reset_in=reset_in)


class RateLimitExceeded(Exception):
	"""Raised when a quota is used up. `retry_after` is in seconds."""

	retry_after: Optional[int] = None
