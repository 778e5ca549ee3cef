"""Append-only audit log storage."""

from __future__ import annotations

from typing import TYPE_CHECKING, AsyncContextManager, Callable, Optional, Protocol, Sequence

from campuswatch.domain.audit.models import AuditLogEntry

if TYPE_CHECKING:  # pragma: no cover - type-only imports
    from campuswatch.domain.store import MemoryState


class AuditRepository(Protocol):
    async def append(self, entry: AuditLogEntry) -> AuditLogEntry:
        ...

    async def list_for_report(self, report_id: str, *, limit: int, offset: int = 0) -> Sequence[AuditLogEntry]:
        ...

    async def list_for_actor(self, actor_id: str, *, limit: int, offset: int = 0) -> Sequence[AuditLogEntry]:
        ...

    async def list_recent(
        self,
        *,
        limit: int,
        offset: int = 0,
        actions: Optional[Sequence[str]] = None,
    ) -> Sequence[AuditLogEntry]:
        ...

    async def count(self, *, report_id: Optional[str] = None, actor_id: Optional[str] = None) -> int:
        ...


def _newest_first(entries: Sequence[AuditLogEntry]) -> list[AuditLogEntry]:
    # list order is insertion order; reverse keeps equal timestamps newest-first too
    return sorted(reversed(list(entries)), key=lambda e: e.created_at, reverse=True)


class InMemoryAuditRepository(AuditRepository):
    def __init__(self, state: "MemoryState", guard: Callable[[], AsyncContextManager[None]]) -> None:
        self._state = state
        self._guard = guard

    async def append(self, entry: AuditLogEntry) -> AuditLogEntry:
        async with self._guard():
            self._state.audit.append(entry)
        return entry

    async def list_for_report(self, report_id: str, *, limit: int, offset: int = 0) -> Sequence[AuditLogEntry]:
        rows = [e for e in self._state.audit if e.report_id == str(report_id)]
        return _newest_first(rows)[offset : offset + limit]

    async def list_for_actor(self, actor_id: str, *, limit: int, offset: int = 0) -> Sequence[AuditLogEntry]:
        rows = [e for e in self._state.audit if e.actor_id == str(actor_id)]
        return _newest_first(rows)[offset : offset + limit]

    async def list_recent(
        self,
        *,
        limit: int,
        offset: int = 0,
        actions: Optional[Sequence[str]] = None,
    ) -> Sequence[AuditLogEntry]:
        rows = self._state.audit
        if actions is not None:
            wanted = set(actions)
            rows = [e for e in rows if e.action in wanted]
        return _newest_first(rows)[offset : offset + limit]

    async def count(self, *, report_id: Optional[str] = None, actor_id: Optional[str] = None) -> int:
        return sum(
            1
            for e in self._state.audit
            if (report_id is None or e.report_id == str(report_id))
            and (actor_id is None or e.actor_id == str(actor_id))
        )
