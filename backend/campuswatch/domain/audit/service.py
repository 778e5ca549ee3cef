"""Audit entry construction and read-side queries."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional
from uuid import uuid4

from campuswatch.domain.audit.models import (
    MODERATION_ACTIONS,
    AuditChanges,
    AuditLogEntry,
    AuditPayload,
    EntityType,
    RequestMetadata,
)
from campuswatch.domain.audit.repo import AuditRepository
from campuswatch.domain.directory.repo import DirectoryRepository
from campuswatch.domain.reports.models import Page
from campuswatch.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


def build_entry(
    *,
    actor_id: str,
    action: str,
    now: datetime,
    entity_type: str = EntityType.REPORT.value,
    entity_id: Optional[str] = None,
    report_id: Optional[str] = None,
    payload: Optional[AuditPayload] = None,
    changes: Optional[AuditChanges] = None,
    metadata: Optional[RequestMetadata] = None,
) -> AuditLogEntry:
    return AuditLogEntry(
        id=str(uuid4()),
        actor_id=str(actor_id),
        action=str(action),
        entity_type=str(entity_type),
        entity_id=str(entity_id) if entity_id is not None else None,
        created_at=now,
        report_id=str(report_id) if report_id is not None else None,
        payload=payload,
        changes=changes,
        metadata=metadata,
    )


async def append_entry(repo: AuditRepository, entry: AuditLogEntry) -> AuditLogEntry:
    """Write inside the caller's unit of work; a failure aborts the whole mutation."""
    try:
        written = await repo.append(entry)
    except Exception:
        obs_metrics.inc_audit_write_failure(entry.action)
        logger.error("audit write failed", extra={"action": entry.action, "report_id": entry.report_id})
        raise
    obs_metrics.inc_report_transition(entry.action)
    return written


@dataclass(slots=True)
class ActionSummary:
    entry: AuditLogEntry
    actor_name: Optional[str]
    actor_role: Optional[str]

    def to_dict(self) -> dict:
        data = self.entry.to_dict()
        data["actor"] = {"id": self.entry.actor_id, "name": self.actor_name, "role": self.actor_role}
        return data


class AuditQueries:
    """Read access to the audit trail."""

    def __init__(self, repo: AuditRepository, directory: DirectoryRepository) -> None:
        self._repo = repo
        self._directory = directory

    async def for_report(self, report_id: str, *, page: int = 1, limit: int = 50) -> Page:
        offset = (page - 1) * limit
        items = await self._repo.list_for_report(report_id, limit=limit, offset=offset)
        total = await self._repo.count(report_id=report_id)
        return Page(items=list(items), total=total, page=page, limit=limit)

    async def for_actor(self, actor_id: str, *, page: int = 1, limit: int = 50) -> Page:
        offset = (page - 1) * limit
        items = await self._repo.list_for_actor(actor_id, limit=limit, offset=offset)
        total = await self._repo.count(actor_id=actor_id)
        return Page(items=list(items), total=total, page=page, limit=limit)

    async def recent(self, *, page: int = 1, limit: int = 50) -> Page:
        offset = (page - 1) * limit
        items = await self._repo.list_recent(limit=limit, offset=offset)
        total = await self._repo.count()
        return Page(items=list(items), total=total, page=page, limit=limit)

    async def recent_moderation_actions(self, *, limit: int = 10) -> List[ActionSummary]:
        entries = await self._repo.list_recent(limit=limit, actions=MODERATION_ACTIONS)
        actors: Dict = await self._directory.get_users(e.actor_id for e in entries)
        summaries: List[ActionSummary] = []
        for entry in entries:
            actor = actors.get(entry.actor_id)
            summaries.append(
                ActionSummary(
                    entry=entry,
                    actor_name=actor.name if actor else None,
                    actor_role=actor.role if actor else None,
                )
            )
        return summaries
