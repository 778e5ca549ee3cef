"""Audit log records and their typed payload variants."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


class AuditAction(str, Enum):
    CREATE_REPORT = "create_report"
    EDIT_REPORT = "edit_report"
    DELETE_REPORT = "delete_report"
    VOTE_REPORT = "vote_report"
    REPORT_SPAM = "report_spam"
    VERIFY_REPORT = "verify_report"
    INVESTIGATE_REPORT = "investigate_report"
    INVALIDATE_REPORT = "invalidate_report"
    RESOLVE_REPORT = "resolve_report"
    UPDATE_REPORT_STATUS = "update_report_status"
    ASSIGN_REPORT = "assign_report"
    ADD_MODERATOR_NOTE = "add_moderator_note"
    CREATE_COMMENT = "create_comment"
    EDIT_COMMENT = "edit_comment"
    DELETE_COMMENT = "delete_comment"
    BAN_USER = "ban_user"
    UNBAN_USER = "unban_user"
    SYSTEM_ALERT = "system_alert"
    OTHER = "other"


class EntityType(str, Enum):
    REPORT = "report"
    USER = "user"
    CAMPUS = "campus"
    COMMENT = "comment"
    SYSTEM = "system"


# Actions surfaced on the moderation dashboard
MODERATION_ACTIONS: tuple[str, ...] = (
    AuditAction.VERIFY_REPORT.value,
    AuditAction.INVESTIGATE_REPORT.value,
    AuditAction.INVALIDATE_REPORT.value,
    AuditAction.RESOLVE_REPORT.value,
    AuditAction.UPDATE_REPORT_STATUS.value,
    AuditAction.BAN_USER.value,
)


class ReportCreated(BaseModel):
    kind: Literal["report_created"] = "report_created"
    category: str
    severity: int
    is_anonymous: bool = False


class ReportRetracted(BaseModel):
    kind: Literal["report_retracted"] = "report_retracted"
    by_admin: bool = False


class VoteCast(BaseModel):
    kind: Literal["vote_cast"] = "vote_cast"
    vote: str


class SpamFlagged(BaseModel):
    kind: Literal["spam_flagged"] = "spam_flagged"
    flag_count: int
    auto_flagged: bool = False


class ModeratorUpdate(BaseModel):
    kind: Literal["moderator_update"] = "moderator_update"
    notes_changed: bool = False
    assigned_to: Optional[str] = None
    assignment_rejected: bool = False


class CommentEvent(BaseModel):
    kind: Literal["comment"] = "comment"
    comment_id: str
    by_moderator: bool = False


class UserBanned(BaseModel):
    kind: Literal["user_banned"] = "user_banned"
    reason: Optional[str] = None


class UserUnbanned(BaseModel):
    kind: Literal["user_unbanned"] = "user_unbanned"


class SystemAlertSent(BaseModel):
    kind: Literal["system_alert"] = "system_alert"
    message: str
    level: str = "warning"


AuditPayload = Annotated[
    Union[ReportCreated, ReportRetracted, VoteCast, SpamFlagged, ModeratorUpdate, CommentEvent, UserBanned, UserUnbanned, SystemAlertSent],
    Field(discriminator="kind"),
]


class ContentSnapshot(BaseModel):
    category: str
    severity: int
    title: str
    description: str


class StatusSnapshot(BaseModel):
    status: str


class ContentChange(BaseModel):
    kind: Literal["content"] = "content"
    before: ContentSnapshot
    after: ContentSnapshot


class StatusChange(BaseModel):
    kind: Literal["status"] = "status"
    before: StatusSnapshot
    after: StatusSnapshot


AuditChanges = Annotated[Union[ContentChange, StatusChange], Field(discriminator="kind")]


class RequestMetadata(BaseModel):
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    location: Optional[list[float]] = None


payload_adapter: TypeAdapter[AuditPayload] = TypeAdapter(AuditPayload)
changes_adapter: TypeAdapter[AuditChanges] = TypeAdapter(AuditChanges)


@dataclass(slots=True)
class AuditLogEntry:
    id: str
    actor_id: str
    action: str
    entity_type: str
    entity_id: Optional[str]
    created_at: datetime
    report_id: Optional[str] = None
    payload: Optional[AuditPayload] = None
    changes: Optional[AuditChanges] = None
    metadata: Optional[RequestMetadata] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "actor_id": self.actor_id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "report_id": self.report_id,
            "payload": self.payload.model_dump(mode="json") if self.payload is not None else None,
            "changes": self.changes.model_dump(mode="json") if self.changes is not None else None,
            "metadata": self.metadata.model_dump(mode="json", exclude_none=True) if self.metadata else None,
            "created_at": self.created_at.isoformat(),
        }
