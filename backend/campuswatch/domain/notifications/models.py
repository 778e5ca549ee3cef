"""Notification records produced by report lifecycle transitions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


class NotificationType(str, Enum):
    NEW_REPORT = "new_report"
    REPORT_UPDATE = "report_update"
    REPORT_RESOLVED = "report_resolved"
    COMMENT_REPLY = "comment_reply"
    VOTE_THRESHOLD = "vote_threshold"
    MODERATOR_ACTION = "moderator_action"
    SYSTEM_ALERT = "system_alert"
    CAMPUS_ANNOUNCEMENT = "campus_announcement"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class CommentReplyData(BaseModel):
    kind: Literal["comment_reply"] = "comment_reply"
    comment_id: str


class StatusChangeData(BaseModel):
    kind: Literal["status_change"] = "status_change"
    old_status: str
    new_status: str


class AlertData(BaseModel):
    kind: Literal["alert"] = "alert"
    detail: Optional[str] = None


NotificationData = Annotated[Union[CommentReplyData, StatusChangeData, AlertData], Field(discriminator="kind")]

data_adapter: TypeAdapter[NotificationData] = TypeAdapter(NotificationData)


@dataclass
class Notification:
    id: str
    user_id: str
    type: str
    title: str
    message: str
    created_at: datetime
    report_id: Optional[str] = None
    data: Optional[NotificationData] = None
    priority: str = Priority.MEDIUM.value
    is_read: bool = False
    read_at: Optional[datetime] = None
    is_pushed: bool = False
    pushed_at: Optional[datetime] = None
    is_emailed: bool = False
    emailed_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "report_id": self.report_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "data": self.data.model_dump(mode="json") if self.data is not None else None,
            "priority": self.priority,
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "is_pushed": self.is_pushed,
            "is_emailed": self.is_emailed,
            "created_at": self.created_at.isoformat(),
        }
