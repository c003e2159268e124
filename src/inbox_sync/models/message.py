"""Message models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, field_validator

from inbox_sync.models.enums import MessageStatus


class Message(BaseModel):
    """A single message exchanged between staff and a customer."""

    id: str
    sender_id: Optional[str] = None
    receiver_id: Optional[str] = None
    is_admin_reply: bool = False
    body: str
    subject: str = ""
    status: MessageStatus = MessageStatus.UNREAD
    created_at: datetime
    author_name: Optional[str] = None
    author_email: Optional[str] = None

    class Config:
        from_attributes = True

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # SQLite hands back naive datetimes.
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class MessageCreateRequest(BaseModel):
    participant_id: str
    body: str


class ContactMessageRequest(BaseModel):
    name: str
    email: str
    body: str
    subject: str = ""
    receiver_id: Optional[str] = None


class ReplyRequest(BaseModel):
    body: str


class OwnMessageRequest(BaseModel):
    body: str
    subject: str = ""


class BroadcastRequest(BaseModel):
    body: str


class ActionResult(BaseModel):
    """Outcome of a message action."""

    success: bool
    error: Optional[str] = None
    count: Optional[int] = None

    @classmethod
    def ok(cls, count: Optional[int] = None) -> "ActionResult":
        return cls(success=True, count=count)

    @classmethod
    def failed(cls, error: str) -> "ActionResult":
        return cls(success=False, error=error)
