"""Persisted message actions."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import literal_column, or_

from inbox_sync import constants
from inbox_sync.clients.database import Message as MessageORM, session_scope
from inbox_sync.clients.realtime import ChangeFeed
from inbox_sync.models.enums import ChangeEventType, MessageStatus
from inbox_sync.models.events import ChangeEvent
from inbox_sync.models.message import ActionResult, Message
from inbox_sync.models.profile import Viewer
from inbox_sync.services.profile_service import ProfileService

LOG = logging.getLogger(__name__)

# Insertion order; breaks ties between equal timestamps.
ROWID = literal_column(f"{constants.MESSAGES_TABLE}.rowid")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def validate_body(body: str) -> Optional[str]:
    """Return an error string when ``body`` cannot be sent."""
    if not body or not body.strip():
        return "Message body is required."
    if len(body) > constants.MAX_MESSAGE_LENGTH:
        return f"Message exceeds {constants.MAX_MESSAGE_LENGTH} characters."
    return None


class MessageStore:
    """Reads and writes messages and publishes every change on the feed."""

    def __init__(self, profiles: ProfileService, feed: Optional[ChangeFeed] = None) -> None:
        self.profiles = profiles
        self.feed = feed

    def list_recent_messages(
        self, viewer: Viewer, limit: int = constants.RECENT_WINDOW_LIMIT
    ) -> List[Message]:
        """Newest messages first. Customers only see their own conversation."""
        with session_scope() as db:
            query = db.query(MessageORM)
            if not viewer.is_admin:
                query = query.filter(
                    or_(MessageORM.sender_id == viewer.id, MessageORM.receiver_id == viewer.id)
                )
            rows = query.order_by(MessageORM.created_at.desc(), ROWID.desc()).limit(limit).all()
            return [Message.model_validate(obj, from_attributes=True) for obj in rows]

    def list_conversation(self, viewer: Viewer, participant_id: str) -> List[Message]:
        """Full history with one participant, oldest first."""
        if not viewer.is_admin and participant_id != viewer.id:
            return []
        with session_scope() as db:
            rows = (
                db.query(MessageORM)
                .filter(
                    or_(MessageORM.sender_id == participant_id, MessageORM.receiver_id == participant_id)
                )
                .order_by(MessageORM.created_at.asc(), ROWID.asc())
                .all()
            )
            return [Message.model_validate(obj, from_attributes=True) for obj in rows]

    def get_message(self, message_id: str) -> Optional[Message]:
        with session_scope() as db:
            message = db.get(MessageORM, message_id)
            return Message.model_validate(message, from_attributes=True) if message else None

    def send_message(self, viewer: Viewer, participant_id: str, body: str) -> ActionResult:
        """Staff-initiated message; no prior message from the participant is needed."""
        if not viewer.is_admin:
            return ActionResult.failed("Insufficient permissions.")
        error = validate_body(body)
        if error:
            return ActionResult.failed(error)
        self._insert(self._staff_message(viewer, participant_id, body, constants.NEW_MESSAGE_LABEL))
        return ActionResult.ok()

    def submit_contact_message(
        self,
        name: str,
        email: str,
        body: str,
        subject: str = "",
        sender_id: Optional[str] = None,
        receiver_id: Optional[str] = None,
    ) -> ActionResult:
        """Customer-authored message, linked to a profile by email when anonymous."""
        if not name or not email or not body:
            return ActionResult.failed("Name, email and message are required.")
        error = validate_body(body)
        if error:
            return ActionResult.failed(error)
        if sender_id is None:
            existing = self.profiles.find_by_email(email)
            if existing:
                sender_id = existing.id
        self._insert(
            MessageORM(
                sender_id=sender_id,
                receiver_id=receiver_id,
                is_admin_reply=False,
                body=body,
                subject=subject,
                status=MessageStatus.UNREAD,
                author_name=name,
                author_email=email,
                created_at=_now(),
            )
        )
        return ActionResult.ok()

    def reply_message(self, viewer: Viewer, anchor_message_id: str, body: str) -> ActionResult:
        """Reply to the author of ``anchor_message_id``.

        The anchor keeps its read status; marking it read is the reader's job.
        """
        if not viewer.is_admin:
            return ActionResult.failed("Insufficient permissions.")
        error = validate_body(body)
        if error:
            return ActionResult.failed(error)
        anchor = self.get_message(anchor_message_id)
        if anchor is None:
            return ActionResult.failed("Original message not found.")
        if not anchor.sender_id:
            return ActionResult.failed("Original message has no registered sender.")
        subject = f"Re: {anchor.subject}" if anchor.subject else "Re:"
        self._insert(self._staff_message(viewer, anchor.sender_id, body, subject))
        return ActionResult.ok()

    def broadcast_message(self, viewer: Viewer, body: str) -> ActionResult:
        """Send one staff message to every non-staff profile."""
        if not viewer.is_admin:
            return ActionResult.failed("Insufficient permissions.")
        error = validate_body(body)
        if error:
            return ActionResult.failed(error)
        recipients = [profile for profile in self.profiles.list_customers() if profile.id != viewer.id]
        if not recipients:
            return ActionResult.failed("No users to contact.")
        rows = [
            self._staff_message(viewer, recipient.id, body, constants.BROADCAST_SUBJECT)
            for recipient in recipients
        ]
        with session_scope() as db:
            db.add_all(rows)
        for row in rows:
            self._publish(ChangeEventType.INSERT, row)
        LOG.info("Broadcast from %s reached %d recipients", viewer.id, len(rows))
        return ActionResult.ok(count=len(rows))

    def mark_read(self, viewer: Viewer, message_id: str) -> ActionResult:
        """Flip ``unread`` to ``read`` for the counterpart of the message author.

        Customers may only touch their own conversation, and nobody marks a
        message written from their own side. Read messages are left untouched.
        """
        with session_scope() as db:
            message = db.get(MessageORM, message_id)
            if message is None:
                return ActionResult.failed("Message not found.")
            if not viewer.is_admin and viewer.id not in (message.sender_id, message.receiver_id):
                return ActionResult.failed("Insufficient permissions.")
            if message.is_admin_reply == viewer.is_admin:
                return ActionResult.failed("Messages from your own side cannot be marked read.")
            if message.status == MessageStatus.READ:
                return ActionResult.ok()
            message.status = MessageStatus.READ
        self._publish(ChangeEventType.UPDATE, message)
        return ActionResult.ok()

    def _staff_message(self, viewer: Viewer, receiver_id: str, body: str, subject: str) -> MessageORM:
        return MessageORM(
            sender_id=viewer.id,
            receiver_id=receiver_id,
            is_admin_reply=True,
            body=body,
            subject=subject,
            status=MessageStatus.UNREAD,
            author_name=viewer.name or constants.SUPPORT_NAME,
            author_email=viewer.email or constants.SUPPORT_EMAIL,
            created_at=_now(),
        )

    def _insert(self, message: MessageORM) -> None:
        with session_scope() as db:
            db.add(message)
            db.flush()
            db.refresh(message)
        self._publish(ChangeEventType.INSERT, message)

    def _publish(self, event_type: ChangeEventType, message: MessageORM) -> None:
        if self.feed is None:
            return
        record = Message.model_validate(message, from_attributes=True).model_dump(mode="json")
        self.feed.publish(
            ChangeEvent(event_type=event_type, table=constants.MESSAGES_TABLE, record=record)
        )
