"""Asynchronous action contracts consumed by the inbox controllers."""

from __future__ import annotations

import asyncio
from typing import List, Protocol

from inbox_sync import constants
from inbox_sync.models.message import ActionResult, Message
from inbox_sync.models.profile import Profile, Viewer
from inbox_sync.services.message_store import MessageStore
from inbox_sync.services.profile_service import ProfileService


class GatewayError(RuntimeError):
    """Raised when an external message action cannot be completed."""


class MessageGateway(Protocol):
    """Message Store actions as seen by one viewer."""

    async def list_recent_messages(self, limit: int = constants.RECENT_WINDOW_LIMIT) -> List[Message]:
        ...

    async def list_conversation(self, participant_id: str) -> List[Message]:
        ...

    async def send_message(self, participant_id: str, body: str) -> ActionResult:
        ...

    async def reply_message(self, anchor_message_id: str, body: str) -> ActionResult:
        ...

    async def submit_contact_message(self, body: str, subject: str = "") -> ActionResult:
        ...

    async def mark_read(self, message_id: str) -> None:
        ...

    async def list_all_profiles(self) -> List[Profile]:
        ...


class LocalGateway:
    """Runs :class:`MessageStore` actions off the event loop for a fixed viewer."""

    def __init__(self, store: MessageStore, profiles: ProfileService, viewer: Viewer) -> None:
        self.store = store
        self.profiles = profiles
        self.viewer = viewer

    async def list_recent_messages(self, limit: int = constants.RECENT_WINDOW_LIMIT) -> List[Message]:
        return await asyncio.to_thread(self.store.list_recent_messages, self.viewer, limit)

    async def list_conversation(self, participant_id: str) -> List[Message]:
        return await asyncio.to_thread(self.store.list_conversation, self.viewer, participant_id)

    async def send_message(self, participant_id: str, body: str) -> ActionResult:
        return await asyncio.to_thread(self.store.send_message, self.viewer, participant_id, body)

    async def reply_message(self, anchor_message_id: str, body: str) -> ActionResult:
        return await asyncio.to_thread(self.store.reply_message, self.viewer, anchor_message_id, body)

    async def submit_contact_message(self, body: str, subject: str = "") -> ActionResult:
        return await asyncio.to_thread(
            self.store.submit_contact_message,
            self.viewer.name or constants.USER_PLACEHOLDER,
            self.viewer.email or "",
            body,
            subject,
            self.viewer.id,
        )

    async def mark_read(self, message_id: str) -> None:
        result = await asyncio.to_thread(self.store.mark_read, self.viewer, message_id)
        if not result.success:
            raise GatewayError(result.error or f"Could not mark {message_id} as read.")

    async def list_all_profiles(self) -> List[Profile]:
        return await asyncio.to_thread(self.profiles.list_all_profiles, self.viewer)
