"""Single-thread view: live message list, read tracking and composer."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Set, Union

from inbox_sync import constants
from inbox_sync.clients.gateway import MessageGateway
from inbox_sync.clients.realtime import ChangeFeed
from inbox_sync.models.enums import MessageStatus
from inbox_sync.models.message import ActionResult, Message
from inbox_sync.models.profile import Viewer
from inbox_sync.models.thread import Thread
from inbox_sync.services.feed_consumer import FeedConsumer
from inbox_sync.services.grouping import is_unread_for, sort_messages
from inbox_sync.services.merge import merge_messages, with_status
from inbox_sync.services.notifications import Notifier
from inbox_sync.services.read_state import mark_unread_as_read, unread_from_counterpart

LOG = logging.getLogger(__name__)

RefreshCallback = Callable[[], Union[Any, Awaitable[Any]]]


class ThreadView:
    """Controller behind one open conversation."""

    def __init__(
        self,
        gateway: MessageGateway,
        feed: ChangeFeed,
        viewer: Viewer,
        thread: Thread,
        notifier: Optional[Notifier] = None,
        on_refresh: Optional[RefreshCallback] = None,
        max_length: int = constants.MAX_MESSAGE_LENGTH,
    ) -> None:
        self.gateway = gateway
        self.viewer = viewer
        self.participant_id = thread.participant_id
        self.name = thread.name
        self.email = thread.email
        self.notifier = notifier or Notifier()
        self.on_refresh = on_refresh
        self.max_length = max_length
        self.messages: List[Message] = sort_messages(thread.messages)
        self.scroll_anchor: Optional[str] = None
        self.draft = ""
        self.error: Optional[str] = None
        self.is_sending = False
        self._attempted_reads: Set[str] = set()
        self._read_tasks: Set[asyncio.Task] = set()
        self.consumer = FeedConsumer(
            feed,
            viewer,
            self.apply,
            participant_id=thread.participant_id,
        )

    async def start(self) -> None:
        self.consumer.start()
        self._on_change()

    def close(self) -> None:
        self.consumer.close()
        for task in list(self._read_tasks):
            task.cancel()
        self._read_tasks.clear()

    @property
    def unread_count(self) -> int:
        return sum(1 for message in self.messages if is_unread_for(message, self.viewer.is_admin))

    def apply(self, incoming: Iterable[Message]) -> None:
        """Merge new or updated messages; no-op when nothing changed."""
        merged = merge_messages(self.messages, incoming)
        if merged == self.messages:
            return
        self.messages = merged
        self._on_change()

    def _on_change(self) -> None:
        self.scroll_anchor = self.messages[-1].id if self.messages else None
        self._mark_counterpart_read()

    def _mark_counterpart_read(self) -> None:
        eligible = [
            message
            for message in unread_from_counterpart(self.messages, self.viewer.is_admin)
            if message.id not in self._attempted_reads
        ]
        if not eligible:
            return
        ids = [message.id for message in eligible]
        self._attempted_reads.update(ids)
        self.messages = with_status(self.messages, ids, MessageStatus.READ)
        task = asyncio.ensure_future(mark_unread_as_read(self.gateway, eligible, self.viewer.is_admin))
        self._read_tasks.add(task)
        task.add_done_callback(self._read_tasks.discard)

    async def settle(self) -> None:
        """Wait for in-flight mark-read calls and feed deliveries."""
        await self.consumer.drain()
        if self._read_tasks:
            await asyncio.gather(*list(self._read_tasks), return_exceptions=True)

    # Composer -------------------------------------------------------------------
    def set_draft(self, text: str) -> None:
        self.draft = text[: self.max_length]

    async def handle_key(self, key: str, shift: bool = False) -> bool:
        """Enter submits, Shift+Enter inserts a newline. Returns True when submitted."""
        if key != "Enter":
            return False
        if shift:
            self.set_draft(self.draft + "\n")
            return False
        await self.submit()
        return True

    def reply_anchor(self) -> Optional[Message]:
        """Most recent customer-authored message, the anchor for staff replies."""
        for message in reversed(self.messages):
            if not message.is_admin_reply:
                return message
        return None

    @property
    def can_reply(self) -> bool:
        """False for staff in a contact-form thread whose author has no account."""
        if not self.viewer.is_admin:
            return True
        anchor = self.reply_anchor()
        return anchor is None or bool(anchor.sender_id)

    async def submit(self) -> Optional[ActionResult]:
        text = self.draft.strip()
        if not text or self.is_sending:
            return None
        self.is_sending = True
        try:
            result = await self._dispatch(text)
        except Exception as exc:
            LOG.warning("Sending in thread %s failed: %s", self.participant_id, exc)
            result = ActionResult.failed("Connection error.")
        finally:
            self.is_sending = False

        if not result.success:
            self.error = result.error or "Could not send the message."
            self.notifier.error(self.error)
            return result

        self.draft = ""
        self.error = None
        self.notifier.success("Reply sent.")
        if self.on_refresh is not None:
            outcome = self.on_refresh()
            if inspect.isawaitable(outcome):
                await outcome
        return result

    async def _dispatch(self, text: str) -> ActionResult:
        if not self.viewer.is_admin:
            return await self.gateway.submit_contact_message(text)
        if not self.can_reply:
            return ActionResult.failed(f"{self.email or self.name} has no account; answer by email.")
        anchor = self.reply_anchor()
        if anchor is not None:
            return await self.gateway.reply_message(anchor.id, text)
        return await self.gateway.send_message(self.participant_id, text)
