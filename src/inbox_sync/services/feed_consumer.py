"""Filter, notify on, and forward realtime message events."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, List, Optional, Union

from pydantic import ValidationError

from inbox_sync import constants
from inbox_sync.clients.realtime import ChangeFeed, Subscription
from inbox_sync.models.enums import ChangeEventType
from inbox_sync.models.events import ChangeEvent
from inbox_sync.models.message import Message
from inbox_sync.models.profile import Viewer
from inbox_sync.services.notifications import Notifier
from inbox_sync.utils.debounce import Debouncer

LOG = logging.getLogger(__name__)

MessagesCallback = Callable[[List[Message]], Union[Any, Awaitable[Any]]]


def visible_to(viewer: Viewer, message: Message) -> bool:
    """Staff see all traffic; customers only their own conversation."""
    return viewer.is_admin or viewer.id in (message.sender_id, message.receiver_id)


class FeedConsumer:
    """Subscription handler for one view.

    Relevant messages are handed to ``on_messages`` immediately, or, when a
    debounce window is configured, buffered and delivered as one batch once
    the burst settles. Restricting to ``participant_id`` turns this into a
    single-thread feed.
    """

    def __init__(
        self,
        feed: ChangeFeed,
        viewer: Viewer,
        on_messages: MessagesCallback,
        notifier: Optional[Notifier] = None,
        debounce_seconds: Optional[float] = None,
        participant_id: Optional[str] = None,
        table: str = constants.MESSAGES_TABLE,
    ) -> None:
        self.feed = feed
        self.viewer = viewer
        self.on_messages = on_messages
        self.notifier = notifier
        self.participant_id = participant_id
        self.table = table
        self.dropped = 0
        self._buffer: List[Message] = []
        self._debouncer = Debouncer(debounce_seconds, self._flush) if debounce_seconds else None
        self._subscription: Optional[Subscription] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def debouncer(self) -> Optional[Debouncer]:
        return self._debouncer

    @property
    def active(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def start(self) -> None:
        """Subscribe. Must be called from the loop that owns the view."""
        if self.active:
            return
        self._loop = asyncio.get_running_loop()
        self._subscription = self.feed.subscribe(self.table, self.handle)

    def close(self) -> None:
        """Unsubscribe and drop anything still pending."""
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        if self._debouncer is not None:
            self._debouncer.cancel()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        self._buffer.clear()

    def handle(self, event: ChangeEvent) -> None:
        """Feed callback; may run on any thread."""
        message = self.parse(event)
        if message is None or not self.is_relevant(message):
            return
        loop = self._loop
        if loop is None:
            return
        try:
            on_loop = asyncio.get_running_loop() is loop
        except RuntimeError:
            on_loop = False
        if on_loop:
            self._dispatch(event.event_type, message)
        else:
            loop.call_soon_threadsafe(self._dispatch, event.event_type, message)

    def parse(self, event: ChangeEvent) -> Optional[Message]:
        try:
            return Message.model_validate(event.record)
        except ValidationError as exc:
            self.dropped += 1
            LOG.warning("Dropping malformed %s event: %s", event.event_type.value, exc.errors()[:1])
            return None

    def is_relevant(self, message: Message) -> bool:
        if self.participant_id is not None:
            return self.participant_id in (message.sender_id, message.receiver_id)
        return visible_to(self.viewer, message)

    def should_notify(self, event_type: ChangeEventType, message: Message) -> bool:
        if event_type != ChangeEventType.INSERT:
            return False
        if self.viewer.is_admin:
            return not message.is_admin_reply
        return message.is_admin_reply and message.receiver_id == self.viewer.id

    def _dispatch(self, event_type: ChangeEventType, message: Message) -> None:
        if not self.active:
            return
        if self.notifier is not None and self.should_notify(event_type, message):
            if self.viewer.is_admin:
                self.notifier.info(
                    f"{constants.NEW_MESSAGE_LABEL} from {message.author_name or constants.USER_PLACEHOLDER}"
                )
            else:
                self.notifier.info(constants.NEW_MESSAGE_LABEL)
        if self._debouncer is not None:
            self._buffer.append(message)
            self._debouncer.trigger()
            return
        self._deliver([message])

    def _deliver(self, messages: List[Message]) -> None:
        result = self.on_messages(messages)
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _flush(self) -> None:
        batch, self._buffer = self._buffer, []
        if not batch:
            return
        result = self.on_messages(batch)
        if inspect.isawaitable(result):
            await result

    async def drain(self) -> None:
        """Wait for pending debounced batches and scheduled deliveries."""
        if self._debouncer is not None:
            await self._debouncer.flush()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
