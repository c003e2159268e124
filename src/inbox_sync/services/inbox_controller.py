"""Inbox orchestration: fetch, realtime merge, search and thread selection."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from inbox_sync import constants
from inbox_sync.clients.gateway import MessageGateway
from inbox_sync.clients.realtime import ChangeFeed
from inbox_sync.models.enums import InboxFilter, ThreadLoadState
from inbox_sync.models.message import ActionResult, Message
from inbox_sync.models.profile import Profile, Viewer
from inbox_sync.models.thread import Thread
from inbox_sync.services.feed_consumer import FeedConsumer
from inbox_sync.services.grouping import filter_threads, group_messages
from inbox_sync.services.merge import merge_messages
from inbox_sync.services.notifications import Notifier

LOG = logging.getLogger(__name__)


class InboxController:
    """Owns the viewer's message collection and derives threads from it.

    Every change to ``messages`` goes through :meth:`apply`. Staff viewers
    see all traffic, so their feed is debounced into one merge-and-refetch
    cycle per burst; customer feeds merge each event as it arrives.
    """

    def __init__(
        self,
        gateway: MessageGateway,
        feed: ChangeFeed,
        viewer: Viewer,
        notifier: Optional[Notifier] = None,
        debounce_seconds: float = constants.DEBOUNCE_SECONDS,
        window_limit: int = constants.RECENT_WINDOW_LIMIT,
    ) -> None:
        self.gateway = gateway
        self.viewer = viewer
        self.notifier = notifier or Notifier()
        self.window_limit = window_limit
        self.messages: List[Message] = []
        self.profiles: List[Profile] = []
        self.selected_id: Optional[str] = None
        self.is_loading = True
        self.has_loaded = False
        self.feed_cycles = 0
        self._load_states: Dict[str, ThreadLoadState] = {}
        self._version = 0
        self._threads_cache: Optional[tuple[int, List[Thread]]] = None
        self.consumer = FeedConsumer(
            feed,
            viewer,
            self._on_feed_messages,
            notifier=self.notifier,
            debounce_seconds=debounce_seconds if viewer.is_admin else None,
        )

    async def start(self) -> None:
        """Initial load, staff profile prefetch, then subscribe."""
        await self.refresh()
        if self.viewer.is_admin:
            await self.load_profiles()
        self.consumer.start()

    def close(self) -> None:
        self.consumer.close()

    def apply(self, incoming: Iterable[Message]) -> None:
        self.messages = merge_messages(self.messages, incoming)
        self._version += 1

    async def refresh(self) -> bool:
        """Re-fetch the recent window. On failure the held state is kept."""
        try:
            fetched = await self.gateway.list_recent_messages(self.window_limit)
        except Exception as exc:
            LOG.warning("Fetching recent messages failed: %s", exc)
            self.notifier.error("Could not load messages.")
            return False
        finally:
            self.is_loading = False
        # The window arrives newest first.
        self.apply(reversed(fetched))
        self.has_loaded = True
        return True

    async def load_profiles(self) -> None:
        try:
            profiles = await self.gateway.list_all_profiles()
        except Exception as exc:
            LOG.warning("Loading profiles failed: %s", exc)
            return
        self.profiles = [profile for profile in profiles if profile.id != self.viewer.id]
        self._version += 1

    async def _on_feed_messages(self, batch: List[Message]) -> None:
        self.feed_cycles += 1
        self.apply(batch)
        if self.viewer.is_admin:
            await self.refresh()

    @property
    def threads(self) -> List[Thread]:
        if self._threads_cache is None or self._threads_cache[0] != self._version:
            threads = group_messages(self.messages, self.profiles, self.viewer.is_admin)
            self._threads_cache = (self._version, threads)
        return self._threads_cache[1]

    def visible_threads(self, search: str = "", inbox_filter: InboxFilter = InboxFilter.ALL) -> List[Thread]:
        return filter_threads(self.threads, search, inbox_filter)

    def thread(self, participant_id: str) -> Optional[Thread]:
        for thread in self.threads:
            if thread.participant_id == participant_id:
                return thread
        return None

    @property
    def active_thread(self) -> Optional[Thread]:
        return self.thread(self.selected_id) if self.selected_id else None

    def load_state(self, participant_id: str) -> ThreadLoadState:
        return self._load_states.get(participant_id, ThreadLoadState.PARTIAL)

    async def select_thread(self, participant_id: str) -> Optional[Thread]:
        """Open a thread, loading its full history once per session."""
        self.selected_id = participant_id
        if self.load_state(participant_id) == ThreadLoadState.PARTIAL:
            self._load_states[participant_id] = ThreadLoadState.LOADING
            try:
                conversation = await self.gateway.list_conversation(participant_id)
            except Exception as exc:
                LOG.warning("Loading conversation %s failed: %s", participant_id, exc)
                self._load_states[participant_id] = ThreadLoadState.PARTIAL
                self.notifier.error("Could not load the conversation.")
            else:
                self.apply(conversation)
                self._load_states[participant_id] = ThreadLoadState.COMPLETE
        return self.active_thread

    def deselect(self) -> None:
        self.selected_id = None

    async def start_conversation(self, profile_id: str, body: str) -> ActionResult:
        """Send a first message to ``profile_id`` and open the thread."""
        text = body.strip()
        if not text:
            return ActionResult.failed("Message body is required.")
        try:
            result = await self.gateway.send_message(profile_id, text)
        except Exception as exc:
            LOG.warning("Sending to %s failed: %s", profile_id, exc)
            result = ActionResult.failed("Connection error.")
        if not result.success:
            self.notifier.error(result.error or "Could not send the message.")
            return result
        self.notifier.success("Message sent.")
        await self.refresh()
        await self.select_thread(profile_id)
        return result
