"""In-process publish/subscribe change feed."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List

from inbox_sync.models.events import ChangeEvent

LOG = logging.getLogger(__name__)

ChangeHandler = Callable[[ChangeEvent], None]


class Subscription:
    """Teardown handle returned by :meth:`ChangeFeed.subscribe`."""

    def __init__(self, feed: "ChangeFeed", table: str, handler: ChangeHandler) -> None:
        self._feed = feed
        self.table = table
        self.handler = handler
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._feed._remove(self)


class ChangeFeed:
    """Delivers insert/update events on a table to every subscriber."""

    def __init__(self) -> None:
        self._subscriptions: Dict[str, List[Subscription]] = {}
        self._lock = threading.Lock()

    def subscribe(self, table: str, handler: ChangeHandler) -> Subscription:
        subscription = Subscription(self, table, handler)
        with self._lock:
            self._subscriptions.setdefault(table, []).append(subscription)
        LOG.debug("Subscribed handler to %s", table)
        return subscription

    def subscriber_count(self, table: str) -> int:
        with self._lock:
            return len(self._subscriptions.get(table, []))

    def publish(self, event: ChangeEvent) -> None:
        """Dispatch ``event`` to the current subscribers of its table."""
        with self._lock:
            targets = list(self._subscriptions.get(event.table, []))
        for subscription in targets:
            if not subscription.active:
                continue
            try:
                subscription.handler(event)
            except Exception:
                LOG.exception("Change handler failed for %s event on %s", event.event_type, event.table)

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            handlers = self._subscriptions.get(subscription.table, [])
            if subscription in handlers:
                handlers.remove(subscription)
        LOG.debug("Unsubscribed handler from %s", subscription.table)
