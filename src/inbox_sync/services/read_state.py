"""Mark counterpart messages as read."""

from __future__ import annotations

import logging
from typing import Iterable, List, Union

from inbox_sync.clients.gateway import MessageGateway
from inbox_sync.models.message import Message
from inbox_sync.models.thread import Thread
from inbox_sync.services.grouping import is_unread_for

LOG = logging.getLogger(__name__)


def unread_from_counterpart(messages: Iterable[Message], viewer_is_admin: bool) -> List[Message]:
    """Messages the viewer has not read and did not write."""
    return [message for message in messages if is_unread_for(message, viewer_is_admin)]


async def mark_unread_as_read(
    gateway: MessageGateway,
    thread: Union[Thread, Iterable[Message]],
    viewer_is_admin: bool,
) -> List[str]:
    """Mark each eligible message read, one call per message.

    Failures are dropped: the next fetch or merge restores the true state.
    Returns the ids that were attempted.
    """
    messages = thread.messages if isinstance(thread, Thread) else thread
    attempted = []
    for message in unread_from_counterpart(messages, viewer_is_admin):
        attempted.append(message.id)
        try:
            await gateway.mark_read(message.id)
        except Exception:
            LOG.debug("Mark-read failed for %s", message.id, exc_info=True)
    return attempted
