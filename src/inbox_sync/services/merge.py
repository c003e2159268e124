"""Single merge path for every update to a held message collection."""

from __future__ import annotations

from typing import Dict, Iterable, List

from inbox_sync.models.enums import MessageStatus
from inbox_sync.models.message import Message
from inbox_sync.services.grouping import sort_messages


def _combine(existing: Message, incoming: Message) -> Message:
    # Status only moves unread -> read; every other field is immutable.
    if existing.status == MessageStatus.READ or incoming.status != MessageStatus.READ:
        return existing
    return existing.model_copy(update={"status": MessageStatus.READ})


def merge_messages(current: Iterable[Message], incoming: Iterable[Message]) -> List[Message]:
    """Union ``current`` and ``incoming`` by id and re-sort by ``created_at``.

    Delivering the same message through a fetch and a realtime event, in
    either order, leaves exactly one copy with the most advanced status.
    """
    merged: Dict[str, Message] = {}
    for message in current:
        merged[message.id] = _combine(merged[message.id], message) if message.id in merged else message
    for message in incoming:
        merged[message.id] = _combine(merged[message.id], message) if message.id in merged else message
    return sort_messages(merged.values())


def with_status(messages: Iterable[Message], message_ids: Iterable[str], status: MessageStatus) -> List[Message]:
    """Optimistic copies of ``messages`` with ``status`` applied to ``message_ids``."""
    targets = set(message_ids)
    return [
        message.model_copy(update={"status": status}) if message.id in targets else message
        for message in messages
    ]
