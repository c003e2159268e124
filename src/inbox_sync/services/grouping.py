"""Group a flat message list into per-participant conversation threads.

Threads are a projection: they are rebuilt from the current messages and
profiles on every call and carry no identity of their own. Everything here
is pure so the same input always yields the same threads in the same order.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence

from inbox_sync import constants
from inbox_sync.models.enums import InboxFilter, MessageStatus
from inbox_sync.models.message import Message
from inbox_sync.models.profile import Profile
from inbox_sync.models.thread import Thread

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def thread_key(message: Message) -> Optional[str]:
    """Return the counterpart id a message is filed under, or ``None`` to drop it.

    Staff replies belong to their receiver, customer messages to their sender.
    Anonymous contact-form messages fall back to the author email.
    """
    if message.is_admin_reply:
        if not message.receiver_id or message.receiver_id == message.sender_id:
            return None
        return message.receiver_id
    return message.sender_id or message.author_email or None


def sort_messages(messages: Iterable[Message]) -> List[Message]:
    """Ascending by ``created_at``; equal timestamps keep their input order."""
    return sorted(messages, key=lambda message: message.created_at)


def is_unread_for(message: Message, viewer_is_admin: bool) -> bool:
    """Unread and authored by the other side of the conversation."""
    return message.status == MessageStatus.UNREAD and message.is_admin_reply != viewer_is_admin


def _display_label(*candidates: Optional[str]) -> str:
    for candidate in candidates:
        if candidate and candidate.strip():
            return candidate
    return constants.USER_PLACEHOLDER


def _placeholder_message(profile: Profile) -> Message:
    return Message(
        id=f"empty-{profile.id}",
        sender_id=None,
        receiver_id=profile.id,
        is_admin_reply=True,
        body="",
        subject=constants.NEW_MESSAGE_LABEL,
        status=MessageStatus.READ,
        created_at=profile.created_at or EPOCH,
        author_name=profile.full_name,
        author_email=profile.email,
    )


def _build_thread(
    key: str,
    messages: List[Message],
    profile: Optional[Profile],
    viewer_is_admin: bool,
) -> Thread:
    ordered = sort_messages(messages)
    customer_messages = [message for message in ordered if not message.is_admin_reply]
    latest_customer = customer_messages[-1] if customer_messages else None

    name = _display_label(
        profile.full_name if profile else None,
        latest_customer.author_name if latest_customer else None,
        profile.email if profile else None,
        latest_customer.author_email if latest_customer else None,
    )
    email = (profile.email if profile else None) or (
        latest_customer.author_email if latest_customer else None
    ) or ""

    return Thread(
        participant_id=key,
        name=name,
        email=email,
        messages=ordered,
        last_message=ordered[-1],
        unread_count=sum(1 for message in ordered if is_unread_for(message, viewer_is_admin)),
    )


def group_messages(
    messages: Sequence[Message],
    profiles: Sequence[Profile],
    viewer_is_admin: bool,
) -> List[Thread]:
    """Partition ``messages`` into threads keyed by the non-staff participant.

    In staff view every profile without messages also gets an empty thread
    so a conversation can be started with it. Threads with activity come
    first, newest activity first; empty threads trail, ordered by name.
    """
    profiles_by_id: Dict[str, Profile] = {}
    for profile in profiles:
        if profile.id and profile.id not in profiles_by_id:
            profiles_by_id[profile.id] = profile

    partitions: Dict[str, List[Message]] = {}
    for message in messages:
        key = thread_key(message)
        if key is None:
            continue
        partitions.setdefault(key, []).append(message)

    active = [
        _build_thread(key, bucket, profiles_by_id.get(key), viewer_is_admin)
        for key, bucket in partitions.items()
    ]
    active.sort(key=lambda thread: thread.participant_id)
    active.sort(key=lambda thread: thread.last_message.created_at, reverse=True)

    empty: List[Thread] = []
    if viewer_is_admin:
        for profile_id, profile in profiles_by_id.items():
            if profile_id in partitions:
                continue
            empty.append(
                Thread(
                    participant_id=profile_id,
                    name=_display_label(profile.full_name, profile.email),
                    email=profile.email or "",
                    messages=[],
                    last_message=_placeholder_message(profile),
                    unread_count=0,
                )
            )
        empty.sort(key=lambda thread: (thread.name.casefold(), thread.participant_id))

    return active + empty


def filter_threads(
    threads: Sequence[Thread],
    search: str = "",
    inbox_filter: InboxFilter = InboxFilter.ALL,
) -> List[Thread]:
    """Case-insensitive substring search on name or email, optionally unread only."""
    needle = (search or "").casefold()
    selected = []
    for thread in threads:
        if needle and needle not in thread.name.casefold() and needle not in thread.email.casefold():
            continue
        if inbox_filter == InboxFilter.UNREAD and thread.unread_count == 0:
            continue
        selected.append(thread)
    return selected
