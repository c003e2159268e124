from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from inbox_sync import constants
from inbox_sync.api import main as api_main
from inbox_sync.clients import database
from inbox_sync.clients.gateway import GatewayError
from inbox_sync.clients.realtime import ChangeFeed
from inbox_sync.models.enums import ChangeEventType, MessageStatus, UserRole
from inbox_sync.models.events import ChangeEvent
from inbox_sync.models.message import ActionResult, Message
from inbox_sync.models.profile import Profile, Viewer
from inbox_sync.services.message_store import MessageStore
from inbox_sync.services.profile_service import ProfileService

BASE_TIME = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


def make_message(
    message_id: str,
    sender_id: Optional[str] = "u1",
    receiver_id: Optional[str] = "admin",
    is_admin_reply: bool = False,
    status: MessageStatus = MessageStatus.UNREAD,
    minutes: int = 0,
    body: str = "hello",
    author_name: Optional[str] = None,
    author_email: Optional[str] = None,
) -> Message:
    return Message(
        id=message_id,
        sender_id=sender_id,
        receiver_id=receiver_id,
        is_admin_reply=is_admin_reply,
        body=body,
        status=status,
        created_at=BASE_TIME + timedelta(minutes=minutes),
        author_name=author_name,
        author_email=author_email,
    )


def make_profile(profile_id: str, full_name: Optional[str] = None, email: Optional[str] = None, **extra) -> Profile:
    return Profile(id=profile_id, full_name=full_name, email=email, **extra)


class FakeGateway:
    """In-memory stand-in for the message actions."""

    def __init__(self, viewer: Viewer, feed: Optional[ChangeFeed] = None) -> None:
        self.viewer = viewer
        self.feed = feed
        self.messages: Dict[str, Message] = {}
        self.profiles: List[Profile] = []
        self.calls: List[tuple] = []
        self.fail_fetch = False
        self.fail_send = False
        self.fail_mark_read = False
        self._counter = 0

    # Test helpers ---------------------------------------------------------------
    def seed(self, *messages: Message) -> None:
        for message in messages:
            self.messages[message.id] = message

    def insert(self, message: Message) -> None:
        self.seed(message)
        if self.feed is not None:
            self.feed.publish(
                ChangeEvent(event_type=ChangeEventType.INSERT, record=message.model_dump(mode="json"))
            )

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    def _next_message(self, receiver_id: str, body: str) -> Message:
        self._counter += 1
        return make_message(
            f"sent-{self._counter}",
            sender_id=self.viewer.id,
            receiver_id=receiver_id,
            is_admin_reply=self.viewer.is_admin,
            minutes=1000 + self._counter,
            body=body,
        )

    # Gateway contract -----------------------------------------------------------
    async def list_recent_messages(self, limit: int = constants.RECENT_WINDOW_LIMIT) -> List[Message]:
        self.calls.append(("list_recent_messages", limit))
        if self.fail_fetch:
            raise GatewayError("backend unavailable")
        # Newest first; equal timestamps come back latest-inserted first.
        ordered = sorted(reversed(list(self.messages.values())), key=lambda m: m.created_at, reverse=True)
        return ordered[:limit]

    async def list_conversation(self, participant_id: str) -> List[Message]:
        self.calls.append(("list_conversation", participant_id))
        if self.fail_fetch:
            raise GatewayError("backend unavailable")
        return sorted(
            (m for m in self.messages.values() if participant_id in (m.sender_id, m.receiver_id)),
            key=lambda m: m.created_at,
        )

    async def send_message(self, participant_id: str, body: str) -> ActionResult:
        self.calls.append(("send_message", participant_id, body))
        if self.fail_send:
            return ActionResult.failed("send rejected")
        self.insert(self._next_message(participant_id, body))
        return ActionResult.ok()

    async def reply_message(self, anchor_message_id: str, body: str) -> ActionResult:
        self.calls.append(("reply_message", anchor_message_id, body))
        if self.fail_send:
            return ActionResult.failed("send rejected")
        anchor = self.messages[anchor_message_id]
        self.insert(self._next_message(anchor.sender_id, body))
        return ActionResult.ok()

    async def submit_contact_message(self, body: str, subject: str = "") -> ActionResult:
        self.calls.append(("submit_contact_message", body))
        if self.fail_send:
            return ActionResult.failed("send rejected")
        self.insert(self._next_message("admin", body))
        return ActionResult.ok()

    async def mark_read(self, message_id: str) -> None:
        self.calls.append(("mark_read", message_id))
        if self.fail_mark_read:
            raise GatewayError("mark read failed")
        message = self.messages.get(message_id)
        if message is not None:
            self.messages[message_id] = message.model_copy(update={"status": MessageStatus.READ})

    async def list_all_profiles(self) -> List[Profile]:
        self.calls.append(("list_all_profiles",))
        return list(self.profiles)


@pytest.fixture(autouse=True)
def temp_runtime_dirs(tmp_path, monkeypatch):
    """Redirect runtime directories and database into a temp location."""
    home = tmp_path / "runtime" / "home"
    mapping = {
        "HOME_DIR": home,
        "LOG_DIR": home / "logs",
        "DB_DIR": home / "db",
        "DB_FILE": home / "db" / "inbox.db",
    }

    for name, path in mapping.items():
        monkeypatch.setattr(constants, name, path)

    database.init_db()
    yield


@pytest.fixture
def feed() -> ChangeFeed:
    return ChangeFeed()


@pytest.fixture
def profile_service() -> ProfileService:
    return ProfileService()


@pytest.fixture
def message_store(profile_service, feed) -> MessageStore:
    return MessageStore(profile_service, feed)


@pytest.fixture
def admin_profile(profile_service) -> Profile:
    return profile_service.upsert_profile("admin", full_name="Ada Admin", email="ada@shop.test", role=UserRole.ADMIN)


@pytest.fixture
def customer_profile(profile_service) -> Profile:
    return profile_service.upsert_profile("u1", full_name="Carla Customer", email="carla@mail.test")


@pytest.fixture
def admin_viewer() -> Viewer:
    return Viewer(id="admin", is_admin=True, name="Ada Admin", email="ada@shop.test")


@pytest.fixture
def customer_viewer() -> Viewer:
    return Viewer(id="u1", is_admin=False, name="Carla Customer", email="carla@mail.test")


@pytest.fixture
def admin_gateway(admin_viewer, feed) -> FakeGateway:
    return FakeGateway(admin_viewer, feed)


@pytest.fixture
def customer_gateway(customer_viewer, feed) -> FakeGateway:
    return FakeGateway(customer_viewer, feed)


@pytest.fixture
def api_client(feed, profile_service, message_store):
    app = api_main.app

    overrides = {
        api_main.get_feed: lambda: feed,
        api_main.get_profile_service: lambda: profile_service,
        api_main.get_message_store: lambda: message_store,
    }

    state_attrs = {
        "feed": feed,
        "profile_service": profile_service,
        "message_store": message_store,
    }

    original_state = {name: getattr(app.state, name, None) for name in state_attrs}
    for name, value in state_attrs.items():
        setattr(app.state, name, value)

    original_overrides = app.dependency_overrides.copy()
    original_lifespan = app.router.lifespan_context

    @asynccontextmanager
    async def noop_lifespan(_app):
        yield

    app.router.lifespan_context = noop_lifespan
    app.dependency_overrides.update(overrides)

    with TestClient(app) as client:
        yield client

    app.dependency_overrides = original_overrides
    app.router.lifespan_context = original_lifespan

    for name, value in original_state.items():
        if value is None:
            try:
                delattr(app.state, name)
            except AttributeError:
                pass
        else:
            setattr(app.state, name, value)
