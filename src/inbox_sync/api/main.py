from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError

from inbox_sync import constants
from inbox_sync.clients.database import init_db
from inbox_sync.clients.realtime import ChangeFeed
from inbox_sync.models.events import ChangeEvent
from inbox_sync.models.message import (
    ActionResult,
    BroadcastRequest,
    ContactMessageRequest,
    Message,
    MessageCreateRequest,
    OwnMessageRequest,
    ReplyRequest,
)
from inbox_sync.models.profile import Profile, ProfileUpsertRequest, Viewer
from inbox_sync.models.thread import Thread
from inbox_sync.services.feed_consumer import visible_to
from inbox_sync.services.grouping import group_messages
from inbox_sync.services.message_store import MessageStore
from inbox_sync.services.profile_service import PermissionDeniedError, ProfileService, UnknownViewerError
from inbox_sync.utils.logging import setup_logging
from inbox_sync.utils.pathing import ensure_runtime_directories

LOG = logging.getLogger(__name__)

app = FastAPI(title="inbox-sync API", version="0.1.0")


def _require_service(name: str):
    service = getattr(app.state, name, None)
    if service is None:
        raise RuntimeError(f"Service '{name}' not initialised.")
    return service


def get_feed() -> ChangeFeed:
    return _require_service("feed")


def get_profile_service() -> ProfileService:
    return _require_service("profile_service")


def get_message_store() -> MessageStore:
    return _require_service("message_store")


def get_viewer(
    x_viewer_id: Optional[str] = Header(default=None),
    profiles: ProfileService = Depends(get_profile_service),
) -> Viewer:
    if not x_viewer_id:
        raise HTTPException(status_code=401, detail=f"{constants.VIEWER_HEADER} header is required.")
    try:
        return profiles.resolve_viewer(x_viewer_id)
    except UnknownViewerError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc


def _checked(result: ActionResult) -> ActionResult:
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)
    return result


@app.on_event("startup")
async def startup_event() -> None:
    setup_logging()
    ensure_runtime_directories()
    init_db()
    feed = ChangeFeed()
    profile_service = ProfileService()

    app.state.feed = feed
    app.state.profile_service = profile_service
    app.state.message_store = MessageStore(profile_service, feed)


@app.get("/health")
async def health() -> dict[str, str]:
    """Lightweight health probe."""
    return {"status": "ok"}


@app.get("/messages", response_model=List[Message])
async def list_recent_messages(
    limit: int = constants.RECENT_WINDOW_LIMIT,
    viewer: Viewer = Depends(get_viewer),
    store: MessageStore = Depends(get_message_store),
) -> List[Message]:
    return store.list_recent_messages(viewer, limit)


@app.post("/messages", response_model=ActionResult, status_code=status.HTTP_201_CREATED)
async def send_message(
    payload: MessageCreateRequest,
    viewer: Viewer = Depends(get_viewer),
    store: MessageStore = Depends(get_message_store),
) -> ActionResult:
    return _checked(store.send_message(viewer, payload.participant_id, payload.body))


@app.post("/messages/contact", response_model=ActionResult, status_code=status.HTTP_201_CREATED)
async def submit_contact_message(
    payload: ContactMessageRequest,
    store: MessageStore = Depends(get_message_store),
) -> ActionResult:
    return _checked(
        store.submit_contact_message(
            name=payload.name,
            email=payload.email,
            body=payload.body,
            subject=payload.subject,
            receiver_id=payload.receiver_id,
        )
    )


@app.post("/messages/self", response_model=ActionResult, status_code=status.HTTP_201_CREATED)
async def submit_own_message(
    payload: OwnMessageRequest,
    viewer: Viewer = Depends(get_viewer),
    store: MessageStore = Depends(get_message_store),
) -> ActionResult:
    return _checked(
        store.submit_contact_message(
            name=viewer.name or constants.USER_PLACEHOLDER,
            email=viewer.email or "",
            body=payload.body,
            subject=payload.subject,
            sender_id=viewer.id,
        )
    )


@app.post("/messages/broadcast", response_model=ActionResult, status_code=status.HTTP_201_CREATED)
async def broadcast_message(
    payload: BroadcastRequest,
    viewer: Viewer = Depends(get_viewer),
    store: MessageStore = Depends(get_message_store),
) -> ActionResult:
    return _checked(store.broadcast_message(viewer, payload.body))


@app.post("/messages/{message_id}/reply", response_model=ActionResult, status_code=status.HTTP_201_CREATED)
async def reply_message(
    message_id: str,
    payload: ReplyRequest,
    viewer: Viewer = Depends(get_viewer),
    store: MessageStore = Depends(get_message_store),
) -> ActionResult:
    return _checked(store.reply_message(viewer, message_id, payload.body))


@app.post("/messages/{message_id}/read", response_model=ActionResult)
async def mark_read(
    message_id: str,
    viewer: Viewer = Depends(get_viewer),
    store: MessageStore = Depends(get_message_store),
) -> ActionResult:
    if store.get_message(message_id) is None:
        raise HTTPException(status_code=404, detail="Message not found.")
    result = store.mark_read(viewer, message_id)
    if not result.success:
        raise HTTPException(status_code=403, detail=result.error)
    return result


@app.get("/conversations/{participant_id}", response_model=List[Message])
async def list_conversation(
    participant_id: str,
    viewer: Viewer = Depends(get_viewer),
    store: MessageStore = Depends(get_message_store),
) -> List[Message]:
    return store.list_conversation(viewer, participant_id)


@app.get("/threads", response_model=List[Thread])
async def list_threads(
    viewer: Viewer = Depends(get_viewer),
    store: MessageStore = Depends(get_message_store),
    profiles: ProfileService = Depends(get_profile_service),
) -> List[Thread]:
    messages = store.list_recent_messages(viewer)
    known = [p for p in profiles.list_all_profiles(viewer) if p.id != viewer.id] if viewer.is_admin else []
    return group_messages(messages, known, viewer.is_admin)


@app.get("/profiles", response_model=List[Profile])
async def list_profiles(
    viewer: Viewer = Depends(get_viewer),
    profiles: ProfileService = Depends(get_profile_service),
) -> List[Profile]:
    try:
        return profiles.list_all_profiles(viewer)
    except PermissionDeniedError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc


@app.post("/profiles", response_model=Profile, status_code=status.HTTP_201_CREATED)
async def upsert_profile(
    payload: ProfileUpsertRequest,
    profiles: ProfileService = Depends(get_profile_service),
) -> Profile:
    return profiles.upsert_profile(
        payload.id,
        full_name=payload.full_name,
        email=payload.email,
        role=payload.role,
    )


@app.get("/viewer", response_model=Viewer)
async def current_viewer(viewer: Viewer = Depends(get_viewer)) -> Viewer:
    return viewer


def _socket_viewer(websocket: WebSocket) -> Optional[Viewer]:
    viewer_id = websocket.headers.get(constants.VIEWER_HEADER) or websocket.query_params.get("viewer")
    if not viewer_id:
        return None
    try:
        return get_profile_service().resolve_viewer(viewer_id)
    except UnknownViewerError:
        return None


def _visible_event(event: ChangeEvent, viewer: Viewer) -> bool:
    try:
        message = Message.model_validate(event.record)
    except ValidationError:
        return False
    return visible_to(viewer, message)


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@app.websocket("/realtime/{table}")
async def realtime(websocket: WebSocket, table: str) -> None:
    """Stream the viewer's change events for ``table`` until the client disconnects.

    The viewer comes from the ``X-Viewer-Id`` header or the ``viewer`` query
    parameter; unknown viewers are refused with a policy-violation close.
    """
    viewer = _socket_viewer(websocket)
    if viewer is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    feed = get_feed()
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()

    def _enqueue(event: ChangeEvent) -> None:
        if _visible_event(event, viewer):
            loop.call_soon_threadsafe(queue.put_nowait, event)

    subscription = feed.subscribe(table, _enqueue)
    await websocket.accept()
    disconnected = asyncio.create_task(_wait_for_disconnect(websocket))
    try:
        while True:
            next_event = asyncio.ensure_future(queue.get())
            done, _ = await asyncio.wait({next_event, disconnected}, return_when=asyncio.FIRST_COMPLETED)
            if next_event not in done:
                next_event.cancel()
                break
            await websocket.send_json(next_event.result().model_dump(mode="json"))
    except WebSocketDisconnect:
        pass
    finally:
        disconnected.cancel()
        subscription.unsubscribe()
        LOG.debug("Realtime client %s left %s", viewer.id, table)
