"""httpx client for the inbox-sync HTTP API."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from inbox_sync import constants
from inbox_sync.clients.gateway import GatewayError
from inbox_sync.models.message import ActionResult, Message
from inbox_sync.models.profile import Profile, Viewer

API_BASE = f"http://{constants.SERVER_HOST}:{constants.SERVER_PORT}"


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    detail = body.get("detail") if isinstance(body, dict) else None
    if isinstance(detail, str):
        return detail
    return f"API error {response.status_code}: {response.text}"


class HttpGateway:
    """Message actions over HTTP on behalf of ``viewer_id``."""

    def __init__(
        self,
        viewer_id: str,
        base_url: str = API_BASE,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30,
    ) -> None:
        self.viewer_id = viewer_id
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={constants.VIEWER_HEADER: viewer_id},
            transport=transport,
            timeout=timeout,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpGateway":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise GatewayError(f"{method} {path} failed: {exc}") from exc
        if response.status_code >= 400:
            raise GatewayError(_error_detail(response))
        return response.json() if response.content else None

    async def _action(self, method: str, path: str, payload: Dict[str, Any]) -> ActionResult:
        try:
            data = await self._request(method, path, json=payload)
        except GatewayError as exc:
            return ActionResult.failed(str(exc))
        return ActionResult.model_validate(data)

    async def list_recent_messages(self, limit: int = constants.RECENT_WINDOW_LIMIT) -> List[Message]:
        data = await self._request("GET", "/messages", params={"limit": limit})
        return [Message.model_validate(item) for item in data]

    async def list_conversation(self, participant_id: str) -> List[Message]:
        data = await self._request("GET", f"/conversations/{participant_id}")
        return [Message.model_validate(item) for item in data]

    async def send_message(self, participant_id: str, body: str) -> ActionResult:
        return await self._action("POST", "/messages", {"participant_id": participant_id, "body": body})

    async def reply_message(self, anchor_message_id: str, body: str) -> ActionResult:
        return await self._action("POST", f"/messages/{anchor_message_id}/reply", {"body": body})

    async def submit_contact_message(self, body: str, subject: str = "") -> ActionResult:
        return await self._action("POST", "/messages/self", {"body": body, "subject": subject})

    async def mark_read(self, message_id: str) -> None:
        await self._request("POST", f"/messages/{message_id}/read")

    async def list_all_profiles(self) -> List[Profile]:
        data = await self._request("GET", "/profiles")
        return [Profile.model_validate(item) for item in data]

    async def whoami(self) -> Viewer:
        data = await self._request("GET", "/viewer")
        return Viewer.model_validate(data)
