from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, Optional

import click
import httpx

from inbox_sync import constants
from inbox_sync.cli import formatters
from inbox_sync.clients.database import init_db
from inbox_sync.clients.gateway import GatewayError
from inbox_sync.clients.http_gateway import HttpGateway
from inbox_sync.clients.realtime import ChangeFeed
from inbox_sync.models.enums import InboxFilter, UserRole
from inbox_sync.models.thread import Thread
from inbox_sync.services.grouping import filter_threads
from inbox_sync.services.inbox_controller import InboxController
from inbox_sync.utils.logging import setup_logging
from inbox_sync.utils.pathing import ensure_runtime_directories

API_BASE = f"http://{constants.SERVER_HOST}:{constants.SERVER_PORT}"


def _request(
    method: str,
    path: str,
    payload: Optional[Dict[str, Any]] = None,
    viewer: Optional[str] = None,
) -> Any:
    url = f"{API_BASE}{path}"
    headers = {constants.VIEWER_HEADER: viewer} if viewer else {}
    with httpx.Client(timeout=60) as client:
        response = client.request(method, url, json=payload, headers=headers)
    if response.status_code >= 400:
        raise click.ClickException(f"API error {response.status_code}: {response.text}")
    if response.content:
        return response.json()
    return None


@click.group(help="inbox-sync command-line interface.")
@click.option(
    "--viewer",
    envvar="INBOX_SYNC_VIEWER",
    help="Profile id to act as (or INBOX_SYNC_VIEWER).",
)
@click.pass_context
def cli(ctx: click.Context, viewer: Optional[str]) -> None:
    """Root command for inbox-sync."""
    setup_logging()
    ctx.obj = {"viewer": viewer}


def _viewer(ctx: click.Context) -> str:
    viewer = ctx.obj.get("viewer")
    if not viewer:
        raise click.ClickException("A viewer is required: pass --viewer or set INBOX_SYNC_VIEWER.")
    return viewer


@cli.command()
def init() -> None:
    """Initialize local directories and database."""
    ensure_runtime_directories()
    init_db()
    click.echo("inbox-sync environment initialized.")


@cli.command()
@click.option("--host", default=constants.SERVER_HOST, show_default=True)
@click.option("--port", default=constants.SERVER_PORT, show_default=True, type=int)
def serve(host: str, port: int) -> None:
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run("inbox_sync.api.main:app", host=host, port=port, log_level="info")


@cli.command("threads")
@click.option("--search", default="", help="Substring match on name or email.")
@click.option(
    "--filter",
    "inbox_filter",
    type=click.Choice([item.value for item in InboxFilter]),
    default=InboxFilter.ALL.value,
    show_default=True,
)
@click.option("--json/--table", "as_json", default=False, show_default=True)
@click.pass_context
def threads(ctx: click.Context, search: str, inbox_filter: str, as_json: bool) -> None:
    """List conversation threads."""
    result = _request("GET", "/threads", viewer=_viewer(ctx))
    models = [Thread.model_validate(item) for item in result]
    selected = [
        thread.model_dump(mode="json")
        for thread in filter_threads(models, search, InboxFilter(inbox_filter))
    ]
    if as_json:
        click.echo(json.dumps(selected, indent=2))
        return
    click.echo(
        formatters.table(
            ["PARTICIPANT", "NAME", "UNREAD", "LAST ACTIVITY", "PREVIEW"],
            formatters.thread_rows(selected),
            max_widths={0: 36, 4: 48},
        )
    )


@cli.command()
@click.argument("participant_id")
@click.pass_context
def conversation(ctx: click.Context, participant_id: str) -> None:
    """Show the full history with one participant."""
    result = _request("GET", f"/conversations/{participant_id}", viewer=_viewer(ctx))
    click.echo(
        formatters.table(
            ["SENT", "FROM", "STATUS", "MESSAGE"],
            formatters.message_rows(result),
            max_widths={3: 72},
        )
    )


@cli.command()
@click.argument("participant_id")
@click.option("--message", prompt=True, help="Message body.")
@click.pass_context
def send(ctx: click.Context, participant_id: str, message: str) -> None:
    """Start or continue a conversation as staff."""
    payload = {"participant_id": participant_id, "body": message}
    result = _request("POST", "/messages", payload, viewer=_viewer(ctx))
    click.echo(json.dumps(result, indent=2))


@cli.command()
@click.argument("message_id")
@click.option("--message", prompt=True, help="Reply body.")
@click.pass_context
def reply(ctx: click.Context, message_id: str, message: str) -> None:
    """Reply to a customer message."""
    result = _request("POST", f"/messages/{message_id}/reply", {"body": message}, viewer=_viewer(ctx))
    click.echo(json.dumps(result, indent=2))


@cli.command()
@click.option("--message", prompt=True, help="Message body.")
@click.pass_context
def broadcast(ctx: click.Context, message: str) -> None:
    """Send one message to every customer."""
    result = _request("POST", "/messages/broadcast", {"body": message}, viewer=_viewer(ctx))
    click.echo(f"Sent to {result.get('count', 0)} recipients.")


@cli.command("mark-read")
@click.argument("message_id")
@click.pass_context
def mark_read(ctx: click.Context, message_id: str) -> None:
    """Mark a message as read."""
    _request("POST", f"/messages/{message_id}/read", viewer=_viewer(ctx))
    click.echo("Message marked as read.")


def _echo_threads(controller: InboxController, inbox_filter: InboxFilter) -> None:
    rows = formatters.thread_rows(
        [thread.model_dump(mode="json") for thread in controller.visible_threads(inbox_filter=inbox_filter)]
    )
    click.echo(
        formatters.table(
            ["PARTICIPANT", "NAME", "UNREAD", "LAST ACTIVITY", "PREVIEW"],
            rows,
            max_widths={0: 36, 4: 48},
        )
    )


async def _watch(viewer_id: str, interval: float, once: bool, inbox_filter: InboxFilter) -> None:
    async with HttpGateway(viewer_id, base_url=API_BASE) as gateway:
        try:
            viewer = await gateway.whoami()
        except GatewayError as exc:
            raise click.ClickException(str(exc)) from exc
        controller = InboxController(gateway, ChangeFeed(), viewer)
        await controller.start()
        try:
            while True:
                notice = controller.notifier.latest("error")
                if notice is not None and not controller.has_loaded:
                    raise click.ClickException(notice.text)
                _echo_threads(controller, inbox_filter)
                if once:
                    return
                await asyncio.sleep(interval)
                await controller.refresh()
        finally:
            controller.close()


@cli.command()
@click.option("--interval", default=5.0, type=float, show_default=True, help="Seconds between polls.")
@click.option("--once", is_flag=True, help="Print the inbox once and exit.")
@click.option(
    "--filter",
    "inbox_filter",
    type=click.Choice([item.value for item in InboxFilter]),
    default=InboxFilter.ALL.value,
    show_default=True,
)
@click.pass_context
def watch(ctx: click.Context, interval: float, once: bool, inbox_filter: str) -> None:
    """Poll the inbox through the API and print the thread list."""
    try:
        asyncio.run(_watch(_viewer(ctx), interval, once, InboxFilter(inbox_filter)))
    except KeyboardInterrupt:
        click.echo("Stopped.")


@cli.command("profile")
@click.argument("profile_id")
@click.option("--name", help="Full name.")
@click.option("--email", help="Contact email.")
@click.option(
    "--role",
    type=click.Choice([item.value for item in UserRole]),
    default=UserRole.USER.value,
    show_default=True,
)
def profile(profile_id: str, name: Optional[str], email: Optional[str], role: str) -> None:
    """Create or update a profile."""
    payload = {"id": profile_id, "full_name": name, "email": email, "role": role}
    result = _request("POST", "/profiles", payload)
    click.echo(json.dumps(result, indent=2))


if __name__ == "__main__":
    cli()
