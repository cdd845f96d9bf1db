"""AgentHQ CLI — watch live events and check the realtime server.

Usage:
    agenthq listen -c <channel-id>               # Stream events as JSON lines
    agenthq listen -e post:new -e agent:status   # Only some event types
    agenthq status                                # Server health + realtime stats

Credentials come from --token / --api-key or AGENTHQ_TOKEN / AGENTHQ_API_KEY.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from typing import Optional

import click
import httpx

from agenthq.client import ClientConfig, ConnectionState, RealtimeClient
from agenthq.config import settings
from agenthq.realtime.events import DOMAIN_EVENTS
from agenthq.realtime.protocol import jsonable

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8000"


def _api_url() -> str:
    return os.environ.get("AGENTHQ_API_URL", DEFAULT_API_URL).rstrip("/")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _status_color(status: str) -> str:
    """Map status strings to click colors."""
    colors = {
        "connected": "green",
        "connecting": "yellow",
        "disconnected": "white",
        "error": "red",
        "ok": "green",
        "healthy": "green",
        "degraded": "yellow",
        "disabled": "white",
    }
    return colors.get(status, "red")


def _event_printer(event: str):
    def emit(payload) -> None:
        click.echo(json.dumps({"event": event, "data": jsonable(payload)}, default=str))

    return emit


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version="0.1.0", prog_name="agenthq")
def main():
    """AgentHQ — realtime channel tools."""


# ---------------------------------------------------------------------------
# agenthq listen
# ---------------------------------------------------------------------------


@main.command()
@click.option("--url", help="WebSocket URL (default: AGENTHQ_WS_URL or ws://localhost:8000/ws)")
@click.option("--token", envvar="AGENTHQ_TOKEN", help="Session JWT")
@click.option("--api-key", envvar="AGENTHQ_API_KEY", help="Agent API key (ahq_...)")
@click.option("--channel", "-c", "channels", multiple=True, help="Channel to subscribe to (repeatable)")
@click.option("--event", "-e", "event_names", multiple=True, help="Event type to print (default: all)")
def listen(url: Optional[str], token: Optional[str], api_key: Optional[str],
           channels: tuple[str, ...], event_names: tuple[str, ...]):
    """Connect and print every received event as a JSON line.

    Reconnects automatically; channels are re-subscribed on every reconnect.
    Stop with Ctrl-C.
    """
    if not token and not api_key:
        click.secho("Error: --token or --api-key required", fg="red", err=True)
        sys.exit(1)
    try:
        _run(_listen_impl(url or settings.ws_url, token, api_key, channels, event_names))
    except KeyboardInterrupt:
        click.echo("Stopped.", err=True)


async def _listen_impl(url: str, token: Optional[str], api_key: Optional[str],
                       channels: tuple[str, ...], event_names: tuple[str, ...]):
    client: RealtimeClient

    def on_state(state: ConnectionState) -> None:
        click.secho(f"[{state.value}]", fg=_status_color(state.value), err=True)
        if state is ConnectionState.CONNECTED:
            for channel_id in channels:
                client.subscribe(channel_id)

    client = RealtimeClient(ClientConfig(
        url=url,
        token=lambda: token,
        api_key=lambda: api_key,
        on_connection_change=on_state,
    ))
    for name in event_names or sorted(DOMAIN_EVENTS):
        client.on(name, _event_printer(name))

    async with client:
        await asyncio.Event().wait()  # until cancelled


# ---------------------------------------------------------------------------
# agenthq status
# ---------------------------------------------------------------------------


@main.command()
@click.option("--api-url", help="Server base URL (default: AGENTHQ_API_URL)")
def status(api_url: Optional[str]):
    """Show server health and realtime stats."""
    _run(_status_impl((api_url or _api_url()).rstrip("/")))


async def _status_impl(api_url: str):
    async with httpx.AsyncClient(base_url=api_url, timeout=10.0) as c:
        try:
            r = await c.get("/api/v1/health")
            r.raise_for_status()
        except httpx.HTTPError as e:
            click.secho(f"Server unreachable at {api_url}: {e}", fg="red", err=True)
            sys.exit(1)
        health = r.json()

    click.secho(
        f"Status:   {health['status']}", fg=_status_color(health["status"]), bold=True
    )
    click.echo(f"Version:  {health.get('version', '—')}")
    click.secho(f"Redis:    {health['redis']}", fg=_status_color(health["redis"]))
    realtime = health.get("realtime", {})
    click.echo(f"Clients:  {realtime.get('clients', 0)}")
    click.echo(f"Channels: {realtime.get('channels', 0)}")


if __name__ == "__main__":
    main()
