"""gamepush CLI — run the server, poke a running one.

Usage:
    gamepush serve                      # Start the notification server
    gamepush serve --port 8080 --reload
    gamepush send-test                  # Push the test notification to everyone
    gamepush health                     # Watched games and dispatch counters
"""

from __future__ import annotations

import asyncio
import json
import os
import sys

import click
import httpx

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_SERVER_URL = "http://localhost:3000"


def _server_url(url: str | None) -> str:
    return (url or os.environ.get("GAMEPUSH_SERVER_URL", DEFAULT_SERVER_URL)).rstrip("/")


async def _get(base_url: str, path: str) -> httpx.Response:
    async with httpx.AsyncClient(base_url=base_url, timeout=60.0) as client:
        return await client.get(path)


def _fetch(url: str | None, path: str) -> httpx.Response:
    base_url = _server_url(url)
    try:
        return asyncio.run(_get(base_url, path))
    except httpx.HTTPError as e:
        click.secho(f"Error: cannot reach {base_url}: {e}", fg="red", err=True)
        sys.exit(1)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="gamepush")
def cli():
    """Web Push notifications for daily game numbers."""


@cli.command()
@click.option("--host", default=None, help="Bind address (default: GAMEPUSH_HOST)")
@click.option("--port", type=int, default=None, help="Port (default: GAMEPUSH_PORT)")
@click.option("--reload", is_flag=True, help="Reload on code changes (development)")
def serve(host: str | None, port: int | None, reload: bool):
    """Run the notification server."""
    import uvicorn

    from gamepush.config import settings

    uvicorn.run(
        "gamepush.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_config=None,
    )


@cli.command("send-test")
@click.option("--url", default=None, help="Server URL (default: GAMEPUSH_SERVER_URL)")
def send_test(url: str | None):
    """Send the test notification to every subscriber."""
    resp = _fetch(url, "/send-test")
    if resp.status_code != 200:
        click.secho(f"Error {resp.status_code}: {resp.text}", fg="red", err=True)
        sys.exit(1)
    click.secho(resp.text, fg="green")


@cli.command()
@click.option("--url", default=None, help="Server URL (default: GAMEPUSH_SERVER_URL)")
def health(url: str | None):
    """Show the server's health report."""
    resp = _fetch(url, "/health")
    if resp.status_code != 200:
        click.secho(f"Error {resp.status_code}: {resp.text}", fg="red", err=True)
        sys.exit(1)
    data = resp.json()
    color = "green" if data.get("status") == "healthy" else "yellow"
    click.secho(f"Status: {data.get('status')}", fg=color, bold=True)
    click.echo(json.dumps(data, indent=2, default=str, ensure_ascii=False))


if __name__ == "__main__":
    cli()
