"""Liveness and health endpoints.

Learn: GET / is the plain-text liveness string browsers and uptime
checkers hit. GET /health adds what a deployment probe wants to know:
which store is connected, how many games are watched, dispatch counters.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from gamepush import __version__
from gamepush.api.deps import get_context
from gamepush.context import AppContext

router = APIRouter()

LIVENESS_TEXT = "Web Push Notification Server is running."


@router.get("/", response_class=PlainTextResponse)
async def liveness():
    return LIVENESS_TEXT


@router.get("/health")
async def health_check(context: AppContext = Depends(get_context)):
    """Report watcher and dispatch state."""
    stats = context.dispatcher.stats
    watchers = [
        watcher
        for group in context.discovery.watchers.values()
        for watcher in group
    ]
    inert = sum(1 for watcher in watchers if watcher.inert)

    return {
        "status": "healthy" if context.started and not inert else "degraded",
        "version": __version__,
        "store": context.store.name,
        "watched_entities": context.discovery.entity_names,
        "inert_watchers": inert,
        "dispatch": {
            "dispatches": stats.dispatches,
            "sent": stats.deliveries_sent,
            "failed": stats.deliveries_failed,
            "read_errors": stats.read_errors,
            "pending": context.dispatcher.pending,
            "last_dispatch_at": (
                stats.last_dispatch_at.isoformat() if stats.last_dispatch_at else None
            ),
        },
    }
