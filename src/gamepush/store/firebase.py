"""Firebase Realtime Database adapter (firebase-admin).

Learn: firebase_admin.db.Reference.listen() opens a server-sent-events
stream and invokes our callback from its own background thread with raw
"put"/"patch" events. Two things happen here:

1. Thread → loop: every stream event is handed to the event loop with
   call_soon_threadsafe, so watchers, the dedup cache and the dispatcher
   only ever run on the loop thread (no locks needed).
2. Raw writes → feeds: events are applied to a PathFeed, which derives
   child_added / child_changed / value for the watchers.

One stream is opened per path and shared by every feed on it. Blocking
SDK calls (get, listen, close) run in worker threads via asyncio.to_thread.
Reconnection after network drops is handled inside the SDK.
"""

import asyncio
from collections import defaultdict
from typing import Any

import firebase_admin
import structlog
from firebase_admin import credentials, db

from gamepush.config import ConfigurationError, Settings
from gamepush.store.base import (
    ChangeFeedStore,
    ErrorCallback,
    EventCallback,
    FeedKind,
    FeedSubscription,
    StoreError,
    normalize_path,
)
from gamepush.store.feed import PathFeed

logger = structlog.get_logger()

APP_NAME = "gamepush"

# Stream events that end a listen for good
_TERMINAL_EVENTS = {"cancel", "auth_revoked"}


class FirebaseStore(ChangeFeedStore):
    def __init__(self, app: firebase_admin.App, *, owns_app: bool = False):
        self._app = app
        self._owns_app = owns_app
        self._feeds: dict[str, PathFeed] = {}
        self._registrations: dict[str, Any] = {}
        self._open_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._closing: set[asyncio.Future] = set()

    @classmethod
    def from_settings(cls, settings: Settings) -> "FirebaseStore":
        """Initialise the firebase-admin app from configuration.

        Raises ConfigurationError when the credentials are unusable.
        """
        account = settings.load_service_account()
        try:
            cred = credentials.Certificate(account)
        except (ValueError, OSError) as e:
            raise ConfigurationError(f"Invalid Firebase service account: {e}") from e

        app = firebase_admin.initialize_app(
            cred,
            {"databaseURL": settings.firebase_db_url},
            name=APP_NAME,
        )
        logger.info("store.firebase_initialized", database_url=settings.firebase_db_url)
        return cls(app, owns_app=True)

    @property
    def name(self) -> str:
        return "firebase"

    def _ref(self, path: str) -> db.Reference:
        return db.reference("/" + normalize_path(path), app=self._app)

    # ─── Reads ────────────────────────────────────────────

    async def read(self, path: str) -> Any:
        ref = self._ref(path)
        try:
            return await asyncio.to_thread(ref.get)
        except Exception as e:
            raise StoreError(f"read {path!r} failed: {e}") from e

    # ─── Feeds ────────────────────────────────────────────

    async def subscribe(
        self,
        path: str,
        kind: FeedKind,
        on_event: EventCallback,
        on_error: ErrorCallback,
    ) -> FeedSubscription:
        path = normalize_path(path)
        async with self._open_locks[path]:
            feed = self._feeds.get(path)
            if feed is None:
                feed = await self._open_feed(path)
        return feed.add(kind, on_event, on_error)

    async def _open_feed(self, path: str) -> PathFeed:
        loop = asyncio.get_running_loop()
        feed = PathFeed(path, on_idle=self._drop_feed)

        def on_stream_event(event: db.Event) -> None:
            # Runs on the SDK's stream thread
            loop.call_soon_threadsafe(
                self._on_stream_event, feed, event.event_type, event.path, event.data
            )

        # The first "put" can arrive before listen() returns
        self._feeds[path] = feed
        try:
            registration = await asyncio.to_thread(
                self._ref(path).listen, on_stream_event
            )
        except Exception as e:
            if self._feeds.get(path) is feed:
                del self._feeds[path]
            raise StoreError(f"listen {path!r} failed: {e}") from e

        if self._feeds.get(path) is not feed:
            # Cancelled before listen() returned
            self._close_later(registration)
            raise StoreError(f"listen {path!r} failed: {feed.error}") from feed.error

        self._registrations[path] = registration
        logger.debug("store.stream_opened", path=path)
        return feed

    def _on_stream_event(
        self, feed: PathFeed, event_type: str, path: str, data: Any
    ) -> None:
        if self._feeds.get(feed.path) is not feed:
            return  # stream already closed
        if event_type in ("put", "patch"):
            feed.apply(event_type, path, data)
        elif event_type in _TERMINAL_EVENTS:
            logger.warning(
                "store.stream_cancelled", path=feed.path, reason=event_type, detail=data
            )
            feed.fail(StoreError(f"{event_type} on {feed.path!r}: {data}"))
        else:
            logger.debug("store.stream_event_ignored", path=feed.path, type=event_type)

    def _drop_feed(self, feed: PathFeed) -> None:
        if self._feeds.get(feed.path) is not feed:
            return
        del self._feeds[feed.path]
        registration = self._registrations.pop(feed.path, None)
        if registration is not None:
            self._close_later(registration)
            logger.debug("store.stream_closed", path=feed.path)

    def _close_later(self, registration: Any) -> None:
        # close() joins the stream thread; keep it off the loop
        future = asyncio.get_running_loop().run_in_executor(None, registration.close)
        self._closing.add(future)
        future.add_done_callback(self._on_closed)

    def _on_closed(self, future: asyncio.Future) -> None:
        self._closing.discard(future)
        if not future.cancelled() and future.exception() is not None:
            logger.warning("store.stream_close_failed", error=str(future.exception()))

    async def close(self) -> None:
        registrations = list(self._registrations.values())
        self._registrations.clear()
        self._feeds.clear()
        for registration in registrations:
            try:
                await asyncio.to_thread(registration.close)
            except Exception as e:
                logger.warning("store.stream_close_failed", error=str(e))
        if self._closing:
            await asyncio.gather(*list(self._closing), return_exceptions=True)
        if self._owns_app:
            firebase_admin.delete_app(self._app)
            self._owns_app = False
