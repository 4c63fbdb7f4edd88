"""In-memory change-feed store.

Learn: Behaves like the Firebase adapter from the watchers' point of
view (same PathFeed fan-out, same initial load on subscribe) but keeps
the whole tree in a dict. set() and update() mirror the database's
set/update writes, so a test or a local demo can reproduce both write
patterns the two watcher types exist for.

Callbacks run synchronously inside set()/update(), which must be called
from the event loop thread.
"""

from typing import Any, Optional

from gamepush.store.base import (
    ChangeFeedStore,
    ErrorCallback,
    EventCallback,
    FeedKind,
    FeedSubscription,
    StoreError,
    normalize_path,
)
from gamepush.store.feed import PathFeed, get_at, normalize_value, set_at, split_path


class InMemoryStore(ChangeFeedStore):
    def __init__(self, initial: Optional[dict[str, Any]] = None):
        self._tree: Any = normalize_value(initial or {})
        self._feeds: dict[str, PathFeed] = {}
        self._closed = False
        self.read_error: Optional[Exception] = None  # injected failure for read()

    @property
    def name(self) -> str:
        return "memory"

    # ─── ChangeFeedStore ──────────────────────────────────

    async def read(self, path: str) -> Any:
        if self.read_error is not None:
            raise StoreError(f"read {path!r} failed: {self.read_error}") from self.read_error
        return normalize_value(get_at(self._tree, split_path(path)))

    async def subscribe(
        self,
        path: str,
        kind: FeedKind,
        on_event: EventCallback,
        on_error: ErrorCallback,
    ) -> FeedSubscription:
        if self._closed:
            raise StoreError("store is closed")
        path = normalize_path(path)
        feed = self._feeds.get(path)
        if feed is None:
            feed = PathFeed(path, on_idle=self._drop_feed)
            self._feeds[path] = feed
            # Initial load, like the first put of a database stream
            feed.apply("put", "", get_at(self._tree, split_path(path)))
        return feed.add(kind, on_event, on_error)

    async def close(self) -> None:
        self._closed = True
        self._feeds.clear()

    # ─── Writes ───────────────────────────────────────────

    def set(self, path: str, value: Any) -> None:
        """Replace the value at path (None deletes it)."""
        segments = split_path(path)
        self._tree = set_at(self._tree, segments, value)
        self._notify(segments, "put", value)

    def update(self, path: str, children: dict[str, Any]) -> None:
        """Write several children of path in one go."""
        segments = split_path(path)
        for key, value in children.items():
            self._tree = set_at(self._tree, segments + split_path(key), value)
        self._notify(segments, "patch", children)

    def fail_feed(self, path: str, error: Exception) -> None:
        """Simulate the database cancelling every feed on path."""
        feed = self._feeds.get(normalize_path(path))
        if feed is not None:
            feed.fail(error)

    def _notify(self, segments: list[str], event_type: str, data: Any) -> None:
        for feed in list(self._feeds.values()):
            feed_segments = split_path(feed.path)
            if segments[: len(feed_segments)] == feed_segments:
                # Write at or below the feed: deliver it relative to the feed
                relative = "/".join(segments[len(feed_segments):])
                feed.apply(event_type, relative, data)
            elif feed_segments[: len(segments)] == segments:
                # Write above the feed: resend the feed's whole value if touched
                if event_type == "patch" and not _patch_touches(
                    data, feed_segments[len(segments):]
                ):
                    continue
                feed.apply("put", "", get_at(self._tree, feed_segments))

    def _drop_feed(self, feed: PathFeed) -> None:
        self._feeds.pop(feed.path, None)


def _patch_touches(children: dict[str, Any], rest: list[str]) -> bool:
    for key in children:
        key_segments = split_path(key)
        depth = min(len(key_segments), len(rest))
        if key_segments[:depth] == rest[:depth]:
            return True
    return False
