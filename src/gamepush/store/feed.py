"""Feed fan-out — turn raw put/patch writes into child/value feeds.

Learn: The Firebase streaming API only says "put this data at this path"
or "patch these children at this path", relative to the listened
location. The child_added / child_changed / value feeds the watchers
rely on are derived here, the same way the Firebase client SDKs do it:

1. TreeMirror keeps a local copy of the listened subtree
2. Every raw write is applied to the mirror
3. Direct children are diffed before/after the write:
   new key → child_added, different value → child_changed
4. A value event fires for every write (including the initial load)

PathFeed owns one mirror plus the callbacks for one path, so one stream
serves all three feeds of that path. Both the Firebase and the in-memory
store route their writes through PathFeed, which keeps their feed
semantics identical.
"""

import copy
from typing import Any, Callable, Optional

import structlog

from gamepush.store.base import (
    ChangeEvent,
    ErrorCallback,
    EventCallback,
    FeedKind,
    FeedSubscription,
    StoreError,
    normalize_path,
)

logger = structlog.get_logger()


# ─── Tree helpers ──────────────────────────────────────────


def normalize_value(value: Any) -> Any:
    """Store-shaped copy of value: lists become index-keyed mappings,
    nulls and empty mappings disappear (the database never stores them)."""
    if isinstance(value, list):
        value = {str(i): v for i, v in enumerate(value)}
    if isinstance(value, dict):
        out = {}
        for key, child in value.items():
            child = normalize_value(child)
            if child is not None:
                out[str(key)] = child
        return out or None
    return copy.deepcopy(value)


def set_at(node: Any, segments: list[str], value: Any) -> Any:
    """Return node with value written at segments (None deletes).

    Copy-on-write along the written path only; siblings are shared.
    """
    if not segments:
        return normalize_value(value)
    head, rest = segments[0], segments[1:]
    children = dict(node) if isinstance(node, dict) else {}
    child = set_at(children.get(head), rest, value)
    if child is None:
        children.pop(head, None)
    else:
        children[head] = child
    return children or None


def get_at(node: Any, segments: list[str]) -> Any:
    for segment in segments:
        if not isinstance(node, dict):
            return None
        node = node.get(segment)
    return node


def split_path(path: str) -> list[str]:
    path = normalize_path(path)
    return path.split("/") if path else []


def direct_children(node: Any) -> dict[str, Any]:
    return node if isinstance(node, dict) else {}


class TreeMirror:
    """Local copy of one listened subtree."""

    def __init__(self):
        self.value: Any = None
        self.loaded = False

    def apply(self, event_type: str, path: str, data: Any) -> None:
        segments = split_path(path)
        if event_type == "put":
            self.value = set_at(self.value, segments, data)
        elif event_type == "patch":
            for key, child in (data or {}).items():
                self.value = set_at(self.value, segments + split_path(key), child)
        else:
            raise ValueError(f"Unsupported write type: {event_type!r}")
        self.loaded = True


# ─── Fan-out ───────────────────────────────────────────────


class _Listener(FeedSubscription):
    def __init__(
        self,
        feed: "PathFeed",
        kind: FeedKind,
        on_event: EventCallback,
        on_error: ErrorCallback,
    ):
        self.feed = feed
        self.kind = kind
        self.on_event = on_event
        self.on_error = on_error
        self.closed = False

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.feed.remove(self)

    def deliver(self, event: ChangeEvent) -> None:
        if self.closed:
            return
        try:
            self.on_event(event)
        except Exception:
            # One broken callback must not starve the others
            logger.exception(
                "feed.callback_failed", path=self.feed.path, kind=self.kind.value
            )

    def fail(self, error: Exception) -> None:
        if self.closed:
            return
        self.close()
        self.on_error(error)


class PathFeed:
    """All feed callbacks for one store path, driven by raw writes."""

    def __init__(
        self,
        path: str,
        on_idle: Optional[Callable[["PathFeed"], None]] = None,
    ):
        self.path = normalize_path(path)
        self.mirror = TreeMirror()
        self._listeners: list[_Listener] = []
        self._on_idle = on_idle
        self.error: Optional[Exception] = None

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def add(
        self,
        kind: FeedKind,
        on_event: EventCallback,
        on_error: ErrorCallback,
    ) -> FeedSubscription:
        """Register a callback; replays current state if already loaded.

        Raises StoreError once the feed has failed.
        """
        if self.error is not None:
            raise StoreError(f"feed {self.path!r} failed: {self.error}") from self.error
        listener = _Listener(self, kind, on_event, on_error)
        self._listeners.append(listener)
        if self.mirror.loaded:
            for event in self._initial_events(kind):
                listener.deliver(event)
        return listener

    def remove(self, listener: _Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)
        if not self._listeners and self._on_idle is not None:
            self._on_idle(self)

    def apply(self, event_type: str, path: str, data: Any) -> None:
        """Apply one raw write (relative to this feed's path) and fan out."""
        before = dict(direct_children(self.mirror.value))
        self.mirror.apply(event_type, path, data)
        after = direct_children(self.mirror.value)

        events: list[ChangeEvent] = []
        for key, value in after.items():
            if key not in before:
                events.append(self._event(FeedKind.CHILD_ADDED, key, value))
            elif before[key] != value:
                events.append(self._event(FeedKind.CHILD_CHANGED, key, value))
        events.append(self._event(FeedKind.VALUE, None, self.mirror.value))

        for event in events:
            for listener in list(self._listeners):
                if listener.kind == event.kind:
                    listener.deliver(event)

    def fail(self, error: Exception) -> None:
        """Report a stream failure to every callback; the feed goes quiet.

        A feed with no callbacks yet still goes idle, so its stream is
        released and later subscribers get a fresh one.
        """
        self.error = error
        listeners = list(self._listeners)
        for listener in listeners:
            listener.fail(error)
        if not listeners and self._on_idle is not None:
            self._on_idle(self)

    def _event(self, kind: FeedKind, key: Optional[str], value: Any) -> ChangeEvent:
        return ChangeEvent(kind=kind, path=self.path, key=key, value=value)

    def _initial_events(self, kind: FeedKind) -> list[ChangeEvent]:
        if kind == FeedKind.VALUE:
            return [self._event(FeedKind.VALUE, None, self.mirror.value)]
        if kind == FeedKind.CHILD_ADDED:
            return [
                self._event(FeedKind.CHILD_ADDED, key, value)
                for key, value in direct_children(self.mirror.value).items()
            ]
        return []
