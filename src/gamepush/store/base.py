"""Change-feed store interface — what the watchers need from the database.

Learn: The notification pipeline never talks to Firebase directly. It
needs four things from a keyed store:
1. A point-in-time read of a subtree (subscriber list, game names)
2. A "direct child changed" feed (update() on a game's dates)
3. A "whole value changed" feed (any write under a game)
4. A "child added" feed (a new game appears under the root)

Implement ChangeFeedStore to plug in another backend. Feed callbacks are
always invoked on the event loop thread, one at a time.
"""

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional


class FeedKind(str, enum.Enum):
    CHILD_ADDED = "child_added"
    CHILD_CHANGED = "child_changed"
    VALUE = "value"


@dataclass(frozen=True)
class ChangeEvent:
    """One notification from a feed.

    Learn: For child feeds, key is the direct child's key and value its
    new value. For the value feed, key is None and value is the whole
    subtree (None when the path is empty).
    """

    kind: FeedKind
    path: str
    key: Optional[str]
    value: Any


EventCallback = Callable[[ChangeEvent], None]
ErrorCallback = Callable[[Exception], None]


class StoreError(Exception):
    """A read or subscription against the store failed."""


class FeedSubscription(ABC):
    """Handle returned by subscribe(); close() detaches the callback."""

    @abstractmethod
    def close(self) -> None: ...


class ChangeFeedStore(ABC):
    """Abstract keyed store with long-lived change feeds."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Short backend name for health output and logs."""
        ...

    @abstractmethod
    async def read(self, path: str) -> Any:
        """Snapshot read of the subtree at path (None when empty).

        Raises StoreError on failure.
        """
        ...

    @abstractmethod
    async def subscribe(
        self,
        path: str,
        kind: FeedKind,
        on_event: EventCallback,
        on_error: ErrorCallback,
    ) -> FeedSubscription:
        """Attach a callback to one feed of path.

        Raises StoreError when the feed cannot be opened. Failures after
        that are reported through on_error; the feed then stays silent.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close every open feed and release the connection."""
        ...


def normalize_path(path: str) -> str:
    """'/a//b/' → 'a/b'. The root is ''."""
    return "/".join(part for part in path.split("/") if part)


def join_path(*parts: str) -> str:
    return normalize_path("/".join(parts))
