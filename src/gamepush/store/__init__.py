"""Keyed change-feed stores — Firebase in production, in-memory for tests.

Learn: Watchers and the dispatcher only see ChangeFeedStore. The
Firebase adapter is imported lazily by the application context so
importing this package does not pull in the SDK.
"""

from gamepush.store.base import (
    ChangeEvent,
    ChangeFeedStore,
    FeedKind,
    FeedSubscription,
    StoreError,
    join_path,
)
from gamepush.store.memory import InMemoryStore

__all__ = [
    "ChangeEvent",
    "ChangeFeedStore",
    "FeedKind",
    "FeedSubscription",
    "InMemoryStore",
    "StoreError",
    "join_path",
]
