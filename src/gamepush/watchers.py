"""Change watchers — spot today's number for one game.

Learn: Each game gets two watchers because the database reports the two
write patterns differently:

- FieldChangeWatcher (child_changed feed) catches update() writes that
  touch one date record of the game.
- SnapshotWatcher (value feed) catches set() writes that overwrite the
  whole game. The value feed fires on every write, so it remembers the
  last number it saw for today and ignores writes that leave it alone.

Both funnel through the shared DedupCache before dispatching, so a write
seen by both watchers still produces one notification.

A watcher whose feed fails is logged and left inert; the store's
connection handles reconnects, nothing is retried here.
"""

from abc import ABC, abstractmethod
from datetime import datetime, tzinfo
from typing import Any, Callable, Optional

import structlog

from gamepush.dedup import DedupCache
from gamepush.dispatcher import NotificationDispatcher
from gamepush.store.base import (
    ChangeEvent,
    ChangeFeedStore,
    FeedKind,
    FeedSubscription,
    StoreError,
)

logger = structlog.get_logger()

DateSource = Callable[[], str]


def today_string(tz: Optional[tzinfo] = None) -> str:
    """Today's date as YYYY-MM-DD (process-local zone when tz is None)."""
    return datetime.now(tz).strftime("%Y-%m-%d")


def normalize_number(value: Any) -> Optional[str]:
    """String form of a stored number; None when there is no number.

    45, 45.0 and "45" all normalise to "45".
    """
    if value is None or value == "":
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def record_number(record: Any) -> Optional[str]:
    if not isinstance(record, dict):
        return None
    return normalize_number(record.get("number"))


class EntityWatcher(ABC):
    """One feed subscription on one game."""

    kind: FeedKind
    label: str

    def __init__(
        self,
        entity_name: str,
        path: str,
        store: ChangeFeedStore,
        cache: DedupCache,
        dispatcher: NotificationDispatcher,
        today: DateSource = today_string,
    ):
        self.entity_name = entity_name
        self.path = path
        self.store = store
        self.cache = cache
        self.dispatcher = dispatcher
        self.today = today
        self.inert = False
        self._subscription: Optional[FeedSubscription] = None

    @property
    def active(self) -> bool:
        return self._subscription is not None and not self.inert

    async def attach(self) -> None:
        try:
            self._subscription = await self.store.subscribe(
                self.path, self.kind, self.handle, self._on_error
            )
        except StoreError as e:
            self._on_error(e)
            return
        logger.info("watcher.attached", entity=self.entity_name, watcher=self.label)

    def detach(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    @abstractmethod
    def handle(self, event: ChangeEvent) -> None:
        """React to one feed event."""
        ...

    def _on_error(self, error: Exception) -> None:
        logger.error(
            "watcher.subscription_failed",
            entity=self.entity_name,
            watcher=self.label,
            error=str(error),
        )
        self.inert = True
        self.detach()

    def _notify(self, date: str, number: str) -> bool:
        if not self.cache.should_send(self.entity_name, date, number):
            return False
        logger.info(
            "watcher.notify",
            entity=self.entity_name,
            watcher=self.label,
            date=date,
            number=number,
        )
        self.dispatcher.schedule_number_notification(self.entity_name, date, number)
        return True


class FieldChangeWatcher(EntityWatcher):
    """Type A — reacts to a changed date record of the game."""

    kind = FeedKind.CHILD_CHANGED
    label = "field"

    def handle(self, event: ChangeEvent) -> None:
        if self.inert:
            return
        date = event.key
        today = self.today()
        number = record_number(event.value)

        if date != today or number is None:
            logger.debug(
                "watcher.skip",
                entity=self.entity_name,
                watcher=self.label,
                date=date,
                today=today,
                date_match=date == today,
                has_number=number is not None,
            )
            return

        self._notify(date, number)


class SnapshotWatcher(EntityWatcher):
    """Type B — reacts to today's number changing in the whole game value."""

    kind = FeedKind.VALUE
    label = "snapshot"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.last_known_number: Optional[str] = None

    def handle(self, event: ChangeEvent) -> None:
        if self.inert:
            return
        today = self.today()
        dates = event.value if isinstance(event.value, dict) else {}
        record = dates.get(today)

        if record is None:
            self.last_known_number = None
            return

        number = record_number(record)
        if number == self.last_known_number:
            logger.debug(
                "watcher.number_unchanged",
                entity=self.entity_name,
                watcher=self.label,
                number=number,
            )
            return

        logger.info(
            "watcher.number_changed",
            entity=self.entity_name,
            watcher=self.label,
            previous=self.last_known_number,
            number=number,
        )
        self.last_known_number = number
        if number is not None:
            self._notify(today, number)
