"""Entity discovery — attach watchers to every game, old and new.

Learn: Two sources announce games:
1. A startup read of the tracked root (games that already exist)
2. The root's child_added feed (games created while we run)

The child_added feed also reports every existing game on its first
load, so both sources usually name the same game. Attached names are
kept in a set and a game is only ever attached once, giving exactly one
FieldChangeWatcher and one SnapshotWatcher per game.
"""

import asyncio
from typing import Optional

import structlog

from gamepush.dedup import DedupCache
from gamepush.dispatcher import NotificationDispatcher
from gamepush.store.base import (
    ChangeEvent,
    ChangeFeedStore,
    FeedKind,
    FeedSubscription,
    StoreError,
    join_path,
)
from gamepush.watchers import (
    DateSource,
    EntityWatcher,
    FieldChangeWatcher,
    SnapshotWatcher,
    today_string,
)

logger = structlog.get_logger()


class EntityDiscovery:
    def __init__(
        self,
        store: ChangeFeedStore,
        cache: DedupCache,
        dispatcher: NotificationDispatcher,
        root: str = "sattanamee",
        today: DateSource = today_string,
    ):
        self.store = store
        self.cache = cache
        self.dispatcher = dispatcher
        self.root = root
        self.today = today
        self.watchers: dict[str, list[EntityWatcher]] = {}
        self._attached: set[str] = set()
        self._pending: set[asyncio.Task] = set()
        self._root_subscription: Optional[FeedSubscription] = None

    @property
    def entity_names(self) -> list[str]:
        return sorted(self._attached)

    async def start(self) -> None:
        """Watch the root for new games, then attach the existing ones."""
        try:
            self._root_subscription = await self.store.subscribe(
                self.root, FeedKind.CHILD_ADDED, self._on_child_added, self._on_root_error
            )
        except StoreError as e:
            self._on_root_error(e)

        await self._attach_existing()
        await self.settle()

    async def _attach_existing(self) -> None:
        try:
            data = await self.store.read(self.root)
        except StoreError as e:
            logger.error("discovery.startup_read_failed", root=self.root, error=str(e))
            return

        if not isinstance(data, dict) or not data:
            logger.info("discovery.no_games", root=self.root)
            return

        names = list(data.keys())
        logger.info("discovery.startup", count=len(names), games=names)
        for name in names:
            await self.attach(name)

    async def attach(self, entity_name: str) -> bool:
        """Attach both watchers to a game. No-op if already attached."""
        if entity_name in self._attached:
            return False
        self._attached.add(entity_name)

        path = join_path(self.root, entity_name)
        watchers: list[EntityWatcher] = [
            cls(
                entity_name,
                path,
                self.store,
                self.cache,
                self.dispatcher,
                today=self.today,
            )
            for cls in (FieldChangeWatcher, SnapshotWatcher)
        ]
        self.watchers[entity_name] = watchers
        logger.info("discovery.game_attached", entity=entity_name)
        for watcher in watchers:
            await watcher.attach()
        return True

    def _on_child_added(self, event: ChangeEvent) -> None:
        # Feed callbacks are synchronous; subscribing is not
        name = event.key
        if not name or name in self._attached:
            return
        task = asyncio.get_running_loop().create_task(self._attach_announced(name))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _attach_announced(self, entity_name: str) -> None:
        # The first load replays existing games; those attach via the startup read
        if await self.attach(entity_name):
            logger.info("discovery.new_game", entity=entity_name)
        else:
            logger.debug("discovery.already_attached", entity=entity_name)

    def _on_root_error(self, error: Exception) -> None:
        logger.error("discovery.root_subscription_failed", root=self.root, error=str(error))
        self._root_subscription = None

    async def settle(self) -> None:
        """Wait until attachments triggered by the feed are done."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def stop(self) -> None:
        if self._root_subscription is not None:
            self._root_subscription.close()
            self._root_subscription = None
        for task in list(self._pending):
            task.cancel()
        await asyncio.gather(*list(self._pending), return_exceptions=True)
        for watchers in self.watchers.values():
            for watcher in watchers:
                watcher.detach()
        self.watchers.clear()
        self._attached.clear()
