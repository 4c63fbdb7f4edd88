"""Application context — everything the running service owns.

Learn: Instead of module-level singletons, one AppContext holds the
store, dedup cache, dispatcher and discovery, with explicit start() and
stop(). The FastAPI lifespan builds it from settings (build_context),
starts it, and stops it on shutdown; tests build one around an
InMemoryStore and a fake sender.

build_context() is where configuration errors surface: missing VAPID
keys or Firebase credentials raise ConfigurationError before anything
connects, so the process never starts half-configured.
"""

import structlog

from gamepush.config import Settings
from gamepush.dedup import DedupCache
from gamepush.discovery import EntityDiscovery
from gamepush.dispatcher import NotificationDispatcher
from gamepush.push import PushSender, WebPushSender
from gamepush.store.base import ChangeFeedStore
from gamepush.watchers import DateSource, today_string

logger = structlog.get_logger()


class AppContext:
    def __init__(
        self,
        store: ChangeFeedStore,
        sender: PushSender,
        *,
        tracked_root: str = "sattanamee",
        subscriptions_path: str = "webPushSubscriptions",
        dedup_window_seconds: float = 5.0,
        today: DateSource = today_string,
    ):
        self.store = store
        self.cache = DedupCache(window_seconds=dedup_window_seconds)
        self.dispatcher = NotificationDispatcher(
            store, sender, subscriptions_path=subscriptions_path
        )
        self.discovery = EntityDiscovery(
            store, self.cache, self.dispatcher, root=tracked_root, today=today
        )
        self.started = False

    async def start(self) -> None:
        logger.info("context.starting", store=self.store.name, root=self.discovery.root)
        await self.discovery.start()
        self.started = True
        logger.info("context.started", games=len(self.discovery.entity_names))

    async def stop(self) -> None:
        logger.info("context.stopping", pending_dispatches=self.dispatcher.pending)
        await self.discovery.stop()
        await self.dispatcher.drain()
        await self.store.close()
        self.started = False


def build_context(settings: Settings) -> AppContext:
    """Production wiring: Firebase store + pywebpush sender.

    Raises ConfigurationError for missing credentials.
    """
    from gamepush.store.firebase import FirebaseStore

    sender = WebPushSender.from_settings(settings)
    store = FirebaseStore.from_settings(settings)
    return AppContext(
        store,
        sender,
        tracked_root=settings.tracked_root,
        subscriptions_path=settings.subscriptions_path,
        dedup_window_seconds=settings.dedup_window_seconds,
        today=lambda: today_string(settings.tzinfo),
    )
