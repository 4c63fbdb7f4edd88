"""Notification dispatcher — fan a payload out to every subscriber.

Learn: A dispatch is:
1. One snapshot read of webPushSubscriptions
2. Collapse to one subscriber per endpoint
3. Build the JSON payload ({"title", "body"})
4. Deliver to each subscriber in turn; a failed delivery is logged and
   counted, and the loop moves on to the next subscriber

Watchers call schedule_number_notification(), which runs the dispatch as
a background task (fire-and-forget for the watcher: feed callbacks are
synchronous, the dispatch is not). The dispatcher keeps a reference to
every pending task so drain() can wait for them on shutdown.

A failed subscriber read is raised as SubscriberReadError. Background
dispatches log it and drop the notification; /send-test turns it into
a 503.
"""

import asyncio
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import structlog

from gamepush.push import DeliveryError, PushSender
from gamepush.store.base import ChangeFeedStore, StoreError
from gamepush.subscriptions import PushSubscription, unique_by_endpoint

logger = structlog.get_logger()

NUMBER_TITLE = "Number Updated!"
TEST_TITLE = "Test Notification"
TEST_BODY = "This is a test notification from admin panel."


class SubscriberReadError(StoreError):
    """The subscriber list could not be read."""


@dataclass
class DeliveryReport:
    """Outcome of one dispatch."""

    targeted: int = 0
    sent: int = 0
    failed: int = 0


@dataclass
class DispatcherStats:
    """Runtime counters for /health."""

    dispatches: int = 0
    deliveries_sent: int = 0
    deliveries_failed: int = 0
    read_errors: int = 0
    last_dispatch_at: Optional[datetime] = None


def build_payload(title: str, body: str) -> str:
    return json.dumps({"title": title, "body": body}, ensure_ascii=False)


def build_number_payload(entity_name: str, number: str) -> str:
    return build_payload(NUMBER_TITLE, f"{entity_name} का आज का नंबर: {number}")


class NotificationDispatcher:
    def __init__(
        self,
        store: ChangeFeedStore,
        sender: PushSender,
        subscriptions_path: str = "webPushSubscriptions",
    ):
        self.store = store
        self.sender = sender
        self.subscriptions_path = subscriptions_path
        self.stats = DispatcherStats()
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    # ─── Subscribers ──────────────────────────────────────

    async def load_subscribers(self) -> list[PushSubscription]:
        """Read the subscriber set and collapse it to one per endpoint."""
        try:
            raw = await self.store.read(self.subscriptions_path)
        except StoreError as e:
            self.stats.read_errors += 1
            raise SubscriberReadError(str(e)) from e
        return unique_by_endpoint(raw)

    # ─── Dispatch ─────────────────────────────────────────

    async def send_number_notification(
        self, entity_name: str, date: str, number: str
    ) -> DeliveryReport:
        """Notify every subscriber that entity_name has a number for date."""
        subscribers = await self.load_subscribers()
        if not subscribers:
            logger.info("dispatch.no_subscribers", entity=entity_name, date=date)
            return DeliveryReport()

        report = await self._deliver(
            subscribers, build_number_payload(entity_name, number)
        )
        logger.info(
            "dispatch.number_sent",
            entity=entity_name,
            date=date,
            number=number,
            endpoints=report.targeted,
            sent=report.sent,
            failed=report.failed,
        )
        return report

    async def send_test(self) -> DeliveryReport:
        """Send the fixed admin test notification to every subscriber."""
        subscribers = await self.load_subscribers()
        if not subscribers:
            return DeliveryReport()
        report = await self._deliver(subscribers, build_payload(TEST_TITLE, TEST_BODY))
        logger.info(
            "dispatch.test_sent",
            endpoints=report.targeted,
            sent=report.sent,
            failed=report.failed,
        )
        return report

    async def _deliver(
        self, subscribers: list[PushSubscription], payload: str
    ) -> DeliveryReport:
        report = DeliveryReport(targeted=len(subscribers))
        for sub in subscribers:
            try:
                await self.sender.send(sub, payload)
                report.sent += 1
            except DeliveryError as e:
                report.failed += 1
                logger.warning(
                    "dispatch.delivery_failed",
                    error=str(e),
                    status_code=e.status_code,
                )

        self.stats.dispatches += 1
        self.stats.deliveries_sent += report.sent
        self.stats.deliveries_failed += report.failed
        self.stats.last_dispatch_at = datetime.now(timezone.utc)
        return report

    # ─── Background dispatch ──────────────────────────────

    def schedule_number_notification(
        self, entity_name: str, date: str, number: str
    ) -> asyncio.Task:
        """Run send_number_notification in the background.

        Must be called from the event loop thread.
        """
        task = asyncio.get_running_loop().create_task(
            self._run_number_notification(entity_name, date, number),
            name=f"notify:{entity_name}:{date}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_number_notification(
        self, entity_name: str, date: str, number: str
    ) -> None:
        try:
            await self.send_number_notification(entity_name, date, number)
        except SubscriberReadError as e:
            logger.error(
                "dispatch.subscriber_read_failed",
                entity=entity_name,
                date=date,
                number=number,
                error=str(e),
            )
        except Exception:
            logger.exception("dispatch.failed", entity=entity_name, date=date)

    async def drain(self) -> None:
        """Wait for every scheduled dispatch to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
