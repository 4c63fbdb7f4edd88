"""Test fixtures — an in-memory store, a recording push sender, a client.

Learn: No Firebase and no push service in tests. InMemoryStore has the
same feed semantics as the Firebase adapter, and RecordingSender keeps
every delivery attempt (optionally failing chosen endpoints). The HTTP
client talks to the app in-process via httpx's ASGITransport, with
get_context overridden to the test's AppContext (ASGITransport does not
run the lifespan).
"""

from typing import Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from gamepush.api.deps import get_context
from gamepush.context import AppContext
from gamepush.main import create_app
from gamepush.push import DeliveryError, PushSender
from gamepush.store import InMemoryStore
from gamepush.subscriptions import PushSubscription

TODAY = "2026-10-18"
YESTERDAY = "2026-10-17"


class RecordingSender(PushSender):
    """Push sender that records attempts instead of sending."""

    def __init__(self, failing_endpoints: Optional[set[str]] = None):
        self.attempts: list[tuple[str, str]] = []
        self.failing_endpoints = failing_endpoints or set()

    async def send(self, subscription: PushSubscription, payload: str) -> None:
        self.attempts.append((subscription.endpoint, payload))
        if subscription.endpoint in self.failing_endpoints:
            raise DeliveryError("Push failed: 410 Gone", status_code=410)

    @property
    def endpoints(self) -> list[str]:
        return [endpoint for endpoint, _ in self.attempts]


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def subscription(endpoint: str, **extra) -> dict:
    return {"endpoint": endpoint, "keys": {"p256dh": "BNcRd-key", "auth": "tBHI-auth"}, **extra}


@pytest.fixture()
def store():
    return InMemoryStore()


@pytest.fixture()
def sender():
    return RecordingSender()


@pytest.fixture()
def context(store, sender):
    return AppContext(store, sender, today=lambda: TODAY)


@pytest_asyncio.fixture()
async def client(context):
    """HTTP client bound to the test's AppContext."""
    app = create_app(context_factory=lambda _settings: context)
    app.dependency_overrides[get_context] = lambda: context

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
