#!/usr/bin/env python3
"""
gamepush local demo: watchers, dedup and dispatch with no Firebase.

Seeds an in-memory database with two games and two subscribers, then
publishes numbers the way an admin panel would and prints every push
that would have gone out.
Run with: python examples/local_demo.py

Requires: pip install -e .
"""

import asyncio
import json
from datetime import date

from gamepush.context import AppContext
from gamepush.logging_config import configure_logging
from gamepush.push import PushSender
from gamepush.store import InMemoryStore
from gamepush.subscriptions import PushSubscription


class PrintingSender(PushSender):
    async def send(self, subscription: PushSubscription, payload: str) -> None:
        body = json.loads(payload)["body"]
        print(f"   push → {subscription.endpoint[-12:]}: {body}")


async def main():
    configure_logging()
    today = date.today().isoformat()

    store = InMemoryStore({
        "sattanamee": {
            "kalyan": {today: {"number": ""}},
            "gali": {},
        },
        "webPushSubscriptions": {
            "-a": {"endpoint": "https://push.example/device-one", "keys": {"p256dh": "k", "auth": "a"}},
            "-b": {"endpoint": "https://push.example/device-two", "keys": {"p256dh": "k", "auth": "a"}},
        },
    })
    context = AppContext(store, PrintingSender())

    # ── Startup ───────────────────────────────────────────────────
    print("1. Starting watchers...")
    await context.start()
    print(f"   Watching: {', '.join(context.discovery.entity_names)}")

    # ── Field update ──────────────────────────────────────────────
    print("\n2. Publishing kalyan's number (field update)...")
    store.update(f"sattanamee/kalyan/{today}", {"number": "45"})
    await context.dispatcher.drain()

    # ── Same number again inside the window ───────────────────────
    print("\n3. Re-publishing the same number (deduplicated)...")
    store.update(f"sattanamee/kalyan/{today}", {"number": "45"})
    await context.dispatcher.drain()

    # ── New game appears ──────────────────────────────────────────
    print("\n4. Adding a new game with today's number...")
    store.set("sattanamee/milan", {today: {"number": "07"}})
    await context.discovery.settle()
    await context.dispatcher.drain()

    stats = context.dispatcher.stats
    print(f"\nDone: {stats.dispatches} dispatches, {stats.deliveries_sent} pushes sent.")
    await context.stop()


if __name__ == "__main__":
    asyncio.run(main())
