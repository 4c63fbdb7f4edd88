"""Deduplication cache — suppress repeat notifications within a window.

Learn: Two watchers per game can see the same new number (an update()
fires the child feed, every write fires the value feed). Both ask
should_send() before dispatching, and only the first one inside the
window gets True. The check-then-set is atomic because every feed
callback runs on the event loop thread.

Entries older than the window are evicted on each call, so the map only
ever holds keys sent during the last window.
"""

import time
from typing import Callable

import structlog

logger = structlog.get_logger()

DEFAULT_WINDOW_SECONDS = 5.0


def make_key(entity_name: str, date: str, number: str) -> str:
    return f"{entity_name}|{date}|{number}"


class DedupCache:
    """In-memory map of composite key → last send attempt."""

    def __init__(
        self,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window_seconds = window_seconds
        self._clock = clock
        self._last_sent: dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._last_sent)

    def __contains__(self, key: str) -> bool:
        return key in self._last_sent

    def should_send(self, entity_name: str, date: str, number: str) -> bool:
        """Return True and record the attempt unless a send for the same
        (entity, date, number) happened less than a window ago."""
        now = self._clock()
        self._evict(now)

        key = make_key(entity_name, date, number)
        last = self._last_sent.get(key)
        if last is not None and now - last < self.window_seconds:
            logger.info(
                "dedup.skipped",
                key=key,
                sent_ms_ago=int((now - last) * 1000),
            )
            return False

        self._last_sent[key] = now
        return True

    def _evict(self, now: float) -> None:
        expired = [
            key
            for key, sent_at in self._last_sent.items()
            if now - sent_at >= self.window_seconds
        ]
        for key in expired:
            del self._last_sent[key]
