"""Push delivery — one Web Push attempt per subscriber.

Learn: PushSender is the seam between the dispatcher and the push
service. WebPushSender signs each request with the VAPID key pair and
lets pywebpush encrypt the payload for the subscriber's keys. Every
failure (HTTP error from the push service, network error, bad keys)
comes out as DeliveryError so the dispatcher handles one exception type.

pywebpush is synchronous (requests under the hood), so each attempt runs
in a worker thread.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional

import structlog
from pywebpush import WebPushException, webpush

from gamepush.config import Settings
from gamepush.subscriptions import PushSubscription

logger = structlog.get_logger()


class DeliveryError(Exception):
    """A single push attempt failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PushSender(ABC):
    """Abstract push delivery service."""

    @abstractmethod
    async def send(self, subscription: PushSubscription, payload: str) -> None:
        """Attempt one delivery. Raises DeliveryError on failure."""
        ...


class WebPushSender(PushSender):
    def __init__(
        self,
        vapid_private_key: str,
        vapid_subject: str,
        *,
        timeout: float = 10.0,
        ttl: int = 2419200,
    ):
        self.vapid_private_key = vapid_private_key
        self.vapid_subject = vapid_subject
        self.timeout = timeout
        self.ttl = ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> "WebPushSender":
        _, private_key = settings.require_vapid_keys()
        return cls(
            private_key,
            settings.vapid_subject,
            timeout=settings.push_timeout_seconds,
            ttl=settings.push_ttl_seconds,
        )

    async def send(self, subscription: PushSubscription, payload: str) -> None:
        await asyncio.to_thread(self._send_sync, subscription, payload)

    def _send_sync(self, subscription: PushSubscription, payload: str) -> None:
        try:
            webpush(
                subscription_info=subscription.to_subscription_info(),
                data=payload,
                vapid_private_key=self.vapid_private_key,
                # pywebpush writes aud/exp into the claims; never share them
                vapid_claims={"sub": self.vapid_subject},
                timeout=self.timeout,
                ttl=self.ttl,
            )
        except WebPushException as e:
            status = e.response.status_code if e.response is not None else None
            raise DeliveryError(str(e), status_code=status) from e
        except Exception as e:
            raise DeliveryError(str(e)) from e
