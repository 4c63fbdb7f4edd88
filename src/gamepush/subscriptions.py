"""Push subscription records and endpoint de-duplication.

Learn: Browsers register by writing their PushSubscription JSON under
webPushSubscriptions/<push-id>. The same browser can register more than
once (new push id, same endpoint), so the subscriber set is always
collapsed to one record per endpoint before delivery.
"""

from typing import Any, Iterable, Optional

from pydantic import BaseModel, ConfigDict, ValidationError


class PushSubscription(BaseModel):
    endpoint: str
    keys: dict[str, str] = {}

    # Browsers also send expirationTime etc.
    model_config = ConfigDict(extra="allow")

    def to_subscription_info(self) -> dict[str, Any]:
        """Shape expected by pywebpush.webpush()."""
        return {"endpoint": self.endpoint, "keys": dict(self.keys)}


def _records(raw: Any) -> Iterable[Any]:
    # The store returns a mapping keyed by push id, or a list when the
    # keys happen to be array-like.
    if not raw:
        return []
    if isinstance(raw, dict):
        return raw.values()
    if isinstance(raw, list):
        return raw
    return []


def parse_subscription(record: Any) -> Optional[PushSubscription]:
    """Parse one stored record; None when it has no usable endpoint."""
    if not isinstance(record, dict) or not record.get("endpoint"):
        return None
    try:
        return PushSubscription.model_validate(record)
    except ValidationError:
        return None


def unique_by_endpoint(raw: Any) -> list[PushSubscription]:
    """Collapse stored subscription records to one per endpoint.

    On an endpoint collision the record read last wins.
    """
    by_endpoint: dict[str, PushSubscription] = {}
    for record in _records(raw):
        sub = parse_subscription(record)
        if sub is not None:
            by_endpoint[sub.endpoint] = sub
    return list(by_endpoint.values())
