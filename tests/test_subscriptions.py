"""Subscriber parsing and endpoint de-duplication."""

from conftest import subscription

from gamepush.subscriptions import parse_subscription, unique_by_endpoint


def test_one_entry_per_distinct_endpoint():
    raw = {
        "-Nq1": subscription("https://fcm.googleapis.com/fcm/send/a"),
        "-Nq2": subscription("https://fcm.googleapis.com/fcm/send/b"),
        "-Nq3": subscription("https://fcm.googleapis.com/fcm/send/a"),
        "-Nq4": subscription("https://updates.push.services.mozilla.com/wpush/v2/c"),
    }

    subs = unique_by_endpoint(raw)

    endpoints = [s.endpoint for s in subs]
    assert sorted(endpoints) == sorted(set(endpoints))
    assert len(subs) == 3


def test_last_record_wins_on_collision():
    raw = {
        "-Nq1": {"endpoint": "https://push.example/a", "keys": {"p256dh": "old", "auth": "old"}},
        "-Nq2": {"endpoint": "https://push.example/a", "keys": {"p256dh": "new", "auth": "new"}},
    }

    (sub,) = unique_by_endpoint(raw)
    assert sub.keys["p256dh"] == "new"


def test_records_without_endpoint_are_ignored():
    raw = {
        "-Nq1": {"keys": {"p256dh": "k", "auth": "a"}},
        "-Nq2": "garbage",
        "-Nq3": subscription("https://push.example/ok"),
        "-Nq4": {"endpoint": ""},
    }

    subs = unique_by_endpoint(raw)
    assert [s.endpoint for s in subs] == ["https://push.example/ok"]


def test_empty_or_missing_set():
    assert unique_by_endpoint(None) == []
    assert unique_by_endpoint({}) == []


def test_list_shaped_records():
    raw = [None, subscription("https://push.example/a"), subscription("https://push.example/b")]
    assert len(unique_by_endpoint(raw)) == 2


def test_subscription_info_shape():
    sub = parse_subscription(subscription("https://push.example/a", expirationTime=None))
    assert sub.to_subscription_info() == {
        "endpoint": "https://push.example/a",
        "keys": {"p256dh": "BNcRd-key", "auth": "tBHI-auth"},
    }
