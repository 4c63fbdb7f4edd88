"""Feed derivation tests — raw put/patch writes to child/value feeds.

Learn: These pin down the semantics both stores share: every existing
child is "added" on first load, only children whose value differs are
"changed", and the value feed fires on every write.
"""

import pytest

from gamepush.store import FeedKind, InMemoryStore, StoreError
from gamepush.store.feed import PathFeed, TreeMirror, normalize_value


class Recorder:
    def __init__(self):
        self.events = []
        self.errors = []

    def on_event(self, event):
        self.events.append(event)

    def on_error(self, error):
        self.errors.append(error)

    def keys(self, kind):
        return [e.key for e in self.events if e.kind == kind]


def _feed_with(*kinds):
    feed = PathFeed("sattanamee/kalyan")
    recorders = {}
    for kind in kinds:
        rec = Recorder()
        feed.add(kind, rec.on_event, rec.on_error)
        recorders[kind] = rec
    return feed, recorders


# ─── TreeMirror ──────────────────────────────────────────


def test_mirror_put_and_patch():
    mirror = TreeMirror()
    mirror.apply("put", "/", {"2026-10-17": {"number": "12"}})
    mirror.apply("patch", "/2026-10-18", {"number": "45"})
    mirror.apply("put", "/2026-10-17", None)

    assert mirror.loaded
    assert mirror.value == {"2026-10-18": {"number": "45"}}


def test_mirror_rejects_unknown_write():
    with pytest.raises(ValueError):
        TreeMirror().apply("keep-alive", "/", None)


def test_normalize_value_drops_nulls_and_converts_lists():
    assert normalize_value({"a": None, "b": {}, "c": [1, None, 3]}) == {
        "c": {"0": 1, "2": 3}
    }
    assert normalize_value({}) is None


# ─── PathFeed ────────────────────────────────────────────


def test_first_load_reports_children_added_and_value():
    feed, rec = _feed_with(FeedKind.CHILD_ADDED, FeedKind.CHILD_CHANGED, FeedKind.VALUE)

    feed.apply("put", "/", {"2026-10-17": {"number": "12"}, "2026-10-18": {"number": ""}})

    assert rec[FeedKind.CHILD_ADDED].keys(FeedKind.CHILD_ADDED) == ["2026-10-17", "2026-10-18"]
    assert rec[FeedKind.CHILD_CHANGED].events == []
    assert len(rec[FeedKind.VALUE].events) == 1


def test_changed_child_only_when_value_differs():
    feed, rec = _feed_with(FeedKind.CHILD_CHANGED, FeedKind.VALUE)
    feed.apply("put", "/", {"2026-10-17": {"number": "12"}, "2026-10-18": {"number": ""}})

    feed.apply("patch", "/2026-10-18", {"number": "45"})
    feed.apply("put", "/", {"2026-10-17": {"number": "12"}, "2026-10-18": {"number": "45"}})

    changed = rec[FeedKind.CHILD_CHANGED].events
    assert [e.key for e in changed] == ["2026-10-18"]
    assert changed[0].value == {"number": "45"}
    # value fires on every write, even the no-op overwrite
    assert len(rec[FeedKind.VALUE].events) == 3


def test_late_subscriber_gets_current_state_replayed():
    feed = PathFeed("sattanamee")
    feed.apply("put", "/", {"kalyan": {"x": 1}, "milan": {"y": 2}})

    added, value, changed = Recorder(), Recorder(), Recorder()
    feed.add(FeedKind.CHILD_ADDED, added.on_event, added.on_error)
    feed.add(FeedKind.VALUE, value.on_event, value.on_error)
    feed.add(FeedKind.CHILD_CHANGED, changed.on_event, changed.on_error)

    assert added.keys(FeedKind.CHILD_ADDED) == ["kalyan", "milan"]
    assert value.events[0].value == {"kalyan": {"x": 1}, "milan": {"y": 2}}
    assert changed.events == []


def test_failing_callback_does_not_block_others():
    feed = PathFeed("p")
    good = Recorder()

    def broken(event):
        raise RuntimeError("boom")

    feed.add(FeedKind.VALUE, broken, good.on_error)
    feed.add(FeedKind.VALUE, good.on_event, good.on_error)
    feed.apply("put", "/", {"a": 1})

    assert len(good.events) == 1


def test_fail_reports_once_and_silences_feed():
    idle = []
    feed = PathFeed("p", on_idle=idle.append)
    rec = Recorder()
    feed.add(FeedKind.VALUE, rec.on_event, rec.on_error)

    error = StoreError("permission denied")
    feed.fail(error)
    feed.apply("put", "/", {"a": 1})

    assert rec.errors == [error]
    assert rec.events == []
    assert idle == [feed]


def test_closed_subscription_receives_nothing():
    feed = PathFeed("p")
    rec = Recorder()
    sub = feed.add(FeedKind.VALUE, rec.on_event, rec.on_error)
    sub.close()
    feed.apply("put", "/", {"a": 1})
    assert rec.events == []


def test_feed_failing_without_callbacks_goes_idle_and_rejects_new_ones():
    idle = []
    feed = PathFeed("p", on_idle=idle.append)
    feed.apply("put", "/", {"a": 1})

    feed.fail(StoreError("cancel"))

    assert idle == [feed]
    rec = Recorder()
    with pytest.raises(StoreError, match="cancel"):
        feed.add(FeedKind.VALUE, rec.on_event, rec.on_error)
    assert rec.events == []


# ─── InMemoryStore ───────────────────────────────────────


@pytest.mark.asyncio
async def test_memory_store_routes_writes_relative_to_feed():
    store = InMemoryStore({"sattanamee": {"kalyan": {"2026-10-18": {"number": ""}}}})
    changed = Recorder()
    await store.subscribe("sattanamee/kalyan", FeedKind.CHILD_CHANGED, changed.on_event, changed.on_error)

    # update() below the feed
    store.update("sattanamee/kalyan/2026-10-18", {"number": "45"})
    # update() above the feed touching it
    store.update("sattanamee", {"kalyan/2026-10-18/number": "46"})

    assert [e.value for e in changed.events] == [{"number": "45"}, {"number": "46"}]
    assert await store.read("sattanamee/kalyan/2026-10-18/number") == "46"


@pytest.mark.asyncio
async def test_memory_store_ignores_patches_elsewhere():
    store = InMemoryStore({"sattanamee": {"kalyan": {"d": {"number": "1"}}}})
    value = Recorder()
    await store.subscribe("sattanamee/kalyan", FeedKind.VALUE, value.on_event, value.on_error)

    store.update("sattanamee", {"milan": {"d": {"number": "2"}}})

    assert len(value.events) == 1  # just the initial load


@pytest.mark.asyncio
async def test_memory_store_child_added_for_new_root_child():
    store = InMemoryStore()
    added = Recorder()
    await store.subscribe("sattanamee", FeedKind.CHILD_ADDED, added.on_event, added.on_error)

    store.set("sattanamee/sridevi", {"2026-10-18": {"number": "7"}})

    assert added.keys(FeedKind.CHILD_ADDED) == ["sridevi"]


@pytest.mark.asyncio
async def test_memory_store_read_error():
    store = InMemoryStore()
    store.read_error = RuntimeError("offline")
    with pytest.raises(StoreError):
        await store.read("webPushSubscriptions")
