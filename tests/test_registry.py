import threading

import pytest

from panelbus.default_subscriber import CallbackSubscriber
from panelbus.pattern import MatchMode
from panelbus.registry import SubscriptionRegistry, SubscriptionToken


def _subscriber(name="sub"):
    return CallbackSubscriber(lambda topic, payload: None, subscriber_id=name)


def test_entries_keep_insertion_order():
    registry = SubscriptionRegistry()
    a, b, c = _subscriber("a"), _subscriber("b"), _subscriber("c")
    registry.add("x", a)
    registry.add("y", b)
    registry.add("x", c)

    assert [e.subscriber for e in registry] == [a, b, c]
    assert [e.pattern for e in registry.snapshot()] == ["x", "y", "x"]
    assert len(registry) == 3


def test_same_pair_twice_gives_two_entries_with_distinct_tokens():
    registry = SubscriptionRegistry()
    sub = _subscriber()
    first = registry.add("x", sub)
    second = registry.add("x", sub)

    assert len(registry) == 2
    assert first.token != second.token


def test_snapshot_is_not_affected_by_later_changes():
    registry = SubscriptionRegistry()
    first = registry.add("x", _subscriber())
    snapshot = registry.snapshot()

    registry.add("y", _subscriber())
    registry.remove(first.token)

    assert snapshot == (first,)


def test_remove_by_token():
    registry = SubscriptionRegistry()
    keep = registry.add("x", _subscriber("keep"))
    drop = registry.add("x", _subscriber("drop"))

    assert registry.remove(drop.token) is drop
    assert registry.remove(drop.token) is None
    assert registry.snapshot() == (keep,)


def test_clear_starts_new_generation_and_invalidates_tokens():
    registry = SubscriptionRegistry()
    old = registry.add("x", _subscriber())
    assert registry.clear() == 1
    assert len(registry) == 0

    new = registry.add("x", _subscriber())
    assert new.token.serial == old.token.serial
    assert new.token.generation == old.token.generation + 1
    assert registry.remove(old.token) is None
    assert len(registry) == 1


def test_token_string_round_trip():
    token = SubscriptionToken(3, 14)
    assert str(token) == "3:14"
    assert SubscriptionToken.parse("3:14") == token


@pytest.mark.parametrize("raw", ["", "314", "a:b", None])
def test_token_parse_rejects_garbage(raw):
    with pytest.raises(ValueError):
        SubscriptionToken.parse(raw)


def test_subscription_to_dict():
    registry = SubscriptionRegistry()
    entry = registry.add("Sequencer|%w", _subscriber("light"), MatchMode.FULL)
    assert entry.to_dict() == {
        "id": "1:1",
        "pattern": "Sequencer|%w",
        "subscriber": "light",
        "mode": "full",
    }


def test_remove_where_removes_matching_entries_in_one_step():
    registry = SubscriptionRegistry()
    a, b = _subscriber("a"), _subscriber("b")
    first = registry.add("x", a)
    registry.add("y", b)
    third = registry.add("z", a)

    removed = registry.remove_where(lambda entry: entry.subscriber is a)

    assert removed == [first, third]
    assert [e.subscriber for e in registry] == [b]
    assert registry.remove_where(lambda entry: entry.subscriber is a) == []


def test_concurrent_adds_and_snapshots_stay_consistent():
    registry = SubscriptionRegistry()
    writers, per_writer = 4, 250
    subscribers = [_subscriber(f"w{i}") for i in range(writers)]
    bad_snapshots = []
    done = threading.Event()

    def write(sub):
        for i in range(per_writer):
            registry.add(str(i), sub)

    def read():
        while not done.is_set():
            snapshot = registry.snapshot()
            serials = [e.token.serial for e in snapshot]
            if serials != sorted(serials) or any(e is None for e in snapshot):
                bad_snapshots.append(serials)

    reader = threading.Thread(target=read)
    reader.start()
    threads = [threading.Thread(target=write, args=(sub,)) for sub in subscribers]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    done.set()
    reader.join()

    entries = registry.snapshot()
    assert bad_snapshots == []
    assert len(entries) == writers * per_writer
    assert [e.token.serial for e in entries] == list(range(1, writers * per_writer + 1))
    for sub in subscribers:
        patterns = [e.pattern for e in entries if e.subscriber is sub]
        assert patterns == [str(i) for i in range(per_writer)]
