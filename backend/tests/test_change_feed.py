# tests/test_change_feed.py

from __future__ import annotations

import json
from uuid import uuid4

from todocal.services.change_feed import ChangeEvent, ChangeFeed, EventType
from todocal.services.redis_pubsub import RedisChangeRelay


def event(table: str = "todos", **row) -> ChangeEvent:
    return ChangeEvent(table=table, event_type=EventType.INSERT, new=row)


def test_subscribers_only_see_matching_rows() -> None:
    feed = ChangeFeed()
    calendar_id = uuid4()
    mine, everything, profiles = [], [], []
    feed.subscribe("todos", {"calendar_id": calendar_id}, mine.append)
    feed.subscribe("todos", None, everything.append)
    feed.subscribe("profiles", {}, profiles.append)

    feed.publish(event(calendar_id=str(calendar_id), title="a"))
    feed.publish(event(calendar_id=str(uuid4()), title="b"))

    assert [e.new["title"] for e in mine] == ["a"]
    assert [e.new["title"] for e in everything] == ["a", "b"]
    assert profiles == []


def test_delete_events_match_on_old_row() -> None:
    feed = ChangeFeed()
    calendar_id = uuid4()
    seen = []
    feed.subscribe("todos", {"calendar_id": calendar_id}, seen.append)

    feed.publish(ChangeEvent(table="todos", event_type=EventType.DELETE, old={"calendar_id": str(calendar_id)}))

    assert len(seen) == 1


def test_unsubscribe_stops_delivery() -> None:
    feed = ChangeFeed()
    seen = []
    unsubscribe = feed.subscribe("todos", None, seen.append)
    feed.publish(event(title="a"))
    unsubscribe()
    feed.publish(event(title="b"))

    assert len(seen) == 1
    assert feed.subscriber_count() == 0


def test_failing_subscriber_does_not_block_others() -> None:
    feed = ChangeFeed()
    seen = []

    def broken(_: ChangeEvent) -> None:
        raise RuntimeError("boom")

    feed.subscribe("todos", None, broken)
    feed.subscribe("todos", None, seen.append)
    feed.publish(event(title="a"))

    assert len(seen) == 1


def test_publish_stamps_origin_and_feeds_sinks() -> None:
    feed = ChangeFeed()
    sunk = []
    remove = feed.add_sink(sunk.append)

    feed.publish(event(title="a"))
    remove()
    feed.publish(event(title="b"))

    assert [e.origin for e in sunk] == [feed.origin]


def test_event_dict_round_trip() -> None:
    actor = uuid4()
    original = ChangeEvent(
        table="todos",
        event_type=EventType.UPDATE,
        new={"title": "b"},
        old={"title": "a"},
        actor_id=actor,
        origin="abc",
    )
    assert ChangeEvent.from_dict(json.loads(json.dumps(original.to_dict()))) == original


def test_relay_dispatches_remote_events_and_skips_own_echo() -> None:
    feed = ChangeFeed()
    relay = RedisChangeRelay(feed=feed, url="redis://unused", channel="test")
    seen, sunk = [], []
    feed.subscribe("todos", None, seen.append)
    feed.add_sink(sunk.append)

    remote = ChangeEvent(table="todos", event_type=EventType.INSERT, new={"title": "r"}, origin="other")
    own = ChangeEvent(table="todos", event_type=EventType.INSERT, new={"title": "o"}, origin=feed.origin)

    assert relay.handle_message(json.dumps(remote.to_dict())) is True
    assert relay.handle_message(json.dumps(own.to_dict())) is False

    assert [e.new["title"] for e in seen] == ["r"]
    # Remote events are not mirrored back onto Redis
    assert sunk == []


def test_relay_forward_ignores_events_when_disconnected() -> None:
    feed = ChangeFeed()
    relay = RedisChangeRelay(feed=feed, url="redis://unused", channel="test")

    relay.forward(ChangeEvent(table="todos", event_type=EventType.INSERT, origin=feed.origin))

    assert not relay.connected
