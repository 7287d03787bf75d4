"""
In-process change feed.
Services publish row-level change events after each commit; realtime
workspace sessions subscribe to them per table with an equality filter.
"""
from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from sqlmodel import SQLModel

logger = logging.getLogger(__name__)

TABLE_TODOS = "todos"
TABLE_PROFILES = "profiles"
TABLE_MEMBERSHIPS = "calendar_memberships"


class EventType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    table: str
    event_type: EventType
    new: Optional[dict[str, Any]] = None
    old: Optional[dict[str, Any]] = None
    actor_id: Optional[UUID] = None
    origin: Optional[str] = None

    @property
    def row(self) -> dict[str, Any]:
        return self.new or self.old or {}

    def matches(self, filters: Mapping[str, Any]) -> bool:
        row = self.row
        return all(str(row.get(key)) == str(value) for key, value in filters.items())

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "event_type": self.event_type.value,
            "new": self.new,
            "old": self.old,
            "actor_id": str(self.actor_id) if self.actor_id else None,
            "origin": self.origin,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ChangeEvent":
        actor_id = data.get("actor_id")
        return cls(
            table=data["table"],
            event_type=EventType(data["event_type"]),
            new=data.get("new"),
            old=data.get("old"),
            actor_id=UUID(actor_id) if actor_id else None,
            origin=data.get("origin"),
        )


ChangeCallback = Callable[[ChangeEvent], None]


@dataclass(slots=True)
class _Subscriber:
    table: str
    filters: dict[str, Any]
    callback: ChangeCallback
    key: int = field(default=0)


class Subscription:
    """Handle returned by ChangeFeed.subscribe; calling it unsubscribes."""

    def __init__(self, feed: "ChangeFeed", key: int) -> None:
        self._feed = feed
        self._key = key

    def __call__(self) -> None:
        self._feed._remove(self._key)


class ChangeFeed:
    def __init__(self) -> None:
        self.origin = uuid.uuid4().hex
        self._subscribers: dict[int, _Subscriber] = {}
        self._sinks: list[ChangeCallback] = []
        self._next_key = 0
        # publish() runs in request threads, subscribe() on the event loop
        self._lock = threading.Lock()

    def subscribe(
        self,
        table: str,
        filters: Mapping[str, Any] | None,
        on_change: ChangeCallback,
    ) -> Subscription:
        with self._lock:
            self._next_key += 1
            key = self._next_key
            self._subscribers[key] = _Subscriber(
                table=table, filters=dict(filters or {}), callback=on_change, key=key
            )
        logger.debug("Change feed subscription %s on %s filters=%s", key, table, filters)
        return Subscription(self, key)

    def _remove(self, key: int) -> None:
        with self._lock:
            self._subscribers.pop(key, None)

    def add_sink(self, sink: ChangeCallback) -> Callable[[], None]:
        """Receive every locally published event (used by the Redis relay)."""
        with self._lock:
            self._sinks.append(sink)

        def remove() -> None:
            with self._lock:
                if sink in self._sinks:
                    self._sinks.remove(sink)

        return remove

    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: ChangeEvent) -> None:
        if event.origin is None:
            event = ChangeEvent(
                table=event.table,
                event_type=event.event_type,
                new=event.new,
                old=event.old,
                actor_id=event.actor_id,
                origin=self.origin,
            )
        self.dispatch(event)
        with self._lock:
            sinks = list(self._sinks)
        for sink in sinks:
            try:
                sink(event)
            except Exception:
                logger.exception("Change feed sink failed for %s", event.table)

    def dispatch(self, event: ChangeEvent) -> None:
        """Deliver an event to matching local subscribers only."""
        with self._lock:
            subscribers = [s for s in self._subscribers.values() if s.table == event.table]
        for subscriber in subscribers:
            if not event.matches(subscriber.filters):
                continue
            try:
                subscriber.callback(event)
            except Exception:
                logger.exception("Change feed subscriber %s failed", subscriber.key)


def row_snapshot(row: SQLModel) -> dict[str, Any]:
    return row.model_dump(mode="json")


def publish_row_change(
    table: str,
    event_type: EventType,
    *,
    new: dict[str, Any] | SQLModel | None = None,
    old: dict[str, Any] | SQLModel | None = None,
    actor_id: UUID | None = None,
) -> None:
    if isinstance(new, SQLModel):
        new = row_snapshot(new)
    if isinstance(old, SQLModel):
        old = row_snapshot(old)
    change_feed.publish(
        ChangeEvent(
            table=table,
            event_type=event_type,
            new=new,
            old=old,
            actor_id=actor_id,
        )
    )


# Global instance
change_feed = ChangeFeed()
