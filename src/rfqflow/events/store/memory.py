"""
In-memory event store implementation.

Thread-safe event store for tests and single-process use. Events are not
persisted to disk.
"""

from __future__ import annotations

import threading
from collections import Counter
from collections.abc import Iterator

from rfqflow.events.base import Event
from rfqflow.events.store.interface import EventQuery, EventStore


class InMemoryEventStore(EventStore):
    """
    In-memory implementation of the event store.

    Thread-safe using a lock for all operations.
    """

    def __init__(self) -> None:
        self._events: list[Event] = []
        self._sequence = 0
        self._lock = threading.Lock()

    def append(self, event: Event) -> Event:
        return self.append_batch([event])[0]

    def append_batch(self, events: list[Event]) -> list[Event]:
        if not events:
            return []

        with self._lock:
            appended = []
            for event in events:
                self._sequence += 1
                stored = event.with_sequence(self._sequence)
                self._events.append(stored)
                appended.append(stored)
            return appended

    def get_events(self, query: EventQuery) -> Iterator[Event]:
        with self._lock:
            events = list(self._events)

        filtered = [event for event in events if _matches(event, query)]
        if not query.ascending:
            filtered.reverse()

        start = query.offset
        yield from filtered[start : start + query.limit]

    def count_by_type(self, execution_id: str | None = None) -> dict[str, int]:
        with self._lock:
            counts = Counter(
                e.event_type.value for e in self._events if execution_id is None or e.execution_id == execution_id
            )
        return dict(counts)

    def delete_for_execution(self, execution_id: str) -> int:
        with self._lock:
            before = len(self._events)
            self._events = [e for e in self._events if e.execution_id != execution_id]
            return before - len(self._events)

    def is_healthy(self) -> bool:
        return True

    def clear(self) -> None:
        """Clear all events (for testing)."""
        with self._lock:
            self._events.clear()
            self._sequence = 0


def _matches(event: Event, query: EventQuery) -> bool:
    if query.execution_id is not None and event.execution_id != query.execution_id:
        return False
    if query.stage_task_id is not None and event.stage_task_id != query.stage_task_id:
        return False
    if query.event_types and event.event_type not in query.event_types:
        return False
    if query.from_timestamp is not None and event.created_at < query.from_timestamp:
        return False
    if query.to_timestamp is not None and event.created_at > query.to_timestamp:
        return False
    return True
