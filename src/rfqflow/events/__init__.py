"""
Append-only audit log.

Every execution transition and every external call a stage makes is
recorded as an immutable Event.
"""

from rfqflow.events.base import ENGINE_EVENT_TYPES, Event, EventType
from rfqflow.events.store import EventQuery, EventStore, InMemoryEventStore, SqliteEventStore

__all__ = [
    "ENGINE_EVENT_TYPES",
    "Event",
    "EventQuery",
    "EventStore",
    "EventType",
    "InMemoryEventStore",
    "SqliteEventStore",
]
