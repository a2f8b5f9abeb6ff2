"""Event store backends."""

from rfqflow.events.store.interface import EventQuery, EventStore
from rfqflow.events.store.memory import InMemoryEventStore
from rfqflow.events.store.sqlite import SqliteEventStore

__all__ = ["EventQuery", "EventStore", "InMemoryEventStore", "SqliteEventStore"]
