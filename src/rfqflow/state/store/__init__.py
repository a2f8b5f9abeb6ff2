"""Snapshot store backends."""

from rfqflow.state.store.interface import SnapshotStore
from rfqflow.state.store.memory import InMemorySnapshotStore
from rfqflow.state.store.sqlite import SqliteSnapshotStore

__all__ = ["InMemorySnapshotStore", "SnapshotStore", "SqliteSnapshotStore"]
