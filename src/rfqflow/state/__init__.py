"""Accumulated per-execution state: merge rules and snapshot stores."""

from rfqflow.state.merge import NESTED_MERGE_FIELDS, merge_state
from rfqflow.state.store import InMemorySnapshotStore, SnapshotStore, SqliteSnapshotStore

__all__ = [
    "InMemorySnapshotStore",
    "NESTED_MERGE_FIELDS",
    "SnapshotStore",
    "SqliteSnapshotStore",
    "merge_state",
]
