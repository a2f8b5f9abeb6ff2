"""In-memory snapshot store."""

from __future__ import annotations

import copy
import threading
from typing import Any

from rfqflow.errors import NotFoundError
from rfqflow.models.snapshot import Snapshot
from rfqflow.models.status import SnapshotType
from rfqflow.state.store.interface import SnapshotStore


class InMemorySnapshotStore(SnapshotStore):
    """
    Thread-safe in-memory snapshot store.

    Snapshot data is deep-copied on the way in, so later mutation of the
    caller's dict cannot alter a stored snapshot.
    """

    def __init__(self) -> None:
        self._snapshots: list[Snapshot] = []
        self._by_id: dict[str, Snapshot] = {}
        self._sequence = 0
        self._lock = threading.Lock()

    def create_snapshot(
        self,
        execution_id: str,
        stage_name: str,
        snapshot_type: SnapshotType,
        data: dict[str, Any],
    ) -> Snapshot:
        with self._lock:
            self._sequence += 1
            snapshot = Snapshot(
                execution_id=execution_id,
                stage_name=stage_name,
                snapshot_type=snapshot_type,
                data=copy.deepcopy(data),
                sequence=self._sequence,
            )
            self._snapshots.append(snapshot)
            self._by_id[snapshot.id] = snapshot
            return snapshot

    def get_latest(self, execution_id: str) -> Snapshot | None:
        with self._lock:
            for snapshot in reversed(self._snapshots):
                if snapshot.execution_id == execution_id:
                    return snapshot
        return None

    def get_snapshot(self, snapshot_id: str) -> Snapshot:
        with self._lock:
            snapshot = self._by_id.get(snapshot_id)
        if snapshot is None:
            raise NotFoundError("Snapshot", snapshot_id)
        return snapshot

    def get_latest_for_stage(
        self,
        execution_id: str,
        stage_name: str,
        snapshot_type: SnapshotType | None = None,
    ) -> Snapshot | None:
        with self._lock:
            for snapshot in reversed(self._snapshots):
                if snapshot.execution_id != execution_id or snapshot.stage_name != stage_name:
                    continue
                if snapshot_type is None or snapshot.snapshot_type == snapshot_type:
                    return snapshot
        return None

    def list_snapshots(self, execution_id: str) -> list[Snapshot]:
        with self._lock:
            return [s for s in self._snapshots if s.execution_id == execution_id]

    def delete_for_execution(self, execution_id: str) -> int:
        with self._lock:
            removed = [s for s in self._snapshots if s.execution_id == execution_id]
            self._snapshots = [s for s in self._snapshots if s.execution_id != execution_id]
            for snapshot in removed:
                self._by_id.pop(snapshot.id, None)
            return len(removed)

    def is_healthy(self) -> bool:
        return True
