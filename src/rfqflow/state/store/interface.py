"""
Snapshot store interface.

Snapshots are append-only. "Latest" always means the most recently
inserted snapshot; insertion order breaks ties between equal timestamps.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from rfqflow.models.snapshot import Snapshot
from rfqflow.models.status import SnapshotType


class SnapshotStore(ABC):
    """Abstract snapshot store."""

    @abstractmethod
    def create_snapshot(
        self,
        execution_id: str,
        stage_name: str,
        snapshot_type: SnapshotType,
        data: dict[str, Any],
    ) -> Snapshot:
        """
        Append a new snapshot.

        Args:
            execution_id: Owning execution
            stage_name: Stage (or ``human``) producing the snapshot
            snapshot_type: INPUT, OUTPUT or HUMAN_UPDATE
            data: Full accumulated state (already merged by the caller)

        Returns:
            The stored snapshot with its sequence assigned
        """
        pass

    @abstractmethod
    def get_latest(self, execution_id: str) -> Snapshot | None:
        """Most recently created snapshot of an execution, or None."""
        pass

    @abstractmethod
    def get_snapshot(self, snapshot_id: str) -> Snapshot:
        """
        Retrieve one snapshot.

        Raises:
            NotFoundError: Unknown snapshot id
        """
        pass

    @abstractmethod
    def get_latest_for_stage(
        self,
        execution_id: str,
        stage_name: str,
        snapshot_type: SnapshotType | None = None,
    ) -> Snapshot | None:
        """Most recent snapshot a stage produced, optionally of one type."""
        pass

    @abstractmethod
    def list_snapshots(self, execution_id: str) -> list[Snapshot]:
        """All snapshots of an execution in creation order."""
        pass

    @abstractmethod
    def delete_for_execution(self, execution_id: str) -> int:
        """Remove an execution's snapshots. Only used when the execution is deleted."""
        pass

    @abstractmethod
    def is_healthy(self) -> bool:
        pass

    def list_for_stage(self, execution_id: str, stage_name: str) -> list[Snapshot]:
        return [s for s in self.list_snapshots(execution_id) if s.stage_name == stage_name]
