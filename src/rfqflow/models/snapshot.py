"""
Snapshot model.

A snapshot is an immutable capture of an execution's accumulated state.
The current state of an execution is always its most recently created
snapshot; snapshots are never replayed to rebuild state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from rfqflow.models.common import format_datetime, generate_id, parse_datetime, utc_now
from rfqflow.models.status import SnapshotType

# Stage name recorded on HUMAN_UPDATE snapshots
HUMAN_STAGE = "human"


@dataclass(frozen=True)
class Snapshot:
    """
    Attributes:
        execution_id: Owning execution
        stage_name: Stage (or ``human``) that produced the snapshot
        snapshot_type: INPUT, OUTPUT or HUMAN_UPDATE
        data: Accumulated state at this point
        sequence: Insertion order, assigned by the store
    """

    execution_id: str
    stage_name: str
    snapshot_type: SnapshotType
    data: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=generate_id)
    created_at: datetime = field(default_factory=utc_now)
    sequence: int = 0

    def with_sequence(self, sequence: int) -> Snapshot:
        """Return a copy with the given sequence number."""
        return Snapshot(
            id=self.id,
            execution_id=self.execution_id,
            stage_name=self.stage_name,
            snapshot_type=self.snapshot_type,
            data=self.data,
            created_at=self.created_at,
            sequence=sequence,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "execution_id": self.execution_id,
            "stage_name": self.stage_name,
            "snapshot_type": self.snapshot_type.value,
            "data": self.data,
            "created_at": format_datetime(self.created_at),
            "sequence": self.sequence,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Snapshot:
        return cls(
            id=data["id"],
            execution_id=data["execution_id"],
            stage_name=data["stage_name"],
            snapshot_type=SnapshotType(data["snapshot_type"]),
            data=data.get("data") or {},
            created_at=parse_datetime(data.get("created_at")) or utc_now(),
            sequence=data.get("sequence", 0),
        )
