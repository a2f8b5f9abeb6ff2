"""
StageTask model.

One attempt of one stage within one execution. Retries of the same stage
produce separate rows with increasing attempt numbers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from rfqflow.models.common import format_datetime, generate_id, parse_datetime, utc_now
from rfqflow.models.status import StageTaskStatus


@dataclass
class StageTask:
    """
    Attributes:
        execution_id: Owning execution
        stage_name: Pipeline stage this attempt ran
        attempt_number: 1-based attempt (job retry count + 1)
        status: Attempt status
        input_snapshot_id: Snapshot the stage read its state from
        output_snapshot_id: Snapshot holding the merged result
        error_message: Failure text for FAILED attempts, skip reason for SKIPPED
        duration_ms: Wall-clock duration of the executor call
        token_usage: Usage counters reported by the executor
        cost_usd: Cost reported by the executor
    """

    execution_id: str
    stage_name: str
    attempt_number: int = 1
    id: str = field(default_factory=generate_id)
    status: StageTaskStatus = StageTaskStatus.PENDING
    input_snapshot_id: str | None = None
    output_snapshot_id: str | None = None
    error_message: str | None = None
    duration_ms: int | None = None
    token_usage: dict[str, int] = field(default_factory=dict)
    cost_usd: float | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "execution_id": self.execution_id,
            "stage_name": self.stage_name,
            "attempt_number": self.attempt_number,
            "status": self.status.value,
            "input_snapshot_id": self.input_snapshot_id,
            "output_snapshot_id": self.output_snapshot_id,
            "error_message": self.error_message,
            "duration_ms": self.duration_ms,
            "token_usage": self.token_usage,
            "cost_usd": self.cost_usd,
            "started_at": format_datetime(self.started_at),
            "completed_at": format_datetime(self.completed_at),
            "created_at": format_datetime(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StageTask:
        return cls(
            id=data["id"],
            execution_id=data["execution_id"],
            stage_name=data["stage_name"],
            attempt_number=data.get("attempt_number", 1),
            status=StageTaskStatus(data.get("status", "PENDING")),
            input_snapshot_id=data.get("input_snapshot_id"),
            output_snapshot_id=data.get("output_snapshot_id"),
            error_message=data.get("error_message"),
            duration_ms=data.get("duration_ms"),
            token_usage=data.get("token_usage") or {},
            cost_usd=data.get("cost_usd"),
            started_at=parse_datetime(data.get("started_at")),
            completed_at=parse_datetime(data.get("completed_at")),
            created_at=parse_datetime(data.get("created_at")) or utc_now(),
        )
