"""
Stage job records.

A job asks a stage's consumers to run that stage for one execution. Job ids
combine execution id, stage and enqueue time, so enqueueing the same
execution/stage twice yields two distinct jobs; duplicates are discarded by
the orchestrator, not by the queue.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from rfqflow.models.common import format_datetime, parse_datetime, utc_now


def make_job_id(execution_id: str, stage: str, now_ms: int | None = None) -> str:
    """Build the composite job id ``{execution_id}-{stage}-{epoch_ms}``."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{execution_id}-{stage}-{now_ms}"


@dataclass
class StageJob:
    """
    Attributes:
        execution_id: Execution to advance
        stage: Stage to run
        job_id: Composite public id
        attempt: 1-based number of the current delivery (0 until first polled)
        max_attempts: Deliveries allowed before the job is failed
        enqueued_at: When the job was first enqueued
        last_error: Error from the previous failed attempt, if any
        queue_id: Backend-internal handle used for ack/retry/fail
    """

    execution_id: str
    stage: str
    job_id: str = ""
    attempt: int = 0
    max_attempts: int = 3
    enqueued_at: datetime = field(default_factory=utc_now)
    last_error: str | None = None
    queue_id: str | None = None

    def __post_init__(self) -> None:
        if not self.job_id:
            self.job_id = make_job_id(self.execution_id, self.stage)

    @property
    def attempts_remaining(self) -> int:
        return max(self.max_attempts - self.attempt, 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "execution_id": self.execution_id,
            "stage": self.stage,
            "attempt": self.attempt,
            "max_attempts": self.max_attempts,
            "enqueued_at": format_datetime(self.enqueued_at),
            "last_error": self.last_error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StageJob:
        return cls(
            job_id=data["job_id"],
            execution_id=data["execution_id"],
            stage=data["stage"],
            attempt=data.get("attempt", 0),
            max_attempts=data.get("max_attempts", 3),
            enqueued_at=parse_datetime(data.get("enqueued_at")) or utc_now(),
            last_error=data.get("last_error"),
        )


@dataclass
class FinishedJob:
    """Retained record of a completed or failed job, for diagnostics."""

    job: StageJob
    finished_at: datetime
    error: str | None = None


@dataclass
class JobCounts:
    """Per-stage job counts."""

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0

    @property
    def pending(self) -> int:
        """Jobs not yet finished."""
        return self.waiting + self.active + self.delayed

    def to_dict(self) -> dict[str, int]:
        return {
            "waiting": self.waiting,
            "active": self.active,
            "completed": self.completed,
            "failed": self.failed,
            "delayed": self.delayed,
        }
