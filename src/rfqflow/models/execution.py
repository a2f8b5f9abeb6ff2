"""
Execution model.

An execution is one end-to-end run of the pipeline for a single input unit
(one quote request). It tracks:
- Overall status and the stage the next dispatched job will run
- Free-form metadata (awaiting reason, failure reason, replay provenance)
- The original input the stages read from
- A version counter used for compare-and-swap updates
- Which stage job (and which delivery of it) currently owns the stage
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from rfqflow.models.common import format_datetime, generate_id, parse_datetime, utc_now
from rfqflow.models.status import ExecutionStatus

# Metadata keys written by the state machine itself
AWAITING_REASON_KEY = "awaitingReason"
REQUIRED_FIELDS_KEY = "requiredFields"
ERROR_KEY = "error"
REPLAYED_FROM_KEY = "replayedFrom"
REPLAYED_FROM_STAGE_KEY = "replayedFromStage"

ENGINE_METADATA_KEYS: frozenset[str] = frozenset({AWAITING_REASON_KEY, REQUIRED_FIELDS_KEY, ERROR_KEY})


@dataclass
class Execution:
    """
    Represents one workflow instance.

    Attributes:
        id: Unique identifier (ULID)
        status: Current lifecycle status
        current_stage: Stage the next dispatched job will execute
        input: Original input payload handed to every stage
        metadata: Free-form key-value map
        external_ref: Optional caller reference (e.g. source email id)
        created_at: Creation time (UTC)
        updated_at: Last row update (UTC)
        completed_at: Set when the execution reaches a terminal status
        version: Incremented on every stored update, used for compare-and-swap
        claimed_by: Job id that owns the current stage, None between stages
        claim_attempt: Delivery attempt of ``claimed_by`` holding the claim
    """

    current_stage: str
    id: str = field(default_factory=generate_id)
    status: ExecutionStatus = ExecutionStatus.PENDING
    input: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)
    external_ref: str | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    completed_at: datetime | None = None
    version: int = 0
    claimed_by: str | None = None
    claim_attempt: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_runnable(self) -> bool:
        return self.status.is_runnable

    @property
    def awaiting_reason(self) -> str | None:
        return self.metadata.get(AWAITING_REASON_KEY)

    @property
    def error(self) -> str | None:
        return self.metadata.get(ERROR_KEY)

    def copy(self) -> Execution:
        """Deep copy, so callers can mutate without touching stored state."""
        return copy.deepcopy(self)

    def set_status(self, status: ExecutionStatus, now: datetime | None = None) -> None:
        """Change status, stamping completed_at on terminal statuses."""
        now = now or utc_now()
        self.status = status
        self.updated_at = now
        if status.is_terminal and self.completed_at is None:
            self.completed_at = now

    def is_claimed_by(self, job_id: str, attempt: int) -> bool:
        return self.claimed_by == job_id and self.claim_attempt == attempt

    def can_claim(self, job_id: str, attempt: int) -> bool:
        """
        Whether a delivery of ``job_id`` may take the current stage.

        An unowned stage can be taken by any job. An owned one only by a
        later delivery of the owning job, which replaces a worker whose
        lease expired.
        """
        if self.claimed_by is None:
            return True
        return self.claimed_by == job_id and attempt > self.claim_attempt

    def release_claim(self) -> None:
        self.claimed_by = None
        self.claim_attempt = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "current_stage": self.current_stage,
            "input": self.input,
            "metadata": self.metadata,
            "external_ref": self.external_ref,
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
            "completed_at": format_datetime(self.completed_at),
            "version": self.version,
            "claimed_by": self.claimed_by,
            "claim_attempt": self.claim_attempt,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Execution:
        return cls(
            id=data["id"],
            status=ExecutionStatus(data.get("status", "PENDING")),
            current_stage=data["current_stage"],
            input=data.get("input") or {},
            metadata=data.get("metadata") or {},
            external_ref=data.get("external_ref"),
            created_at=parse_datetime(data.get("created_at")) or utc_now(),
            updated_at=parse_datetime(data.get("updated_at")) or utc_now(),
            completed_at=parse_datetime(data.get("completed_at")),
            version=data.get("version", 0),
            claimed_by=data.get("claimed_by"),
            claim_attempt=data.get("claim_attempt", 0),
        )
