"""Row conversion between SQLite rows and models."""

from __future__ import annotations

import sqlite3
from typing import Any

from rfqflow.models.common import format_datetime, parse_datetime, utc_now
from rfqflow.models.execution import Execution
from rfqflow.models.stage_task import StageTask
from rfqflow.models.status import ExecutionStatus, StageTaskStatus
from rfqflow.persistence.sqlite.base import dumps, loads


def row_to_execution(row: sqlite3.Row) -> Execution:
    return Execution(
        id=row["id"],
        status=ExecutionStatus(row["status"]),
        current_stage=row["current_stage"],
        input=loads(row["input"]),
        metadata=loads(row["metadata"]),
        external_ref=row["external_ref"],
        version=row["version"],
        claimed_by=row["claimed_by"],
        claim_attempt=row["claim_attempt"],
        created_at=parse_datetime(row["created_at"]) or utc_now(),
        updated_at=parse_datetime(row["updated_at"]) or utc_now(),
        completed_at=parse_datetime(row["completed_at"]),
    )


def execution_to_params(execution: Execution) -> dict[str, Any]:
    return {
        "id": execution.id,
        "status": execution.status.value,
        "current_stage": execution.current_stage,
        "input": dumps(execution.input),
        "metadata": dumps(execution.metadata),
        "external_ref": execution.external_ref,
        "version": execution.version,
        "claimed_by": execution.claimed_by,
        "claim_attempt": execution.claim_attempt,
        "created_at": format_datetime(execution.created_at),
        "updated_at": format_datetime(execution.updated_at),
        "completed_at": format_datetime(execution.completed_at),
    }


def row_to_stage_task(row: sqlite3.Row) -> StageTask:
    return StageTask(
        id=row["id"],
        execution_id=row["execution_id"],
        stage_name=row["stage_name"],
        attempt_number=row["attempt_number"],
        status=StageTaskStatus(row["status"]),
        input_snapshot_id=row["input_snapshot_id"],
        output_snapshot_id=row["output_snapshot_id"],
        error_message=row["error_message"],
        duration_ms=row["duration_ms"],
        token_usage=loads(row["token_usage"]),
        cost_usd=row["cost_usd"],
        started_at=parse_datetime(row["started_at"]),
        completed_at=parse_datetime(row["completed_at"]),
        created_at=parse_datetime(row["created_at"]) or utc_now(),
    )


def stage_task_to_params(task: StageTask) -> dict[str, Any]:
    return {
        "id": task.id,
        "execution_id": task.execution_id,
        "stage_name": task.stage_name,
        "attempt_number": task.attempt_number,
        "status": task.status.value,
        "input_snapshot_id": task.input_snapshot_id,
        "output_snapshot_id": task.output_snapshot_id,
        "error_message": task.error_message,
        "duration_ms": task.duration_ms,
        "token_usage": dumps(task.token_usage),
        "cost_usd": task.cost_usd,
        "started_at": format_datetime(task.started_at),
        "completed_at": format_datetime(task.completed_at),
        "created_at": format_datetime(task.created_at),
    }
