"""
SQLite execution store.

Execution updates use optimistic locking on the ``version`` column:

    UPDATE executions SET ..., version = version + 1
    WHERE id = :id AND version = :version

A rowcount of zero means another writer got there first and surfaces as
ConcurrencyError.
"""

from __future__ import annotations

import logging
from typing import Any

from rfqflow.errors import ConcurrencyError, NotFoundError
from rfqflow.models.common import format_datetime, utc_now
from rfqflow.models.execution import Execution
from rfqflow.models.stage_task import StageTask
from rfqflow.persistence.sqlite.base import SqliteStoreBase
from rfqflow.persistence.sqlite.converters import (
    execution_to_params,
    row_to_execution,
    row_to_stage_task,
    stage_task_to_params,
)
from rfqflow.persistence.store import ExecutionCriteria, ExecutionStore

logger = logging.getLogger(__name__)


class SqliteExecutionStore(SqliteStoreBase, ExecutionStore):
    """
    SQLite implementation of ExecutionStore.

    Features:
    - Thread-local connections via the singleton ConnectionManager
    - Compare-and-swap execution updates
    - ON DELETE CASCADE from executions to stage tasks, snapshots and events
    """

    def create(self, execution: Execution) -> None:
        with self._transaction("execution insert") as conn:
            conn.execute(
                """
                INSERT INTO executions (
                    id, status, current_stage, input, metadata, external_ref,
                    version, claimed_by, claim_attempt, created_at, updated_at, completed_at
                ) VALUES (
                    :id, :status, :current_stage, :input, :metadata, :external_ref,
                    :version, :claimed_by, :claim_attempt, :created_at, :updated_at, :completed_at
                )
                """,
                execution_to_params(execution),
            )
        logger.debug("Stored execution %s at stage %s", execution.id, execution.current_stage)

    def retrieve(self, execution_id: str) -> Execution:
        with self._wrap_errors("execution query"):
            row = self._get_connection().execute("SELECT * FROM executions WHERE id = ?", (execution_id,)).fetchone()
        if row is None:
            raise NotFoundError("Execution", execution_id)
        return row_to_execution(row)

    def update(self, execution: Execution) -> None:
        updated_at = utc_now()
        params = execution_to_params(execution)
        params["updated_at"] = format_datetime(updated_at)

        with self._transaction("execution update") as conn:
            cursor = conn.execute(
                """
                UPDATE executions SET
                    status = :status,
                    current_stage = :current_stage,
                    metadata = :metadata,
                    external_ref = :external_ref,
                    updated_at = :updated_at,
                    completed_at = :completed_at,
                    claimed_by = :claimed_by,
                    claim_attempt = :claim_attempt,
                    version = version + 1
                WHERE id = :id AND version = :version
                """,
                params,
            )
            if cursor.rowcount == 0:
                exists = conn.execute("SELECT version FROM executions WHERE id = ?", (execution.id,)).fetchone()
                if exists is None:
                    raise NotFoundError("Execution", execution.id)
                raise ConcurrencyError(
                    f"Optimistic lock failed for execution {execution.id} "
                    f"(version {execution.version}, stored {exists['version']})",
                    execution_id=execution.id,
                    expected_version=execution.version,
                )

        execution.version += 1
        execution.updated_at = updated_at

    def delete(self, execution_id: str) -> None:
        with self._transaction("execution delete") as conn:
            cursor = conn.execute("DELETE FROM executions WHERE id = ?", (execution_id,))
            if cursor.rowcount == 0:
                raise NotFoundError("Execution", execution_id)
        logger.debug("Deleted execution %s", execution_id)

    def list(self, criteria: ExecutionCriteria | None = None) -> list[Execution]:
        criteria = criteria or ExecutionCriteria()
        sql_parts = ["SELECT * FROM executions WHERE 1=1"]
        params: list[Any] = []

        if criteria.statuses:
            placeholders = ",".join("?" * len(criteria.statuses))
            sql_parts.append(f"AND status IN ({placeholders})")
            params.extend(s.value for s in criteria.statuses)

        if criteria.external_ref is not None:
            sql_parts.append("AND external_ref = ?")
            params.append(criteria.external_ref)

        direction = "ASC" if criteria.ascending else "DESC"
        # order_by is validated against ORDER_FIELDS by ExecutionCriteria
        sql_parts.append(f"ORDER BY {criteria.order_by} {direction}, id {direction}")
        sql_parts.append("LIMIT ? OFFSET ?")
        params.extend([criteria.limit, criteria.offset])

        with self._wrap_errors("execution list"):
            rows = self._get_connection().execute(" ".join(sql_parts), params).fetchall()
        return [row_to_execution(row) for row in rows]

    # ========== Stage Task Operations ==========

    def create_stage_task(self, task: StageTask) -> None:
        with self._transaction("stage task insert") as conn:
            conn.execute(
                """
                INSERT INTO stage_tasks (
                    id, execution_id, stage_name, attempt_number, status,
                    input_snapshot_id, output_snapshot_id, error_message,
                    duration_ms, token_usage, cost_usd, started_at, completed_at, created_at
                ) VALUES (
                    :id, :execution_id, :stage_name, :attempt_number, :status,
                    :input_snapshot_id, :output_snapshot_id, :error_message,
                    :duration_ms, :token_usage, :cost_usd, :started_at, :completed_at, :created_at
                )
                """,
                stage_task_to_params(task),
            )

    def update_stage_task(self, task: StageTask) -> None:
        with self._transaction("stage task update") as conn:
            cursor = conn.execute(
                """
                UPDATE stage_tasks SET
                    status = :status,
                    input_snapshot_id = :input_snapshot_id,
                    output_snapshot_id = :output_snapshot_id,
                    error_message = :error_message,
                    duration_ms = :duration_ms,
                    token_usage = :token_usage,
                    cost_usd = :cost_usd,
                    started_at = :started_at,
                    completed_at = :completed_at
                WHERE id = :id
                """,
                stage_task_to_params(task),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("StageTask", task.id)

    def retrieve_stage_task(self, task_id: str) -> StageTask:
        with self._wrap_errors("stage task query"):
            row = self._get_connection().execute("SELECT * FROM stage_tasks WHERE id = ?", (task_id,)).fetchone()
        if row is None:
            raise NotFoundError("StageTask", task_id)
        return row_to_stage_task(row)

    def list_stage_tasks(self, execution_id: str) -> list[StageTask]:
        with self._wrap_errors("stage task query"):
            rows = (
                self._get_connection()
                .execute("SELECT * FROM stage_tasks WHERE execution_id = ? ORDER BY seq", (execution_id,))
                .fetchall()
            )
        return [row_to_stage_task(row) for row in rows]
