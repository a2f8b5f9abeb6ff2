"""
In-memory execution store.

Useful for testing and development. Data is not persisted.
"""

from __future__ import annotations

import threading

from rfqflow.errors import ConcurrencyError, NotFoundError, StorageError
from rfqflow.models.common import utc_now
from rfqflow.models.execution import Execution
from rfqflow.models.stage_task import StageTask
from rfqflow.persistence.store import ExecutionCriteria, ExecutionStore


class InMemoryExecutionStore(ExecutionStore):
    """
    Thread-safe in-memory execution store.

    Stored objects are copied on write and on read, so callers never hold
    a reference to stored state.
    """

    def __init__(self) -> None:
        self._executions: dict[str, Execution] = {}
        self._tasks: dict[str, StageTask] = {}
        self._lock = threading.Lock()

    def create(self, execution: Execution) -> None:
        with self._lock:
            if execution.id in self._executions:
                raise StorageError(f"Execution {execution.id} already exists")
            self._executions[execution.id] = execution.copy()

    def retrieve(self, execution_id: str) -> Execution:
        with self._lock:
            stored = self._executions.get(execution_id)
            if stored is None:
                raise NotFoundError("Execution", execution_id)
            return stored.copy()

    def update(self, execution: Execution) -> None:
        with self._lock:
            stored = self._executions.get(execution.id)
            if stored is None:
                raise NotFoundError("Execution", execution.id)
            if stored.version != execution.version:
                raise ConcurrencyError(
                    f"Optimistic lock failed for execution {execution.id} "
                    f"(version {execution.version}, stored {stored.version})",
                    execution_id=execution.id,
                    expected_version=execution.version,
                )
            execution.version += 1
            execution.updated_at = utc_now()
            self._executions[execution.id] = execution.copy()

    def delete(self, execution_id: str) -> None:
        with self._lock:
            if self._executions.pop(execution_id, None) is None:
                raise NotFoundError("Execution", execution_id)
            self._tasks = {tid: t for tid, t in self._tasks.items() if t.execution_id != execution_id}

    def list(self, criteria: ExecutionCriteria | None = None) -> list[Execution]:
        criteria = criteria or ExecutionCriteria()
        with self._lock:
            executions = [e.copy() for e in self._executions.values()]

        if criteria.statuses:
            executions = [e for e in executions if e.status in criteria.statuses]
        if criteria.external_ref is not None:
            executions = [e for e in executions if e.external_ref == criteria.external_ref]

        executions.sort(
            key=lambda e: (getattr(e, criteria.order_by), e.id),
            reverse=not criteria.ascending,
        )
        return executions[criteria.offset : criteria.offset + criteria.limit]

    def create_stage_task(self, task: StageTask) -> None:
        with self._lock:
            if task.execution_id not in self._executions:
                raise NotFoundError("Execution", task.execution_id)
            self._tasks[task.id] = _copy_task(task)

    def update_stage_task(self, task: StageTask) -> None:
        with self._lock:
            if task.id not in self._tasks:
                raise NotFoundError("StageTask", task.id)
            self._tasks[task.id] = _copy_task(task)

    def retrieve_stage_task(self, task_id: str) -> StageTask:
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                raise NotFoundError("StageTask", task_id)
            return _copy_task(task)

    def list_stage_tasks(self, execution_id: str) -> list[StageTask]:
        # dicts keep insertion order, which is creation order
        with self._lock:
            return [_copy_task(t) for t in self._tasks.values() if t.execution_id == execution_id]

    def is_healthy(self) -> bool:
        return True


def _copy_task(task: StageTask) -> StageTask:
    return StageTask.from_dict(task.to_dict())
