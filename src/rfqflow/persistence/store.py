"""
ExecutionStore interface.

Persistence for execution rows and their stage task rows. Execution
updates are compare-and-swap: a row is only written when the stored
version still equals the version the caller read.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from rfqflow.errors import ValidationError
from rfqflow.models.execution import Execution
from rfqflow.models.stage_task import StageTask
from rfqflow.models.status import ExecutionStatus

ORDER_FIELDS = ("created_at", "updated_at")


@dataclass
class ExecutionCriteria:
    """Criteria for listing executions."""

    statuses: set[ExecutionStatus] | None = None
    external_ref: str | None = None
    limit: int = 20
    offset: int = 0
    order_by: str = "created_at"
    ascending: bool = False

    def __post_init__(self) -> None:
        if self.order_by not in ORDER_FIELDS:
            raise ValidationError(f"order_by must be one of {ORDER_FIELDS}", field="order_by")
        if self.limit < 1 or self.offset < 0:
            raise ValidationError("limit must be positive and offset non-negative", field="limit")


class ExecutionStore(ABC):
    """Abstract interface for execution persistence."""

    # ========== Execution Operations ==========

    @abstractmethod
    def create(self, execution: Execution) -> None:
        """
        Insert a new execution row.

        Raises:
            StorageError: Persistence failure (including a duplicate id)
        """
        pass

    @abstractmethod
    def retrieve(self, execution_id: str) -> Execution:
        """
        Retrieve an execution by ID.

        Returns:
            A detached copy; mutating it does not change stored state

        Raises:
            NotFoundError: If not found
        """
        pass

    @abstractmethod
    def update(self, execution: Execution) -> None:
        """
        Compare-and-swap update of an execution row.

        The row is written only if its stored version equals
        ``execution.version``; on success ``execution.version`` is incremented.

        Raises:
            ConcurrencyError: The row changed since it was read
            NotFoundError: The row no longer exists
        """
        pass

    @abstractmethod
    def delete(self, execution_id: str) -> None:
        """
        Delete an execution and, by cascade, its stage tasks, snapshots and events.

        Raises:
            NotFoundError: If not found
        """
        pass

    @abstractmethod
    def list(self, criteria: ExecutionCriteria | None = None) -> list[Execution]:
        """List executions matching the criteria, newest first by default."""
        pass

    # ========== Stage Task Operations ==========

    @abstractmethod
    def create_stage_task(self, task: StageTask) -> None:
        pass

    @abstractmethod
    def update_stage_task(self, task: StageTask) -> None:
        """
        Overwrite a stage task's mutable fields (status, snapshots, metrics).

        Raises:
            NotFoundError: If the task does not exist
        """
        pass

    @abstractmethod
    def retrieve_stage_task(self, task_id: str) -> StageTask:
        """
        Raises:
            NotFoundError: If not found
        """
        pass

    @abstractmethod
    def list_stage_tasks(self, execution_id: str) -> list[StageTask]:
        """All stage tasks of an execution in creation order."""
        pass

    @abstractmethod
    def is_healthy(self) -> bool:
        pass
