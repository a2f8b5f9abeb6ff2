"""
Status and type enums for executions, stage tasks and snapshots.
"""

from enum import Enum


class ExecutionStatus(Enum):
    """Lifecycle status of an execution.

    PENDING and PROCESSING are runnable: a stage job may act on them.
    AWAITING_HUMAN is parked until resume(). The remaining three are terminal.
    """

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    AWAITING_HUMAN = "AWAITING_HUMAN"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_runnable(self) -> bool:
        return self in RUNNABLE_STATUSES

    def __str__(self) -> str:
        return self.value


class StageTaskStatus(Enum):
    """Status of one attempt of one stage."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    AWAITING_HUMAN = "AWAITING_HUMAN"
    SKIPPED = "SKIPPED"

    def __str__(self) -> str:
        return self.value


class SnapshotType(Enum):
    """What produced a snapshot."""

    # State handed to a stage before it ran
    INPUT = "INPUT"
    # Merged state after a stage ran
    OUTPUT = "OUTPUT"
    # State after a human supplied updated fields on resume
    HUMAN_UPDATE = "HUMAN_UPDATE"

    def __str__(self) -> str:
        return self.value


TERMINAL_STATUSES: frozenset[ExecutionStatus] = frozenset(
    {
        ExecutionStatus.COMPLETED,
        ExecutionStatus.FAILED,
        ExecutionStatus.CANCELLED,
    }
)

RUNNABLE_STATUSES: frozenset[ExecutionStatus] = frozenset(
    {
        ExecutionStatus.PENDING,
        ExecutionStatus.PROCESSING,
    }
)

# cancel() is rejected from these
NON_CANCELLABLE_STATUSES: frozenset[ExecutionStatus] = frozenset(
    {
        ExecutionStatus.COMPLETED,
        ExecutionStatus.CANCELLED,
    }
)
