"""Stage executor errors.

These never reach callers of the public surface: the orchestrator turns
them into a FAILED stage task and a FAIL next action. StageCapacityError is
the exception: it leaves the job handler so the dispatcher retries the job.
"""

from __future__ import annotations

from rfqflow.errors.base import RfqflowError


class StageExecutionError(RfqflowError):
    """Opaque failure inside a stage executor."""

    code: int = 500

    def __init__(
        self,
        message: str,
        *,
        code: int | None = None,
        cause: Exception | None = None,
        stage: str | None = None,
        execution_id: str | None = None,
    ) -> None:
        super().__init__(message, code=code, cause=cause)
        self.stage = stage
        self.execution_id = execution_id


class StageTimeoutError(StageExecutionError):
    """The executor exceeded the configured wall-clock timeout."""

    code: int = 504

    def __init__(
        self,
        message: str,
        *,
        cause: Exception | None = None,
        stage: str | None = None,
        execution_id: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        super().__init__(message, cause=cause, stage=stage, execution_id=execution_id)
        self.timeout_seconds = timeout_seconds


class StageCapacityError(StageExecutionError):
    """The stage's bulkhead is saturated; the job should be retried later."""

    code: int = 429
