"""Persistence and dispatch infrastructure errors.

Raised from store and queue boundaries. When one escapes a stage job the
dispatcher retries the job with backoff instead of failing the execution.
"""

from __future__ import annotations

from rfqflow.errors.base import RfqflowError


class StorageError(RfqflowError):
    """Persistence infrastructure failure."""

    code: int = 503


class ConcurrencyError(StorageError):
    """Compare-and-swap update lost to a concurrent writer.

    Raised when the stored version no longer matches the version the caller
    read, meaning another worker (or a cancel/resume call) changed the row.
    """

    code: int = 409

    def __init__(
        self,
        message: str,
        *,
        cause: Exception | None = None,
        execution_id: str | None = None,
        expected_version: int | None = None,
    ) -> None:
        super().__init__(message, cause=cause)
        self.execution_id = execution_id
        self.expected_version = expected_version


class QueueError(StorageError):
    """Dispatch infrastructure failure (enqueue, poll, ack)."""

    code: int = 502
