"""
Job queue interface.

One logical queue per pipeline stage. Jobs move through:

    waiting/delayed --poll_one--> active --ack--> completed
                                         --retry--> delayed
                                         --fail--> failed
                                         --lease expires on last attempt--> failed (reap_expired)

Completed and failed records are retained up to a per-stage bound.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import timedelta

from rfqflow.queue.messages import FinishedJob, JobCounts, StageJob


class JobQueue(ABC):
    """Abstract per-stage job queue."""

    def __init__(self, keep_completed: int = 100, keep_failed: int = 1000) -> None:
        self.keep_completed = keep_completed
        self.keep_failed = keep_failed

    @abstractmethod
    def push(self, job: StageJob, delay: timedelta | None = None) -> None:
        """
        Push a job onto its stage's queue.

        Args:
            job: The job to push
            delay: Optional delay before the job becomes visible

        Raises:
            QueueError: Backend failure
        """
        pass

    @abstractmethod
    def poll_one(self, stage: str) -> StageJob | None:
        """
        Claim the next ready job of a stage.

        The returned job is active and its ``attempt`` has been incremented.
        It must be finished with ack(), retry() or fail().

        Returns:
            The claimed job or None
        """
        pass

    @abstractmethod
    def ack(self, job: StageJob) -> None:
        """Mark an active job completed."""
        pass

    @abstractmethod
    def retry(self, job: StageJob, delay: timedelta, error: str) -> None:
        """Return an active job to the queue after ``delay``."""
        pass

    @abstractmethod
    def fail(self, job: StageJob, error: str) -> None:
        """Mark an active job permanently failed."""
        pass

    @abstractmethod
    def job_counts(self, stage: str) -> JobCounts:
        pass

    @abstractmethod
    def failed_jobs(self, stage: str, limit: int = 50) -> list[FinishedJob]:
        """Most recently failed jobs of a stage, newest first."""
        pass

    @abstractmethod
    def clear(self, stage: str | None = None) -> None:
        """Remove all jobs of a stage, or of every stage."""
        pass

    @abstractmethod
    def is_healthy(self) -> bool:
        pass

    def reap_expired(self, stage: str) -> list[StageJob]:
        """
        Fail and return active jobs whose lease ran out on their last attempt.

        Backends without leases never have any.
        """
        return []

    def close(self) -> None:
        """Release backend resources held by the calling thread."""
        return None
