"""
In-memory job queue.

Useful for testing and single-process execution.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import timedelta

from rfqflow.models.common import utc_now
from rfqflow.queue.interface import JobQueue
from rfqflow.queue.messages import FinishedJob, JobCounts, StageJob

logger = logging.getLogger(__name__)


@dataclass(order=True)
class _QueuedJob:
    deliver_at: float
    order: int
    job: StageJob = field(compare=False)


class InMemoryJobQueue(JobQueue):
    """
    In-memory queue using one delivery-time heap per stage.

    Completed and failed records live in bounded deques, so the oldest
    records fall off once the retention limit is reached.
    """

    def __init__(self, keep_completed: int = 100, keep_failed: int = 1000) -> None:
        super().__init__(keep_completed, keep_failed)
        self._lock = threading.Lock()
        self._counter = itertools.count(1)
        self._queues: dict[str, list[_QueuedJob]] = defaultdict(list)
        self._active: dict[str, StageJob] = {}
        self._completed: dict[str, deque[FinishedJob]] = defaultdict(lambda: deque(maxlen=self.keep_completed))
        self._failed: dict[str, deque[FinishedJob]] = defaultdict(lambda: deque(maxlen=self.keep_failed))

    def push(self, job: StageJob, delay: timedelta | None = None) -> None:
        with self._lock:
            order = next(self._counter)
            if job.queue_id is None:
                job.queue_id = f"job-{order}"
            deliver_at = time.time() + (delay.total_seconds() if delay else 0.0)
            heapq.heappush(self._queues[job.stage], _QueuedJob(deliver_at, order, job))

        logger.debug("Pushed job %s (stage=%s, delay=%s)", job.job_id, job.stage, delay)

    def poll_one(self, stage: str) -> StageJob | None:
        with self._lock:
            queue = self._queues.get(stage)
            if not queue or queue[0].deliver_at > time.time():
                return None

            job = heapq.heappop(queue).job
            job.attempt += 1
            self._active[job.queue_id or job.job_id] = job

        logger.debug("Polled job %s (attempt=%d)", job.job_id, job.attempt)
        return job

    def ack(self, job: StageJob) -> None:
        with self._lock:
            self._active.pop(job.queue_id or job.job_id, None)
            self._completed[job.stage].append(FinishedJob(job=job, finished_at=utc_now()))

    def retry(self, job: StageJob, delay: timedelta, error: str) -> None:
        with self._lock:
            self._active.pop(job.queue_id or job.job_id, None)
            job.last_error = error
            deliver_at = time.time() + delay.total_seconds()
            heapq.heappush(self._queues[job.stage], _QueuedJob(deliver_at, next(self._counter), job))

        logger.debug("Retrying job %s in %s", job.job_id, delay)

    def fail(self, job: StageJob, error: str) -> None:
        with self._lock:
            self._active.pop(job.queue_id or job.job_id, None)
            job.last_error = error
            self._failed[job.stage].append(FinishedJob(job=job, finished_at=utc_now(), error=error))

    def job_counts(self, stage: str) -> JobCounts:
        with self._lock:
            now = time.time()
            queued = self._queues.get(stage, [])
            return JobCounts(
                waiting=sum(1 for q in queued if q.deliver_at <= now),
                delayed=sum(1 for q in queued if q.deliver_at > now),
                active=sum(1 for j in self._active.values() if j.stage == stage),
                completed=len(self._completed.get(stage, ())),
                failed=len(self._failed.get(stage, ())),
            )

    def failed_jobs(self, stage: str, limit: int = 50) -> list[FinishedJob]:
        with self._lock:
            records = list(self._failed.get(stage, ()))
        return list(reversed(records))[:limit]

    def clear(self, stage: str | None = None) -> None:
        with self._lock:
            if stage is None:
                self._queues.clear()
                self._active.clear()
                self._completed.clear()
                self._failed.clear()
                return
            self._queues.pop(stage, None)
            self._completed.pop(stage, None)
            self._failed.pop(stage, None)
            self._active = {k: j for k, j in self._active.items() if j.stage != stage}

    def is_healthy(self) -> bool:
        return True
