"""
Per-stage queue consumers.

A StageWorker polls one stage's queue and runs a handler for each job on a
thread pool. The handler's outcome decides the job's fate:

- returns normally: job is acked
- raises with attempts left: job is retried after exponential backoff
- raises on the last attempt: job is failed and ``on_exhausted`` is called

A job whose lease expired on its last attempt (its worker died) is reaped
from the queue and handed to ``on_exhausted`` the same way.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

from resilient_circuit import ExponentialDelay

from rfqflow.errors import QueueError, truncate_error
from rfqflow.queue.interface import JobQueue
from rfqflow.queue.messages import StageJob

logger = logging.getLogger(__name__)

JobHandler = Callable[[StageJob], None]
ExhaustedHandler = Callable[[StageJob, BaseException], None]


class StageWorker:
    """
    Processes jobs of one stage using a bounded thread pool.

    Example:
        worker = StageWorker(queue, "parse", handle_job, concurrency=5)
        worker.start()
        ...
        worker.stop()
    """

    def __init__(
        self,
        queue: JobQueue,
        stage: str,
        handler: JobHandler,
        concurrency: int = 5,
        poll_frequency_ms: int = 50,
        backoff: ExponentialDelay | None = None,
        on_exhausted: ExhaustedHandler | None = None,
    ) -> None:
        self.queue = queue
        self.stage = stage
        self.handler = handler
        self.concurrency = max(concurrency, 1)
        self.poll_frequency_ms = poll_frequency_ms
        self.backoff = backoff or ExponentialDelay(
            min_delay=timedelta(seconds=1),
            max_delay=timedelta(seconds=60),
            factor=2,
            jitter=0.1,
        )
        self.on_exhausted = on_exhausted
        self._running = False
        self._executor: ThreadPoolExecutor | None = None
        self._poll_thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._active_count = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def active_count(self) -> int:
        with self._lock:
            return self._active_count

    def start(self) -> None:
        """Start polling in a background thread."""
        if self._running:
            return

        self._running = True
        self._executor = ThreadPoolExecutor(
            max_workers=self.concurrency,
            thread_name_prefix=f"rfqflow-{self.stage}",
        )
        self._poll_thread = threading.Thread(
            target=self._poll_loop,
            name=f"rfqflow-poll-{self.stage}",
            daemon=True,
        )
        self._poll_thread.start()
        logger.info("Stage worker started (stage=%s, concurrency=%d)", self.stage, self.concurrency)

    def stop(self, wait: bool = True, timeout: float | None = None) -> None:
        """
        Stop polling.

        Args:
            wait: Whether to wait for in-flight jobs to finish
            timeout: Max seconds to wait for in-flight jobs
        """
        if not self._running:
            return
        self._running = False

        if self._poll_thread:
            self._poll_thread.join(timeout=5.0)
            self._poll_thread = None

        if wait and timeout is not None:
            deadline = time.monotonic() + timeout
            while self.active_count > 0 and time.monotonic() < deadline:
                time.sleep(0.01)

        if self._executor:
            self._executor.shutdown(wait=wait and timeout is None)
            self._executor = None

        logger.info("Stage worker stopped (stage=%s)", self.stage)

    def process_one(self) -> bool:
        """
        Claim and run one job in the calling thread.

        Returns:
            True if a job was processed
        """
        self.reap_expired()
        job = self.queue.poll_one(self.stage)
        if job is None:
            return False
        with self._lock:
            self._active_count += 1
        self._run_job(job)
        return True

    def reap_expired(self) -> int:
        """
        Fail jobs abandoned on their last attempt and report them as exhausted.

        Returns:
            Number of jobs reaped
        """
        reaped = self.queue.reap_expired(self.stage)
        for job in reaped:
            logger.error("Job %s lease expired after %d attempts", job.job_id, job.attempt)
            if self.on_exhausted is None:
                continue
            try:
                self.on_exhausted(job, QueueError("lease expired"))
            except Exception as e:
                logger.error("Could not settle expired job %s: %s", job.job_id, e, exc_info=True)
        return len(reaped)

    def _poll_loop(self) -> None:
        poll_interval = self.poll_frequency_ms / 1000.0

        while self._running:
            try:
                with self._lock:
                    at_capacity = self._active_count >= self.concurrency
                if at_capacity:
                    time.sleep(poll_interval)
                    continue

                self.reap_expired()
                job = self.queue.poll_one(self.stage)
                if job:
                    self._submit(job)
                else:
                    time.sleep(poll_interval)

            except Exception as e:
                logger.error("Error in poll loop for stage %s: %s", self.stage, e, exc_info=True)
                time.sleep(poll_interval)

        self.queue.close()

    def _submit(self, job: StageJob) -> None:
        if self._executor is None:
            return
        with self._lock:
            self._active_count += 1
        self._executor.submit(self._run_job, job)

    def _run_job(self, job: StageJob) -> None:
        try:
            self._execute(job)
        except Exception as e:
            # The job lease expires and the job becomes claimable again.
            logger.error("Could not settle job %s: %s", job.job_id, e, exc_info=True)
        finally:
            with self._lock:
                self._active_count -= 1

    def _execute(self, job: StageJob) -> None:
        try:
            self.handler(job)
        except Exception as e:
            error = truncate_error(e)
            if job.attempt < job.max_attempts:
                delay = timedelta(seconds=self.backoff.for_attempt(job.attempt))
                logger.warning(
                    "Job %s failed on attempt %d/%d, retrying in %.2fs: %s",
                    job.job_id,
                    job.attempt,
                    job.max_attempts,
                    delay.total_seconds(),
                    error,
                )
                self.queue.retry(job, delay, error)
                return

            logger.error("Job %s failed after %d attempts: %s", job.job_id, job.attempt, error)
            self.queue.fail(job, error)
            if self.on_exhausted is not None:
                self.on_exhausted(job, e)
            return

        self.queue.ack(job)
