"""
Task dispatcher.

Routes stage jobs onto one logical queue per pipeline stage and runs the
consumers registered for each stage. Two ways to drive consumers:

- ``consume()`` starts background StageWorkers (poll thread + thread pool)
- ``run_until_idle()`` processes jobs synchronously in the calling thread,
  for tests and scripts
"""

from __future__ import annotations

import time
from datetime import timedelta

from rfqflow.config import EngineConfig, get_engine_config
from rfqflow.logging import get_logger
from rfqflow.models.pipeline import Pipeline
from rfqflow.queue.interface import JobQueue
from rfqflow.queue.messages import JobCounts, StageJob
from rfqflow.queue.processor import ExhaustedHandler, JobHandler, StageWorker

logger = get_logger(__name__)


class TaskDispatcher:
    """Per-stage job dispatch over a JobQueue backend."""

    def __init__(
        self,
        queue: JobQueue,
        pipeline: Pipeline,
        config: EngineConfig | None = None,
    ) -> None:
        self.queue = queue
        self.pipeline = pipeline
        self.config = config or get_engine_config()
        self._workers: dict[str, StageWorker] = {}

    @property
    def workers(self) -> dict[str, StageWorker]:
        return dict(self._workers)

    def enqueue(self, stage: str, execution_id: str, delay: timedelta | None = None) -> str:
        """
        Enqueue a job for ``stage`` of ``execution_id``.

        Returns:
            The job id

        Raises:
            ValidationError: ``stage`` is not part of the pipeline
            QueueError: Backend failure
        """
        self.pipeline.validate_stage(stage)
        job = StageJob(
            execution_id=execution_id,
            stage=stage,
            max_attempts=self.config.job_attempts,
        )
        self.queue.push(job, delay=delay)
        logger.debug("job_enqueued", job_id=job.job_id, stage=stage, execution_id=execution_id)
        return job.job_id

    def register(
        self,
        stage: str,
        handler: JobHandler,
        concurrency: int | None = None,
        on_exhausted: ExhaustedHandler | None = None,
    ) -> StageWorker:
        """Register the consumer of a stage without starting it."""
        self.pipeline.validate_stage(stage)
        existing = self._workers.get(stage)
        if existing is not None and existing.running:
            existing.stop(wait=True)

        worker = StageWorker(
            self.queue,
            stage,
            handler,
            concurrency=concurrency or self.config.concurrency_for(stage),
            poll_frequency_ms=self.config.poll_frequency_ms,
            backoff=self.config.job_backoff(),
            on_exhausted=on_exhausted,
        )
        self._workers[stage] = worker
        return worker

    def consume(
        self,
        stage: str,
        handler: JobHandler,
        concurrency: int | None = None,
        on_exhausted: ExhaustedHandler | None = None,
    ) -> StageWorker:
        """Register and start background consumers for a stage."""
        worker = self.register(stage, handler, concurrency=concurrency, on_exhausted=on_exhausted)
        worker.start()
        return worker

    def job_counts(self) -> dict[str, JobCounts]:
        return {stage: self.queue.job_counts(stage) for stage in self.pipeline}

    def is_healthy(self) -> bool:
        return self.queue.is_healthy()

    def run_until_idle(self, max_jobs: int | None = None, timeout: float = 30.0) -> int:
        """
        Process jobs synchronously until every stage queue is drained.

        Delayed jobs (retries waiting out their backoff) are waited for
        until ``timeout`` elapses.

        Args:
            max_jobs: Stop after processing this many jobs
            timeout: Max seconds to keep waiting for delayed jobs

        Returns:
            Number of jobs processed
        """
        processed = 0
        deadline = time.monotonic() + timeout
        poll_interval = self.config.poll_frequency_ms / 1000.0

        while max_jobs is None or processed < max_jobs:
            progressed = False
            for stage in self.pipeline:
                worker = self._workers.get(stage)
                if worker is None:
                    continue
                while (max_jobs is None or processed < max_jobs) and worker.process_one():
                    processed += 1
                    progressed = True

            if progressed:
                continue

            delayed = sum(self.queue.job_counts(stage).delayed for stage in self._workers)
            if delayed == 0 or time.monotonic() >= deadline:
                break
            time.sleep(poll_interval)

        logger.debug("dispatcher_idle", processed=processed)
        return processed

    def close(self, drain: bool = True, timeout: float | None = None) -> None:
        """Stop every consumer, waiting for in-flight jobs when ``drain``."""
        for worker in self._workers.values():
            worker.stop(wait=drain, timeout=timeout)
        self.queue.close()
        logger.info("dispatcher_closed", drain=drain)
