"""
SQLite-backed job queue.

Uses optimistic locking for concurrent job claims since SQLite does not
support FOR UPDATE SKIP LOCKED:

1. SELECT a ready candidate with its current version
2. UPDATE ... WHERE id = :id AND version = :version
3. rowcount == 0 means another worker claimed it first

Claimed jobs carry a ``locked_until`` lease. A job whose worker died is
claimable again once the lease expires. One with no attempts left is failed
by reap_expired(), which hands it back so the execution can be failed too.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import timedelta
from typing import Any

from rfqflow.errors import QueueError
from rfqflow.models.common import format_datetime, parse_datetime, utc_now
from rfqflow.persistence.sqlite.base import SqliteStoreBase
from rfqflow.queue.interface import JobQueue
from rfqflow.queue.messages import FinishedJob, JobCounts, StageJob

logger = logging.getLogger(__name__)

WAITING = "waiting"
ACTIVE = "active"
COMPLETED = "completed"
FAILED = "failed"


def _row_to_job(row: sqlite3.Row) -> StageJob:
    return StageJob(
        job_id=row["job_id"],
        execution_id=row["execution_id"],
        stage=row["stage"],
        attempt=row["attempts"],
        max_attempts=row["max_attempts"],
        enqueued_at=parse_datetime(row["enqueued_at"]) or utc_now(),
        last_error=row["last_error"],
        queue_id=str(row["id"]),
    )


class SqliteJobQueue(SqliteStoreBase, JobQueue):
    """
    SQLite implementation of JobQueue on the ``stage_jobs`` table.

    Safe to share between threads and processes using the same database
    file; each thread gets its own connection.
    """

    error_class = QueueError

    def __init__(
        self,
        connection_string: str,
        keep_completed: int = 100,
        keep_failed: int = 1000,
        lock_duration: timedelta = timedelta(minutes=5),
        create_schema: bool = True,
    ) -> None:
        JobQueue.__init__(self, keep_completed, keep_failed)
        SqliteStoreBase.__init__(self, connection_string, create_schema=create_schema)
        self.lock_duration = lock_duration

    def push(self, job: StageJob, delay: timedelta | None = None) -> None:
        deliver_at = utc_now()
        if delay:
            deliver_at += delay

        with self._transaction("job push") as conn:
            cursor = conn.execute(
                """
                INSERT INTO stage_jobs (
                    job_id, stage, execution_id, state, deliver_at,
                    attempts, max_attempts, enqueued_at
                ) VALUES (
                    :job_id, :stage, :execution_id, 'waiting', :deliver_at,
                    :attempts, :max_attempts, :enqueued_at
                )
                """,
                {
                    "job_id": job.job_id,
                    "stage": job.stage,
                    "execution_id": job.execution_id,
                    "deliver_at": format_datetime(deliver_at),
                    "attempts": job.attempt,
                    "max_attempts": job.max_attempts,
                    "enqueued_at": format_datetime(job.enqueued_at),
                },
            )
            job.queue_id = str(cursor.lastrowid)

        logger.debug("Pushed job %s (id=%s, deliver_at=%s)", job.job_id, job.queue_id, deliver_at)

    def poll_one(self, stage: str) -> StageJob | None:
        now = utc_now()
        now_str = format_datetime(now)

        with self._transaction("job claim") as conn:
            row = conn.execute(
                """
                SELECT * FROM stage_jobs
                WHERE stage = :stage
                AND (
                    (state = 'waiting' AND deliver_at <= :now)
                    OR (state = 'active' AND locked_until < :now AND attempts < max_attempts)
                )
                ORDER BY deliver_at, id
                LIMIT 1
                """,
                {"stage": stage, "now": now_str},
            ).fetchone()

            if row is None:
                return None

            cursor = conn.execute(
                """
                UPDATE stage_jobs
                SET state = 'active',
                    locked_until = :locked_until,
                    attempts = attempts + 1,
                    version = version + 1
                WHERE id = :id AND version = :version
                """,
                {
                    "id": row["id"],
                    "locked_until": format_datetime(now + self.lock_duration),
                    "version": row["version"],
                },
            )

        if cursor.rowcount == 0:
            logger.debug("Lost race for job %s, will retry", row["id"])
            return None

        job = _row_to_job(row)
        job.attempt = row["attempts"] + 1
        logger.debug("Polled job %s (id=%s, attempt=%d)", job.job_id, job.queue_id, job.attempt)
        return job

    def reap_expired(self, stage: str) -> list[StageJob]:
        """
        Fail active jobs whose lease expired on their last allowed attempt.

        Each job is returned once, to the single caller that failed it, so
        the caller can settle the execution the job was advancing.
        """
        now = format_datetime(utc_now())
        reaped: list[StageJob] = []

        with self._transaction("job reap") as conn:
            rows = conn.execute(
                """
                SELECT * FROM stage_jobs
                WHERE stage = :stage AND state = 'active'
                AND locked_until < :now AND attempts >= max_attempts
                ORDER BY id
                """,
                {"stage": stage, "now": now},
            ).fetchall()

            for row in rows:
                cursor = conn.execute(
                    """
                    UPDATE stage_jobs
                    SET state = 'failed',
                        finished_at = :now,
                        locked_until = NULL,
                        last_error = 'lease expired',
                        version = version + 1
                    WHERE id = :id AND version = :version
                    """,
                    {"id": row["id"], "now": now, "version": row["version"]},
                )
                if cursor.rowcount:
                    job = _row_to_job(row)
                    job.last_error = "lease expired"
                    reaped.append(job)

            if reaped:
                self._prune(conn, stage, FAILED, self.keep_failed)

        if reaped:
            logger.warning("Failed %d expired job(s) on stage %s", len(reaped), stage)
        return reaped

    def ack(self, job: StageJob) -> None:
        self._finish(job, COMPLETED, None, self.keep_completed)
        logger.debug("Acked job %s (id=%s)", job.job_id, job.queue_id)

    def retry(self, job: StageJob, delay: timedelta, error: str) -> None:
        job.last_error = error
        with self._transaction("job retry") as conn:
            conn.execute(
                """
                UPDATE stage_jobs
                SET state = 'waiting',
                    deliver_at = :deliver_at,
                    locked_until = NULL,
                    last_error = :error,
                    version = version + 1
                WHERE id = :id
                """,
                {
                    "id": self._row_id(job),
                    "deliver_at": format_datetime(utc_now() + delay),
                    "error": error,
                },
            )
        logger.debug("Retrying job %s in %s", job.job_id, delay)

    def fail(self, job: StageJob, error: str) -> None:
        job.last_error = error
        self._finish(job, FAILED, error, self.keep_failed)

    def _finish(self, job: StageJob, state: str, error: str | None, keep: int) -> None:
        with self._transaction(f"job {state}") as conn:
            conn.execute(
                """
                UPDATE stage_jobs
                SET state = :state,
                    finished_at = :now,
                    locked_until = NULL,
                    last_error = COALESCE(:error, last_error),
                    version = version + 1
                WHERE id = :id
                """,
                {"id": self._row_id(job), "state": state, "now": format_datetime(utc_now()), "error": error},
            )
            self._prune(conn, job.stage, state, keep)

    def _prune(self, conn: sqlite3.Connection, stage: str, state: str, keep: int) -> None:
        conn.execute(
            """
            DELETE FROM stage_jobs
            WHERE stage = :stage AND state = :state
            AND id NOT IN (
                SELECT id FROM stage_jobs
                WHERE stage = :stage AND state = :state
                ORDER BY finished_at DESC, id DESC
                LIMIT :keep
            )
            """,
            {"stage": stage, "state": state, "keep": keep},
        )

    def _row_id(self, job: StageJob) -> int:
        if job.queue_id is None:
            raise QueueError(f"Job {job.job_id} was not claimed from this queue")
        try:
            return int(job.queue_id)
        except ValueError as e:
            raise QueueError(f"Invalid queue id for job {job.job_id}: {job.queue_id}", cause=e) from e

    def job_counts(self, stage: str) -> JobCounts:
        with self._wrap_errors("job counts"):
            rows = (
                self._get_connection()
                .execute(
                    """
                    SELECT
                        CASE
                            WHEN state = 'waiting' AND deliver_at > :now THEN 'delayed'
                            ELSE state
                        END AS bucket,
                        COUNT(*) AS n
                    FROM stage_jobs
                    WHERE stage = :stage
                    GROUP BY bucket
                    """,
                    {"stage": stage, "now": format_datetime(utc_now())},
                )
                .fetchall()
            )
        counts: dict[str, Any] = {row["bucket"]: row["n"] for row in rows}
        return JobCounts(
            waiting=counts.get(WAITING, 0),
            active=counts.get(ACTIVE, 0),
            completed=counts.get(COMPLETED, 0),
            failed=counts.get(FAILED, 0),
            delayed=counts.get("delayed", 0),
        )

    def failed_jobs(self, stage: str, limit: int = 50) -> list[FinishedJob]:
        with self._wrap_errors("failed jobs query"):
            rows = (
                self._get_connection()
                .execute(
                    """
                    SELECT * FROM stage_jobs
                    WHERE stage = ? AND state = 'failed'
                    ORDER BY finished_at DESC, id DESC
                    LIMIT ?
                    """,
                    (stage, limit),
                )
                .fetchall()
            )
        return [
            FinishedJob(
                job=_row_to_job(row),
                finished_at=parse_datetime(row["finished_at"]) or utc_now(),
                error=row["last_error"],
            )
            for row in rows
        ]

    def clear(self, stage: str | None = None) -> None:
        with self._transaction("job clear") as conn:
            if stage is None:
                conn.execute("DELETE FROM stage_jobs")
            else:
                conn.execute("DELETE FROM stage_jobs WHERE stage = ?", (stage,))
