"""
Factory functions for creating storage backends.

Selects the in-memory or SQLite implementations based on the database URL:

    memory://                  every store and the job queue in process memory
    sqlite:///path/to/file.db  every store and the job queue in one SQLite file
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from rfqflow.config import MEMORY_URL, EngineConfig, get_engine_config
from rfqflow.errors import ValidationError

if TYPE_CHECKING:
    from rfqflow.events.store import EventStore
    from rfqflow.persistence.store import ExecutionStore
    from rfqflow.queue.interface import JobQueue
    from rfqflow.state.store import SnapshotStore


@dataclass
class Backend:
    """The stores and job queue one engine runs on."""

    executions: ExecutionStore
    snapshots: SnapshotStore
    events: EventStore
    queue: JobQueue

    def is_healthy(self) -> bool:
        return self.executions.is_healthy() and self.snapshots.is_healthy() and self.events.is_healthy()


def detect_backend(database_url: str) -> str:
    """
    Detect the backend type from a database URL.

    Examples:
        >>> detect_backend("memory://")
        'memory'
        >>> detect_backend("sqlite:///./rfqflow.db")
        'sqlite'

    Raises:
        ValidationError: Unsupported URL scheme
    """
    if database_url == MEMORY_URL:
        return "memory"
    if database_url.startswith("sqlite:"):
        return "sqlite"
    raise ValidationError(f"Unsupported database URL: {database_url}", field="database_url")


def create_backend(config: EngineConfig | None = None) -> Backend:
    """
    Create every store and the job queue for ``config.database_url``.

    Examples:
        # Tests and scripts
        backend = create_backend(EngineConfig(database_url="memory://"))

        # Workers sharing one database file
        backend = create_backend(EngineConfig(database_url="sqlite:///./rfqflow.db"))
    """
    config = config or get_engine_config()
    backend = detect_backend(config.database_url)

    if backend == "memory":
        from rfqflow.events.store import InMemoryEventStore
        from rfqflow.persistence.memory import InMemoryExecutionStore
        from rfqflow.queue.memory import InMemoryJobQueue
        from rfqflow.state.store import InMemorySnapshotStore

        return Backend(
            executions=InMemoryExecutionStore(),
            snapshots=InMemorySnapshotStore(),
            events=InMemoryEventStore(),
            queue=InMemoryJobQueue(
                keep_completed=config.keep_completed_jobs,
                keep_failed=config.keep_failed_jobs,
            ),
        )

    from rfqflow.events.store import SqliteEventStore
    from rfqflow.persistence.sqlite import SqliteExecutionStore
    from rfqflow.queue.sqlite import SqliteJobQueue
    from rfqflow.state.store import SqliteSnapshotStore

    url = config.database_url
    return Backend(
        executions=SqliteExecutionStore(url),
        snapshots=SqliteSnapshotStore(url),
        events=SqliteEventStore(url),
        queue=SqliteJobQueue(
            url,
            keep_completed=config.keep_completed_jobs,
            keep_failed=config.keep_failed_jobs,
            lock_duration=timedelta(seconds=config.job_lock_seconds),
        ),
    )
