"""Shared pytest fixtures for parameterized backend testing."""

from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from rfqflow.config import MEMORY_URL, EngineConfig, reset_engine_config
from rfqflow.engine import Engine
from rfqflow.events.store import EventStore
from rfqflow.executors import StageRegistry
from rfqflow.models.pipeline import Pipeline
from rfqflow.persistence.connection import ConnectionManager, SingletonMeta
from rfqflow.persistence.factory import Backend, create_backend
from rfqflow.persistence.store import ExecutionStore
from rfqflow.queue.interface import JobQueue
from rfqflow.state.store import SnapshotStore

STAGES = ["intake", "extract", "decide"]


@pytest.fixture(autouse=True)
def reset_singletons() -> Generator[None, None, None]:
    """Reset singleton ConnectionManager and default config between tests."""
    yield
    SingletonMeta.reset(ConnectionManager)
    reset_engine_config()


# =============================================================================
# Configuration
# =============================================================================


def fast_config(database_url: str = MEMORY_URL, **overrides: object) -> EngineConfig:
    """Config with millisecond backoff so retry tests run quickly."""
    settings: dict[str, object] = {
        "database_url": database_url,
        "backoff_delay_ms": 1,
        "backoff_max_delay_ms": 5,
        "backoff_jitter": 0.0,
        "poll_frequency_ms": 5,
        "stage_timeout_seconds": 5.0,
        "stage_concurrency": 2,
    }
    settings.update(overrides)
    return EngineConfig(**settings)  # type: ignore[arg-type]


@pytest.fixture
def pipeline() -> Pipeline:
    return Pipeline(STAGES)


@pytest.fixture
def registry() -> StageRegistry:
    return StageRegistry()


# =============================================================================
# Parameterized Backend Fixtures
# =============================================================================


@pytest.fixture(params=["memory", "sqlite"])
def backend_name(request: pytest.FixtureRequest) -> str:
    """Parameterized backend - runs tests on in-memory and SQLite stores."""
    return str(request.param)


@pytest.fixture
def database_url(backend_name: str, tmp_path: Path) -> str:
    # File databases: executors run on bulkhead threads, and ``:memory:``
    # databases are private to one thread.
    if backend_name == "memory":
        return MEMORY_URL
    return f"sqlite:///{tmp_path}/rfqflow.db"


@pytest.fixture
def config(database_url: str) -> EngineConfig:
    return fast_config(database_url)


@pytest.fixture
def backend(config: EngineConfig) -> Backend:
    return create_backend(config)


@pytest.fixture
def execution_store(backend: Backend) -> ExecutionStore:
    return backend.executions


@pytest.fixture
def snapshot_store(backend: Backend) -> SnapshotStore:
    return backend.snapshots


@pytest.fixture
def event_store(backend: Backend) -> EventStore:
    return backend.events


@pytest.fixture
def job_queue(backend: Backend) -> JobQueue:
    return backend.queue


@pytest.fixture
def engine(
    backend: Backend,
    registry: StageRegistry,
    pipeline: Pipeline,
    config: EngineConfig,
) -> Generator[Engine, None, None]:
    """Engine over the parameterized backend; stages are registered by each test."""
    eng = Engine(backend, registry, pipeline=pipeline, config=config)
    yield eng
    eng.close()


@pytest.fixture
def make_config(database_url: str) -> Callable[..., EngineConfig]:
    """Build a fast config on the current backend with overrides."""

    def _make(**overrides: object) -> EngineConfig:
        return fast_config(database_url, **overrides)

    return _make
