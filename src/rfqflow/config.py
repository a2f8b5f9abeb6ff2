"""
Engine configuration for rfqflow.

All settings have defaults that match the quote-request engine's queue
settings (3 attempts, 1s exponential backoff, 5 concurrent consumers per
stage, 100/1000 retained completed/failed jobs) and can be overridden from
the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta

from resilient_circuit import ExponentialDelay

from rfqflow.errors import ValidationError

MEMORY_URL = "memory://"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class EngineConfig:
    """Runtime settings for stores, dispatcher and orchestrator.

    Environment Variables:
        RFQFLOW_DATABASE_URL: sqlite:///path.db or memory:// (default: sqlite:///rfqflow.db)
        RFQFLOW_STAGE_CONCURRENCY: Consumers per stage queue (default: 5)
        RFQFLOW_JOB_ATTEMPTS: Attempts per job before it is failed (default: 3)
        RFQFLOW_BACKOFF_DELAY_MS: Base retry delay in ms (default: 1000)
        RFQFLOW_BACKOFF_MAX_DELAY_MS: Max retry delay in ms (default: 60000)
        RFQFLOW_BACKOFF_FACTOR: Exponential factor (default: 2)
        RFQFLOW_BACKOFF_JITTER: Jitter fraction (default: 0.1)
        RFQFLOW_KEEP_COMPLETED_JOBS: Completed job records kept per stage (default: 100)
        RFQFLOW_KEEP_FAILED_JOBS: Failed job records kept per stage (default: 1000)
        RFQFLOW_POLL_MS: Queue poll frequency in ms (default: 50)
        RFQFLOW_JOB_LOCK_S: Seconds a claimed sqlite job stays leased, must exceed
            the stage timeout (default: 1200)
        RFQFLOW_STAGE_TIMEOUT_S: Executor wall-clock timeout, 0 disables (default: 900)
        RFQFLOW_TRANSITION_MAX_RETRIES: Compare-and-swap retries for transitions (default: 3)
        RFQFLOW_RECORD_INPUT_SNAPSHOTS: Write an INPUT snapshot before each stage (default: true)
        RFQFLOW_LOG_JSON: JSON log output (default: false)
        RFQFLOW_LOG_LEVEL: Log level name (default: INFO)
    """

    database_url: str = "sqlite:///rfqflow.db"

    # Dispatcher
    stage_concurrency: int = 5
    job_attempts: int = 3
    backoff_delay_ms: int = 1000
    backoff_max_delay_ms: int = 60000
    backoff_factor: int = 2
    backoff_jitter: float = 0.1
    keep_completed_jobs: int = 100
    keep_failed_jobs: int = 1000
    poll_frequency_ms: int = 50
    job_lock_seconds: float = 1200.0

    # Orchestrator
    stage_timeout_seconds: float = 900.0
    transition_max_retries: int = 3
    record_input_snapshots: bool = True

    # Logging
    log_json: bool = False
    log_level: str = "INFO"

    stage_concurrency_overrides: dict[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """
        Check settings that only make sense together.

        A job lease must outlast the stage timeout. A disabled timeout
        (0) is not checked.

        Raises:
            ValidationError: Inconsistent settings
        """
        if self.job_attempts < 1:
            raise ValidationError("job_attempts must be at least 1", field="job_attempts")
        if self.stage_timeout_seconds > 0 and self.job_lock_seconds <= self.stage_timeout_seconds:
            raise ValidationError(
                f"job_lock_seconds ({self.job_lock_seconds:g}) must exceed "
                f"stage_timeout_seconds ({self.stage_timeout_seconds:g})",
                field="job_lock_seconds",
            )

    @classmethod
    def from_env(cls) -> EngineConfig:
        """Load configuration from environment variables with defaults."""
        return cls(
            database_url=os.getenv("RFQFLOW_DATABASE_URL", "sqlite:///rfqflow.db"),
            stage_concurrency=int(os.getenv("RFQFLOW_STAGE_CONCURRENCY", "5")),
            job_attempts=int(os.getenv("RFQFLOW_JOB_ATTEMPTS", "3")),
            backoff_delay_ms=int(os.getenv("RFQFLOW_BACKOFF_DELAY_MS", "1000")),
            backoff_max_delay_ms=int(os.getenv("RFQFLOW_BACKOFF_MAX_DELAY_MS", "60000")),
            backoff_factor=int(os.getenv("RFQFLOW_BACKOFF_FACTOR", "2")),
            backoff_jitter=float(os.getenv("RFQFLOW_BACKOFF_JITTER", "0.1")),
            keep_completed_jobs=int(os.getenv("RFQFLOW_KEEP_COMPLETED_JOBS", "100")),
            keep_failed_jobs=int(os.getenv("RFQFLOW_KEEP_FAILED_JOBS", "1000")),
            poll_frequency_ms=int(os.getenv("RFQFLOW_POLL_MS", "50")),
            job_lock_seconds=float(os.getenv("RFQFLOW_JOB_LOCK_S", "1200")),
            stage_timeout_seconds=float(os.getenv("RFQFLOW_STAGE_TIMEOUT_S", "900")),
            transition_max_retries=int(os.getenv("RFQFLOW_TRANSITION_MAX_RETRIES", "3")),
            record_input_snapshots=_env_bool("RFQFLOW_RECORD_INPUT_SNAPSHOTS", True),
            log_json=_env_bool("RFQFLOW_LOG_JSON", False),
            log_level=os.getenv("RFQFLOW_LOG_LEVEL", "INFO"),
        )

    def concurrency_for(self, stage: str) -> int:
        """Consumer count for a stage, honouring per-stage overrides."""
        return self.stage_concurrency_overrides.get(stage, self.stage_concurrency)

    def job_backoff(self) -> ExponentialDelay:
        """Backoff calculator for job retries."""
        return ExponentialDelay(
            min_delay=timedelta(milliseconds=self.backoff_delay_ms),
            max_delay=timedelta(milliseconds=max(self.backoff_max_delay_ms, self.backoff_delay_ms)),
            factor=self.backoff_factor,
            jitter=self.backoff_jitter,
        )

    def transition_backoff(self) -> ExponentialDelay:
        """Short backoff used between compare-and-swap transition retries."""
        return ExponentialDelay(
            min_delay=timedelta(milliseconds=10),
            max_delay=timedelta(milliseconds=250),
            factor=2,
            jitter=0.25,
        )


# Singleton for default engine config (loaded lazily)
_default_engine_config: EngineConfig | None = None


def get_engine_config() -> EngineConfig:
    """Get the default EngineConfig, loading from environment on first call."""
    global _default_engine_config
    if _default_engine_config is None:
        _default_engine_config = EngineConfig.from_env()
    return _default_engine_config


def reset_engine_config() -> None:
    """Reset the engine config singleton. Useful for testing."""
    global _default_engine_config
    _default_engine_config = None
