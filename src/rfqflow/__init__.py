"""
rfqflow - durable workflow engine for requests for quotation.

Each execution moves through a fixed, ordered pipeline of stages
(intake -> missing-info -> duplicate -> prioritization -> mto -> auto-quote
by default).
The package provides:
- Per-stage job queues with retry, exponential backoff and retention
- An orchestrator that runs one stage per job and advances the execution
- Accumulated state with copy-on-write snapshots for audit and replay
- An append-only event log
- Human-in-the-loop pauses, resume, replay and cancellation
- In-memory and SQLite backends
"""

__version__ = "0.1.0"

from rfqflow.config import EngineConfig, get_engine_config
from rfqflow.engine import Engine, ExecutionHistory, ExecutionView
from rfqflow.errors import (
    ConcurrencyError,
    ConflictError,
    NotFoundError,
    RfqflowError,
    StageExecutionError,
    StageTimeoutError,
    StorageError,
    ValidationError,
)
from rfqflow.events import Event, EventType
from rfqflow.executors import (
    DefinedStageExecutor,
    StageContext,
    StageDefinition,
    StageExecutor,
    StageMetrics,
    StageRegistry,
    StageResult,
)
from rfqflow.logging import configure_logging
from rfqflow.models import (
    RFQ_PIPELINE,
    AwaitHuman,
    Complete,
    Continue,
    Execution,
    ExecutionStatus,
    Fail,
    Pipeline,
    Skip,
    Snapshot,
    SnapshotType,
    StageTask,
    StageTaskStatus,
)

__all__ = [
    "__version__",
    # Engine
    "Engine",
    "EngineConfig",
    "ExecutionHistory",
    "ExecutionView",
    "get_engine_config",
    "configure_logging",
    # Models
    "Execution",
    "ExecutionStatus",
    "Pipeline",
    "RFQ_PIPELINE",
    "Snapshot",
    "SnapshotType",
    "StageTask",
    "StageTaskStatus",
    # Actions
    "AwaitHuman",
    "Complete",
    "Continue",
    "Fail",
    "Skip",
    # Executors
    "DefinedStageExecutor",
    "StageContext",
    "StageDefinition",
    "StageExecutor",
    "StageMetrics",
    "StageRegistry",
    "StageResult",
    # Events
    "Event",
    "EventType",
    # Errors
    "ConcurrencyError",
    "ConflictError",
    "NotFoundError",
    "RfqflowError",
    "StageExecutionError",
    "StageTimeoutError",
    "StorageError",
    "ValidationError",
]
