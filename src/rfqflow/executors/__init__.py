from rfqflow.executors.definition import (
    DefinedStageExecutor,
    ExternalCallResult,
    StageDefinition,
    extract_json,
)
from rfqflow.executors.interface import (
    CallableStageExecutor,
    StageCallable,
    StageContext,
    StageExecutor,
    StageMetrics,
    StageResult,
)
from rfqflow.executors.registry import StageRegistry

__all__ = [
    "CallableStageExecutor",
    "DefinedStageExecutor",
    "ExternalCallResult",
    "StageCallable",
    "StageContext",
    "StageDefinition",
    "StageExecutor",
    "StageMetrics",
    "StageRegistry",
    "StageResult",
    "extract_json",
]
