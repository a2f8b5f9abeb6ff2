"""Domain models for rfqflow."""

from rfqflow.models.actions import ActionType, AwaitHuman, Complete, Continue, Fail, NextAction, Skip
from rfqflow.models.execution import Execution
from rfqflow.models.pipeline import RFQ_PIPELINE, RFQ_STAGES, Pipeline
from rfqflow.models.snapshot import HUMAN_STAGE, Snapshot
from rfqflow.models.stage_task import StageTask
from rfqflow.models.status import (
    RUNNABLE_STATUSES,
    TERMINAL_STATUSES,
    ExecutionStatus,
    SnapshotType,
    StageTaskStatus,
)

__all__ = [
    "ActionType",
    "AwaitHuman",
    "Complete",
    "Continue",
    "Execution",
    "ExecutionStatus",
    "Fail",
    "HUMAN_STAGE",
    "NextAction",
    "Pipeline",
    "RFQ_PIPELINE",
    "RFQ_STAGES",
    "RUNNABLE_STATUSES",
    "Skip",
    "Snapshot",
    "SnapshotType",
    "StageTask",
    "StageTaskStatus",
    "TERMINAL_STATUSES",
]
