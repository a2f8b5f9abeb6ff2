"""
Stage executor interface.

A stage executor is the opaque business logic of one pipeline stage. The
engine hands it a StageContext and expects a StageResult back; everything
else (snapshots, audit events, transitions, retries) is the engine's job.

Example:
    class IntakeExecutor(StageExecutor):
        def execute(self, context: StageContext) -> StageResult:
            parsed = parse_email(context.input["body"])
            return StageResult.proceed(
                "missing-info",
                output_state={"parsedData": parsed},
            )
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from rfqflow.events.base import Event
from rfqflow.models.actions import AwaitHuman, Complete, Continue, Fail, NextAction, Skip


@dataclass(frozen=True)
class StageContext:
    """
    What an executor sees of its execution.

    Attributes:
        execution_id: Execution being advanced
        stage: Stage being run
        input: The execution's original input
        current_state: Accumulated state from the latest snapshot
        attempt: 1-based delivery attempt of the stage job
    """

    execution_id: str
    stage: str
    input: dict[str, Any] = field(default_factory=dict)
    current_state: dict[str, Any] = field(default_factory=dict)
    attempt: int = 1


@dataclass
class StageMetrics:
    """Cost accounting for one stage attempt."""

    duration_ms: int | None = None
    token_usage: dict[str, int] = field(default_factory=dict)
    cost_usd: float | None = None


@dataclass
class StageResult:
    """
    Result of running a stage.

    Attributes:
        success: False when the stage failed
        next_action: How the pipeline should progress
        output_state: Partial state merged into the accumulated state
        events: Sub-action events (TOOL_*, STATE_SNAPSHOT_CREATED)
        metrics: Duration, token usage and cost
        output: Optional stage-specific output kept for callers, not persisted
    """

    success: bool
    next_action: NextAction
    output_state: dict[str, Any] = field(default_factory=dict)
    events: list[Event] = field(default_factory=list)
    metrics: StageMetrics = field(default_factory=StageMetrics)
    output: Any = None

    # ========== Factory Methods ==========

    @classmethod
    def proceed(
        cls,
        next_stage: str,
        output_state: dict[str, Any] | None = None,
        events: list[Event] | None = None,
        metrics: StageMetrics | None = None,
    ) -> StageResult:
        """Continue to ``next_stage``."""
        return cls(
            success=True,
            next_action=Continue(next_stage),
            output_state=output_state or {},
            events=events or [],
            metrics=metrics or StageMetrics(),
        )

    @classmethod
    def skip(
        cls,
        next_stage: str,
        reason: str = "",
        output_state: dict[str, Any] | None = None,
        events: list[Event] | None = None,
        metrics: StageMetrics | None = None,
    ) -> StageResult:
        """Jump to ``next_stage``, skipping the stages in between."""
        return cls(
            success=True,
            next_action=Skip(next_stage, reason=reason),
            output_state=output_state or {},
            events=events or [],
            metrics=metrics or StageMetrics(),
        )

    @classmethod
    def await_human(
        cls,
        reason: str,
        required_fields: list[str] | None = None,
        output_state: dict[str, Any] | None = None,
        events: list[Event] | None = None,
        metrics: StageMetrics | None = None,
    ) -> StageResult:
        """Pause the execution until a human resumes it."""
        return cls(
            success=True,
            next_action=AwaitHuman(reason, list(required_fields or [])),
            output_state=output_state or {},
            events=events or [],
            metrics=metrics or StageMetrics(),
        )

    @classmethod
    def complete(
        cls,
        output_state: dict[str, Any] | None = None,
        events: list[Event] | None = None,
        metrics: StageMetrics | None = None,
    ) -> StageResult:
        """Finish the execution successfully."""
        return cls(
            success=True,
            next_action=Complete(),
            output_state=output_state or {},
            events=events or [],
            metrics=metrics or StageMetrics(),
        )

    @classmethod
    def failure(
        cls,
        error: str,
        output_state: dict[str, Any] | None = None,
        events: list[Event] | None = None,
        metrics: StageMetrics | None = None,
    ) -> StageResult:
        """Fail the execution with ``error``."""
        return cls(
            success=False,
            next_action=Fail(error),
            output_state=output_state or {},
            events=events or [],
            metrics=metrics or StageMetrics(),
        )


class StageExecutor(ABC):
    """Base interface for stage executors."""

    @abstractmethod
    def execute(self, context: StageContext) -> StageResult:
        """
        Run the stage.

        Args:
            context: The stage context

        Returns:
            StageResult describing the output and the next action

        Raises:
            Exception: Any exception is converted into a failed result by
                the orchestrator
        """
        pass


StageCallable = Callable[[StageContext], StageResult]


class CallableStageExecutor(StageExecutor):
    """
    Wraps a plain function as an executor.

    Example:
        def check_duplicates(context: StageContext) -> StageResult:
            return StageResult.proceed("prioritization")

        executor = CallableStageExecutor(check_duplicates)
    """

    def __init__(self, func: StageCallable, name: str | None = None) -> None:
        self._func = func
        self._name = name or getattr(func, "__name__", "anonymous")

    @property
    def name(self) -> str:
        return self._name

    def execute(self, context: StageContext) -> StageResult:
        return self._func(context)

    def __repr__(self) -> str:
        return f"CallableStageExecutor({self._name})"
