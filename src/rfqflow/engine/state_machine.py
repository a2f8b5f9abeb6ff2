"""
Execution state machine.

Owns every status transition of an execution and the audit events that go
with it:

    PENDING ──claim──> PROCESSING ──CONTINUE/SKIP──> PROCESSING (next stage)
                           │──AWAIT_HUMAN──> AWAITING_HUMAN ──resume──> PROCESSING
                           │──COMPLETE──> COMPLETED
                           └──FAIL──> FAILED
    any non-terminal (and FAILED) ──cancel──> CANCELLED

Every transition writes the execution row first (compare-and-swap on its
version), then appends events, then dispatches. Resume is the exception: the
human's HUMAN_UPDATE snapshot is written before the row changes. Precondition
checks run before any write, so a rejected call leaves no trace.

While a stage runs the row records the job that claimed it. Only that job's
delivery may apply the stage's next action.
"""

from __future__ import annotations

import copy
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from resilient_circuit import RetryWithBackoffPolicy
from resilient_circuit.exceptions import RetryLimitReached

from rfqflow.config import EngineConfig, get_engine_config
from rfqflow.errors import ConcurrencyError, ConflictError, ValidationError
from rfqflow.events.base import Event, EventType
from rfqflow.events.store import EventStore
from rfqflow.logging import execution_logger, get_logger
from rfqflow.models.actions import AwaitHuman, Fail, NextAction, Skip
from rfqflow.models.common import utc_now
from rfqflow.models.execution import (
    AWAITING_REASON_KEY,
    ENGINE_METADATA_KEYS,
    ERROR_KEY,
    REPLAYED_FROM_KEY,
    REPLAYED_FROM_STAGE_KEY,
    REQUIRED_FIELDS_KEY,
    Execution,
)
from rfqflow.models.pipeline import Pipeline
from rfqflow.models.snapshot import HUMAN_STAGE, Snapshot
from rfqflow.models.stage_task import StageTask
from rfqflow.models.status import (
    NON_CANCELLABLE_STATUSES,
    ExecutionStatus,
    SnapshotType,
    StageTaskStatus,
)
from rfqflow.persistence.store import ExecutionCriteria, ExecutionStore
from rfqflow.queue.dispatcher import TaskDispatcher
from rfqflow.queue.messages import StageJob
from rfqflow.state.merge import merge_state
from rfqflow.state.store import SnapshotStore

logger = get_logger(__name__)


def _require_awaiting_human(execution: Execution) -> None:
    if execution.status is not ExecutionStatus.AWAITING_HUMAN:
        raise ConflictError(
            f"Execution is not awaiting human input (status: {execution.status})",
            execution_id=execution.id,
            status=execution.status.value,
        )


@dataclass
class ExecutionView:
    """An execution together with its current accumulated state."""

    execution: Execution
    latest_snapshot: Snapshot | None = None

    @property
    def current_state(self) -> dict[str, Any]:
        return dict(self.latest_snapshot.data) if self.latest_snapshot else {}

    def to_dict(self) -> dict[str, Any]:
        data = self.execution.to_dict()
        data["current_state"] = self.current_state
        data["latest_snapshot_id"] = self.latest_snapshot.id if self.latest_snapshot else None
        return data


@dataclass
class ExecutionHistory:
    """Everything recorded for an execution, each list in creation order."""

    execution: Execution
    stage_tasks: list[StageTask]
    events: list[Event]
    snapshots: list[Snapshot]

    def to_dict(self) -> dict[str, Any]:
        return {
            "execution": self.execution.to_dict(),
            "stage_tasks": [t.to_dict() for t in self.stage_tasks],
            "events": [e.to_dict() for e in self.events],
            "snapshots": [s.to_dict() for s in self.snapshots],
        }


class ExecutionManager:
    """
    Creates executions and applies transitions to them.

    Example:
        manager = ExecutionManager(executions, snapshots, events, dispatcher, pipeline)
        execution_id = manager.create({"subject": "RFQ 42"})
        manager.cancel(execution_id)
    """

    def __init__(
        self,
        executions: ExecutionStore,
        snapshots: SnapshotStore,
        events: EventStore,
        dispatcher: TaskDispatcher,
        pipeline: Pipeline,
        config: EngineConfig | None = None,
    ) -> None:
        self.executions = executions
        self.snapshots = snapshots
        self.events = events
        self.dispatcher = dispatcher
        self.pipeline = pipeline
        self.config = config or get_engine_config()
        self._retry_policy = RetryWithBackoffPolicy(
            max_retries=self.config.transition_max_retries,
            backoff=self.config.transition_backoff(),
            should_handle=lambda e: isinstance(e, ConcurrencyError),
        )

    # ========== Public operations ==========

    def create(
        self,
        input: dict[str, Any],
        metadata: dict[str, Any] | None = None,
        external_ref: str | None = None,
    ) -> str:
        """
        Create an execution at the first stage and dispatch it.

        Returns:
            The new execution id

        Raises:
            ValidationError: ``input`` or ``metadata`` is not a dict
        """
        if not isinstance(input, dict):
            raise ValidationError("input must be a dict", field="input")
        if metadata is not None and not isinstance(metadata, dict):
            raise ValidationError("metadata must be a dict", field="metadata")

        first = self.pipeline.first
        execution = Execution(
            current_stage=first,
            input=copy.deepcopy(input),
            metadata=copy.deepcopy(metadata or {}),
            external_ref=external_ref,
        )
        self.executions.create(execution)
        self._emit(execution.id, EventType.EXECUTION_CREATED, {"stage": first})
        self.dispatcher.enqueue(first, execution.id)

        logger.info("execution_created", execution_id=execution.id, stage=first, external_ref=external_ref)
        return execution.id

    def get(self, execution_id: str) -> ExecutionView:
        """
        Raises:
            NotFoundError: Unknown execution
        """
        execution = self.executions.retrieve(execution_id)
        return ExecutionView(execution=execution, latest_snapshot=self.snapshots.get_latest(execution_id))

    def get_history(self, execution_id: str) -> ExecutionHistory:
        execution = self.executions.retrieve(execution_id)
        return ExecutionHistory(
            execution=execution,
            stage_tasks=self.executions.list_stage_tasks(execution_id),
            events=self.events.get_events_for_execution(execution_id),
            snapshots=self.snapshots.list_snapshots(execution_id),
        )

    def list(self, criteria: ExecutionCriteria | None = None) -> list[Execution]:
        return self.executions.list(criteria)

    def delete(self, execution_id: str) -> None:
        """
        Delete an execution with its stage tasks, snapshots and events.

        Raises:
            NotFoundError: Unknown execution
        """
        self.executions.retrieve(execution_id)
        events = self.events.delete_for_execution(execution_id)
        snapshots = self.snapshots.delete_for_execution(execution_id)
        self.executions.delete(execution_id)
        logger.info("execution_deleted", execution_id=execution_id, events=events, snapshots=snapshots)

    def cancel(self, execution_id: str) -> None:
        """
        Cancel an execution.

        A stage already running finishes, but its transition is dropped.

        Raises:
            NotFoundError: Unknown execution
            ConflictError: Execution is COMPLETED or CANCELLED
        """

        def apply(execution: Execution) -> bool:
            if execution.status in NON_CANCELLABLE_STATUSES:
                raise ConflictError(
                    f"Cannot cancel execution with status: {execution.status}",
                    execution_id=execution.id,
                    status=execution.status.value,
                )
            execution.set_status(ExecutionStatus.CANCELLED)
            return True

        execution = self._transition(execution_id, apply)
        stage = execution.current_stage if execution else None
        self._emit(execution_id, EventType.EXECUTION_CANCELLED, {"stage": stage})
        logger.info("execution_cancelled", execution_id=execution_id, stage=stage)

    def resume(
        self,
        execution_id: str,
        updated_state: dict[str, Any] | None = None,
        resume_from_stage: str | None = None,
    ) -> None:
        """
        Resume an execution parked in AWAITING_HUMAN.

        The human's fields are stored before the execution leaves
        AWAITING_HUMAN, and the execution is parked again if its job cannot
        be enqueued, so a failed call can simply be repeated.

        Args:
            execution_id: Execution to resume
            updated_state: Fields supplied by the human, merged into the
                latest snapshot as a HUMAN_UPDATE snapshot
            resume_from_stage: Stage to continue from (default: current stage)

        Raises:
            NotFoundError: Unknown execution
            ConflictError: Execution is not AWAITING_HUMAN
            ValidationError: Bad ``updated_state`` or unknown stage
        """
        if updated_state is not None and not isinstance(updated_state, dict):
            raise ValidationError("updated_state must be a dict", field="updated_state")
        if resume_from_stage is not None:
            self.pipeline.validate_stage(resume_from_stage, field="resume_from_stage")

        parked = self.executions.retrieve(execution_id)
        _require_awaiting_human(parked)
        target = resume_from_stage or parked.current_stage

        if updated_state is not None:
            latest = self.snapshots.get_latest(execution_id)
            merged = merge_state(latest.data if latest else {}, updated_state)
            self.snapshots.create_snapshot(execution_id, HUMAN_STAGE, SnapshotType.HUMAN_UPDATE, merged)
            self._emit(
                execution_id,
                EventType.HUMAN_INPUT_RECEIVED,
                {"updatedFields": list(updated_state.keys())},
            )

        def apply(execution: Execution) -> bool:
            _require_awaiting_human(execution)
            execution.current_stage = target
            execution.set_status(ExecutionStatus.PROCESSING)
            execution.metadata.pop(AWAITING_REASON_KEY, None)
            execution.metadata.pop(REQUIRED_FIELDS_KEY, None)
            return True

        self._transition(execution_id, apply)
        self._emit(execution_id, EventType.EXECUTION_RESUMED, {"resumedFrom": target})
        try:
            self.dispatcher.enqueue(target, execution_id)
        except Exception:
            logger.error("resume_enqueue_failed", execution_id=execution_id, stage=target)
            self._repark(parked, target)
            raise

        logger.info("execution_resumed", execution_id=execution_id, stage=target)

    def replay(self, execution_id: str, from_stage: str) -> str:
        """
        Fork a new execution from ``from_stage`` of an existing one.

        The original is never modified. When the original recorded an INPUT
        snapshot for ``from_stage``, the latest one seeds the new execution.

        Returns:
            The new execution id

        Raises:
            NotFoundError: Unknown execution
            ValidationError: ``from_stage`` is not a pipeline stage
        """
        original = self.executions.retrieve(execution_id)
        self.pipeline.validate_stage(from_stage, field="from_stage")

        metadata = {k: v for k, v in copy.deepcopy(original.metadata).items() if k not in ENGINE_METADATA_KEYS}
        metadata[REPLAYED_FROM_KEY] = original.id
        metadata[REPLAYED_FROM_STAGE_KEY] = from_stage

        replayed = Execution(
            current_stage=from_stage,
            input=copy.deepcopy(original.input),
            metadata=metadata,
            external_ref=original.external_ref,
        )
        self.executions.create(replayed)

        seed = self.snapshots.get_latest_for_stage(original.id, from_stage, SnapshotType.INPUT)
        if seed is not None:
            self.snapshots.create_snapshot(replayed.id, from_stage, SnapshotType.INPUT, copy.deepcopy(seed.data))

        self._emit(
            replayed.id,
            EventType.EXECUTION_CREATED,
            {"stage": from_stage, "replayedFrom": original.id, "fromStage": from_stage},
        )
        self.dispatcher.enqueue(from_stage, replayed.id)

        logger.info(
            "execution_replayed",
            execution_id=replayed.id,
            original_execution_id=original.id,
            stage=from_stage,
            seeded=seed is not None,
        )
        return replayed.id

    # ========== Orchestrator operations ==========

    def claim(self, execution: Execution, job: StageJob) -> Execution | None:
        """
        Take ownership of ``execution``'s current stage for ``job``.

        The execution is marked PROCESSING and records the job id and
        delivery attempt. A stage owned by another job cannot be claimed;
        a later delivery of the owning job takes it over.

        Returns:
            The updated execution, or None if another job owns the stage or
            a concurrent writer changed the row since it was read
        """
        if not execution.can_claim(job.job_id, job.attempt):
            return None
        claimed = execution.copy()
        claimed.set_status(ExecutionStatus.PROCESSING)
        claimed.claimed_by = job.job_id
        claimed.claim_attempt = job.attempt
        try:
            self.executions.update(claimed)
        except ConcurrencyError:
            return None
        return claimed

    def apply_next_action(self, job: StageJob, action: NextAction) -> bool:
        """
        Apply the next action a stage decided on.

        The transition is dropped when the execution was cancelled (or
        otherwise moved on) while the stage ran, or when ``job`` no longer
        owns the stage.

        Returns:
            True if the transition was applied
        """
        execution_id = job.execution_id
        expected_stage = job.stage
        log = execution_logger(execution_id).bind(stage=expected_stage, action=action.type.value)

        def apply(execution: Execution) -> bool:
            if (
                not execution.is_runnable
                or execution.current_stage != expected_stage
                or not execution.is_claimed_by(job.job_id, job.attempt)
            ):
                log.info(
                    "transition_dropped",
                    status=execution.status.value,
                    current_stage=execution.current_stage,
                    claimed_by=execution.claimed_by,
                )
                return False

            execution.release_claim()
            target = action.target_stage
            if target is not None:
                execution.current_stage = target
                execution.set_status(ExecutionStatus.PROCESSING)
            elif isinstance(action, AwaitHuman):
                execution.set_status(ExecutionStatus.AWAITING_HUMAN)
                execution.metadata[AWAITING_REASON_KEY] = action.reason
                execution.metadata[REQUIRED_FIELDS_KEY] = list(action.required_fields)
            elif isinstance(action, Fail):
                execution.set_status(ExecutionStatus.FAILED)
                execution.metadata[ERROR_KEY] = action.error
            else:
                execution.set_status(ExecutionStatus.COMPLETED)
            return True

        if self._transition(execution_id, apply) is None:
            return False

        if isinstance(action, Skip):
            self._record_skipped(execution_id, expected_stage, action)

        target = action.target_stage
        if target is not None:
            self.dispatcher.enqueue(target, execution_id)
            log.info("execution_advanced", next_stage=target)
        elif isinstance(action, AwaitHuman):
            self._emit(
                execution_id,
                EventType.HUMAN_INTERVENTION_REQUIRED,
                {"reason": action.reason, "requiredFields": list(action.required_fields), "stage": expected_stage},
            )
            log.info("execution_awaiting_human", reason=action.reason)
        elif isinstance(action, Fail):
            self._emit(execution_id, EventType.EXECUTION_FAILED, {"error": action.error, "stage": expected_stage})
            log.warning("execution_failed", error=action.error)
        else:
            self._emit(execution_id, EventType.EXECUTION_COMPLETED, {"stage": expected_stage})
            log.info("execution_completed")
        return True

    def fail_exhausted(self, job: StageJob, error: str) -> bool:
        """
        FAIL an execution whose stage job ran out of attempts.

        Returns:
            True if the execution was failed; False if it had already moved
            on or its stage belongs to another job
        """
        stage = job.stage

        def apply(execution: Execution) -> bool:
            if not execution.is_runnable or execution.current_stage != stage:
                return False
            if execution.claimed_by not in (None, job.job_id):
                return False
            execution.release_claim()
            execution.set_status(ExecutionStatus.FAILED)
            execution.metadata[ERROR_KEY] = error
            return True

        if self._transition(job.execution_id, apply) is None:
            return False

        self._emit(
            job.execution_id,
            EventType.EXECUTION_FAILED,
            {"error": error, "stage": stage, "attempts": job.attempt},
        )
        logger.error(
            "execution_retries_exhausted",
            execution_id=job.execution_id,
            stage=stage,
            attempts=job.attempt,
        )
        return True

    # ========== Internals ==========

    def _repark(self, parked: Execution, target: str) -> None:
        """Put a resumed execution back into AWAITING_HUMAN as ``parked`` left it."""

        def apply(execution: Execution) -> bool:
            if execution.status is not ExecutionStatus.PROCESSING or execution.current_stage != target:
                return False
            execution.current_stage = parked.current_stage
            execution.set_status(ExecutionStatus.AWAITING_HUMAN)
            for key in (AWAITING_REASON_KEY, REQUIRED_FIELDS_KEY):
                if key in parked.metadata:
                    execution.metadata[key] = copy.deepcopy(parked.metadata[key])
            return True

        self._transition(parked.id, apply)

    def _record_skipped(self, execution_id: str, from_stage: str, action: Skip) -> None:
        now = utc_now()
        for stage in self.pipeline.between(from_stage, action.next_stage):
            task = StageTask(
                execution_id=execution_id,
                stage_name=stage,
                status=StageTaskStatus.SKIPPED,
                error_message=action.reason or None,
                started_at=now,
                completed_at=now,
            )
            self.executions.create_stage_task(task)
            self.events.append(
                Event.create(
                    EventType.STAGE_COMPLETED,
                    {"stage": stage, "skipped": True, "reason": action.reason},
                    execution_id=execution_id,
                    stage_task_id=task.id,
                )
            )

    def _transition(self, execution_id: str, apply: Callable[[Execution], bool]) -> Execution | None:
        """
        Read-modify-write an execution with compare-and-swap.

        ``apply`` mutates the freshly read execution and returns False to
        abandon the transition. Lost races are retried with backoff.

        Returns:
            The stored execution, or None if ``apply`` abandoned it
        """

        @self._retry_policy
        def _attempt() -> Execution | None:
            execution = self.executions.retrieve(execution_id)
            if not apply(execution):
                return None
            self.executions.update(execution)
            return execution

        try:
            return _attempt()
        except RetryLimitReached as e:
            logger.error("transition_retries_exhausted", execution_id=execution_id)
            raise e.__cause__ if e.__cause__ else e from e

    def _emit(self, execution_id: str, event_type: EventType, data: dict[str, Any]) -> Event:
        return self.events.append(Event.create(event_type, data, execution_id=execution_id))
