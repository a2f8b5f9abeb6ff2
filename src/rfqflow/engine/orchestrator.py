"""
Orchestrator: the per-job worker routine.

For every stage job it:

1. loads the execution and drops stale or duplicate jobs
2. claims the stage for this job (compare-and-swap to PROCESSING, recording
   the job id and delivery attempt on the execution)
3. records an INPUT snapshot and a StageTask, emits STAGE_STARTED
4. runs the stage executor inside the stage's bulkhead
5. if the job still owns the stage, records the OUTPUT snapshot, the
   executor's events and the finished StageTask, emits STAGE_COMPLETED or
   STAGE_FAILED
6. hands the next action to the state machine

Executor failures of any kind become a FAIL next action. Infrastructure
errors close the StageTask as FAILED and escape handle_job so the
dispatcher retries the job.
"""

from __future__ import annotations

import copy
import time
from typing import Any

from rfqflow.config import EngineConfig, get_engine_config
from rfqflow.engine.resilience import StageBulkheads
from rfqflow.engine.state_machine import ExecutionManager
from rfqflow.errors import NotFoundError, StageCapacityError, ValidationError, truncate_error
from rfqflow.events.base import ENGINE_EVENT_TYPES, Event, EventType
from rfqflow.executors.interface import StageContext, StageMetrics, StageResult
from rfqflow.executors.registry import StageRegistry
from rfqflow.logging import stage_logger
from rfqflow.models.actions import AwaitHuman, Fail, NextAction
from rfqflow.models.common import utc_now
from rfqflow.models.execution import Execution
from rfqflow.models.pipeline import Pipeline
from rfqflow.models.snapshot import Snapshot
from rfqflow.models.stage_task import StageTask
from rfqflow.models.status import SnapshotType, StageTaskStatus
from rfqflow.queue.messages import StageJob
from rfqflow.state.merge import merge_state


class Orchestrator:
    """
    Advances executions one stage job at a time.

    Example:
        orchestrator = Orchestrator(manager, registry)
        orchestrator.start()      # background consumers for every stage
        ...
        orchestrator.stop()
    """

    def __init__(
        self,
        manager: ExecutionManager,
        registry: StageRegistry,
        config: EngineConfig | None = None,
        bulkheads: StageBulkheads | None = None,
    ) -> None:
        self.manager = manager
        self.registry = registry
        self.config = config or get_engine_config()
        self.bulkheads = bulkheads or StageBulkheads(self.config)

    @property
    def pipeline(self) -> Pipeline:
        return self.manager.pipeline

    # ========== Consumers ==========

    def register(self, stages: list[str] | None = None) -> None:
        """Register (without starting) a consumer for each stage."""
        for stage in stages or list(self.pipeline):
            self.manager.dispatcher.register(stage, self.handle_job, on_exhausted=self.handle_exhausted)

    def start(self, stages: list[str] | None = None) -> None:
        """Start background consumers for each stage (default: all of them)."""
        for stage in stages or list(self.pipeline):
            self.manager.dispatcher.consume(stage, self.handle_job, on_exhausted=self.handle_exhausted)

    def stop(self, drain: bool = True, timeout: float | None = None) -> None:
        self.manager.dispatcher.close(drain=drain, timeout=timeout)
        self.bulkheads.shutdown(wait=drain)

    # ========== Job handling ==========

    def handle_exhausted(self, job: StageJob, error: BaseException) -> None:
        """Dispatcher callback once a job has used up its attempts."""
        self.manager.fail_exhausted(
            job,
            f"Stage {job.stage} failed after {job.attempt} attempts: {truncate_error(error)}",
        )

    def handle_job(self, job: StageJob) -> None:
        log = stage_logger(job.execution_id, job.stage, job_id=job.job_id, attempt=job.attempt)
        manager = self.manager

        try:
            execution = manager.executions.retrieve(job.execution_id)
        except NotFoundError:
            log.warning("job_stale_execution_missing")
            return

        if not execution.is_runnable or execution.current_stage != job.stage:
            log.info(
                "job_discarded",
                status=execution.status.value,
                current_stage=execution.current_stage,
            )
            return

        claimed = manager.claim(execution, job)
        if claimed is None:
            log.info("job_lost_claim", claimed_by=execution.claimed_by)
            return
        execution = claimed

        latest = self._base_snapshot(execution, job)
        current_state = copy.deepcopy(latest.data) if latest else {}
        input_snapshot = self._record_input(execution, job.stage, latest, current_state)

        task = StageTask(
            execution_id=execution.id,
            stage_name=job.stage,
            attempt_number=max(job.attempt, 1),
            status=StageTaskStatus.PROCESSING,
            input_snapshot_id=input_snapshot.id if input_snapshot else None,
            started_at=utc_now(),
        )
        manager.executions.create_stage_task(task)
        log = log.bind(stage_task_id=task.id)

        try:
            action = self._run_stage(job, execution, task, current_state, log)
        except Exception as e:
            log.error("stage_aborted", error=str(e), error_type=type(e).__name__)
            try:
                self._close_task(task, truncate_error(e))
            except Exception as close_error:
                log.error("stage_task_close_failed", error=str(close_error))
            raise

        if action is not None:
            manager.apply_next_action(job, action)

    # ========== Internals ==========

    def _run_stage(
        self,
        job: StageJob,
        execution: Execution,
        task: StageTask,
        current_state: dict[str, Any],
        log: Any,
    ) -> NextAction | None:
        """
        Run the claimed stage and record its outcome.

        Returns:
            The next action, or None when the claim passed to another
            delivery while the executor ran
        """
        manager = self.manager
        self._emit(execution.id, task.id, EventType.STAGE_STARTED, {"stage": job.stage, "attempt": task.attempt_number})
        log.info("stage_started")

        context = StageContext(
            execution_id=execution.id,
            stage=job.stage,
            input=execution.input,
            current_state=current_state,
            attempt=task.attempt_number,
        )
        started = time.monotonic()
        result = self._run_executor(context, log)
        elapsed_ms = int((time.monotonic() - started) * 1000)

        owner = manager.executions.retrieve(execution.id)
        if not owner.is_claimed_by(job.job_id, job.attempt):
            log.warning("stage_claim_lost", claimed_by=owner.claimed_by, current_stage=owner.current_stage)
            self._close_task(task, f"Stage {job.stage} is no longer claimed by attempt {job.attempt} of its job")
            return None

        output_state = merge_state(current_state, result.output_state)
        output_snapshot = manager.snapshots.create_snapshot(
            execution.id, job.stage, SnapshotType.OUTPUT, output_state
        )
        self._emit(
            execution.id,
            task.id,
            EventType.STATE_SNAPSHOT_CREATED,
            {"stage": job.stage, "snapshotId": output_snapshot.id, "snapshotType": SnapshotType.OUTPUT.value},
        )

        contributed = self._executor_events(result.events, execution.id, task.id, log)
        if contributed:
            manager.events.append_batch(contributed)

        action = result.next_action
        metrics = result.metrics
        task.status = self._task_status(result, action)
        task.output_snapshot_id = output_snapshot.id
        task.duration_ms = metrics.duration_ms if metrics.duration_ms is not None else elapsed_ms
        task.token_usage = dict(metrics.token_usage or {})
        task.cost_usd = metrics.cost_usd
        task.error_message = action.error if isinstance(action, Fail) else None
        task.completed_at = utc_now()
        manager.executions.update_stage_task(task)

        failed = task.status is StageTaskStatus.FAILED
        finished_type = EventType.STAGE_FAILED if failed else EventType.STAGE_COMPLETED
        finished_data: dict[str, Any] = {
            "stage": job.stage,
            "durationMs": task.duration_ms,
            "nextAction": action.to_dict(),
        }
        if task.error_message:
            finished_data["error"] = task.error_message
        self._emit(execution.id, task.id, finished_type, finished_data)
        log.info("stage_finished", failed=failed, next_action=action.type.value, duration_ms=task.duration_ms)
        return action

    def _close_task(self, task: StageTask, error: str) -> None:
        """Mark a task that will never finish normally as FAILED."""
        now = utc_now()
        task.status = StageTaskStatus.FAILED
        task.error_message = error
        task.completed_at = now
        if task.started_at is not None:
            task.duration_ms = int((now - task.started_at).total_seconds() * 1000)
        self.manager.executions.update_stage_task(task)
        self._emit(
            task.execution_id,
            task.id,
            EventType.STAGE_FAILED,
            {"stage": task.stage_name, "durationMs": task.duration_ms, "error": error},
        )

    def _base_snapshot(self, execution: Execution, job: StageJob) -> Snapshot | None:
        """
        Snapshot the stage starts from.

        An OUTPUT snapshot this job's earlier delivery wrote without
        advancing the execution is skipped in favour of the stage's INPUT.
        """
        snapshots = self.manager.snapshots
        latest = snapshots.get_latest(execution.id)
        if (
            job.attempt > 1
            and latest is not None
            and latest.snapshot_type is SnapshotType.OUTPUT
            and latest.stage_name == job.stage
            and latest.created_at >= job.enqueued_at
        ):
            stage_input = snapshots.get_latest_for_stage(execution.id, job.stage, SnapshotType.INPUT)
            if stage_input is not None:
                return stage_input
        return latest

    def _record_input(
        self,
        execution: Execution,
        stage: str,
        latest: Snapshot | None,
        current_state: dict[str, Any],
    ) -> Snapshot | None:
        if latest is not None and latest.snapshot_type is SnapshotType.INPUT and latest.stage_name == stage:
            return latest
        if not self.config.record_input_snapshots:
            return None
        return self.manager.snapshots.create_snapshot(execution.id, stage, SnapshotType.INPUT, current_state)

    def _run_executor(self, context: StageContext, log: Any) -> StageResult:
        try:
            executor = self.registry.get(context.stage)
        except NotFoundError as e:
            log.error("stage_executor_missing")
            return StageResult.failure(truncate_error(e))

        try:
            result = self.bulkheads.execute(
                context.stage,
                executor.execute,
                context,
                execution_id=context.execution_id,
            )
        except StageCapacityError:
            raise
        except Exception as e:
            log.error("stage_executor_raised", error=str(e), error_type=type(e).__name__)
            return StageResult.failure(truncate_error(e))

        try:
            self._validate_result(result)
        except ValidationError as e:
            log.error("stage_result_invalid", error=e.message)
            return StageResult.failure(e.message)
        return result

    def _validate_result(self, result: Any) -> None:
        if not isinstance(result, StageResult):
            raise ValidationError(f"Executor returned {type(result).__name__}, expected StageResult")
        if not isinstance(result.next_action, NextAction):
            raise ValidationError("StageResult.next_action must be a NextAction")
        if not isinstance(result.output_state, dict):
            raise ValidationError("StageResult.output_state must be a dict")
        if not isinstance(result.metrics, StageMetrics):
            raise ValidationError("StageResult.metrics must be StageMetrics")
        target = result.next_action.target_stage
        if target is not None:
            self.pipeline.validate_stage(target, field="next_stage")
        if not result.success and not isinstance(result.next_action, Fail):
            raise ValidationError("A failed StageResult must carry a FAIL next action")

    def _executor_events(self, events: list[Any], execution_id: str, stage_task_id: str, log: Any) -> list[Event]:
        accepted = []
        for event in events or []:
            if not isinstance(event, Event):
                log.warning("executor_event_invalid", value_type=type(event).__name__)
                continue
            if event.event_type in ENGINE_EVENT_TYPES:
                log.warning("executor_event_dropped", event_type=event.event_type.value)
                continue
            accepted.append(event.bind(execution_id, stage_task_id))
        return accepted

    def _task_status(self, result: StageResult, action: NextAction) -> StageTaskStatus:
        if not result.success or isinstance(action, Fail):
            return StageTaskStatus.FAILED
        if isinstance(action, AwaitHuman):
            return StageTaskStatus.AWAITING_HUMAN
        return StageTaskStatus.COMPLETED

    def _emit(self, execution_id: str, stage_task_id: str, event_type: EventType, data: dict[str, Any]) -> None:
        self.manager.events.append(
            Event.create(event_type, data, execution_id=execution_id, stage_task_id=stage_task_id)
        )
