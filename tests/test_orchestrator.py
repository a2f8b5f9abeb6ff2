"""End-to-end tests for stage job handling, run on every backend."""

import time
from collections.abc import Callable, Generator
from dataclasses import replace
from typing import Any

import pytest

from rfqflow.config import EngineConfig
from rfqflow.engine import Engine
from rfqflow.errors import StageCapacityError, StorageError
from rfqflow.events import Event, EventType
from rfqflow.executors import StageContext, StageMetrics, StageRegistry, StageResult
from rfqflow.models import Complete, Continue, ExecutionStatus, Pipeline, SnapshotType, StageTaskStatus
from rfqflow.persistence.factory import create_backend
from rfqflow.queue.messages import StageJob

EngineFactory = Callable[..., Engine]


@pytest.fixture
def make_engine(
    registry: StageRegistry,
    pipeline: Pipeline,
    make_config: Callable[..., EngineConfig],
) -> Generator[EngineFactory, None, None]:
    """Build engines with config overrides; all are closed after the test."""
    engines: list[Engine] = []

    def _make(**overrides: Any) -> Engine:
        config = make_config(**overrides)
        engine = Engine(create_backend(config), registry, pipeline=pipeline, config=config)
        engines.append(engine)
        return engine

    yield _make
    for engine in engines:
        engine.close()


def register_linear(registry: StageRegistry) -> None:
    @registry.stage("intake")
    def intake(context: StageContext) -> StageResult:
        return StageResult.proceed("extract", {"parsedData": {"customer": "ACME"}})

    @registry.stage("extract")
    def extract(context: StageContext) -> StageResult:
        return StageResult.proceed("decide", {"parsedData": {"items": 2}})

    @registry.stage("decide")
    def decide(context: StageContext) -> StageResult:
        return StageResult.complete({"decision": "quote"})


class TestHappyPath:
    def test_runs_every_stage_to_completion(self, engine: Engine, registry: StageRegistry) -> None:
        register_linear(registry)
        execution_id = engine.create({"subject": "RFQ"})

        assert engine.run_until_idle() == 3

        view = engine.get(execution_id)
        assert view.execution.status is ExecutionStatus.COMPLETED
        assert view.execution.current_stage == "decide"
        assert view.execution.completed_at is not None
        assert view.current_state == {
            "parsedData": {"customer": "ACME", "items": 2},
            "decision": "quote",
        }

        history = engine.get_history(execution_id)
        assert [(t.stage_name, t.status) for t in history.stage_tasks] == [
            ("intake", StageTaskStatus.COMPLETED),
            ("extract", StageTaskStatus.COMPLETED),
            ("decide", StageTaskStatus.COMPLETED),
        ]
        assert [(s.stage_name, s.snapshot_type) for s in history.snapshots] == [
            ("intake", SnapshotType.INPUT),
            ("intake", SnapshotType.OUTPUT),
            ("extract", SnapshotType.INPUT),
            ("extract", SnapshotType.OUTPUT),
            ("decide", SnapshotType.INPUT),
            ("decide", SnapshotType.OUTPUT),
        ]

    def test_stage_tasks_link_snapshots(self, engine: Engine, registry: StageRegistry) -> None:
        register_linear(registry)
        execution_id = engine.create({})
        engine.run_until_idle()

        history = engine.get_history(execution_id)
        snapshots = {s.id: s for s in history.snapshots}
        for task in history.stage_tasks:
            assert task.attempt_number == 1
            assert task.input_snapshot_id is not None and task.output_snapshot_id is not None
            assert snapshots[task.input_snapshot_id].snapshot_type is SnapshotType.INPUT
            assert snapshots[task.output_snapshot_id].snapshot_type is SnapshotType.OUTPUT
            assert snapshots[task.output_snapshot_id].stage_name == task.stage_name
            assert task.started_at is not None and task.completed_at is not None
            assert task.duration_ms is not None and task.duration_ms >= 0

    def test_event_sequence(self, engine: Engine, registry: StageRegistry) -> None:
        @registry.stage("intake")
        def intake(context: StageContext) -> StageResult:
            return StageResult.complete({"done": True})

        execution_id = engine.create({})
        engine.run_until_idle()

        events = engine.get_history(execution_id).events
        assert [e.event_type for e in events] == [
            EventType.EXECUTION_CREATED,
            EventType.STAGE_STARTED,
            EventType.STATE_SNAPSHOT_CREATED,
            EventType.STAGE_COMPLETED,
            EventType.EXECUTION_COMPLETED,
        ]
        task_id = engine.get_history(execution_id).stage_tasks[0].id
        assert all(e.stage_task_id == task_id for e in events[1:4])
        assert events[1].data == {"stage": "intake", "attempt": 1}
        assert events[3].data["nextAction"] == {"type": "COMPLETE"}
        assert events[4].data == {"stage": "intake"}
        assert [e.sequence for e in events] == sorted(e.sequence for e in events)

    def test_executor_sees_context(self, engine: Engine, registry: StageRegistry) -> None:
        contexts: list[StageContext] = []

        @registry.stage("intake")
        def intake(context: StageContext) -> StageResult:
            return StageResult.proceed("extract", {"parsedData": {"customer": "ACME"}})

        @registry.stage("extract")
        def extract(context: StageContext) -> StageResult:
            contexts.append(context)
            return StageResult.complete()

        execution_id = engine.create({"subject": "RFQ"})
        engine.run_until_idle()

        (context,) = contexts
        assert context.execution_id == execution_id
        assert context.stage == "extract"
        assert context.input == {"subject": "RFQ"}
        assert context.current_state == {"parsedData": {"customer": "ACME"}}
        assert context.attempt == 1

    def test_metrics_recorded(self, engine: Engine, registry: StageRegistry) -> None:
        @registry.stage("intake")
        def intake(context: StageContext) -> StageResult:
            return StageResult.complete(
                metrics=StageMetrics(duration_ms=42, token_usage={"input": 100, "output": 7}, cost_usd=0.25)
            )

        execution_id = engine.create({})
        engine.run_until_idle()

        (task,) = engine.get_history(execution_id).stage_tasks
        assert task.duration_ms == 42
        assert task.token_usage == {"input": 100, "output": 7}
        assert task.cost_usd == pytest.approx(0.25)

    def test_input_snapshots_disabled(self, make_engine: EngineFactory, registry: StageRegistry) -> None:
        register_linear(registry)
        engine = make_engine(record_input_snapshots=False)
        execution_id = engine.create({})
        engine.run_until_idle()

        history = engine.get_history(execution_id)
        assert {s.snapshot_type for s in history.snapshots} == {SnapshotType.OUTPUT}
        assert all(t.input_snapshot_id is None for t in history.stage_tasks)
        assert engine.get(execution_id).execution.status is ExecutionStatus.COMPLETED


class TestFailures:
    def _assert_failed(self, engine: Engine, execution_id: str, fragment: str) -> None:
        view = engine.get(execution_id)
        assert view.execution.status is ExecutionStatus.FAILED
        assert fragment in view.execution.metadata["error"]

        history = engine.get_history(execution_id)
        task = history.stage_tasks[-1]
        assert task.status is StageTaskStatus.FAILED
        assert task.error_message is not None and fragment in task.error_message

        types = [e.event_type for e in history.events]
        assert types[-2:] == [EventType.STAGE_FAILED, EventType.EXECUTION_FAILED]
        assert history.events[-1].data["stage"] == task.stage_name

    def test_executor_exception(self, engine: Engine, registry: StageRegistry) -> None:
        @registry.stage("intake")
        def intake(context: StageContext) -> StageResult:
            raise RuntimeError("parser crashed")

        execution_id = engine.create({})
        engine.run_until_idle()

        self._assert_failed(engine, execution_id, "parser crashed")
        # Executor failures are not job failures
        assert engine.queue_counts()["intake"].completed == 1
        assert engine.queue_counts()["intake"].failed == 0

    def test_explicit_failure(self, engine: Engine, registry: StageRegistry) -> None:
        @registry.stage("intake")
        def intake(context: StageContext) -> StageResult:
            return StageResult.failure("customer unknown", output_state={"customer": None})

        execution_id = engine.create({})
        engine.run_until_idle()

        self._assert_failed(engine, execution_id, "customer unknown")
        assert engine.get(execution_id).current_state == {"customer": None}

    def test_missing_executor(self, engine: Engine) -> None:
        execution_id = engine.create({})
        engine.run_until_idle()

        self._assert_failed(engine, execution_id, "intake")

    def test_invalid_result_type(self, engine: Engine, registry: StageRegistry) -> None:
        @registry.stage("intake")
        def intake(context: StageContext) -> Any:
            return {"next": "extract"}

        execution_id = engine.create({})
        engine.run_until_idle()

        self._assert_failed(engine, execution_id, "expected StageResult")

    def test_unknown_target_stage(self, engine: Engine, registry: StageRegistry) -> None:
        @registry.stage("intake")
        def intake(context: StageContext) -> StageResult:
            return StageResult.proceed("nowhere")

        execution_id = engine.create({})
        engine.run_until_idle()

        self._assert_failed(engine, execution_id, "nowhere")

    def test_unsuccessful_result_must_fail(self, engine: Engine, registry: StageRegistry) -> None:
        @registry.stage("intake")
        def intake(context: StageContext) -> StageResult:
            return StageResult(success=False, next_action=Continue("extract"))

        execution_id = engine.create({})
        engine.run_until_idle()

        self._assert_failed(engine, execution_id, "FAIL")
        assert engine.queue_counts()["extract"].pending == 0

    def test_stage_timeout(self, make_engine: EngineFactory, registry: StageRegistry) -> None:
        @registry.stage("intake")
        def intake(context: StageContext) -> StageResult:
            time.sleep(0.5)
            return StageResult.proceed("extract")

        engine = make_engine(stage_timeout_seconds=0.1)
        execution_id = engine.create({})
        engine.run_until_idle()

        self._assert_failed(engine, execution_id, "timeout")


class TestRetries:
    def test_infrastructure_error_retries_job(self, engine: Engine, registry: StageRegistry) -> None:
        @registry.stage("intake")
        def intake(context: StageContext) -> StageResult:
            if context.attempt == 1:
                raise StageCapacityError("bulkhead full", stage="intake")
            return StageResult.complete({"attempt": context.attempt})

        execution_id = engine.create({})
        engine.run_until_idle(timeout=5.0)

        view = engine.get(execution_id)
        assert view.execution.status is ExecutionStatus.COMPLETED
        assert view.current_state == {"attempt": 2}

        history = engine.get_history(execution_id)
        assert [t.attempt_number for t in history.stage_tasks] == [1, 2]
        assert [t.status for t in history.stage_tasks] == [StageTaskStatus.FAILED, StageTaskStatus.COMPLETED]
        assert "bulkhead full" in (history.stage_tasks[0].error_message or "")
        # The retry reuses the INPUT snapshot of the first attempt
        inputs = [s for s in history.snapshots if s.snapshot_type is SnapshotType.INPUT]
        assert len(inputs) == 1
        assert {t.input_snapshot_id for t in history.stage_tasks} == {inputs[0].id}

    def test_exhausted_retries_fail_execution(self, engine: Engine, registry: StageRegistry) -> None:
        @registry.stage("intake")
        def intake(context: StageContext) -> StageResult:
            raise StageCapacityError("bulkhead full", stage="intake")

        execution_id = engine.create({})
        engine.run_until_idle(timeout=5.0)

        view = engine.get(execution_id)
        assert view.execution.status is ExecutionStatus.FAILED
        assert "Stage intake failed after 3 attempts" in view.execution.metadata["error"]

        history = engine.get_history(execution_id)
        assert len(history.stage_tasks) == 3
        assert {t.status for t in history.stage_tasks} == {StageTaskStatus.FAILED}
        types = [e.event_type for e in history.events]
        assert types.count(EventType.STAGE_STARTED) == types.count(EventType.STAGE_FAILED) == 3
        failed = history.events[-1]
        assert failed.event_type is EventType.EXECUTION_FAILED
        assert failed.data["attempts"] == 3
        assert engine.queue_counts()["intake"].failed == 1


    def test_storage_error_closes_stage_task(
        self,
        make_engine: EngineFactory,
        registry: StageRegistry,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        register_linear(registry)
        engine = make_engine(job_attempts=2)
        snapshots = engine.manager.snapshots
        create_snapshot = snapshots.create_snapshot

        def create_or_fail(execution_id: str, stage_name: str, snapshot_type: SnapshotType, data: dict) -> Any:
            if snapshot_type is SnapshotType.OUTPUT:
                raise StorageError("disk full")
            return create_snapshot(execution_id, stage_name, snapshot_type, data)

        monkeypatch.setattr(snapshots, "create_snapshot", create_or_fail)

        execution_id = engine.create({})
        engine.run_until_idle(timeout=5.0)

        assert engine.get(execution_id).execution.status is ExecutionStatus.FAILED
        history = engine.get_history(execution_id)
        assert [t.status for t in history.stage_tasks] == [StageTaskStatus.FAILED, StageTaskStatus.FAILED]
        assert all("disk full" in (t.error_message or "") for t in history.stage_tasks)
        assert all(t.completed_at is not None for t in history.stage_tasks)

        types = [e.event_type for e in history.events]
        assert types.count(EventType.STAGE_STARTED) == 2
        assert types.count(EventType.STAGE_FAILED) == 2
        assert types[-1] is EventType.EXECUTION_FAILED

    def test_retry_starts_from_stage_input(
        self,
        engine: Engine,
        registry: StageRegistry,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        seen: list[dict[str, Any]] = []

        @registry.stage("intake")
        def intake(context: StageContext) -> StageResult:
            seen.append(dict(context.current_state))
            return StageResult.proceed("extract", {"count": len(seen)})

        @registry.stage("extract")
        def extract(context: StageContext) -> StageResult:
            return StageResult.complete()

        apply_next_action = engine.manager.apply_next_action
        failures = [StorageError("transition write failed")]

        def apply_or_fail(job: StageJob, action: Any) -> bool:
            if failures:
                raise failures.pop()
            return apply_next_action(job, action)

        monkeypatch.setattr(engine.manager, "apply_next_action", apply_or_fail)
        execution_id = engine.create({})
        engine.run_until_idle(timeout=5.0)

        # The second attempt does not see the first attempt's output
        assert seen == [{}, {}]
        view = engine.get(execution_id)
        assert view.execution.status is ExecutionStatus.COMPLETED
        assert view.current_state == {"count": 2}

    def test_expired_lease_on_last_attempt_fails_execution(
        self,
        make_engine: EngineFactory,
        registry: StageRegistry,
        backend_name: str,
    ) -> None:
        if backend_name != "sqlite":
            pytest.skip("only the sqlite queue leases jobs")
        register_linear(registry)
        engine = make_engine(job_attempts=1, job_lock_seconds=0.05, stage_timeout_seconds=0)
        execution_id = engine.create({})

        # A worker claims the job and dies without settling it
        assert engine.backend.queue.poll_one("intake") is not None
        time.sleep(0.1)
        engine.run_until_idle()

        execution = engine.get(execution_id).execution
        assert execution.status is ExecutionStatus.FAILED
        assert "Stage intake failed after 1 attempts" in execution.metadata["error"]
        assert "lease expired" in execution.metadata["error"]
        assert engine.queue_counts()["intake"].failed == 1

        failed = engine.get_history(execution_id).events[-1]
        assert failed.event_type is EventType.EXECUTION_FAILED
        assert failed.data["attempts"] == 1


class TestNextActions:
    def test_skip_records_skipped_stages(self, engine: Engine, registry: StageRegistry) -> None:
        ran: list[str] = []

        @registry.stage("intake")
        def intake(context: StageContext) -> StageResult:
            ran.append("intake")
            return StageResult.skip("decide", reason="no line items")

        @registry.stage("extract")
        def extract(context: StageContext) -> StageResult:
            ran.append("extract")
            return StageResult.proceed("decide")

        @registry.stage("decide")
        def decide(context: StageContext) -> StageResult:
            ran.append("decide")
            return StageResult.complete()

        execution_id = engine.create({})
        engine.run_until_idle()

        assert ran == ["intake", "decide"]
        history = engine.get_history(execution_id)
        assert [(t.stage_name, t.status) for t in history.stage_tasks] == [
            ("intake", StageTaskStatus.COMPLETED),
            ("extract", StageTaskStatus.SKIPPED),
            ("decide", StageTaskStatus.COMPLETED),
        ]
        skipped_task = history.stage_tasks[1]
        assert skipped_task.error_message == "no line items"

        (skipped_event,) = [e for e in history.events if e.data.get("skipped")]
        assert skipped_event.event_type is EventType.STAGE_COMPLETED
        assert skipped_event.stage_task_id == skipped_task.id
        assert skipped_event.data == {"stage": "extract", "skipped": True, "reason": "no line items"}
        assert engine.get(execution_id).execution.status is ExecutionStatus.COMPLETED

    def test_await_human_task_status(self, engine: Engine, registry: StageRegistry) -> None:
        @registry.stage("intake")
        def intake(context: StageContext) -> StageResult:
            return StageResult.await_human("which customer?", ["customer"])

        execution_id = engine.create({})
        engine.run_until_idle()

        (task,) = engine.get_history(execution_id).stage_tasks
        assert task.status is StageTaskStatus.AWAITING_HUMAN
        assert engine.get(execution_id).execution.status is ExecutionStatus.AWAITING_HUMAN

    def test_complete_before_last_stage(self, engine: Engine, registry: StageRegistry) -> None:
        @registry.stage("intake")
        def intake(context: StageContext) -> StageResult:
            return StageResult(success=True, next_action=Complete())

        execution_id = engine.create({})
        engine.run_until_idle()

        assert engine.get(execution_id).execution.status is ExecutionStatus.COMPLETED
        assert engine.queue_counts()["extract"].pending == 0


class TestExecutorEvents:
    def test_sub_action_events_are_tagged(self, engine: Engine, registry: StageRegistry) -> None:
        @registry.stage("intake")
        def intake(context: StageContext) -> StageResult:
            return StageResult.complete(
                events=[
                    Event.create(EventType.TOOL_INVOKED, {"tool": "parser"}),
                    Event.create(EventType.TOOL_COMPLETED, {"tool": "parser"}),
                ]
            )

        execution_id = engine.create({})
        engine.run_until_idle()

        history = engine.get_history(execution_id)
        (task,) = history.stage_tasks
        tool_events = [e for e in history.events if e.event_type.value.startswith("TOOL_")]
        assert [e.event_type for e in tool_events] == [EventType.TOOL_INVOKED, EventType.TOOL_COMPLETED]
        assert all(e.execution_id == execution_id and e.stage_task_id == task.id for e in tool_events)

    def test_engine_event_types_are_dropped(self, engine: Engine, registry: StageRegistry) -> None:
        @registry.stage("intake")
        def intake(context: StageContext) -> StageResult:
            return StageResult.proceed(
                "extract",
                events=[
                    Event.create(EventType.EXECUTION_COMPLETED, {"forged": True}),
                    "not an event",  # type: ignore[list-item]
                    Event.create(EventType.TOOL_INVOKED, {"tool": "lookup"}),
                ],
            )

        execution_id = engine.create({})
        engine.run_until_idle(max_jobs=1)

        history = engine.get_history(execution_id)
        assert not any(e.data.get("forged") for e in history.events)
        assert EventType.EXECUTION_COMPLETED not in [e.event_type for e in history.events]
        assert [e.event_type for e in history.events].count(EventType.TOOL_INVOKED) == 1
        assert engine.get(execution_id).execution.current_stage == "extract"


class TestConcurrency:
    def test_duplicate_job_is_discarded(self, engine: Engine, registry: StageRegistry) -> None:
        calls: list[str] = []

        @registry.stage("intake")
        def intake(context: StageContext) -> StageResult:
            calls.append(context.stage)
            return StageResult.proceed("extract")

        @registry.stage("extract")
        def extract(context: StageContext) -> StageResult:
            return StageResult.complete()

        execution_id = engine.create({})
        engine.dispatcher.enqueue("intake", execution_id)

        engine.run_until_idle()

        assert calls == ["intake"]
        history = engine.get_history(execution_id)
        assert [t.stage_name for t in history.stage_tasks] == ["intake", "extract"]
        assert engine.get(execution_id).execution.status is ExecutionStatus.COMPLETED

    def test_duplicate_overlapping_running_stage_is_discarded(self, engine: Engine, registry: StageRegistry) -> None:
        calls: list[str] = []

        @registry.stage("intake")
        def intake(context: StageContext) -> StageResult:
            calls.append(context.stage)
            # A second job for the same stage arrives while this one runs
            engine.orchestrator.handle_job(
                StageJob(execution_id=context.execution_id, stage="intake", job_id="duplicate", attempt=1)
            )
            return StageResult.proceed("extract", {"parsedData": {"customer": "ACME"}})

        @registry.stage("extract")
        def extract(context: StageContext) -> StageResult:
            return StageResult.complete()

        execution_id = engine.create({})
        engine.run_until_idle()

        assert calls == ["intake"]
        history = engine.get_history(execution_id)
        assert [t.stage_name for t in history.stage_tasks] == ["intake", "extract"]
        outputs = [
            s for s in history.snapshots if s.snapshot_type is SnapshotType.OUTPUT and s.stage_name == "intake"
        ]
        assert len(outputs) == 1
        assert [e.event_type for e in history.events].count(EventType.STAGE_STARTED) == 2
        assert engine.get(execution_id).execution.status is ExecutionStatus.COMPLETED

    def test_later_delivery_takes_over_stage(self, engine: Engine, registry: StageRegistry) -> None:
        execution_id = engine.create({})
        first = StageJob(execution_id=execution_id, stage="intake", job_id="intake-job", attempt=1)
        attempts: list[int] = []

        @registry.stage("intake")
        def intake(context: StageContext) -> StageResult:
            attempts.append(context.attempt)
            if context.attempt == 1:
                # The lease of this delivery expired and the job was handed out again
                engine.orchestrator.handle_job(replace(first, attempt=2))
            return StageResult.proceed("extract", {"attempt": context.attempt})

        engine.orchestrator.handle_job(first)

        assert attempts == [1, 2]
        view = engine.get(execution_id)
        assert view.execution.current_stage == "extract"
        assert view.execution.claimed_by is None
        assert view.current_state == {"attempt": 2}

        history = engine.get_history(execution_id)
        superseded, winner = history.stage_tasks
        assert (superseded.attempt_number, superseded.status) == (1, StageTaskStatus.FAILED)
        assert (winner.attempt_number, winner.status) == (2, StageTaskStatus.COMPLETED)
        assert "no longer claimed" in (superseded.error_message or "")
        assert superseded.output_snapshot_id is None

        outputs = [s for s in history.snapshots if s.snapshot_type is SnapshotType.OUTPUT]
        assert [s.id for s in outputs] == [winner.output_snapshot_id]
        finished = {
            e.stage_task_id: e.event_type
            for e in history.events
            if e.event_type in (EventType.STAGE_COMPLETED, EventType.STAGE_FAILED)
        }
        assert finished == {superseded.id: EventType.STAGE_FAILED, winner.id: EventType.STAGE_COMPLETED}
        assert engine.queue_counts()["extract"].pending == 1

    def test_cancel_while_stage_runs(self, engine: Engine, registry: StageRegistry) -> None:
        @registry.stage("intake")
        def intake(context: StageContext) -> StageResult:
            engine.cancel(context.execution_id)
            return StageResult.proceed("extract", {"parsedData": {"customer": "ACME"}})

        @registry.stage("extract")
        def extract(context: StageContext) -> StageResult:
            raise AssertionError("must not run after cancel")

        execution_id = engine.create({})
        engine.run_until_idle()

        view = engine.get(execution_id)
        assert view.execution.status is ExecutionStatus.CANCELLED
        assert view.execution.current_stage == "intake"
        (task,) = engine.get_history(execution_id).stage_tasks
        assert task.status is StageTaskStatus.COMPLETED
        assert engine.queue_counts()["extract"].completed == 0

    def test_job_for_deleted_execution_is_dropped(self, engine: Engine, registry: StageRegistry) -> None:
        register_linear(registry)
        execution_id = engine.create({})
        engine.delete(execution_id)

        assert engine.run_until_idle() == 1
        assert engine.queue_counts()["intake"].completed == 1

    def test_background_workers(self, engine: Engine, registry: StageRegistry) -> None:
        register_linear(registry)
        engine.start_workers()
        try:
            ids = [engine.create({"n": n}) for n in range(3)]
            deadline = time.monotonic() + 10.0
            while time.monotonic() < deadline:
                statuses = {engine.get(i).execution.status for i in ids}
                if statuses == {ExecutionStatus.COMPLETED}:
                    break
                time.sleep(0.02)
        finally:
            engine.stop_workers(drain=True)

        for execution_id in ids:
            view = engine.get(execution_id)
            assert view.execution.status is ExecutionStatus.COMPLETED
            assert len(engine.get_history(execution_id).stage_tasks) == 3
