"""
Engine: the public entry point.

Wires the stores, the dispatcher, the state machine and the orchestrator
together and exposes the operations callers need.

Example:
    registry = StageRegistry()

    @registry.stage("intake")
    def intake(context):
        return StageResult.complete({"parsedData": {"customer": "ACME"}})

    engine = Engine.in_memory(registry, pipeline=Pipeline(["intake"]))
    execution_id = engine.create({"subject": "RFQ"})
    engine.run_until_idle()
    engine.get(execution_id).execution.status  # ExecutionStatus.COMPLETED
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from rfqflow.config import MEMORY_URL, EngineConfig, get_engine_config
from rfqflow.engine.orchestrator import Orchestrator
from rfqflow.engine.state_machine import ExecutionHistory, ExecutionManager, ExecutionView
from rfqflow.errors import ValidationError
from rfqflow.executors.registry import StageRegistry
from rfqflow.logging import get_logger
from rfqflow.models.execution import Execution
from rfqflow.models.pipeline import RFQ_PIPELINE, Pipeline
from rfqflow.models.status import ExecutionStatus
from rfqflow.persistence.factory import Backend, create_backend
from rfqflow.persistence.store import ExecutionCriteria
from rfqflow.queue.dispatcher import TaskDispatcher
from rfqflow.queue.messages import JobCounts

logger = get_logger(__name__)


class Engine:
    """Façade over the execution orchestration engine."""

    def __init__(
        self,
        backend: Backend,
        registry: StageRegistry,
        pipeline: Pipeline | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        self.config = config or get_engine_config()
        self.pipeline = pipeline or RFQ_PIPELINE
        self.backend = backend
        self.registry = registry
        self.dispatcher = TaskDispatcher(backend.queue, self.pipeline, self.config)
        self.manager = ExecutionManager(
            backend.executions,
            backend.snapshots,
            backend.events,
            self.dispatcher,
            self.pipeline,
            self.config,
        )
        self.orchestrator = Orchestrator(self.manager, registry, self.config)
        self._workers_started = False
        self.orchestrator.register()

        missing = [stage for stage in self.pipeline if not registry.has(stage)]
        if missing:
            logger.warning("stages_without_executor", stages=missing)

    @classmethod
    def in_memory(
        cls,
        registry: StageRegistry,
        pipeline: Pipeline | None = None,
        config: EngineConfig | None = None,
    ) -> Engine:
        """Engine on in-memory stores and queue, for tests and scripts."""
        base = replace(config or EngineConfig(), database_url=MEMORY_URL)
        return cls(create_backend(base), registry, pipeline=pipeline, config=base)

    @classmethod
    def from_config(
        cls,
        registry: StageRegistry,
        config: EngineConfig | None = None,
        pipeline: Pipeline | None = None,
    ) -> Engine:
        """Engine on the backend selected by ``config.database_url``."""
        config = config or get_engine_config()
        return cls(create_backend(config), registry, pipeline=pipeline, config=config)

    # ========== Execution operations ==========

    def create(
        self,
        input: dict[str, Any],
        metadata: dict[str, Any] | None = None,
        external_ref: str | None = None,
    ) -> str:
        return self.manager.create(input, metadata=metadata, external_ref=external_ref)

    def get(self, execution_id: str) -> ExecutionView:
        return self.manager.get(execution_id)

    def get_history(self, execution_id: str) -> ExecutionHistory:
        return self.manager.get_history(execution_id)

    def resume(
        self,
        execution_id: str,
        updated_state: dict[str, Any] | None = None,
        resume_from_stage: str | None = None,
    ) -> None:
        self.manager.resume(execution_id, updated_state=updated_state, resume_from_stage=resume_from_stage)

    def replay(self, execution_id: str, from_stage: str) -> str:
        return self.manager.replay(execution_id, from_stage)

    def cancel(self, execution_id: str) -> None:
        self.manager.cancel(execution_id)

    def list_executions(
        self,
        status: ExecutionStatus | str | list[ExecutionStatus | str] | None = None,
        external_ref: str | None = None,
        limit: int = 20,
        offset: int = 0,
        order_by: str = "created_at",
        order: str = "desc",
    ) -> list[Execution]:
        """
        List executions, newest first by default.

        Raises:
            ValidationError: Bad ordering or paging arguments
        """
        statuses = None
        if status is not None:
            values = status if isinstance(status, list) else [status]
            try:
                statuses = {ExecutionStatus(s) for s in values}
            except ValueError as e:
                raise ValidationError(f"Invalid status filter: {status!r}", field="status") from e
        criteria = ExecutionCriteria(
            statuses=statuses,
            external_ref=external_ref,
            limit=limit,
            offset=offset,
            order_by=order_by,
            ascending=order.lower() == "asc",
        )
        return self.manager.list(criteria)

    def delete(self, execution_id: str) -> None:
        self.manager.delete(execution_id)

    # ========== Operations & workers ==========

    def health(self) -> dict[str, bool]:
        return {
            "database": self.backend.is_healthy(),
            "queue": self.dispatcher.is_healthy(),
        }

    def queue_counts(self) -> dict[str, JobCounts]:
        return self.dispatcher.job_counts()

    def start_workers(self, stages: list[str] | None = None) -> None:
        """Start background consumers for every stage."""
        self.orchestrator.start(stages)
        self._workers_started = True
        logger.info("workers_started", stages=stages or list(self.pipeline))

    def stop_workers(self, drain: bool = True, timeout: float | None = None) -> None:
        """Stop consumers, waiting for in-flight jobs when ``drain``."""
        self.orchestrator.stop(drain=drain, timeout=timeout)
        self._workers_started = False
        self.orchestrator.register()
        logger.info("workers_stopped", drain=drain)

    def run_until_idle(self, max_jobs: int | None = None, timeout: float = 30.0) -> int:
        """Process queued jobs synchronously until every stage queue is drained."""
        return self.dispatcher.run_until_idle(max_jobs=max_jobs, timeout=timeout)

    def close(self) -> None:
        if self._workers_started:
            self.stop_workers()
        self.orchestrator.bulkheads.shutdown(wait=True)
