"""Parameterized tests for ExecutionStore - runs on all backends."""

import pytest

from rfqflow.errors import ConcurrencyError, NotFoundError, ValidationError
from rfqflow.models import Execution, ExecutionStatus, StageTask, StageTaskStatus
from rfqflow.persistence.store import ExecutionCriteria, ExecutionStore


class TestExecutionStore:
    def test_create_and_retrieve(self, execution_store: ExecutionStore) -> None:
        execution = Execution(current_stage="intake", input={"subject": "RFQ"}, external_ref="msg-1")
        execution_store.create(execution)

        stored = execution_store.retrieve(execution.id)
        assert stored.id == execution.id
        assert stored.status is ExecutionStatus.PENDING
        assert stored.input == {"subject": "RFQ"}
        assert stored.external_ref == "msg-1"
        assert stored.version == 0

    def test_retrieve_missing(self, execution_store: ExecutionStore) -> None:
        with pytest.raises(NotFoundError):
            execution_store.retrieve("missing")

    def test_retrieve_returns_detached_copy(self, execution_store: ExecutionStore) -> None:
        execution = Execution(current_stage="intake", metadata={"a": 1})
        execution_store.create(execution)

        first = execution_store.retrieve(execution.id)
        first.metadata["a"] = 2
        assert execution_store.retrieve(execution.id).metadata == {"a": 1}

    def test_update_increments_version(self, execution_store: ExecutionStore) -> None:
        execution = Execution(current_stage="intake")
        execution_store.create(execution)

        stored = execution_store.retrieve(execution.id)
        stored.set_status(ExecutionStatus.PROCESSING)
        execution_store.update(stored)

        assert stored.version == 1
        reread = execution_store.retrieve(execution.id)
        assert reread.status is ExecutionStatus.PROCESSING
        assert reread.version == 1

    def test_update_with_stale_version_raises(self, execution_store: ExecutionStore) -> None:
        execution = Execution(current_stage="intake")
        execution_store.create(execution)

        first = execution_store.retrieve(execution.id)
        second = execution_store.retrieve(execution.id)

        first.current_stage = "extract"
        execution_store.update(first)

        second.set_status(ExecutionStatus.CANCELLED)
        with pytest.raises(ConcurrencyError):
            execution_store.update(second)

        stored = execution_store.retrieve(execution.id)
        assert stored.current_stage == "extract"
        assert stored.status is ExecutionStatus.PENDING

    def test_update_stores_stage_claim(self, execution_store: ExecutionStore) -> None:
        execution = Execution(current_stage="intake")
        execution_store.create(execution)

        stored = execution_store.retrieve(execution.id)
        stored.claimed_by = "exec-intake-1"
        stored.claim_attempt = 2
        execution_store.update(stored)

        reread = execution_store.retrieve(execution.id)
        assert (reread.claimed_by, reread.claim_attempt) == ("exec-intake-1", 2)
        assert reread.is_claimed_by("exec-intake-1", 2)
        assert not reread.can_claim("other-job", 1)
        assert reread.can_claim("exec-intake-1", 3)

        reread.release_claim()
        execution_store.update(reread)
        assert execution_store.retrieve(execution.id).claimed_by is None

    def test_update_missing_raises_not_found(self, execution_store: ExecutionStore) -> None:
        with pytest.raises(NotFoundError):
            execution_store.update(Execution(current_stage="intake"))

    def test_delete(self, execution_store: ExecutionStore) -> None:
        execution = Execution(current_stage="intake")
        execution_store.create(execution)
        execution_store.create_stage_task(StageTask(execution_id=execution.id, stage_name="intake"))

        execution_store.delete(execution.id)

        with pytest.raises(NotFoundError):
            execution_store.retrieve(execution.id)
        assert execution_store.list_stage_tasks(execution.id) == []
        with pytest.raises(NotFoundError):
            execution_store.delete(execution.id)


class TestExecutionListing:
    def _create(self, store: ExecutionStore, count: int, **kwargs: object) -> list[Execution]:
        created = []
        for _ in range(count):
            execution = Execution(current_stage="intake", **kwargs)  # type: ignore[arg-type]
            store.create(execution)
            created.append(execution)
        return created

    def test_list_newest_first(self, execution_store: ExecutionStore) -> None:
        created = self._create(execution_store, 3)
        listed = execution_store.list()
        assert [e.id for e in listed] == [e.id for e in reversed(created)]

    def test_list_ascending_with_paging(self, execution_store: ExecutionStore) -> None:
        created = self._create(execution_store, 5)
        listed = execution_store.list(ExecutionCriteria(ascending=True, limit=2, offset=1))
        assert [e.id for e in listed] == [created[1].id, created[2].id]

    def test_filter_by_status(self, execution_store: ExecutionStore) -> None:
        pending, done = self._create(execution_store, 2)
        stored = execution_store.retrieve(done.id)
        stored.set_status(ExecutionStatus.COMPLETED)
        execution_store.update(stored)

        listed = execution_store.list(ExecutionCriteria(statuses={ExecutionStatus.COMPLETED}))
        assert [e.id for e in listed] == [done.id]

    def test_filter_by_external_ref(self, execution_store: ExecutionStore) -> None:
        self._create(execution_store, 2)
        (tagged,) = self._create(execution_store, 1, external_ref="email-42")

        listed = execution_store.list(ExecutionCriteria(external_ref="email-42"))
        assert [e.id for e in listed] == [tagged.id]

    def test_invalid_criteria(self) -> None:
        with pytest.raises(ValidationError):
            ExecutionCriteria(order_by="status")
        with pytest.raises(ValidationError):
            ExecutionCriteria(limit=0)


class TestStageTasks:
    def test_create_update_and_list(self, execution_store: ExecutionStore) -> None:
        execution = Execution(current_stage="intake")
        execution_store.create(execution)

        first = StageTask(execution_id=execution.id, stage_name="intake", status=StageTaskStatus.PROCESSING)
        execution_store.create_stage_task(first)
        second = StageTask(execution_id=execution.id, stage_name="intake", attempt_number=2)
        execution_store.create_stage_task(second)

        first.status = StageTaskStatus.COMPLETED
        first.duration_ms = 12
        first.token_usage = {"input": 100, "output": 20}
        first.cost_usd = 0.004
        execution_store.update_stage_task(first)

        stored = execution_store.retrieve_stage_task(first.id)
        assert stored.status is StageTaskStatus.COMPLETED
        assert stored.duration_ms == 12
        assert stored.token_usage == {"input": 100, "output": 20}
        assert stored.cost_usd == pytest.approx(0.004)

        tasks = execution_store.list_stage_tasks(execution.id)
        assert [t.id for t in tasks] == [first.id, second.id]
        assert [t.attempt_number for t in tasks] == [1, 2]

    def test_update_missing_task(self, execution_store: ExecutionStore) -> None:
        with pytest.raises(NotFoundError):
            execution_store.update_stage_task(StageTask(execution_id="x", stage_name="intake"))

    def test_retrieve_missing_task(self, execution_store: ExecutionStore) -> None:
        with pytest.raises(NotFoundError):
            execution_store.retrieve_stage_task("missing")
