"""Parameterized tests for SnapshotStore - runs on all backends."""

import pytest

from rfqflow.errors import NotFoundError
from rfqflow.models import Execution, SnapshotType
from rfqflow.persistence.store import ExecutionStore
from rfqflow.state.store import SnapshotStore


@pytest.fixture
def execution_id(execution_store: ExecutionStore) -> str:
    execution = Execution(current_stage="intake")
    execution_store.create(execution)
    return execution.id


class TestSnapshotStore:
    def test_latest_is_none_without_snapshots(self, snapshot_store: SnapshotStore, execution_id: str) -> None:
        assert snapshot_store.get_latest(execution_id) is None

    def test_create_and_get(self, snapshot_store: SnapshotStore, execution_id: str) -> None:
        snapshot = snapshot_store.create_snapshot(execution_id, "intake", SnapshotType.INPUT, {"a": 1})

        stored = snapshot_store.get_snapshot(snapshot.id)
        assert stored.id == snapshot.id
        assert stored.execution_id == execution_id
        assert stored.stage_name == "intake"
        assert stored.snapshot_type is SnapshotType.INPUT
        assert stored.data == {"a": 1}

    def test_get_missing(self, snapshot_store: SnapshotStore) -> None:
        with pytest.raises(NotFoundError):
            snapshot_store.get_snapshot("missing")

    def test_latest_follows_insertion_order(self, snapshot_store: SnapshotStore, execution_id: str) -> None:
        snapshot_store.create_snapshot(execution_id, "intake", SnapshotType.INPUT, {"step": 1})
        snapshot_store.create_snapshot(execution_id, "intake", SnapshotType.OUTPUT, {"step": 2})
        last = snapshot_store.create_snapshot(execution_id, "extract", SnapshotType.INPUT, {"step": 3})

        latest = snapshot_store.get_latest(execution_id)
        assert latest is not None
        assert latest.id == last.id
        assert latest.data == {"step": 3}

    def test_sequences_increase(self, snapshot_store: SnapshotStore, execution_id: str) -> None:
        first = snapshot_store.create_snapshot(execution_id, "intake", SnapshotType.INPUT, {})
        second = snapshot_store.create_snapshot(execution_id, "intake", SnapshotType.OUTPUT, {})
        assert second.sequence > first.sequence

    def test_snapshot_data_is_detached(self, snapshot_store: SnapshotStore, execution_id: str) -> None:
        data = {"parsedData": {"customer": "ACME"}}
        snapshot = snapshot_store.create_snapshot(execution_id, "intake", SnapshotType.OUTPUT, data)

        data["parsedData"]["customer"] = "changed"

        assert snapshot_store.get_snapshot(snapshot.id).data == {"parsedData": {"customer": "ACME"}}

    def test_latest_for_stage(self, snapshot_store: SnapshotStore, execution_id: str) -> None:
        first_input = snapshot_store.create_snapshot(execution_id, "intake", SnapshotType.INPUT, {"v": 1})
        output = snapshot_store.create_snapshot(execution_id, "intake", SnapshotType.OUTPUT, {"v": 2})
        snapshot_store.create_snapshot(execution_id, "extract", SnapshotType.INPUT, {"v": 3})

        any_type = snapshot_store.get_latest_for_stage(execution_id, "intake")
        assert any_type is not None and any_type.id == output.id

        inputs = snapshot_store.get_latest_for_stage(execution_id, "intake", SnapshotType.INPUT)
        assert inputs is not None and inputs.id == first_input.id

        assert snapshot_store.get_latest_for_stage(execution_id, "decide") is None

    def test_list_snapshots(self, snapshot_store: SnapshotStore, execution_id: str) -> None:
        created = [
            snapshot_store.create_snapshot(execution_id, "intake", SnapshotType.INPUT, {}),
            snapshot_store.create_snapshot(execution_id, "intake", SnapshotType.OUTPUT, {}),
            snapshot_store.create_snapshot(execution_id, "human", SnapshotType.HUMAN_UPDATE, {}),
        ]
        listed = snapshot_store.list_snapshots(execution_id)
        assert [s.id for s in listed] == [s.id for s in created]
        assert [s.id for s in snapshot_store.list_for_stage(execution_id, "intake")] == [
            created[0].id,
            created[1].id,
        ]

    def test_delete_for_execution(
        self,
        snapshot_store: SnapshotStore,
        execution_store: ExecutionStore,
        execution_id: str,
    ) -> None:
        other = Execution(current_stage="intake")
        execution_store.create(other)
        snapshot_store.create_snapshot(execution_id, "intake", SnapshotType.INPUT, {})
        snapshot_store.create_snapshot(execution_id, "intake", SnapshotType.OUTPUT, {})
        kept = snapshot_store.create_snapshot(other.id, "intake", SnapshotType.INPUT, {})

        assert snapshot_store.delete_for_execution(execution_id) == 2
        assert snapshot_store.list_snapshots(execution_id) == []
        assert [s.id for s in snapshot_store.list_snapshots(other.id)] == [kept.id]

    def test_is_healthy(self, snapshot_store: SnapshotStore) -> None:
        assert snapshot_store.is_healthy()
