"""SQLite snapshot store."""

from __future__ import annotations

import sqlite3
from typing import Any

from rfqflow.errors import NotFoundError
from rfqflow.models.common import format_datetime, parse_datetime
from rfqflow.models.snapshot import Snapshot
from rfqflow.models.status import SnapshotType
from rfqflow.persistence.sqlite.base import SqliteStoreBase, dumps, loads
from rfqflow.state.store.interface import SnapshotStore


class SqliteSnapshotStore(SqliteStoreBase, SnapshotStore):
    """
    Snapshots stored in the ``snapshots`` table.

    The AUTOINCREMENT ``seq`` column defines "latest"; ``created_at`` is
    informational only.
    """

    def create_snapshot(
        self,
        execution_id: str,
        stage_name: str,
        snapshot_type: SnapshotType,
        data: dict[str, Any],
    ) -> Snapshot:
        snapshot = Snapshot(
            execution_id=execution_id,
            stage_name=stage_name,
            snapshot_type=snapshot_type,
            data=data,
        )
        with self._transaction("snapshot insert") as conn:
            cursor = conn.execute(
                """
                INSERT INTO snapshots (id, execution_id, stage_name, snapshot_type, data, created_at)
                VALUES (:id, :execution_id, :stage_name, :snapshot_type, :data, :created_at)
                """,
                {
                    "id": snapshot.id,
                    "execution_id": execution_id,
                    "stage_name": stage_name,
                    "snapshot_type": snapshot_type.value,
                    "data": dumps(data),
                    "created_at": format_datetime(snapshot.created_at),
                },
            )
        # Round-trip through JSON so the returned copy is detached from ``data``
        return Snapshot(
            id=snapshot.id,
            execution_id=execution_id,
            stage_name=stage_name,
            snapshot_type=snapshot_type,
            data=loads(dumps(data)),
            created_at=snapshot.created_at,
            sequence=cursor.lastrowid or 0,
        )

    def get_latest(self, execution_id: str) -> Snapshot | None:
        return self._fetch_one(
            "SELECT * FROM snapshots WHERE execution_id = ? ORDER BY seq DESC LIMIT 1",
            (execution_id,),
        )

    def get_snapshot(self, snapshot_id: str) -> Snapshot:
        snapshot = self._fetch_one("SELECT * FROM snapshots WHERE id = ?", (snapshot_id,))
        if snapshot is None:
            raise NotFoundError("Snapshot", snapshot_id)
        return snapshot

    def get_latest_for_stage(
        self,
        execution_id: str,
        stage_name: str,
        snapshot_type: SnapshotType | None = None,
    ) -> Snapshot | None:
        if snapshot_type is None:
            return self._fetch_one(
                """
                SELECT * FROM snapshots WHERE execution_id = ? AND stage_name = ?
                ORDER BY seq DESC LIMIT 1
                """,
                (execution_id, stage_name),
            )
        return self._fetch_one(
            """
            SELECT * FROM snapshots WHERE execution_id = ? AND stage_name = ? AND snapshot_type = ?
            ORDER BY seq DESC LIMIT 1
            """,
            (execution_id, stage_name, snapshot_type.value),
        )

    def list_snapshots(self, execution_id: str) -> list[Snapshot]:
        with self._wrap_errors("snapshot query"):
            rows = (
                self._get_connection()
                .execute("SELECT * FROM snapshots WHERE execution_id = ? ORDER BY seq", (execution_id,))
                .fetchall()
            )
        return [_row_to_snapshot(row) for row in rows]

    def delete_for_execution(self, execution_id: str) -> int:
        with self._transaction("snapshot delete") as conn:
            cursor = conn.execute("DELETE FROM snapshots WHERE execution_id = ?", (execution_id,))
        return cursor.rowcount

    def _fetch_one(self, sql: str, params: tuple[Any, ...]) -> Snapshot | None:
        with self._wrap_errors("snapshot query"):
            row = self._get_connection().execute(sql, params).fetchone()
        return _row_to_snapshot(row) if row else None


def _row_to_snapshot(row: sqlite3.Row) -> Snapshot:
    return Snapshot(
        id=row["id"],
        execution_id=row["execution_id"],
        stage_name=row["stage_name"],
        snapshot_type=SnapshotType(row["snapshot_type"]),
        data=loads(row["data"]),
        created_at=parse_datetime(row["created_at"]),
        sequence=row["seq"],
    )
