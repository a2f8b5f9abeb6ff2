"""
SQLite event store implementation.

Provides durable, append-only event storage. The ``sequence`` column is an
AUTOINCREMENT key, which gives a stable insertion order even when several
events share a timestamp.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from typing import Any

from rfqflow.events.base import Event, EventType
from rfqflow.events.store.interface import EventQuery, EventStore
from rfqflow.models.common import format_datetime, parse_datetime
from rfqflow.persistence.sqlite.base import SqliteStoreBase, dumps, loads


class SqliteEventStore(SqliteStoreBase, EventStore):
    """
    SQLite implementation of the event store.

    Events reference their execution with ON DELETE CASCADE, so they are
    removed only when the owning execution is deleted.
    """

    def append(self, event: Event) -> Event:
        return self.append_batch([event])[0]

    def append_batch(self, events: list[Event]) -> list[Event]:
        if not events:
            return []

        appended = []
        with self._transaction("event append") as conn:
            for event in events:
                cursor = conn.execute(
                    """
                    INSERT INTO events (event_id, execution_id, stage_task_id, event_type, data, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        event.event_id,
                        event.execution_id,
                        event.stage_task_id,
                        event.event_type.value,
                        dumps(event.data),
                        format_datetime(event.created_at),
                    ),
                )
                appended.append(event.with_sequence(cursor.lastrowid or 0))
        return appended

    def get_events(self, query: EventQuery) -> Iterator[Event]:
        sql_parts = ["SELECT * FROM events WHERE 1=1"]
        params: list[Any] = []

        if query.execution_id is not None:
            sql_parts.append("AND execution_id = ?")
            params.append(query.execution_id)

        if query.stage_task_id is not None:
            sql_parts.append("AND stage_task_id = ?")
            params.append(query.stage_task_id)

        if query.event_types:
            placeholders = ",".join("?" * len(query.event_types))
            sql_parts.append(f"AND event_type IN ({placeholders})")
            params.extend(et.value for et in query.event_types)

        if query.from_timestamp is not None:
            sql_parts.append("AND created_at >= ?")
            params.append(format_datetime(query.from_timestamp))

        if query.to_timestamp is not None:
            sql_parts.append("AND created_at <= ?")
            params.append(format_datetime(query.to_timestamp))

        sql_parts.append(f"ORDER BY sequence {'ASC' if query.ascending else 'DESC'}")
        sql_parts.append("LIMIT ? OFFSET ?")
        params.extend([query.limit, query.offset])

        with self._wrap_errors("event query"):
            rows = self._get_connection().execute(" ".join(sql_parts), params).fetchall()
        for row in rows:
            yield _row_to_event(row)

    def count_by_type(self, execution_id: str | None = None) -> dict[str, int]:
        sql = "SELECT event_type, COUNT(*) AS n FROM events"
        params: list[Any] = []
        if execution_id is not None:
            sql += " WHERE execution_id = ?"
            params.append(execution_id)
        sql += " GROUP BY event_type"

        with self._wrap_errors("event count"):
            rows = self._get_connection().execute(sql, params).fetchall()
        return {row["event_type"]: row["n"] for row in rows}

    def delete_for_execution(self, execution_id: str) -> int:
        with self._transaction("event delete") as conn:
            cursor = conn.execute("DELETE FROM events WHERE execution_id = ?", (execution_id,))
        return cursor.rowcount


def _row_to_event(row: sqlite3.Row) -> Event:
    return Event(
        event_id=row["event_id"],
        event_type=EventType(row["event_type"]),
        execution_id=row["execution_id"],
        stage_task_id=row["stage_task_id"],
        data=loads(row["data"]),
        created_at=parse_datetime(row["created_at"]),
        sequence=row["sequence"],
    )
