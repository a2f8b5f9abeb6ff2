"""Shared plumbing for SQLite-backed stores."""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from rfqflow.errors import StorageError
from rfqflow.persistence.connection import get_connection_manager
from rfqflow.persistence.sqlite.schema import create_tables

logger = logging.getLogger(__name__)


class SqliteStoreBase:
    """
    Base for stores sharing the rfqflow SQLite schema.

    Connections come from the singleton ConnectionManager (one per thread).
    Raw ``sqlite3.Error`` never leaves a store: it is wrapped in the
    store's ``error_class`` so callers can tell infrastructure failures
    from business ones.
    """

    error_class: type[StorageError] = StorageError

    def __init__(self, connection_string: str, create_schema: bool = True) -> None:
        self.connection_string = connection_string
        self._manager = get_connection_manager()
        if create_schema:
            with self._wrap_errors("create schema"):
                create_tables(self._get_connection())

    def _get_connection(self) -> sqlite3.Connection:
        return self._manager.get_sqlite_connection(self.connection_string)

    def close(self) -> None:
        """Close SQLite connection for current thread."""
        self._manager.close_sqlite_connection(self.connection_string)

    def is_healthy(self) -> bool:
        try:
            self._get_connection().execute("SELECT 1").fetchone()
        except sqlite3.Error as e:
            logger.warning("SQLite health check failed: %s", e)
            return False
        return True

    @contextmanager
    def _wrap_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except sqlite3.Error as e:
            raise self.error_class(f"SQLite {operation} failed: {e}", cause=e) from e

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[sqlite3.Connection]:
        """Run statements in one transaction, rolling back on any error."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise self.error_class(f"SQLite {operation} failed: {e}", cause=e) from e
        except Exception:
            conn.rollback()
            raise


def dumps(value: Any) -> str:
    return json.dumps(value if value is not None else {}, default=str)


def loads(value: str | None) -> Any:
    if not value:
        return {}
    return json.loads(value)
