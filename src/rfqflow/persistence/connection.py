"""
Process-wide SQLite connections for rfqflow.

The execution store, snapshot store, event store and job queue of one
database all read and write through the same per-thread connection, handed
out by a single ConnectionManager. Worker threads each get their own
connection to the shared database file.
"""

from __future__ import annotations

import sqlite3
import threading
from typing import Any

SQLITE_BUSY_TIMEOUT_SECONDS = 30
MEMORY_DATABASE = ":memory:"


class SingletonMeta(type):
    """
    Metaclass giving each class one shared instance per process.

    ``reset`` drops the instance (closing its connections), so tests can
    start every case from fresh databases.
    """

    _instances: dict[type, Any] = {}
    _lock: threading.Lock = threading.Lock()

    def __call__(cls, *args: Any, **kwargs: Any) -> Any:
        instance = cls._instances.get(cls)
        if instance is None:
            with cls._lock:
                instance = cls._instances.get(cls)
                if instance is None:
                    instance = super().__call__(*args, **kwargs)
                    cls._instances[cls] = instance
        return instance

    @classmethod
    def reset(mcs, cls: type) -> None:
        with mcs._lock:
            instance = mcs._instances.pop(cls, None)
        if instance is not None and hasattr(instance, "close_all"):
            instance.close_all()


def parse_sqlite_path(connection_string: str) -> str:
    """Database file path of a ``sqlite:///path.db`` URL (bare paths pass through)."""
    for prefix in ("sqlite:///", "sqlite://"):
        if connection_string.startswith(prefix):
            return connection_string[len(prefix) :]
    return connection_string


def _open(db_path: str) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path, timeout=SQLITE_BUSY_TIMEOUT_SECONDS, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    # Deleting an execution cascades to its stage tasks, snapshots and events
    conn.execute("PRAGMA foreign_keys = ON")
    if db_path != MEMORY_DATABASE:
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute(f"PRAGMA busy_timeout = {SQLITE_BUSY_TIMEOUT_SECONDS * 1000}")
    return conn


class ConnectionManager(metaclass=SingletonMeta):
    """
    Hands out one SQLite connection per thread and database file.

    A ``:memory:`` database lives only as long as, and only within, the
    thread's connection, so stage workers running on several threads need a
    database file.

    Usage:
        conn = get_connection_manager().get_sqlite_connection("sqlite:///rfqflow.db")
    """

    def __init__(self) -> None:
        self._local = threading.local()
        self._lock = threading.Lock()
        self._opened: list[sqlite3.Connection] = []

    def _thread_connections(self) -> dict[str, sqlite3.Connection | None]:
        connections = getattr(self._local, "connections", None)
        if connections is None:
            connections = self._local.connections = {}
        return connections

    def get_sqlite_connection(self, connection_string: str) -> sqlite3.Connection:
        """
        Connection of the calling thread to ``connection_string``.

        A connection closed with close_sqlite_connection() is reopened.
        """
        db_path = parse_sqlite_path(connection_string)
        connections = self._thread_connections()

        conn = connections.get(db_path)
        if conn is None:
            conn = _open(db_path)
            connections[db_path] = conn
            with self._lock:
                self._opened.append(conn)
        return conn

    def close_sqlite_connection(self, connection_string: str) -> None:
        """Close the calling thread's connection to ``connection_string``."""
        connections = self._thread_connections()
        db_path = parse_sqlite_path(connection_string)
        conn = connections.get(db_path)
        if conn is not None:
            conn.close()
            connections[db_path] = None

    def close_all(self) -> None:
        """Close every connection opened by any thread."""
        with self._lock:
            opened, self._opened = self._opened, []
        for conn in opened:
            conn.close()
        self._thread_connections().clear()


def get_connection_manager() -> ConnectionManager:
    return ConnectionManager()
