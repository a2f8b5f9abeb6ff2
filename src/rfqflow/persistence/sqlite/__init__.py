"""SQLite persistence: schema, connection plumbing and the execution store."""

from rfqflow.persistence.sqlite.schema import SCHEMA, create_tables
from rfqflow.persistence.sqlite.store import SqliteExecutionStore

__all__ = ["SCHEMA", "SqliteExecutionStore", "create_tables"]
