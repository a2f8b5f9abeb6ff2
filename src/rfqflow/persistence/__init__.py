"""Execution persistence: store interface, backends and connection management."""

from rfqflow.persistence.connection import ConnectionManager, SingletonMeta, get_connection_manager
from rfqflow.persistence.memory import InMemoryExecutionStore
from rfqflow.persistence.store import ExecutionCriteria, ExecutionStore

__all__ = [
    "ConnectionManager",
    "ExecutionCriteria",
    "ExecutionStore",
    "InMemoryExecutionStore",
    "SingletonMeta",
    "get_connection_manager",
]
