"""
rfqflow error hierarchy.

    RfqflowBaseException
    └── RfqflowError
        ├── NotFoundError
        ├── ConflictError
        ├── ValidationError
        ├── StageExecutionError
        │   ├── StageTimeoutError
        │   └── StageCapacityError
        └── StorageError
            ├── ConcurrencyError
            └── QueueError
"""

from rfqflow.errors.base import RfqflowBaseException, RfqflowError
from rfqflow.errors.execution import ConflictError, NotFoundError, ValidationError
from rfqflow.errors.stage import StageCapacityError, StageExecutionError, StageTimeoutError
from rfqflow.errors.storage import ConcurrencyError, QueueError, StorageError


def truncate_error(error: BaseException | str, max_length: int = 2000) -> str:
    """Render an error for persistence, bounded in size."""
    text = str(error) or type(error).__name__
    if len(text) > max_length:
        return text[: max_length - 3] + "..."
    return text


__all__ = [
    "ConcurrencyError",
    "ConflictError",
    "NotFoundError",
    "QueueError",
    "RfqflowBaseException",
    "RfqflowError",
    "StageCapacityError",
    "StageExecutionError",
    "StageTimeoutError",
    "StorageError",
    "ValidationError",
    "truncate_error",
]
