"""Errors raised by the execution state machine and its public surface."""

from __future__ import annotations

from rfqflow.errors.base import RfqflowError


class NotFoundError(RfqflowError):
    """An execution, snapshot, stage task or stage executor does not exist.

    The message mirrors the resource/identifier pair, e.g.
    ``Execution with id '01J...' not found``.
    """

    code: int = 404

    def __init__(
        self,
        resource: str,
        identifier: str,
        *,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(f"{resource} with id '{identifier}' not found", cause=cause)
        self.resource = resource
        self.identifier = identifier


class ConflictError(RfqflowError):
    """Illegal state transition.

    Raised for resume while not AWAITING_HUMAN and cancel while
    COMPLETED or CANCELLED. Nothing is written when this is raised.
    """

    code: int = 409

    def __init__(
        self,
        message: str,
        *,
        code: int | None = None,
        cause: Exception | None = None,
        execution_id: str | None = None,
        status: str | None = None,
    ) -> None:
        super().__init__(message, code=code, cause=cause)
        self.execution_id = execution_id
        self.status = status


class ValidationError(RfqflowError):
    """Malformed stage name, update payload or event type."""

    code: int = 400

    def __init__(
        self,
        message: str,
        *,
        code: int | None = None,
        cause: Exception | None = None,
        field: str | None = None,
    ) -> None:
        super().__init__(message, code=code, cause=cause)
        self.field = field
