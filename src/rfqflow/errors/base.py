"""Base exception hierarchy for rfqflow.

Two-tier hierarchy:

1. RfqflowBaseException - root of every rfqflow error
2. RfqflowError - standard errors raised by the engine and its stores
"""

from __future__ import annotations


class RfqflowBaseException(Exception):  # noqa: N818 - intentional base exception name
    """Base exception for all rfqflow errors.

    Attributes:
        code: Numeric error code for programmatic handling (HTTP-like)
        cause: Optional original exception that caused this error
    """

    code: int = 0

    def __init__(
        self,
        message: str,
        *,
        code: int | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code
        self.cause = cause

    @property
    def message(self) -> str:
        return super().__str__()

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.code:
            parts.append(f"(code={self.code})")
        if self.cause:
            parts.append(f"caused by: {self.cause}")
        return " ".join(parts)


class RfqflowError(RfqflowBaseException):
    """Standard rfqflow error.

    All normal application errors inherit from this.
    """

    code: int = 100
