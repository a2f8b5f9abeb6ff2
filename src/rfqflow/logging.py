"""Structured logging for rfqflow.

Engine components (state machine, orchestrator, dispatcher) log through
structlog so every record carries execution and stage context as fields:

    from rfqflow.logging import configure_logging, stage_logger

    configure_logging(json_format=True)
    log = stage_logger("01J...", "intake")
    log.info("stage_started", attempt=1)

Storage modules keep plain ``logging.getLogger(__name__)`` loggers; the
stdlib root handler configured here renders those as well.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor

_configured = False


def configure_logging(
    json_format: bool = False,
    level: int | str = logging.INFO,
    logger_factory: Any = None,
) -> None:
    """Configure structured logging.

    Call once at process startup (the CLI does this for workers).

    Args:
        json_format: Emit JSON lines instead of the coloured console format.
        level: Minimum log level, as an int or a level name such as ``"DEBUG"``.
        logger_factory: Custom structlog logger factory (for testing).
    """
    global _configured

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stdout,
    )

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=False,
                exception_formatter=structlog.dev.plain_traceback,
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=logger_factory or structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )

    _configured = True


def get_logger(name: str) -> Any:
    """Get a structured logger, configuring defaults on first use."""
    if not _configured:
        configure_logging()
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context variables included in every subsequent log record."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def execution_logger(execution_id: str) -> Any:
    """Get a logger pre-bound with the execution id."""
    return get_logger("rfqflow.execution").bind(execution_id=execution_id)


def stage_logger(execution_id: str, stage: str, **extra: Any) -> Any:
    """Get a logger pre-bound with execution and stage context.

    Args:
        execution_id: The execution being advanced
        stage: Pipeline stage name
        **extra: Additional fields to bind (job_id, stage_task_id, ...)
    """
    return get_logger("rfqflow.stage").bind(execution_id=execution_id, stage=stage, **extra)
