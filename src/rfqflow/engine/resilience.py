"""
Per-stage bulkheads.

Each pipeline stage gets its own BulkheadThreading instance from bulkman,
so a slow stage cannot starve the others and every executor call is
bounded by a wall-clock timeout.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any, TypeVar, cast

from bulkman.config import BulkheadConfig as BulkmanConfig
from bulkman.exceptions import BulkheadCircuitOpenError, BulkheadFullError, BulkheadTimeoutError
from bulkman.threading import BulkheadThreading

from rfqflow.config import EngineConfig
from rfqflow.errors import StageCapacityError, StageTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Bulkman needs a finite timeout; used when stage timeouts are disabled
_NO_TIMEOUT_SECONDS = 24 * 60 * 60.0


class StageBulkheads:
    """
    Lazily created bulkheads keyed by stage name.

    Example:
        bulkheads = StageBulkheads(config)
        result = bulkheads.execute("intake", executor.execute, context)
    """

    def __init__(self, config: EngineConfig) -> None:
        self._config = config
        self._bulkheads: dict[str, BulkheadThreading] = {}
        self._lock = threading.Lock()

    @property
    def timeout_seconds(self) -> float | None:
        """Executor timeout, or None when disabled."""
        timeout = self._config.stage_timeout_seconds
        return timeout if timeout and timeout > 0 else None

    def get(self, stage: str) -> BulkheadThreading:
        with self._lock:
            bulkhead = self._bulkheads.get(stage)
            if bulkhead is None:
                concurrency = self._config.concurrency_for(stage)
                bulkhead = BulkheadThreading(
                    BulkmanConfig(
                        name=f"rfqflow_{stage}",
                        max_concurrent_calls=concurrency,
                        max_queue_size=concurrency * 4,
                        timeout_seconds=self.timeout_seconds or _NO_TIMEOUT_SECONDS,
                        # Job retries already cover repeated failures
                        circuit_breaker_enabled=False,
                    )
                )
                self._bulkheads[stage] = bulkhead
                logger.debug("Created bulkhead for stage '%s' with max_concurrent=%d", stage, concurrency)
            return bulkhead

    def execute(
        self,
        stage: str,
        func: Callable[..., T],
        *args: Any,
        execution_id: str | None = None,
    ) -> T:
        """
        Run ``func`` through the stage's bulkhead.

        Returns:
            The function's result

        Raises:
            StageTimeoutError: The call exceeded the stage timeout
            StageCapacityError: The bulkhead is saturated
            Exception: Any exception raised by ``func`` itself
        """
        timeout = self.timeout_seconds
        try:
            result = self.get(stage).execute_with_timeout(func, *args, timeout=timeout)
        except BulkheadTimeoutError as e:
            raise self._timeout_error(stage, execution_id, e) from e
        except (BulkheadFullError, BulkheadCircuitOpenError) as e:
            logger.warning("Bulkhead full for stage '%s': %s", stage, e)
            raise StageCapacityError(
                f"Bulkhead full for stage {stage}",
                stage=stage,
                execution_id=execution_id,
                cause=e,
            ) from e

        if result.success:
            return cast(T, result.result)

        error = result.error
        if error is None:
            raise RuntimeError(f"Stage '{stage}' failed without error details")
        if isinstance(error, BulkheadTimeoutError):
            raise self._timeout_error(stage, execution_id, error) from error
        raise error

    def _timeout_error(self, stage: str, execution_id: str | None, cause: Exception) -> StageTimeoutError:
        logger.warning("Stage '%s' timed out after %ss", stage, self.timeout_seconds)
        return StageTimeoutError(
            f"Stage {stage} exceeded timeout of {self.timeout_seconds}s",
            stage=stage,
            execution_id=execution_id,
            timeout_seconds=self.timeout_seconds,
            cause=cause,
        )

    def get_all_stats(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return {stage: bulkhead.get_stats() for stage, bulkhead in self._bulkheads.items()}

    def shutdown(self, wait: bool = True, timeout: float | None = None) -> None:
        with self._lock:
            bulkheads = list(self._bulkheads.items())
            self._bulkheads.clear()
        for stage, bulkhead in bulkheads:
            logger.debug("Shutting down bulkhead '%s'", stage)
            bulkhead.shutdown(wait=wait, timeout=timeout)
