"""
Stage registry for resolving executors.

Maps stage names to executor implementations. Registrations may be:
- StageExecutor classes (instantiated on resolve)
- StageExecutor instances (used directly)
- Callable functions (wrapped in CallableStageExecutor)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import cast

from rfqflow.errors import NotFoundError
from rfqflow.executors.interface import CallableStageExecutor, StageCallable, StageExecutor

logger = logging.getLogger(__name__)

StageImplementation = type[StageExecutor] | StageExecutor | StageCallable


class StageRegistry:
    """
    Registry of stage executors.

    Example:
        registry = StageRegistry()

        # Register an executor instance
        registry.register("intake", IntakeExecutor(parser))

        # Register a function
        @registry.stage("duplicate")
        def check_duplicates(context):
            return StageResult.proceed("prioritization")

        executor = registry.get("intake")
        result = executor.execute(context)
    """

    def __init__(self) -> None:
        self._stages: dict[str, StageImplementation] = {}

    def register(self, name: str, executor: StageImplementation) -> None:
        """
        Register an executor for a stage.

        Args:
            name: The stage name
            executor: Executor class, instance, or callable
        """
        if name in self._stages:
            logger.warning("Overwriting existing stage registration: %s", name)

        self._stages[name] = executor
        logger.debug("Registered stage executor: %s", name)

    def stage(self, name: str) -> Callable[[StageCallable], StageCallable]:
        """
        Decorator to register a function as a stage executor.

        Example:
            @registry.stage("mto")
            def build_mto(context):
                return StageResult.complete({"mtoData": {...}})
        """

        def decorator(func: StageCallable) -> StageCallable:
            self.register(name, func)
            return func

        return decorator

    def get(self, name: str) -> StageExecutor:
        """
        Get the executor of a stage.

        Raises:
            NotFoundError: No executor registered for ``name``
        """
        if name not in self._stages:
            raise NotFoundError("StageExecutor", name)

        impl = self._stages[name]

        if isinstance(impl, StageExecutor):
            return impl
        if isinstance(impl, type) and issubclass(impl, StageExecutor):
            return impl()
        if callable(impl):
            return CallableStageExecutor(cast(StageCallable, impl), name=name)
        raise NotFoundError("StageExecutor", name)

    def has(self, name: str) -> bool:
        return name in self._stages

    def list_stages(self) -> list[str]:
        """Get all registered stage names."""
        return list(self._stages.keys())

    def clear(self) -> None:
        self._stages.clear()
