"""
Composable stage definitions.

Most stages follow the same shape: build a request from the accumulated
state, call some external service (a model, a search index, a pricing
API), parse the raw answer into state, and decide where to go next. A
StageDefinition supplies those four steps; DefinedStageExecutor runs them,
records TOOL_* events around the external call and turns any exception
into a failed result.

Example:
    class PrioritizationStage(StageDefinition):
        name = "prioritization"

        def build_input(self, context):
            return {"rfq": context.current_state.get("parsedData", {})}

        def invoke_external(self, request, context):
            reply = scoring_client.score(request)
            return ExternalCallResult(output=reply.text, token_usage=reply.usage)

        def parse_output(self, raw, context):
            return {"priority": extract_json(raw)["priority"]}

        def decide_next_action(self, parsed, context):
            return self.continue_to_next(context)

    registry.register("prioritization", DefinedStageExecutor(PrioritizationStage()))
"""

from __future__ import annotations

import json
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from rfqflow.errors import ValidationError, truncate_error
from rfqflow.events.base import Event, EventType
from rfqflow.executors.interface import StageContext, StageExecutor, StageMetrics, StageResult
from rfqflow.logging import stage_logger
from rfqflow.models.actions import AwaitHuman, Complete, Continue, NextAction, Skip
from rfqflow.models.pipeline import RFQ_PIPELINE, Pipeline

_FENCED_JSON = re.compile(r"```(?:json)?\n?([\s\S]*?)\n?```")


def extract_json(text: str) -> Any:
    """
    Extract a JSON document from free text.

    Accepts a fenced ```json block or a bare JSON document.

    Raises:
        ValidationError: No JSON could be extracted
    """
    match = _FENCED_JSON.search(text)
    candidate = match.group(1).strip() if match else text
    try:
        return json.loads(candidate)
    except (TypeError, ValueError) as e:
        raise ValidationError("Could not extract structured output from response", cause=e) from e


@dataclass
class ExternalCallResult:
    """Raw answer of an external call plus what it cost."""

    output: Any
    token_usage: dict[str, int] = field(default_factory=dict)
    cost_usd: float | None = None


class StageDefinition(ABC):
    """
    The four steps of a stage.

    ``pipeline`` is bound by DefinedStageExecutor and used by the
    next-action helpers.
    """

    name: str = "external"

    def __init__(self, pipeline: Pipeline | None = None) -> None:
        self.pipeline = pipeline or RFQ_PIPELINE

    @abstractmethod
    def build_input(self, context: StageContext) -> Any:
        """Build the request for the external call."""
        pass

    @abstractmethod
    def invoke_external(self, request: Any, context: StageContext) -> ExternalCallResult:
        pass

    @abstractmethod
    def parse_output(self, raw: Any, context: StageContext) -> dict[str, Any]:
        """Turn the raw answer into a partial state update."""
        pass

    @abstractmethod
    def decide_next_action(self, parsed: dict[str, Any], context: StageContext) -> NextAction:
        pass

    # ========== Next-action helpers ==========

    def continue_to_next(self, context: StageContext) -> NextAction:
        """Continue to the following stage, or complete after the last one."""
        next_stage = self.pipeline.next_after(context.stage)
        if next_stage is None:
            return Complete()
        return Continue(next_stage)

    def await_human(self, reason: str, required_fields: list[str] | None = None) -> NextAction:
        return AwaitHuman(reason, list(required_fields or []))

    def skip_to(self, stage: str, reason: str) -> NextAction:
        return Skip(self.pipeline.validate_stage(stage, field="next_stage"), reason=reason)


class DefinedStageExecutor(StageExecutor):
    """Runs a StageDefinition as a StageExecutor."""

    def __init__(self, definition: StageDefinition, pipeline: Pipeline | None = None) -> None:
        self.definition = definition
        if pipeline is not None:
            definition.pipeline = pipeline

    @property
    def pipeline(self) -> Pipeline:
        return self.definition.pipeline

    def execute(self, context: StageContext) -> StageResult:
        log = stage_logger(context.execution_id, context.stage, attempt=context.attempt)
        events: list[Event] = []
        started = time.monotonic()
        tool = self.definition.name

        try:
            request = self.definition.build_input(context)

            events.append(Event.create(EventType.TOOL_INVOKED, {"tool": tool, "stage": context.stage}))
            try:
                call = self.definition.invoke_external(request, context)
            except Exception as e:
                events.append(Event.create(EventType.TOOL_FAILED, {"tool": tool, "error": truncate_error(e)}))
                raise
            events.append(
                Event.create(
                    EventType.TOOL_COMPLETED,
                    {"tool": tool, "tokenUsage": dict(call.token_usage), "costUsd": call.cost_usd},
                )
            )

            parsed = self.definition.parse_output(call.output, context)
            if not isinstance(parsed, dict):
                raise ValidationError(f"parse_output must return a dict, got {type(parsed).__name__}")
            next_action = self.definition.decide_next_action(parsed, context)

        except Exception as e:
            duration_ms = int((time.monotonic() - started) * 1000)
            log.error("stage_definition_failed", tool=tool, error=str(e), duration_ms=duration_ms)
            return StageResult.failure(
                truncate_error(e),
                events=events,
                metrics=StageMetrics(duration_ms=duration_ms),
            )

        duration_ms = int((time.monotonic() - started) * 1000)
        log.info("stage_definition_completed", tool=tool, duration_ms=duration_ms)
        return StageResult(
            success=True,
            next_action=next_action,
            output_state=parsed,
            events=events,
            metrics=StageMetrics(
                duration_ms=duration_ms,
                token_usage=dict(call.token_usage),
                cost_usd=call.cost_usd,
            ),
            output=call.output,
        )
