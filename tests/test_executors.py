"""Tests for the stage registry, StageResult factories and composable stage definitions."""

from typing import Any

import pytest

from rfqflow.errors import NotFoundError, ValidationError
from rfqflow.events import EventType
from rfqflow.executors import (
    CallableStageExecutor,
    DefinedStageExecutor,
    ExternalCallResult,
    StageContext,
    StageDefinition,
    StageExecutor,
    StageRegistry,
    StageResult,
    extract_json,
)
from rfqflow.models import AwaitHuman, Complete, Continue, Fail, NextAction, Pipeline, Skip


class EchoExecutor(StageExecutor):
    def execute(self, context: StageContext) -> StageResult:
        return StageResult.complete({"echo": context.input})


class TestStageResult:
    def test_proceed(self) -> None:
        result = StageResult.proceed("extract", {"a": 1})
        assert result.success
        assert result.next_action == Continue("extract")
        assert result.output_state == {"a": 1}

    def test_skip(self) -> None:
        result = StageResult.skip("decide", reason="nothing to extract")
        assert result.next_action == Skip("decide", "nothing to extract")

    def test_await_human(self) -> None:
        result = StageResult.await_human("missing quantity", ["quantity"])
        assert result.next_action == AwaitHuman("missing quantity", ["quantity"])

    def test_failure(self) -> None:
        result = StageResult.failure("parser crashed")
        assert not result.success
        assert result.next_action == Fail("parser crashed")


class TestStageRegistry:
    def test_register_instance(self) -> None:
        registry = StageRegistry()
        executor = EchoExecutor()
        registry.register("intake", executor)
        assert registry.get("intake") is executor

    def test_register_class(self) -> None:
        registry = StageRegistry()
        registry.register("intake", EchoExecutor)
        assert isinstance(registry.get("intake"), EchoExecutor)

    def test_decorator_wraps_function(self) -> None:
        registry = StageRegistry()

        @registry.stage("intake")
        def intake(context: StageContext) -> StageResult:
            return StageResult.proceed("extract")

        executor = registry.get("intake")
        assert isinstance(executor, CallableStageExecutor)
        assert executor.name == "intake"
        result = executor.execute(StageContext(execution_id="e", stage="intake"))
        assert result.next_action == Continue("extract")

    def test_missing_stage(self) -> None:
        with pytest.raises(NotFoundError):
            StageRegistry().get("intake")

    def test_has_list_and_clear(self) -> None:
        registry = StageRegistry()
        registry.register("intake", EchoExecutor)
        registry.register("extract", EchoExecutor)
        assert registry.has("intake")
        assert registry.list_stages() == ["intake", "extract"]
        registry.clear()
        assert not registry.has("intake")


class TestExtractJson:
    def test_fenced_block(self) -> None:
        text = 'Here you go:\n```json\n{"priority": "high"}\n```\nThanks'
        assert extract_json(text) == {"priority": "high"}

    def test_fence_without_language(self) -> None:
        assert extract_json('```\n[1, 2]\n```') == [1, 2]

    def test_bare_json(self) -> None:
        assert extract_json('{"a": 1}') == {"a": 1}

    def test_no_json(self) -> None:
        with pytest.raises(ValidationError):
            extract_json("no structured output here")


class PrioritizationStage(StageDefinition):
    name = "scorer"

    def __init__(self, reply: Any = '{"priority": "high"}', fail_call: bool = False) -> None:
        super().__init__()
        self.reply = reply
        self.fail_call = fail_call
        self.requests: list[Any] = []

    def build_input(self, context: StageContext) -> Any:
        return {"customer": context.current_state.get("parsedData", {}).get("customer")}

    def invoke_external(self, request: Any, context: StageContext) -> ExternalCallResult:
        self.requests.append(request)
        if self.fail_call:
            raise ConnectionError("scoring service unavailable")
        return ExternalCallResult(output=self.reply, token_usage={"input": 12, "output": 3}, cost_usd=0.001)

    def parse_output(self, raw: Any, context: StageContext) -> dict[str, Any]:
        return {"priority": extract_json(raw)["priority"]}

    def decide_next_action(self, parsed: dict[str, Any], context: StageContext) -> NextAction:
        if parsed["priority"] == "unknown":
            return self.await_human("could not score", ["priority"])
        if parsed["priority"] == "spam":
            return self.skip_to("decide", "spam")
        return self.continue_to_next(context)


PIPELINE = Pipeline(["intake", "score", "extract", "decide"])


def _context(stage: str = "score") -> StageContext:
    return StageContext(
        execution_id="exec-1",
        stage=stage,
        input={"subject": "RFQ"},
        current_state={"parsedData": {"customer": "ACME"}},
    )


class TestDefinedStageExecutor:
    def test_success(self) -> None:
        definition = PrioritizationStage()
        executor = DefinedStageExecutor(definition, pipeline=PIPELINE)

        result = executor.execute(_context())

        assert definition.requests == [{"customer": "ACME"}]
        assert result.success
        assert result.next_action == Continue("extract")
        assert result.output_state == {"priority": "high"}
        assert result.metrics.token_usage == {"input": 12, "output": 3}
        assert result.metrics.cost_usd == 0.001
        assert result.metrics.duration_ms is not None
        assert [e.event_type for e in result.events] == [EventType.TOOL_INVOKED, EventType.TOOL_COMPLETED]
        assert result.events[1].data["tool"] == "scorer"

    def test_last_stage_completes(self) -> None:
        executor = DefinedStageExecutor(PrioritizationStage(), pipeline=PIPELINE)
        assert executor.execute(_context("decide")).next_action == Complete()

    def test_await_human(self) -> None:
        executor = DefinedStageExecutor(PrioritizationStage('{"priority": "unknown"}'), pipeline=PIPELINE)
        assert executor.execute(_context()).next_action == AwaitHuman("could not score", ["priority"])

    def test_skip(self) -> None:
        executor = DefinedStageExecutor(PrioritizationStage('{"priority": "spam"}'), pipeline=PIPELINE)
        assert executor.execute(_context()).next_action == Skip("decide", "spam")

    def test_external_failure(self) -> None:
        executor = DefinedStageExecutor(PrioritizationStage(fail_call=True), pipeline=PIPELINE)

        result = executor.execute(_context())

        assert not result.success
        assert isinstance(result.next_action, Fail)
        assert "scoring service unavailable" in result.next_action.error
        assert [e.event_type for e in result.events] == [EventType.TOOL_INVOKED, EventType.TOOL_FAILED]

    def test_unparseable_output(self) -> None:
        executor = DefinedStageExecutor(PrioritizationStage("I am not sure"), pipeline=PIPELINE)

        result = executor.execute(_context())

        assert not result.success
        assert isinstance(result.next_action, Fail)
        assert [e.event_type for e in result.events] == [EventType.TOOL_INVOKED, EventType.TOOL_COMPLETED]

    def test_default_pipeline(self) -> None:
        executor = DefinedStageExecutor(PrioritizationStage())
        assert list(executor.pipeline)[0] == "intake"
        assert executor.execute(_context("intake")).next_action == Continue("missing-info")
