"""CLI command implementations for rfqflow."""

from __future__ import annotations

import importlib
import json
import signal
import sys
import threading
from dataclasses import replace
from typing import Any

from rfqflow.config import EngineConfig
from rfqflow.engine import Engine
from rfqflow.errors import ValidationError
from rfqflow.executors import StageRegistry
from rfqflow.logging import configure_logging
from rfqflow.models.pipeline import RFQ_PIPELINE, Pipeline


def load_registry(spec: str | None) -> StageRegistry:
    """
    Import a StageRegistry given as ``package.module:attribute``.

    The attribute may be a registry or a zero-argument callable returning one.
    """
    if not spec:
        return StageRegistry()
    module_name, _, attr = spec.partition(":")
    if not module_name or not attr:
        raise ValidationError(f"Registry must look like 'module:attribute', got {spec!r}", field="registry")

    target: Any = getattr(importlib.import_module(module_name), attr)
    if callable(target) and not isinstance(target, StageRegistry):
        target = target()
    if not isinstance(target, StageRegistry):
        raise ValidationError(f"{spec} is not a StageRegistry", field="registry")
    return target


def parse_json_object(value: str | None, name: str) -> dict[str, Any] | None:
    if value is None:
        return None
    try:
        parsed = json.loads(value)
    except ValueError as e:
        raise ValidationError(f"--{name} is not valid JSON: {e}", field=name) from e
    if not isinstance(parsed, dict):
        raise ValidationError(f"--{name} must be a JSON object", field=name)
    return parsed


def build_engine(db_url: str | None, registry: str | None, pipeline: str | None) -> Engine:
    config = EngineConfig.from_env()
    if db_url:
        config = replace(config, database_url=db_url)
    configure_logging(json_format=config.log_json, level=config.log_level)
    stages = Pipeline([s.strip() for s in pipeline.split(",")]) if pipeline else RFQ_PIPELINE
    return Engine.from_config(load_registry(registry), config=config, pipeline=stages)


def print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def worker(engine: Engine) -> None:
    """Run every stage consumer until SIGINT/SIGTERM, then drain."""
    stop = threading.Event()

    def _handle_signal(signum: int, _frame: Any) -> None:
        print(f"Received signal {signum}, draining workers...", file=sys.stderr)
        stop.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    engine.start_workers()
    print(f"Workers running for stages: {', '.join(engine.pipeline)}", file=sys.stderr)
    while not stop.is_set():
        stop.wait(1.0)


def create(engine: Engine, input_json: str, metadata_json: str | None, external_ref: str | None) -> None:
    payload = parse_json_object(input_json, "input") or {}
    metadata = parse_json_object(metadata_json, "metadata")
    print(engine.create(payload, metadata=metadata, external_ref=external_ref))


def status(engine: Engine, execution_id: str) -> None:
    print_json(engine.get(execution_id).to_dict())


def history(engine: Engine, execution_id: str) -> None:
    print_json(engine.get_history(execution_id).to_dict())


def resume(engine: Engine, execution_id: str, state_json: str | None, from_stage: str | None) -> None:
    engine.resume(
        execution_id,
        updated_state=parse_json_object(state_json, "state"),
        resume_from_stage=from_stage,
    )
    print(f"Resumed {execution_id}")


def replay(engine: Engine, execution_id: str, from_stage: str) -> None:
    print(engine.replay(execution_id, from_stage))


def cancel(engine: Engine, execution_id: str) -> None:
    engine.cancel(execution_id)
    print(f"Cancelled {execution_id}")


def queues(engine: Engine) -> None:
    print_json(
        {
            "health": engine.health(),
            "queues": {stage: counts.to_dict() for stage, counts in engine.queue_counts().items()},
        }
    )
