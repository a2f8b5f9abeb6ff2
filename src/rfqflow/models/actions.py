"""
NextAction variants.

A stage returns one of these to decide how the pipeline progresses:

    Continue("duplicate")                 advance to the named stage
    Skip("mto", reason="no line items")   advance, marking stages in between as skipped
    AwaitHuman("missing quantity", [...]) park until resume()
    Complete()                            finish successfully
    Fail("parser crashed")                finish with an error
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

from rfqflow.errors import ValidationError


class ActionType(Enum):
    CONTINUE = "CONTINUE"
    SKIP = "SKIP"
    AWAIT_HUMAN = "AWAIT_HUMAN"
    COMPLETE = "COMPLETE"
    FAIL = "FAIL"


@dataclass(frozen=True)
class NextAction:
    """Base class for next-action variants."""

    type: ClassVar[ActionType]

    @property
    def target_stage(self) -> str | None:
        """Stage the action dispatches to, if any."""
        return None

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value}

    @staticmethod
    def from_dict(data: dict[str, Any]) -> NextAction:
        """Build a variant from its dict form.

        Raises:
            ValidationError: Unknown action type or missing fields
        """
        try:
            action_type = ActionType(data.get("type"))
        except ValueError as e:
            raise ValidationError(f"Unknown next action type: {data.get('type')!r}", field="type") from e

        if action_type is ActionType.CONTINUE:
            return Continue(_require(data, "next_stage"))
        if action_type is ActionType.SKIP:
            return Skip(_require(data, "next_stage"), reason=data.get("reason", ""))
        if action_type is ActionType.AWAIT_HUMAN:
            return AwaitHuman(
                reason=data.get("reason", ""),
                required_fields=list(data.get("required_fields") or []),
            )
        if action_type is ActionType.COMPLETE:
            return Complete()
        return Fail(error=data.get("error", ""))


def _require(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise ValidationError(f"Next action {data.get('type')} requires '{key}'", field=key)
    return value


@dataclass(frozen=True)
class Continue(NextAction):
    type: ClassVar[ActionType] = ActionType.CONTINUE

    next_stage: str

    @property
    def target_stage(self) -> str | None:
        return self.next_stage

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "next_stage": self.next_stage}


@dataclass(frozen=True)
class Skip(NextAction):
    """Advance to ``next_stage``; executors of the stages in between never run."""

    type: ClassVar[ActionType] = ActionType.SKIP

    next_stage: str
    reason: str = ""

    @property
    def target_stage(self) -> str | None:
        return self.next_stage

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "next_stage": self.next_stage, "reason": self.reason}


@dataclass(frozen=True)
class AwaitHuman(NextAction):
    type: ClassVar[ActionType] = ActionType.AWAIT_HUMAN

    reason: str
    required_fields: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "reason": self.reason,
            "required_fields": list(self.required_fields),
        }


@dataclass(frozen=True)
class Complete(NextAction):
    type: ClassVar[ActionType] = ActionType.COMPLETE


@dataclass(frozen=True)
class Fail(NextAction):
    type: ClassVar[ActionType] = ActionType.FAIL

    error: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "error": self.error}
