"""
Audit event types.

Events are immutable records of every execution transition and of the
sub-actions (external tool calls) a stage performs. They are append-only:
never updated, and deleted only when their execution is deleted.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from rfqflow.errors import ValidationError
from rfqflow.models.common import format_datetime, generate_id, parse_datetime, utc_now


class EventType(Enum):
    """
    The closed set of event types.

    Events are organized by what they describe:
    - EXECUTION_* - execution lifecycle (state machine)
    - STAGE_* - one stage attempt (orchestrator)
    - HUMAN_* - human-in-the-loop pause and resume (state machine)
    - STATE_SNAPSHOT_CREATED - a new snapshot of accumulated state
    - TOOL_* - external calls made inside a stage (executors)
    """

    # Execution lifecycle
    EXECUTION_CREATED = "EXECUTION_CREATED"
    EXECUTION_COMPLETED = "EXECUTION_COMPLETED"
    EXECUTION_FAILED = "EXECUTION_FAILED"
    EXECUTION_CANCELLED = "EXECUTION_CANCELLED"
    EXECUTION_RESUMED = "EXECUTION_RESUMED"

    # Stage lifecycle
    STAGE_STARTED = "STAGE_STARTED"
    STAGE_COMPLETED = "STAGE_COMPLETED"
    STAGE_FAILED = "STAGE_FAILED"

    # Human in the loop
    HUMAN_INTERVENTION_REQUIRED = "HUMAN_INTERVENTION_REQUIRED"
    HUMAN_INPUT_RECEIVED = "HUMAN_INPUT_RECEIVED"

    # State
    STATE_SNAPSHOT_CREATED = "STATE_SNAPSHOT_CREATED"

    # External calls
    TOOL_INVOKED = "TOOL_INVOKED"
    TOOL_COMPLETED = "TOOL_COMPLETED"
    TOOL_FAILED = "TOOL_FAILED"

    @classmethod
    def parse(cls, value: EventType | str) -> EventType:
        """Resolve a name to an EventType.

        Raises:
            ValidationError: The name is not one of the closed set
        """
        if isinstance(value, EventType):
            return value
        try:
            return cls(value)
        except ValueError as e:
            raise ValidationError(f"Unknown event type: {value!r}", field="event_type") from e


# Types only the engine emits; executors may not contribute these
ENGINE_EVENT_TYPES: frozenset[EventType] = frozenset(
    {
        EventType.EXECUTION_CREATED,
        EventType.EXECUTION_COMPLETED,
        EventType.EXECUTION_FAILED,
        EventType.EXECUTION_CANCELLED,
        EventType.EXECUTION_RESUMED,
        EventType.STAGE_STARTED,
        EventType.STAGE_COMPLETED,
        EventType.STAGE_FAILED,
        EventType.HUMAN_INTERVENTION_REQUIRED,
        EventType.HUMAN_INPUT_RECEIVED,
    }
)


@dataclass(frozen=True)
class Event:
    """
    Immutable event record.

    Attributes:
        event_type: Type from the closed EventType set
        execution_id: Owning execution (may be empty on executor-built events
            until the orchestrator tags them)
        stage_task_id: Stage attempt the event belongs to, if any
        data: Event-specific payload
        event_id: Unique identifier (ULID)
        created_at: When the event was created (UTC)
        sequence: Insertion order, assigned by the store on append
    """

    event_type: EventType
    execution_id: str = ""
    stage_task_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=generate_id)
    created_at: datetime = field(default_factory=utc_now)
    sequence: int = 0

    @classmethod
    def create(
        cls,
        event_type: EventType | str,
        data: dict[str, Any] | None = None,
        execution_id: str = "",
        stage_task_id: str | None = None,
    ) -> Event:
        """Build an event, validating the type against the closed set."""
        return cls(
            event_type=EventType.parse(event_type),
            execution_id=execution_id,
            stage_task_id=stage_task_id,
            data=dict(data or {}),
        )

    def with_sequence(self, sequence: int) -> Event:
        """Return a new event with the given sequence number."""
        return replace(self, sequence=sequence)

    def bind(self, execution_id: str, stage_task_id: str | None) -> Event:
        """Return a copy owned by the given execution and stage task."""
        return replace(self, execution_id=execution_id, stage_task_id=stage_task_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "execution_id": self.execution_id,
            "stage_task_id": self.stage_task_id,
            "data": self.data,
            "created_at": format_datetime(self.created_at),
            "sequence": self.sequence,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Event:
        return cls(
            event_id=data.get("event_id") or generate_id(),
            event_type=EventType.parse(data["event_type"]),
            execution_id=data.get("execution_id", ""),
            stage_task_id=data.get("stage_task_id"),
            data=data.get("data") or {},
            created_at=parse_datetime(data.get("created_at")) or utc_now(),
            sequence=data.get("sequence", 0),
        )

    def __repr__(self) -> str:
        return (
            f"Event(id={self.event_id[:8]}..., "
            f"type={self.event_type.value}, "
            f"execution={self.execution_id[:8]}..., "
            f"seq={self.sequence})"
        )
