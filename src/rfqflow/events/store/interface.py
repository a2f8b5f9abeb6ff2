"""
Event store interface.

Defines the abstract interface for event storage backends. Stores are
append-only; results are always returned in insertion order unless a
query asks otherwise.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime

from rfqflow.events.base import Event, EventType

_UNBOUNDED = 1_000_000


@dataclass
class EventQuery:
    """
    Query parameters for retrieving events.

    All fields are optional - unset fields are not filtered.
    """

    execution_id: str | None = None
    stage_task_id: str | None = None
    event_types: list[EventType] | None = None
    from_timestamp: datetime | None = None
    to_timestamp: datetime | None = None
    limit: int = 1000
    offset: int = 0
    ascending: bool = True


class EventStore(ABC):
    """
    Abstract event store.

    Each appended event is assigned a monotonically increasing sequence
    number, which is the tie-breaker for events created in the same instant.
    """

    @abstractmethod
    def append(self, event: Event) -> Event:
        """
        Append a single event.

        Returns:
            The event with its sequence number assigned.
        """
        pass

    @abstractmethod
    def append_batch(self, events: list[Event]) -> list[Event]:
        """
        Append multiple events atomically, assigning sequences in order.

        Returns:
            Events with sequence numbers assigned.
        """
        pass

    @abstractmethod
    def get_events(self, query: EventQuery) -> Iterator[Event]:
        """Query events matching criteria, ordered by sequence."""
        pass

    @abstractmethod
    def count_by_type(self, execution_id: str | None = None) -> dict[str, int]:
        """
        Count events per type.

        Args:
            execution_id: Restrict the count to one execution.

        Returns:
            Mapping of event type name to count; types with no events are omitted.
        """
        pass

    @abstractmethod
    def delete_for_execution(self, execution_id: str) -> int:
        """Remove an execution's events. Only used when the execution is deleted."""
        pass

    @abstractmethod
    def is_healthy(self) -> bool:
        pass

    # Convenience queries built on get_events

    def get_events_for_execution(self, execution_id: str) -> list[Event]:
        """All events of an execution in creation order."""
        return list(self.get_events(EventQuery(execution_id=execution_id, limit=_UNBOUNDED)))

    def get_by_type(self, event_type: EventType | str, execution_id: str | None = None) -> list[Event]:
        query = EventQuery(
            execution_id=execution_id,
            event_types=[EventType.parse(event_type)],
            limit=_UNBOUNDED,
        )
        return list(self.get_events(query))

    def get_by_stage_task(self, stage_task_id: str) -> list[Event]:
        return list(self.get_events(EventQuery(stage_task_id=stage_task_id, limit=_UNBOUNDED)))

    def get_by_time_range(
        self,
        start: datetime,
        end: datetime,
        execution_id: str | None = None,
    ) -> list[Event]:
        """Events created within ``[start, end]``."""
        query = EventQuery(
            execution_id=execution_id,
            from_timestamp=start,
            to_timestamp=end,
            limit=_UNBOUNDED,
        )
        return list(self.get_events(query))

