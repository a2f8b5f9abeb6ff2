"""
Pipeline definition: the ordered list of stage names an execution runs.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass

from rfqflow.errors import ValidationError

RFQ_STAGES: tuple[str, ...] = (
    "intake",
    "missing-info",
    "duplicate",
    "prioritization",
    "mto",
    "auto-quote",
)


@dataclass(frozen=True)
class Pipeline:
    """Ordered, non-empty sequence of unique stage names."""

    stages: tuple[str, ...]

    def __init__(self, stages: Sequence[str]) -> None:
        stages = tuple(stages)
        if not stages:
            raise ValidationError("Pipeline requires at least one stage", field="stages")
        for name in stages:
            if not isinstance(name, str) or not name.strip():
                raise ValidationError(f"Invalid stage name: {name!r}", field="stages")
        if len(set(stages)) != len(stages):
            raise ValidationError(f"Duplicate stage names in pipeline: {stages}", field="stages")
        object.__setattr__(self, "stages", stages)

    def __contains__(self, stage: object) -> bool:
        return stage in self.stages

    def __iter__(self) -> Iterator[str]:
        return iter(self.stages)

    def __len__(self) -> int:
        return len(self.stages)

    @property
    def first(self) -> str:
        return self.stages[0]

    @property
    def last(self) -> str:
        return self.stages[-1]

    def validate_stage(self, stage: object, field: str = "stage") -> str:
        """Return ``stage`` if it is part of the pipeline.

        Raises:
            ValidationError: Not a string or not a known stage
        """
        if not isinstance(stage, str) or stage not in self.stages:
            raise ValidationError(
                f"Invalid stage {stage!r}; must be one of: {', '.join(self.stages)}",
                field=field,
            )
        return stage

    def index(self, stage: str) -> int:
        return self.stages.index(self.validate_stage(stage))

    def next_after(self, stage: str) -> str | None:
        """Stage following ``stage``, or None when it is the last one."""
        position = self.index(stage)
        if position + 1 < len(self.stages):
            return self.stages[position + 1]
        return None

    def between(self, start: str, end: str) -> tuple[str, ...]:
        """Stages strictly after ``start`` and strictly before ``end``."""
        first, last = self.index(start), self.index(end)
        if last <= first:
            return ()
        return self.stages[first + 1 : last]


RFQ_PIPELINE = Pipeline(RFQ_STAGES)
