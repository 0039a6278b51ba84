"""
Pipeline execution state: steps, statuses and their serialized form.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from ..prompts.models import ExecutionResult


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class PipelineStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


# Statuses that let navigation move past a step.
SETTLED_STATUSES = frozenset({StepStatus.COMPLETED, StepStatus.SKIPPED})


def utcnow() -> datetime:
    return datetime.now(UTC)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass
class PipelineStep:
    """
    One template within a pipeline.

    ``order`` is the gapless 1-based position; ``tag_order`` is the numeric
    suffix of the tag that placed the template in its group.
    """

    id: str
    template_id: str
    template_name: str
    order: int
    tag_order: int
    status: StepStatus = StepStatus.PENDING
    inputs: dict[str, Any] = field(default_factory=dict)
    execution: ExecutionResult | None = None
    notes: str = ""
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_settled(self) -> bool:
        return self.status in SETTLED_STATUSES

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "template_id": self.template_id,
            "template_name": self.template_name,
            "order": self.order,
            "tag_order": self.tag_order,
            "status": self.status.value,
            "inputs": self.inputs,
            "execution": self.execution.to_dict() if self.execution else None,
            "notes": self.notes,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PipelineStep":
        execution = data.get("execution")
        return cls(
            id=data["id"],
            template_id=data["template_id"],
            template_name=data["template_name"],
            order=int(data["order"]),
            tag_order=int(data.get("tag_order", data["order"])),
            status=StepStatus(data.get("status", StepStatus.PENDING.value)),
            inputs=dict(data.get("inputs") or {}),
            execution=ExecutionResult.from_dict(execution) if execution else None,
            notes=data.get("notes") or "",
            started_at=_parse_dt(data.get("started_at")),
            completed_at=_parse_dt(data.get("completed_at")),
        )


@dataclass
class PipelineExecution:
    """A run of one tag group, owning its steps exclusively."""

    id: str
    group_name: str
    steps: list[PipelineStep]
    project_id: str | None = None
    current_step_index: int = 0
    status: PipelineStatus = PipelineStatus.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    notes: str = ""

    @property
    def current_step(self) -> PipelineStep | None:
        if 0 <= self.current_step_index < len(self.steps):
            return self.steps[self.current_step_index]
        return None

    def step_by_id(self, step_id: str) -> PipelineStep | None:
        return next((s for s in self.steps if s.id == step_id), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "group_name": self.group_name,
            "project_id": self.project_id,
            "current_step_index": self.current_step_index,
            "status": self.status.value,
            "steps": [s.to_dict() for s in self.steps],
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PipelineExecution":
        steps = [PipelineStep.from_dict(s) for s in data.get("steps") or []]
        index = int(data.get("current_step_index", 0))
        if steps and not 0 <= index < len(steps):
            raise ValueError(f"current_step_index {index} out of range for {len(steps)} steps")
        return cls(
            id=data["id"],
            group_name=data["group_name"],
            steps=steps,
            project_id=data.get("project_id"),
            current_step_index=index,
            status=PipelineStatus(data.get("status", PipelineStatus.PENDING.value)),
            started_at=_parse_dt(data.get("started_at")),
            completed_at=_parse_dt(data.get("completed_at")),
            notes=data.get("notes") or "",
        )


@dataclass(frozen=True)
class ExecutionProgress:
    execution_id: str
    current_step: int
    total_steps: int
    completed_steps: int
    skipped_steps: int
    failed_steps: int


@dataclass(frozen=True)
class StepReport:
    step_name: str
    status: StepStatus
    execution_time: float | None
    has_output: bool


@dataclass(frozen=True)
class ExecutionStatistics:
    total: int
    completed: int
    skipped: int
    failed: int
    success_rate: float
    total_execution_time: float


@dataclass(frozen=True)
class ExecutionSummary:
    summary: str
    statistics: ExecutionStatistics
    results: list[StepReport]
