"""
Tag-group helpers.

A template joins the group ``story`` by carrying a tag such as ``story-002``;
the numeric suffix fixes its position. Everything here is pure.
"""

import re
import uuid
from collections.abc import Iterable
from dataclasses import dataclass

from ..prompts.models import PromptTemplate
from .models import (
    ExecutionProgress,
    ExecutionStatistics,
    ExecutionSummary,
    PipelineExecution,
    PipelineStatus,
    PipelineStep,
    StepReport,
    StepStatus,
)

TAG_PATTERN = re.compile(r"^([A-Za-z]+)-(\d+)$")


@dataclass(frozen=True)
class ParsedTag:
    prefix: str
    order: int


@dataclass
class TagGroup:
    name: str
    prefix: str
    templates: list[PromptTemplate]

    @property
    def count(self) -> int:
        return len(self.templates)


def parse_tag(tag: str) -> ParsedTag | None:
    """Parse ``<letters>-<digits>``; anything else yields None."""
    match = TAG_PATTERN.match(tag or "")
    if not match:
        return None
    return ParsedTag(prefix=match.group(1), order=int(match.group(2)))


def _group_order(template: PromptTemplate, group: str) -> int | None:
    for tag in template.tags:
        parsed = parse_tag(tag)
        if parsed and parsed.prefix == group:
            return parsed.order
    return None


def get_tag_group_templates(templates: Iterable[PromptTemplate], group: str) -> list[PromptTemplate]:
    """Templates of one group, de-duplicated by id, sorted by tag suffix (stable)."""
    seen: set[str] = set()
    members: list[tuple[int, PromptTemplate]] = []
    for template in templates:
        order = _group_order(template, group)
        if order is None or template.id in seen:
            continue
        seen.add(template.id)
        members.append((order, template))
    members.sort(key=lambda pair: pair[0])
    return [template for _, template in members]


def extract_tag_groups(templates: Iterable[PromptTemplate]) -> list[TagGroup]:
    templates = list(templates)
    prefixes: set[str] = set()
    for template in templates:
        for tag in template.tags:
            parsed = parse_tag(tag)
            if parsed:
                prefixes.add(parsed.prefix)

    return [
        TagGroup(name=prefix, prefix=prefix, templates=get_tag_group_templates(templates, prefix))
        for prefix in sorted(prefixes)
    ]


def create_tag_group_execution(
    group_name: str,
    templates: Iterable[PromptTemplate],
    project_id: str | None = None,
) -> PipelineExecution:
    """Build a pending pipeline with one step per group member."""
    members = get_tag_group_templates(templates, group_name)
    steps = [
        PipelineStep(
            id=f"step-{template.id}-{uuid.uuid4().hex[:8]}",
            template_id=template.id,
            template_name=template.name,
            order=position,
            tag_order=_group_order(template, group_name),
        )
        for position, template in enumerate(members, start=1)
    ]
    return PipelineExecution(
        id=f"tg-exec-{uuid.uuid4().hex}",
        group_name=group_name,
        project_id=project_id,
        steps=steps,
        current_step_index=0,
        status=PipelineStatus.PENDING,
    )


def calculate_progress(execution: PipelineExecution) -> ExecutionProgress:
    statuses = [step.status for step in execution.steps]
    return ExecutionProgress(
        execution_id=execution.id,
        current_step=execution.current_step_index + 1,
        total_steps=len(statuses),
        completed_steps=statuses.count(StepStatus.COMPLETED),
        skipped_steps=statuses.count(StepStatus.SKIPPED),
        failed_steps=statuses.count(StepStatus.FAILED),
    )


def get_next_step(execution: PipelineExecution) -> PipelineStep | None:
    index = execution.current_step_index + 1
    return execution.steps[index] if index < len(execution.steps) else None


def get_previous_step(execution: PipelineExecution) -> PipelineStep | None:
    index = execution.current_step_index - 1
    return execution.steps[index] if index >= 0 else None


def can_move_next(execution: PipelineExecution) -> bool:
    current = execution.current_step
    return current is not None and current.is_settled and get_next_step(execution) is not None


def can_move_previous(execution: PipelineExecution) -> bool:
    return execution.current_step_index > 0


def generate_execution_summary(execution: PipelineExecution) -> ExecutionSummary:
    """
    Aggregate a pipeline's outcome.

    Failed and skipped steps count toward the success-rate denominator but
    contribute nothing to the total time.
    """
    progress = calculate_progress(execution)
    total_time = sum(
        (
            step.execution.execution_time
            for step in execution.steps
            if step.status == StepStatus.COMPLETED and step.execution is not None
        ),
        0.0,
    )
    success_rate = (
        progress.completed_steps / progress.total_steps * 100 if progress.total_steps else 0.0
    )

    results = [
        StepReport(
            step_name=step.template_name,
            status=step.status,
            execution_time=step.execution.execution_time if step.execution else None,
            has_output=bool(step.execution and step.execution.output not in (None, "")),
        )
        for step in execution.steps
    ]

    summary = (
        f"Tag Group '{execution.group_name}' execution completed. "
        f"{progress.completed_steps}/{progress.total_steps} steps successful "
        f"({success_rate:.1f}% success rate). "
        f"Total execution time: {total_time:.2f}s."
    )
    return ExecutionSummary(
        summary=summary,
        statistics=ExecutionStatistics(
            total=progress.total_steps,
            completed=progress.completed_steps,
            skipped=progress.skipped_steps,
            failed=progress.failed_steps,
            success_rate=success_rate,
            total_execution_time=total_time,
        ),
        results=results,
    )
