"""
Tag-group pipeline orchestrator.

Drives a ``PipelineExecution`` one step at a time through the execution
engine, keeps pipeline status consistent with step statuses, offers values
extracted from earlier outputs to later steps, and persists state after every
change when ``auto_save`` is on.

A pipeline has a single owner: concurrent calls on the same execution are
not coordinated here.
"""

from collections.abc import Iterable
from typing import Any

from ..config.settings import PipelineConfig
from ..errors import PipelineError
from ..integrations.cms import ExecutionRecord, ExecutionRecorder, TemplateSource
from ..observability.logging import get_logger
from ..observability.metrics import get_metrics_collector
from ..observability.tracing import trace_span
from ..prompts.engine import PromptExecutionEngine
from ..prompts.models import ExecutionResult, PromptTemplate, VariableContext
from .carry_over import CarryOverPolicy, extract_variables_from_output
from .models import (
    SETTLED_STATUSES,
    ExecutionProgress,
    ExecutionSummary,
    PipelineExecution,
    PipelineStatus,
    PipelineStep,
    StepStatus,
    utcnow,
)
from .store import ExecutionStateStore
from .tags import (
    calculate_progress,
    can_move_next,
    can_move_previous,
    create_tag_group_execution,
    generate_execution_summary,
)

logger = get_logger(__name__)


class PipelineOrchestrator:
    """Runs tag-group pipelines step by step."""

    def __init__(
        self,
        engine: PromptExecutionEngine,
        store: ExecutionStateStore,
        templates: TemplateSource,
        recorder: ExecutionRecorder | None = None,
        config: PipelineConfig | None = None,
    ):
        self.engine = engine
        self.store = store
        self.templates = templates
        self.recorder = recorder
        self.config = config or PipelineConfig()
        self.carry_over_policy = CarryOverPolicy(
            max_value_length=self.config.carry_over_max_value_length
        )

    async def _auto_save(self, execution: PipelineExecution) -> None:
        if self.config.auto_save:
            await self.store.save(execution)

    def _current(self, execution: PipelineExecution) -> PipelineStep:
        step = execution.current_step
        if step is None:
            raise PipelineError(f"Execution {execution.id} has no current step")
        return step

    async def _template(self, step: PipelineStep) -> PromptTemplate:
        template = await self.templates.get_template(step.template_id)
        if template is None:
            raise PipelineError(f"Template not found: {step.template_id}")
        return template

    @staticmethod
    def _update_status(execution: PipelineExecution, step: PipelineStep) -> None:
        if all(s.status in SETTLED_STATUSES for s in execution.steps):
            execution.status = PipelineStatus.COMPLETED
            execution.completed_at = execution.completed_at or utcnow()
            return

        execution.completed_at = None
        if step.status == StepStatus.FAILED:
            execution.status = PipelineStatus.FAILED
        elif execution.status in (PipelineStatus.COMPLETED, PipelineStatus.FAILED):
            execution.status = PipelineStatus.RUNNING

    # Lifecycle

    async def create(
        self,
        group_name: str,
        templates: Iterable[PromptTemplate] | None = None,
        project_id: str | None = None,
    ) -> PipelineExecution:
        """Build a pipeline for ``group_name`` from the given templates or the whole catalog."""
        if templates is None:
            templates = await self.templates.list_templates()
        execution = create_tag_group_execution(group_name, templates, project_id)
        if not execution.steps:
            raise PipelineError(f"Tag group '{group_name}' has no templates")

        logger.info(
            "Pipeline created",
            execution_id=execution.id,
            group=group_name,
            steps=len(execution.steps),
            project_id=project_id,
        )
        await self._auto_save(execution)
        return execution

    async def start(self, execution: PipelineExecution) -> None:
        execution.status = PipelineStatus.RUNNING
        execution.started_at = utcnow()
        logger.info("Pipeline started", execution_id=execution.id)
        await self._auto_save(execution)

    async def pause(self, execution: PipelineExecution) -> None:
        execution.status = PipelineStatus.PAUSED
        logger.info("Pipeline paused", execution_id=execution.id, step=execution.current_step_index)
        await self._auto_save(execution)

    async def resume(self, execution: PipelineExecution) -> None:
        execution.status = PipelineStatus.RUNNING
        logger.info("Pipeline resumed", execution_id=execution.id, step=execution.current_step_index)
        await self._auto_save(execution)

    async def reset(self, execution: PipelineExecution) -> None:
        """Return every step to pending and drop inputs, results and notes."""
        for step in execution.steps:
            step.status = StepStatus.PENDING
            step.inputs = {}
            step.execution = None
            step.notes = ""
            step.started_at = None
            step.completed_at = None
        execution.current_step_index = 0
        execution.status = PipelineStatus.PENDING
        execution.started_at = None
        execution.completed_at = None
        logger.info("Pipeline reset", execution_id=execution.id)
        await self._auto_save(execution)

    # Step execution

    @trace_span("pipeline.run_current_step")
    async def run_current_step(
        self,
        execution: PipelineExecution,
        inputs: dict[str, Any] | None = None,
        model: str | None = None,
        options: dict[str, Any] | None = None,
    ) -> ExecutionResult:
        """
        Execute the current step's template with its inputs.

        The result replaces any earlier result on the step. The engine never
        raises, so the step always ends either completed or failed.
        """
        step = self._current(execution)
        template = await self._template(step)

        step.status = StepStatus.RUNNING
        step.started_at = utcnow()
        step.completed_at = None
        step.inputs = {**step.inputs, **(inputs or {})}
        if execution.status != PipelineStatus.RUNNING:
            execution.status = PipelineStatus.RUNNING
            execution.started_at = execution.started_at or step.started_at

        logger.info(
            "Running pipeline step",
            execution_id=execution.id,
            step=step.order,
            template_id=template.id,
        )
        context = VariableContext(variables=dict(step.inputs), variable_defs=list(template.variable_defs))
        result = await self.engine.execute(template.template, context, model or template.model, options)

        step.execution = result
        step.completed_at = utcnow()
        if result.succeeded:
            step.status = StepStatus.COMPLETED
        else:
            step.status = StepStatus.FAILED
            self._append_error_note(step, result.error_message or "Execution failed")
        self._update_status(execution, step)

        logger.info(
            "Pipeline step finished",
            execution_id=execution.id,
            step=step.order,
            status=step.status.value,
            pipeline_status=execution.status.value,
        )
        get_metrics_collector().record_pipeline_step(execution.group_name, step.status.value)

        await self._record(execution, step, template, result)
        await self._auto_save(execution)
        return result

    async def _record(
        self,
        execution: PipelineExecution,
        step: PipelineStep,
        template: PromptTemplate,
        result: ExecutionResult,
    ) -> None:
        if self.recorder is None:
            return
        record = ExecutionRecord.from_result(
            template,
            result,
            step.inputs,
            project_id=execution.project_id,
            pipeline_execution_id=execution.id,
            step_id=step.id,
        )
        try:
            await self.recorder.record(record)
        except Exception as e:
            logger.error(
                "Failed to record execution",
                execution_id=execution.id,
                step_id=step.id,
                error=str(e),
            )

    @staticmethod
    def _append_error_note(step: PipelineStep, message: str) -> None:
        note = f"Error: {message}"
        step.notes = f"{step.notes}\n\n{note}" if step.notes else note

    async def mark_step_completed(
        self, execution: PipelineExecution, result: ExecutionResult | None = None
    ) -> None:
        step = self._current(execution)
        step.status = StepStatus.COMPLETED
        if result is not None:
            step.execution = result
        step.completed_at = utcnow()
        self._update_status(execution, step)
        await self._auto_save(execution)

    async def mark_step_skipped(self, execution: PipelineExecution) -> None:
        step = self._current(execution)
        step.status = StepStatus.SKIPPED
        step.completed_at = utcnow()
        self._update_status(execution, step)
        await self._auto_save(execution)

    async def mark_step_failed(self, execution: PipelineExecution, error_message: str) -> None:
        step = self._current(execution)
        step.status = StepStatus.FAILED
        step.completed_at = utcnow()
        self._append_error_note(step, error_message)
        self._update_status(execution, step)
        await self._auto_save(execution)

    async def update_step_inputs(self, execution: PipelineExecution, inputs: dict[str, Any]) -> None:
        self._current(execution).inputs = dict(inputs)
        await self._auto_save(execution)

    async def update_step_notes(self, execution: PipelineExecution, notes: str) -> None:
        self._current(execution).notes = notes
        await self._auto_save(execution)

    # Navigation

    async def go_next(self, execution: PipelineExecution) -> bool:
        if not can_move_next(execution):
            return False
        execution.current_step_index += 1
        await self._auto_save(execution)
        return True

    async def go_previous(self, execution: PipelineExecution) -> bool:
        if not can_move_previous(execution):
            return False
        execution.current_step_index -= 1
        await self._auto_save(execution)
        return True

    async def go_to_step(self, execution: PipelineExecution, index: int) -> bool:
        """
        Jump to ``index``. Backward jumps always succeed; a forward jump needs
        every step it passes over to be completed or skipped.
        """
        if not 0 <= index < len(execution.steps):
            return False
        passed = execution.steps[execution.current_step_index : index]
        if any(step.status not in SETTLED_STATUSES for step in passed):
            return False
        execution.current_step_index = index
        await self._auto_save(execution)
        return True

    # Carry-over

    def available_variables(self, execution: PipelineExecution) -> dict[str, Any]:
        """Values extracted from completed steps before the current one; later steps win."""
        variables: dict[str, Any] = {}
        for step in execution.steps[: execution.current_step_index]:
            if step.status == StepStatus.COMPLETED and step.execution is not None:
                variables.update(
                    extract_variables_from_output(step.execution.output, self.carry_over_policy)
                )
        return variables

    async def apply_carry_over(self, execution: PipelineExecution) -> dict[str, Any]:
        """Fill the current step's unset inputs that its template declares."""
        if not self.config.enable_carry_over:
            return {}
        step = self._current(execution)
        template = await self._template(step)
        declared = {d.name for d in template.variable_defs}
        applied = {
            name: value
            for name, value in self.available_variables(execution).items()
            if name in declared and name not in step.inputs
        }
        if applied:
            step.inputs.update(applied)
            logger.info(
                "Carried over variables",
                execution_id=execution.id,
                step=step.order,
                variables=",".join(sorted(applied)),
            )
            await self._auto_save(execution)
        return applied

    # Reporting and persistence

    def progress(self, execution: PipelineExecution) -> ExecutionProgress:
        return calculate_progress(execution)

    def summary(self, execution: PipelineExecution) -> ExecutionSummary:
        return generate_execution_summary(execution)

    async def save(self, execution: PipelineExecution) -> bool:
        return await self.store.save(execution)

    async def load(self, execution_id: str) -> PipelineExecution | None:
        return await self.store.load(execution_id)

    async def clear(self, execution_id: str) -> bool:
        return await self.store.clear(execution_id)

    async def list_active(self) -> list[str]:
        return await self.store.list_active()
