"""
Contracts with the CMS that owns templates and execution records.

The CMS schema belongs to the collaborator; this module only defines what
promptline reads (``PromptTemplate``) and hands off (``ExecutionRecord``).
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

from ..prompts.models import ExecutionResult, PromptTemplate


class TemplateSource(Protocol):
    """Protocol for looking up prompt templates."""

    async def get_template(self, template_id: str) -> PromptTemplate | None:
        ...

    async def list_templates(self) -> list[PromptTemplate]:
        ...


@dataclass
class ExecutionRecord:
    """One execution attempt as stored by the CMS."""

    template_id: str
    template_name: str
    model: str
    status: str
    provider_used: str
    execution_time: float
    inputs: dict[str, Any] = field(default_factory=dict)
    resolved_prompt: str | None = None
    output_raw: Any = None
    error_message: str | None = None
    project_id: str | None = None
    pipeline_execution_id: str | None = None
    step_id: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_result(
        cls,
        template: PromptTemplate,
        result: ExecutionResult,
        inputs: dict[str, Any],
        *,
        project_id: str | None = None,
        pipeline_execution_id: str | None = None,
        step_id: str | None = None,
    ) -> "ExecutionRecord":
        return cls(
            template_id=template.id,
            template_name=template.name,
            model=result.model,
            status=result.status.value,
            provider_used=result.provider_used,
            execution_time=result.execution_time,
            inputs=dict(inputs),
            resolved_prompt=result.resolved_prompt,
            output_raw=result.output,
            error_message=result.error_message,
            project_id=project_id,
            pipeline_execution_id=pipeline_execution_id,
            step_id=step_id,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "template_id": self.template_id,
            "template_name": self.template_name,
            "project_id": self.project_id,
            "pipeline_execution_id": self.pipeline_execution_id,
            "step_id": self.step_id,
            "model": self.model,
            "inputs": self.inputs,
            "resolved_prompt": self.resolved_prompt,
            "output_raw": self.output_raw,
            "status": self.status,
            "error_message": self.error_message,
            "execution_time": self.execution_time,
            "provider_used": self.provider_used,
            "created_at": self.created_at.isoformat(),
        }


class ExecutionRecorder(Protocol):
    """Protocol for persisting execution records."""

    async def record(self, record: ExecutionRecord) -> None:
        ...


class InMemoryTemplateCatalog:
    """Template source backed by a dict, for tests and the CLI."""

    def __init__(self, templates: list[PromptTemplate] | None = None):
        self._templates: dict[str, PromptTemplate] = {}
        for template in templates or []:
            self.add(template)

    def add(self, template: PromptTemplate) -> None:
        self._templates[template.id] = template

    async def get_template(self, template_id: str) -> PromptTemplate | None:
        return self._templates.get(template_id)

    async def list_templates(self) -> list[PromptTemplate]:
        return list(self._templates.values())


class InMemoryExecutionRecorder:
    def __init__(self):
        self.records: list[ExecutionRecord] = []

    async def record(self, record: ExecutionRecord) -> None:
        self.records.append(record)
