"""
Domain records for templates, variables and execution results.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from ..errors import ErrorKind


class VariableType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    JSON = "json"
    URL = "url"
    TEXT = "text"


@dataclass(frozen=True)
class VariableDefinition:
    """A typed template variable; fixed once the template is authored."""

    name: str
    type: VariableType = VariableType.STRING
    required: bool = False
    default_value: Any = None
    options: tuple[str, ...] | None = None
    description: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VariableDefinition":
        """Build from a CMS record, accepting camelCase keys."""
        options = data.get("options")
        return cls(
            name=data["name"],
            type=VariableType(data.get("type", VariableType.STRING.value)),
            required=bool(data.get("required", False)),
            default_value=data.get("default_value", data.get("defaultValue")),
            options=tuple(options) if options else None,
            description=data.get("description"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type.value,
            "required": self.required,
            "default_value": self.default_value,
            "options": list(self.options) if self.options else None,
            "description": self.description,
        }


@dataclass
class VariableContext:
    """Values supplied for one execution plus the definitions that govern them."""

    variables: dict[str, Any] = field(default_factory=dict)
    variable_defs: list[VariableDefinition] = field(default_factory=list)


@dataclass
class InterpolationResult:
    resolved_prompt: str
    used_variables: list[str] = field(default_factory=list)
    missing_variables: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class ExecutionStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class ExecutionMetrics:
    latency: float = 0.0
    retry_count: int = 0
    token_count: int | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    cost: float | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ExecutionMetrics":
        data = data or {}
        return cls(
            latency=float(data.get("latency", 0.0)),
            retry_count=int(data.get("retry_count", 0)),
            token_count=data.get("token_count"),
            prompt_tokens=data.get("prompt_tokens"),
            completion_tokens=data.get("completion_tokens"),
            cost=data.get("cost"),
        )


@dataclass(frozen=True)
class ExecutionResult:
    """
    Normalized outcome of one execution call.

    ``execution_time`` and ``metrics.latency`` are in seconds. ``extra``
    carries opaque provider metadata; the well-known fields stay typed.
    """

    output: Any
    status: ExecutionStatus
    provider_used: str
    model: str
    execution_time: float = 0.0
    error_message: str | None = None
    metrics: ExecutionMetrics = field(default_factory=ExecutionMetrics)
    error_kind: ErrorKind | None = None
    resolved_prompt: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status is ExecutionStatus.SUCCESS

    @classmethod
    def failure(
        cls,
        message: str,
        *,
        model: str,
        provider_used: str,
        execution_time: float = 0.0,
        error_kind: ErrorKind | None = None,
        metrics: ExecutionMetrics | None = None,
        resolved_prompt: str | None = None,
    ) -> "ExecutionResult":
        return cls(
            output=None,
            status=ExecutionStatus.ERROR,
            provider_used=provider_used,
            model=model,
            execution_time=execution_time,
            error_message=message,
            metrics=metrics or ExecutionMetrics(latency=execution_time),
            error_kind=error_kind,
            resolved_prompt=resolved_prompt,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "output": self.output,
            "status": self.status.value,
            "provider_used": self.provider_used,
            "model": self.model,
            "execution_time": self.execution_time,
            "error_message": self.error_message,
            "metrics": asdict(self.metrics),
            "error_kind": self.error_kind.value if self.error_kind else None,
            "resolved_prompt": self.resolved_prompt,
            "extra": dict(self.extra),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExecutionResult":
        error_kind = data.get("error_kind")
        return cls(
            output=data.get("output"),
            status=ExecutionStatus(data["status"]),
            provider_used=data.get("provider_used", "unknown"),
            model=data.get("model", ""),
            execution_time=float(data.get("execution_time", 0.0)),
            error_message=data.get("error_message"),
            metrics=ExecutionMetrics.from_dict(data.get("metrics")),
            error_kind=ErrorKind(error_kind) if error_kind else None,
            resolved_prompt=data.get("resolved_prompt"),
            extra=dict(data.get("extra") or {}),
        )


@dataclass
class PromptTemplate:
    """Read-only view of a template record owned by the CMS."""

    id: str
    name: str
    template: str
    model: str
    tags: list[str] = field(default_factory=list)
    variable_defs: list[VariableDefinition] = field(default_factory=list)
    app: str | None = None
    stage: str | None = None
    feature: str | None = None
    notes: str | None = None
    output_schema: dict[str, Any] | None = None
    version: int = 1

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PromptTemplate":
        defs = data.get("variable_defs", data.get("variableDefs")) or []
        return cls(
            id=str(data["id"]),
            name=data["name"],
            template=data["template"],
            model=data["model"],
            tags=[t["value"] if isinstance(t, dict) else t for t in data.get("tags") or []],
            variable_defs=[VariableDefinition.from_dict(d) for d in defs],
            app=data.get("app"),
            stage=data.get("stage"),
            feature=data.get("feature"),
            notes=data.get("notes"),
            output_schema=data.get("output_schema", data.get("outputSchema")),
            version=int(data.get("version", 1)),
        )
