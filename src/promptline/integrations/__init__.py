"""Collaborator contracts (CMS templates and execution records)."""

from .cms import (
    ExecutionRecord,
    ExecutionRecorder,
    InMemoryExecutionRecorder,
    InMemoryTemplateCatalog,
    TemplateSource,
)

__all__ = [
    "ExecutionRecord",
    "ExecutionRecorder",
    "InMemoryExecutionRecorder",
    "InMemoryTemplateCatalog",
    "TemplateSource",
]
