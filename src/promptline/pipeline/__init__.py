"""Tag-group pipelines: grouping, step orchestration, carry-over and persistence."""

from .carry_over import CarryOverPolicy, extract_variables_from_output
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
from .orchestrator import PipelineOrchestrator
from .store import ACTIVE_INDEX_KEY, ExecutionStateStore, record_key
from .tags import (
    ParsedTag,
    TagGroup,
    calculate_progress,
    can_move_next,
    can_move_previous,
    create_tag_group_execution,
    extract_tag_groups,
    generate_execution_summary,
    get_next_step,
    get_previous_step,
    get_tag_group_templates,
    parse_tag,
)

__all__ = [
    "CarryOverPolicy",
    "extract_variables_from_output",
    "ExecutionProgress",
    "ExecutionStatistics",
    "ExecutionSummary",
    "PipelineExecution",
    "PipelineStatus",
    "PipelineStep",
    "StepReport",
    "StepStatus",
    "PipelineOrchestrator",
    "ACTIVE_INDEX_KEY",
    "ExecutionStateStore",
    "record_key",
    "ParsedTag",
    "TagGroup",
    "calculate_progress",
    "can_move_next",
    "can_move_previous",
    "create_tag_group_execution",
    "extract_tag_groups",
    "generate_execution_summary",
    "get_next_step",
    "get_previous_step",
    "get_tag_group_templates",
    "parse_tag",
]
