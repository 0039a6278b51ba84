"""
Tests for tag parsing, grouping, pipeline creation, navigation and reporting helpers.
"""

import pytest

from promptline.pipeline import (
    ExecutionStatistics,
    PipelineExecution,
    PipelineStatus,
    StepStatus,
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
from promptline.pipeline.tags import ParsedTag
from promptline.prompts.models import ExecutionResult, ExecutionStatus, PromptTemplate


def _template(template_id: str, *tags: str) -> PromptTemplate:
    return PromptTemplate(
        id=template_id, name=f"T {template_id}", template="x", model="m", tags=list(tags)
    )


def _result(seconds: float, output="done") -> ExecutionResult:
    return ExecutionResult(
        output=output,
        status=ExecutionStatus.SUCCESS,
        provider_used="mock",
        model="m",
        execution_time=seconds,
    )


class TestParseTag:
    @pytest.mark.parametrize(
        "tag,expected",
        [
            ("story-001", ParsedTag("story", 1)),
            ("character-123", ParsedTag("character", 123)),
            ("scene-007", ParsedTag("scene", 7)),
            ("a-0", ParsedTag("a", 0)),
            ("mixedCase-042", ParsedTag("mixedCase", 42)),
        ],
    )
    def test_valid_tags(self, tag, expected):
        assert parse_tag(tag) == expected

    @pytest.mark.parametrize(
        "tag", ["invalid", "no-number-here", "123-backwards", "multiple-dash-001", "", "story-", "story_1"]
    )
    def test_invalid_tags(self, tag):
        assert parse_tag(tag) is None


class TestGrouping:
    def test_groups_sorted_by_name_and_members_by_suffix(self, story_templates):
        groups = extract_tag_groups(story_templates)

        assert [g.name for g in groups] == ["character", "story"]
        story = groups[1]
        assert story.prefix == "story"
        assert story.count == 3
        assert [t.name for t in story.templates] == [
            "Story Setup",
            "Story Development",
            "Story Conclusion",
        ]

    def test_template_with_several_group_tags_joins_each_group(self):
        multi = _template("multi", "story-001", "character-001", "invalid-tag")

        groups = extract_tag_groups([multi])

        assert [g.name for g in groups] == ["character", "story"]
        assert all(g.templates == [multi] for g in groups)

    def test_templates_without_group_tags_are_excluded(self):
        assert extract_tag_groups([_template("a"), _template("b", "invalid", "also-invalid")]) == []

    def test_duplicates_removed_and_ties_keep_input_order(self):
        first = _template("first", "act-002")
        second = _template("second", "act-002")
        opener = _template("opener", "act-001")

        members = get_tag_group_templates([first, second, opener, first], "act")

        assert [t.id for t in members] == ["opener", "first", "second"]

    def test_strictly_ordered_by_suffix(self):
        templates = [_template(str(n), f"shot-{n:03d}") for n in (30, 4, 120, 7, 1)]

        members = get_tag_group_templates(templates, "shot")

        assert [int(t.id) for t in members] == [1, 4, 7, 30, 120]


class TestCreateExecution:
    def test_steps_are_pending_and_gapless(self):
        templates = [_template("b", "story-010"), _template("a", "story-002"), _template("c", "story-100")]

        execution = create_tag_group_execution("story", templates, project_id="proj-1")

        assert execution.group_name == "story"
        assert execution.project_id == "proj-1"
        assert execution.status is PipelineStatus.PENDING
        assert execution.current_step_index == 0
        assert [s.order for s in execution.steps] == [1, 2, 3]
        assert [s.tag_order for s in execution.steps] == [2, 10, 100]
        assert [s.template_id for s in execution.steps] == ["a", "b", "c"]
        assert all(s.status is StepStatus.PENDING and s.inputs == {} for s in execution.steps)

    def test_ids_are_unique(self, story_templates):
        one = create_tag_group_execution("story", story_templates)
        two = create_tag_group_execution("story", story_templates)

        assert one.id != two.id
        assert len({s.id for s in one.steps + two.steps}) == 6

    def test_unknown_group_has_no_steps(self, story_templates):
        assert create_tag_group_execution("music", story_templates).steps == []


@pytest.fixture
def execution(story_templates) -> PipelineExecution:
    return create_tag_group_execution("story", story_templates)


class TestNavigationHelpers:
    def test_cannot_move_next_until_current_step_settles(self, execution):
        assert not can_move_next(execution)

        execution.steps[0].status = StepStatus.FAILED
        assert not can_move_next(execution)

        execution.steps[0].status = StepStatus.SKIPPED
        assert can_move_next(execution)

        execution.steps[0].status = StepStatus.COMPLETED
        assert can_move_next(execution)

    def test_cannot_move_past_last_step(self, execution):
        execution.current_step_index = 2
        execution.steps[2].status = StepStatus.COMPLETED

        assert not can_move_next(execution)
        assert get_next_step(execution) is None

    def test_previous_ignores_step_status(self, execution):
        assert not can_move_previous(execution)
        assert get_previous_step(execution) is None

        execution.current_step_index = 1
        assert can_move_previous(execution)
        assert get_previous_step(execution) is execution.steps[0]
        assert get_next_step(execution) is execution.steps[2]


class TestReporting:
    def test_progress_counts_statuses(self, execution):
        execution.steps[0].status = StepStatus.COMPLETED
        execution.steps[1].status = StepStatus.FAILED
        execution.current_step_index = 1

        progress = calculate_progress(execution)

        assert progress.execution_id == execution.id
        assert progress.current_step == 2
        assert progress.total_steps == 3
        assert (progress.completed_steps, progress.skipped_steps, progress.failed_steps) == (1, 0, 1)

    def test_progress_is_recomputed_every_call(self, execution):
        assert calculate_progress(execution).completed_steps == 0
        execution.steps[0].status = StepStatus.COMPLETED
        assert calculate_progress(execution).completed_steps == 1

    def test_summary_counts_only_completed_time(self, execution):
        execution.steps[0].status = StepStatus.COMPLETED
        execution.steps[0].execution = _result(1.5)
        execution.steps[1].status = StepStatus.FAILED
        execution.steps[1].execution = ExecutionResult.failure(
            "boom", model="m", provider_used="mock", execution_time=9.0
        )
        execution.steps[2].status = StepStatus.SKIPPED

        summary = generate_execution_summary(execution)

        assert summary.statistics == ExecutionStatistics(
            total=3,
            completed=1,
            skipped=1,
            failed=1,
            success_rate=pytest.approx(100 / 3),
            total_execution_time=1.5,
        )
        assert summary.summary == (
            "Tag Group 'story' execution completed. 1/3 steps successful "
            "(33.3% success rate). Total execution time: 1.50s."
        )
        assert [r.has_output for r in summary.results] == [True, False, False]
        assert summary.results[1].execution_time == 9.0
        assert summary.results[2].execution_time is None
        assert summary.results[0].step_name == "Story Setup"

    def test_summary_of_empty_pipeline(self):
        empty = create_tag_group_execution("none", [])

        summary = generate_execution_summary(empty)

        assert summary.statistics.success_rate == 0
        assert summary.statistics.total_execution_time == 0
        assert "0/0 steps successful (0.0% success rate)" in summary.summary
