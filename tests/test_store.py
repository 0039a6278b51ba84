"""
Tests for pipeline execution persistence: round-trips, corruption, TTL and the active index.
"""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from promptline.errors import ErrorKind, StoreError
from promptline.pipeline import (
    ACTIVE_INDEX_KEY,
    ExecutionStateStore,
    PipelineStatus,
    StepStatus,
    create_tag_group_execution,
    record_key,
)
from promptline.prompts.models import ExecutionMetrics, ExecutionResult, ExecutionStatus
from promptline.storage import InMemoryStore, LocalStore


class DateClock:
    def __init__(self):
        self.now = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FailingWrites(InMemoryStore):
    async def set(self, key, value):
        raise StoreError("disk full")


class UnreachableBackend(InMemoryStore):
    async def get(self, key):
        raise ConnectionError("backend unreachable")

    async def delete(self, key):
        raise ConnectionError("backend unreachable")


@pytest.fixture
def execution(story_templates):
    execution = create_tag_group_execution("story", story_templates, project_id="proj-7")
    first, second, _ = execution.steps
    execution.status = PipelineStatus.RUNNING
    execution.started_at = datetime(2025, 1, 1, 11, 0, tzinfo=UTC)
    execution.current_step_index = 1
    first.status = StepStatus.COMPLETED
    first.inputs = {"premise": "A heist on Mars", "beats": [1, 2, 3]}
    first.started_at = datetime(2025, 1, 1, 11, 0, 1, tzinfo=UTC)
    first.completed_at = datetime(2025, 1, 1, 11, 0, 3, tzinfo=UTC)
    first.execution = ExecutionResult(
        output="premise: A heist on Mars",
        status=ExecutionStatus.SUCCESS,
        provider_used="openrouter",
        model="anthropic/claude-sonnet-4",
        execution_time=2.0,
        metrics=ExecutionMetrics(latency=2.0, retry_count=1, token_count=40),
        resolved_prompt="Set up a story about A heist on Mars",
        extra={"id": "gen-1"},
    )
    second.status = StepStatus.FAILED
    second.notes = "Error: rate limit"
    second.execution = ExecutionResult.failure(
        "rate limit", model="m", provider_used="openrouter", error_kind=ErrorKind.RATE_LIMIT
    )
    return execution


class TestExecutionStateStore:
    @pytest.mark.asyncio
    async def test_round_trip_preserves_everything(self, execution):
        store = ExecutionStateStore(InMemoryStore())

        assert await store.save(execution) is True
        loaded = await store.load(execution.id)

        assert loaded == execution
        assert loaded is not execution

    @pytest.mark.asyncio
    async def test_round_trip_through_files(self, execution, tmp_path):
        store = ExecutionStateStore(LocalStore(tmp_path))

        await store.save(execution)

        assert (tmp_path / f"{record_key(execution.id)}.json").exists()
        assert await ExecutionStateStore(LocalStore(tmp_path)).load(execution.id) == execution

    @pytest.mark.asyncio
    async def test_envelope_shape(self, execution):
        kv = InMemoryStore()
        clock = DateClock()
        store = ExecutionStateStore(kv, ttl_seconds=60, clock=clock)

        await store.save(execution)
        envelope = await kv.get(record_key(execution.id))

        assert envelope["saved_at"] == "2025-01-01T12:00:00+00:00"
        assert envelope["expires_at"] == "2025-01-01T12:01:00+00:00"
        assert envelope["execution"]["id"] == execution.id
        assert await kv.get(ACTIVE_INDEX_KEY) == [execution.id]

    @pytest.mark.asyncio
    async def test_missing_record(self):
        assert await ExecutionStateStore(InMemoryStore()).load("nope") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "raw",
        [
            "{not json",
            '"just a string"',
            '{"saved_at": "2025-01-01T00:00:00+00:00"}',
            '{"execution": {"id": "x"}}',
            '{"execution": {"id": "x", "group_name": "g", "steps": [], "status": "exploded"}}',
        ],
    )
    async def test_corrupt_records_load_as_missing(self, raw):
        kv = InMemoryStore()
        kv.put_raw(record_key("x"), raw)

        assert await ExecutionStateStore(kv).load("x") is None

    @pytest.mark.asyncio
    async def test_expired_records_are_removed_on_read(self, execution):
        kv = InMemoryStore()
        clock = DateClock()
        store = ExecutionStateStore(kv, ttl_seconds=60, clock=clock)
        await store.save(execution)

        clock.advance(59)
        assert await store.load(execution.id) == execution

        clock.advance(1)
        assert await store.load(execution.id) is None
        assert await kv.get(record_key(execution.id)) is None
        assert await store.list_active() == []

    @pytest.mark.asyncio
    async def test_save_never_raises(self, execution):
        store = ExecutionStateStore(FailingWrites())

        assert await store.save(execution) is False

    @pytest.mark.asyncio
    async def test_backend_errors_are_swallowed(self):
        store = ExecutionStateStore(UnreachableBackend())

        assert await store.load("x") is None
        assert await store.list_active() == []
        assert await store.clear("x") is False

    @pytest.mark.asyncio
    async def test_clear_removes_record_and_index_entry(self, story_templates):
        store = ExecutionStateStore(InMemoryStore())
        first = create_tag_group_execution("story", story_templates)
        second = create_tag_group_execution("character", story_templates)
        await store.save(first)
        await store.save(second)

        assert await store.clear(first.id) is True

        assert await store.load(first.id) is None
        assert await store.list_active() == [second.id]
        assert await store.clear(first.id) is False

    @pytest.mark.asyncio
    async def test_resaving_does_not_duplicate_index_entries(self, execution):
        store = ExecutionStateStore(InMemoryStore())

        await store.save(execution)
        await store.save(execution)

        assert await store.list_active() == [execution.id]

    @pytest.mark.asyncio
    async def test_concurrent_saves_keep_every_index_entry(self, story_templates):
        store = ExecutionStateStore(InMemoryStore())
        executions = [create_tag_group_execution("story", story_templates) for _ in range(5)]

        results = await asyncio.gather(*(store.save(e) for e in executions))

        assert all(results)
        assert sorted(await store.list_active()) == sorted(e.id for e in executions)

    @pytest.mark.asyncio
    async def test_unreadable_index_lists_nothing(self):
        kv = InMemoryStore()
        kv.put_raw(ACTIVE_INDEX_KEY, "[broken")

        assert await ExecutionStateStore(kv).list_active() == []
