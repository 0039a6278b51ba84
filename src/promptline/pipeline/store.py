"""
Persistence for pipeline executions on top of a ``KeyValueStore``.

Each execution is saved under ``taggroup-execution-<id>`` inside an envelope::

    {"saved_at": <iso>, "expires_at": <iso or null>, "execution": {...}}

and its id is listed under ``taggroup-active-executions``. Expiry is lazy:
a record past its deadline is deleted the next time it is read.

Store failures never escape this layer, whatever the backend raises. ``save``
and ``clear`` report them as ``False``, ``load`` as ``None`` and
``list_active`` as an empty list.
"""

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from ..observability.logging import get_logger
from ..observability.probe import probe
from ..storage.kv import KeyValueStore
from .models import PipelineExecution, utcnow

logger = get_logger(__name__)

RECORD_PREFIX = "taggroup-execution-"
ACTIVE_INDEX_KEY = "taggroup-active-executions"


def record_key(execution_id: str) -> str:
    return f"{RECORD_PREFIX}{execution_id}"


class ExecutionStateStore:
    """Saves, loads and indexes pipeline executions."""

    def __init__(
        self,
        kv: KeyValueStore,
        ttl_seconds: float | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.kv = kv
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._index_lock = asyncio.Lock()

    def _envelope(self, execution: PipelineExecution) -> dict[str, Any]:
        now = self._clock()
        expires_at = now + timedelta(seconds=self.ttl_seconds) if self.ttl_seconds else None
        return {
            "saved_at": now.isoformat(),
            "expires_at": expires_at.isoformat() if expires_at else None,
            "execution": execution.to_dict(),
        }

    async def _read_index(self) -> list[str]:
        index = await self.kv.get(ACTIVE_INDEX_KEY)
        if not isinstance(index, list):
            return []
        return [i for i in index if isinstance(i, str)]

    async def _add_to_index(self, execution_id: str) -> None:
        async with self._index_lock:
            index = await self._read_index()
            if execution_id not in index:
                index.append(execution_id)
                await self.kv.set(ACTIVE_INDEX_KEY, index)

    async def _remove_from_index(self, execution_id: str) -> None:
        async with self._index_lock:
            index = await self._read_index()
            if execution_id in index:
                index.remove(execution_id)
                await self.kv.set(ACTIVE_INDEX_KEY, index)

    async def save(self, execution: PipelineExecution) -> bool:
        try:
            with probe("pipeline.save", execution_id=execution.id):
                await self.kv.set(record_key(execution.id), self._envelope(execution))
                await self._add_to_index(execution.id)
        except Exception as e:
            logger.error("Failed to save execution state", execution_id=execution.id, error=str(e))
            return False
        return True

    async def load(self, execution_id: str) -> PipelineExecution | None:
        key = record_key(execution_id)
        try:
            envelope = await self.kv.get(key)
        except Exception as e:
            logger.warning("Failed to load execution state", execution_id=execution_id, error=str(e))
            return None
        if envelope is None:
            return None

        try:
            expires_at = envelope.get("expires_at")
            if expires_at and datetime.fromisoformat(expires_at) <= self._clock():
                logger.info("Execution state expired", execution_id=execution_id)
                await self.clear(execution_id)
                return None
            return PipelineExecution.from_dict(envelope["execution"])
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Corrupt execution state", execution_id=execution_id, error=str(e))
            return None

    async def list_active(self) -> list[str]:
        try:
            return await self._read_index()
        except Exception as e:
            logger.warning("Failed to read active executions", error=str(e))
            return []

    async def clear(self, execution_id: str) -> bool:
        """Remove a record and its index entry; returns whether a record existed."""
        try:
            removed = await self.kv.delete(record_key(execution_id))
            await self._remove_from_index(execution_id)
        except Exception as e:
            logger.error("Failed to clear execution state", execution_id=execution_id, error=str(e))
            return False
        return removed
