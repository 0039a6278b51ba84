"""
Per-service circuit breaker.

    closed --(failures >= threshold)--> open --(reset_timeout elapsed)--> half-open
    half-open --(trial succeeds)--> closed
    half-open --(trial fails)--> open (cool-down restarts)

Half-open admits exactly one trial call; concurrent callers are refused until
the trial settles. State changes happen under an ``asyncio.Lock``.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from ..errors import CircuitOpenError
from ..observability.logging import get_logger
from ..observability.metrics import get_metrics_collector

logger = get_logger(__name__)

T = TypeVar("T")


class BreakerState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


@dataclass
class CircuitBreaker:
    name: str
    threshold: int = 5
    reset_timeout: float = 60.0
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    state: BreakerState = field(default=BreakerState.CLOSED, init=False)
    failures: int = field(default=0, init=False)
    opened_at: float | None = field(default=None, init=False)
    last_failure_time: float | None = field(default=None, init=False)
    _trial_in_flight: bool = field(default=False, init=False, repr=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)

    def _cooled_down(self) -> bool:
        return self.opened_at is not None and self.clock() - self.opened_at >= self.reset_timeout

    def _transition(self, new_state: BreakerState) -> None:
        if new_state is self.state:
            return
        old_state = self.state
        self.state = new_state
        get_metrics_collector().record_breaker_transition(self.name, old_state.value, new_state.value)
        if new_state is BreakerState.OPEN:
            logger.warning(
                "Circuit breaker opened",
                service=self.name,
                failures=self.failures,
                cooldown=self.reset_timeout,
            )
        else:
            logger.info("Circuit breaker state changed", service=self.name, state=new_state.value)

    def is_available(self) -> bool:
        """Whether a call would currently be admitted. Does not change state."""
        if self.state is BreakerState.CLOSED:
            return True
        if self.state is BreakerState.OPEN:
            return self._cooled_down()
        return not self._trial_in_flight

    async def acquire(self) -> None:
        """Admit one call or raise ``CircuitOpenError``."""
        async with self._lock:
            if self.state is BreakerState.OPEN:
                if not self._cooled_down():
                    raise CircuitOpenError(self.name)
                self._transition(BreakerState.HALF_OPEN)

            if self.state is BreakerState.HALF_OPEN:
                if self._trial_in_flight:
                    raise CircuitOpenError(self.name)
                self._trial_in_flight = True

    async def record_success(self) -> None:
        async with self._lock:
            self.failures = 0
            self._trial_in_flight = False
            self._transition(BreakerState.CLOSED)

    async def record_failure(self) -> None:
        async with self._lock:
            self.failures += 1
            self.last_failure_time = self.clock()

            if self.state is BreakerState.HALF_OPEN:
                self._trial_in_flight = False
                self.opened_at = self.clock()
                self._transition(BreakerState.OPEN)
            elif self.state is BreakerState.CLOSED and self.failures >= self.threshold:
                self.opened_at = self.clock()
                self._transition(BreakerState.OPEN)

    async def _release_trial(self) -> None:
        async with self._lock:
            self._trial_in_flight = False

    async def call(self, op: Callable[[], Awaitable[T]]) -> T:
        """Run ``op`` under breaker protection."""
        await self.acquire()
        try:
            result = await op()
        except asyncio.CancelledError:
            await self._release_trial()
            raise
        except Exception:
            await self.record_failure()
            raise
        await self.record_success()
        return result

    def stats(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "failures": self.failures,
            "last_failure_time": self.last_failure_time,
            "opened_at": self.opened_at,
        }
