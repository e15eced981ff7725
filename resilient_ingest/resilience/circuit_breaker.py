"""Per-provider circuit breaker.

Stops calling a provider that keeps failing so that retry storms do not
amplify load against it, and probes it again automatically once the reset
timeout has elapsed.

Transitions::

    CLOSED --[failure_threshold consecutive failures]--> OPEN
    OPEN --[reset_timeout elapsed, next call]--> HALF_OPEN
    HALF_OPEN --[trial succeeds]--> CLOSED
    HALF_OPEN --[trial fails]--> OPEN
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, TypeVar

import structlog

from resilient_ingest.errors import CircuitOpenError

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

T = TypeVar("T")

StateChangeHook = Callable[[str, "CircuitState", "CircuitState"], None]


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Failure-isolation state machine for one provider.

    State changes happen under an ``asyncio.Lock``; the wrapped operation
    runs outside it so that concurrent calls in the closed state are not
    serialized. While half-open, exactly one trial call is in flight and all
    other callers are rejected.

    Attributes:
        name: Provider key, used in errors and logs.
        failure_threshold: Consecutive failures that open the circuit.
        reset_timeout: Seconds the circuit stays open before a probe.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        on_state_change: StateChangeHook | None = None,
    ) -> None:
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")

        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self._on_state_change = on_state_change

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._last_failure_time: float | None = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def last_failure_time(self) -> float | None:
        return self._last_failure_time

    def _transition(self, new_state: CircuitState, label: str) -> None:
        old_state = self._state
        if old_state == new_state:
            return
        self._state = new_state

        log = logger.error if new_state == CircuitState.OPEN else logger.info
        log(
            "circuit_state_changed",
            provider=self.name,
            label=label,
            old_state=old_state.value,
            new_state=new_state.value,
            consecutive_failures=self._consecutive_failures,
        )
        if self._on_state_change is not None:
            self._on_state_change(self.name, old_state, new_state)

    async def _before_call(self, label: str) -> None:
        async with self._lock:
            if self._state == CircuitState.CLOSED:
                return

            if self._state == CircuitState.HALF_OPEN:
                # A trial is already in flight
                raise CircuitOpenError(self.name)

            if self._last_failure_time is None:
                raise RuntimeError(
                    f"Circuit {self.name!r} is open without a recorded failure"
                )
            elapsed = self._clock() - self._last_failure_time
            if elapsed > self.reset_timeout:
                self._transition(CircuitState.HALF_OPEN, label)
                return

            raise CircuitOpenError(self.name, retry_in=self.reset_timeout - elapsed)

    async def _on_success(self, label: str) -> None:
        async with self._lock:
            self._consecutive_failures = 0
            self._transition(CircuitState.CLOSED, label)

    async def _on_failure(self, label: str) -> None:
        async with self._lock:
            self._consecutive_failures += 1
            self._last_failure_time = self._clock()

            if self._state == CircuitState.HALF_OPEN:
                self._transition(CircuitState.OPEN, label)
            elif (
                self._state == CircuitState.CLOSED
                and self._consecutive_failures >= self.failure_threshold
            ):
                self._transition(CircuitState.OPEN, label)

    async def _on_cancelled(self, label: str) -> None:
        async with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                # Give the probe back; keep last_failure_time so the next
                # call after the timeout can try again.
                self._transition(CircuitState.OPEN, label)

    async def execute(self, operation: Callable[[], Awaitable[T]], label: str) -> T:
        """Run ``operation`` through the breaker.

        Args:
            operation: Zero-argument coroutine factory.
            label: Name used in log entries.

        Returns:
            The operation's result.

        Raises:
            CircuitOpenError: If the circuit is open (operation not invoked).
            Exception: Whatever the operation raised, after recording it.
        """
        await self._before_call(label)

        try:
            result = await operation()
        except asyncio.CancelledError:
            await asyncio.shield(self._on_cancelled(label))
            raise
        except Exception:
            await self._on_failure(label)
            raise

        await self._on_success(label)
        return result

    def snapshot(self) -> dict[str, Any]:
        """Current breaker state for health checks."""
        return {
            "state": self._state.value,
            "consecutive_failures": self._consecutive_failures,
            "failure_threshold": self.failure_threshold,
            "last_failure_time": self._last_failure_time,
        }
