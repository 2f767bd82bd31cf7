# ============================================================================
# SCOPE: INFRASTRUCTURE LAYER (Scheduling)
# Description: Circuit breaker for calls to the system of record.
# ============================================================================
"""Circuit breaker guarding the OpenEMR client.

After ``failure_threshold`` consecutive failures every call is refused for
``recovery_timeout`` seconds. The first call after that window is a trial call:
success closes the circuit, failure opens it again.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    """Thresholds for CircuitBreaker.

    Attributes:
        failure_threshold: Consecutive failures that open the circuit.
        recovery_timeout: Seconds the circuit stays open before a trial call.
        success_threshold: Trial successes required to close again.
    """

    failure_threshold: int = 5
    recovery_timeout: float = 30.0
    success_threshold: int = 1


class CircuitOpenError(Exception):
    """The circuit is open; the call was not attempted."""


class CircuitBreaker:
    """Consecutive-failure circuit breaker for async callables."""

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        name: str = "openemr",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or CircuitBreakerConfig()
        self._name = name
        self._clock = clock
        self._lock = asyncio.Lock()
        self._current = CircuitState.CLOSED
        self._failures = 0
        self._trial_successes = 0
        self._opened_at = 0.0

    @property
    def state(self) -> CircuitState:
        return self._current

    @property
    def is_open(self) -> bool:
        return self._current == CircuitState.OPEN

    @property
    def failure_count(self) -> int:
        return self._failures

    async def call(self, func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
        """Await func(*args, **kwargs) unless the circuit is open.

        Raises:
            CircuitOpenError: While the recovery window has not elapsed.
            Exception: Whatever func raised; it is counted as a failure.
        """
        async with self._lock:
            if self._current == CircuitState.OPEN:
                remaining = self._config.recovery_timeout - (self._clock() - self._opened_at)
                if remaining > 0:
                    raise CircuitOpenError(f"Circuit '{self._name}' open, next trial in {remaining:.1f}s")
                self._enter(CircuitState.HALF_OPEN)

        try:
            result = await func(*args, **kwargs)
        except Exception:
            async with self._lock:
                self._record_failure()
            raise

        async with self._lock:
            self._record_success()
        return result

    def _record_success(self) -> None:
        if self._current == CircuitState.HALF_OPEN:
            self._trial_successes += 1
            if self._trial_successes >= self._config.success_threshold:
                self._enter(CircuitState.CLOSED)
        else:
            self._failures = 0

    def _record_failure(self) -> None:
        self._failures += 1
        if self._current == CircuitState.HALF_OPEN or self._failures >= self._config.failure_threshold:
            self._enter(CircuitState.OPEN)

    def _enter(self, new_state: CircuitState) -> None:
        if new_state == self._current:
            return
        logger.log(
            logging.WARNING if new_state == CircuitState.OPEN else logging.INFO,
            f"Circuit '{self._name}' {self._current.value} -> {new_state.value} (failures={self._failures})",
        )
        self._current = new_state
        self._trial_successes = 0
        if new_state == CircuitState.OPEN:
            self._opened_at = self._clock()
        elif new_state == CircuitState.CLOSED:
            self._failures = 0

    def reset(self) -> None:
        self._enter(CircuitState.CLOSED)
        self._failures = 0
