"""
Circuit Breaker for calls to the aggregator bridge.

When the bridge keeps failing, staff actions stop waiting on it and fail
fast; the pending-action flag still reaches the bridge through its own
polling, so nothing is lost while the circuit is open.

States:
1. CLOSED: requests pass through
2. OPEN: after failure_threshold consecutive failures, requests are rejected
3. HALF_OPEN: after timeout_seconds, a few probe requests are let through

Usage:
    from rest_api.services.aggregator.circuit_breaker import bridge_breaker

    async with bridge_breaker.call():
        response = await client.post(...)
"""

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import AsyncGenerator

from shared.config.logging import aggregator_logger as logger


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    """Configuration for a circuit breaker instance."""
    name: str
    failure_threshold: int = 5       # Consecutive failures before opening
    success_threshold: int = 2       # Probe successes before closing again
    timeout_seconds: float = 30.0    # Open time before probing
    half_open_max_calls: int = 2     # Concurrent probes


@dataclass
class CircuitBreakerStats:
    """Counters exposed on the health endpoint."""
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    state_changes: int = 0
    last_failure_time: float | None = None


class CircuitBreakerError(Exception):
    """Raised when the circuit is open and the call is rejected."""
    def __init__(self, breaker_name: str, retry_after: float):
        self.breaker_name = breaker_name
        self.retry_after = retry_after
        super().__init__(f"Circuit breaker '{breaker_name}' is open. Retry after {retry_after:.1f}s")


class CircuitBreaker:
    """Async circuit breaker; state changes are guarded by an asyncio lock."""

    def __init__(self, config: CircuitBreakerConfig):
        self.config = config
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._half_open_calls = 0
        self._opened_at: float | None = None
        self._lock = asyncio.Lock()
        self._stats = CircuitBreakerStats()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def stats(self) -> CircuitBreakerStats:
        return self._stats

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._stats.state_changes += 1

        logger.info(
            f"Circuit breaker '{self.config.name}' state change",
            old_state=old_state.value,
            new_state=new_state.value,
            failure_count=self._failure_count,
        )

        if new_state == CircuitState.CLOSED:
            self._failure_count = 0
            self._success_count = 0
            self._opened_at = None
        elif new_state == CircuitState.OPEN:
            self._opened_at = time.monotonic()
        elif new_state == CircuitState.HALF_OPEN:
            self._success_count = 0
            self._half_open_calls = 0

    async def _can_attempt(self) -> tuple[bool, float]:
        """Returns (can_attempt, retry_after_seconds)."""
        async with self._lock:
            if self._state == CircuitState.CLOSED:
                return True, 0.0

            if self._state == CircuitState.OPEN:
                elapsed = time.monotonic() - (self._opened_at or 0.0)
                if elapsed < self.config.timeout_seconds:
                    return False, self.config.timeout_seconds - elapsed
                self._transition_to(CircuitState.HALF_OPEN)

            if self._half_open_calls < self.config.half_open_max_calls:
                self._half_open_calls += 1
                return True, 0.0
            return False, 1.0

    async def record_success(self) -> None:
        async with self._lock:
            self._stats.total_calls += 1
            self._stats.successful_calls += 1

            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                self._half_open_calls = max(0, self._half_open_calls - 1)
                if self._success_count >= self.config.success_threshold:
                    self._transition_to(CircuitState.CLOSED)
            else:
                self._failure_count = 0

    async def record_failure(self, error: Exception | None = None) -> None:
        async with self._lock:
            self._stats.total_calls += 1
            self._stats.failed_calls += 1
            self._stats.last_failure_time = time.time()
            self._failure_count += 1

            if error:
                logger.warning(
                    f"Circuit breaker '{self.config.name}' recorded failure",
                    error=str(error),
                    failure_count=self._failure_count,
                    threshold=self.config.failure_threshold,
                )

            if self._state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.OPEN)
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self.config.failure_threshold
            ):
                self._transition_to(CircuitState.OPEN)

    @asynccontextmanager
    async def call(self) -> AsyncGenerator[None, None]:
        """
        Protect one call.

        Raises:
            CircuitBreakerError: the circuit is open
        """
        can_attempt, retry_after = await self._can_attempt()
        if not can_attempt:
            self._stats.rejected_calls += 1
            raise CircuitBreakerError(self.config.name, retry_after)

        try:
            yield
        except Exception as e:
            await self.record_failure(e)
            raise
        await self.record_success()

    async def reset(self) -> None:
        """Force the circuit closed."""
        async with self._lock:
            self._transition_to(CircuitState.CLOSED)
            self._half_open_calls = 0


# Opens after 5 consecutive bridge failures, probes again after 30s
bridge_breaker = CircuitBreaker(
    CircuitBreakerConfig(
        name="aggregator_bridge",
        failure_threshold=5,
        success_threshold=2,
        timeout_seconds=30.0,
        half_open_max_calls=2,
    )
)


def get_breaker_stats(breaker: CircuitBreaker = bridge_breaker) -> dict:
    """Snapshot for the health endpoint."""
    return {
        "state": breaker.state.value,
        "total_calls": breaker.stats.total_calls,
        "successful_calls": breaker.stats.successful_calls,
        "failed_calls": breaker.stats.failed_calls,
        "rejected_calls": breaker.stats.rejected_calls,
        "state_changes": breaker.stats.state_changes,
    }
