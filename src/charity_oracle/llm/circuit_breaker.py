"""Circuit breaker for the LLM collaborator.

After repeated transport failures the breaker opens and calls fail fast
with CircuitBreakerOpen (a TransientCollaboratorError) until the cooldown
elapses, instead of every job waiting out a full request timeout.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from charity_oracle.config.defaults import (
    CIRCUIT_BREAKER_FAILURE_THRESHOLD,
    CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS,
    CIRCUIT_BREAKER_SUCCESS_THRESHOLD,
    CIRCUIT_BREAKER_TIMEOUT_SECONDS,
)
from charity_oracle.errors import TransientCollaboratorError

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"      # Normal operation
    OPEN = "open"          # Failing - reject calls
    HALF_OPEN = "half_open"  # Testing if recovery


class CircuitBreakerOpen(TransientCollaboratorError):
    """Raised when the circuit is open and the call was not attempted."""


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker.

    Attributes:
        failure_threshold: Number of failures before opening the circuit.
        success_threshold: Number of successes in half-open to close the circuit.
        timeout: Seconds to wait in OPEN state before transitioning to HALF_OPEN.
        half_open_max_calls: Maximum calls allowed in HALF_OPEN state.
    """

    failure_threshold: int = CIRCUIT_BREAKER_FAILURE_THRESHOLD
    success_threshold: int = CIRCUIT_BREAKER_SUCCESS_THRESHOLD
    timeout: float = CIRCUIT_BREAKER_TIMEOUT_SECONDS
    half_open_max_calls: int = CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS

    @classmethod
    def from_env(cls) -> "CircuitBreakerConfig":
        """Create config from environment variables with config defaults as fallbacks."""
        return cls(
            failure_threshold=int(os.environ.get(
                "CIRCUIT_FAILURE_THRESHOLD", str(CIRCUIT_BREAKER_FAILURE_THRESHOLD))),
            success_threshold=int(os.environ.get(
                "CIRCUIT_SUCCESS_THRESHOLD", str(CIRCUIT_BREAKER_SUCCESS_THRESHOLD))),
            timeout=float(os.environ.get(
                "CIRCUIT_TIMEOUT", str(CIRCUIT_BREAKER_TIMEOUT_SECONDS))),
            half_open_max_calls=int(os.environ.get(
                "CIRCUIT_HALF_OPEN_MAX", str(CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS))),
        )


class CircuitBreaker:
    """Circuit breaker around one collaborator endpoint.

    Only TransientCollaboratorError counts as a failure: a malformed answer
    still proves the endpoint is reachable.
    """

    def __init__(self, name: str, config: Optional[CircuitBreakerConfig] = None):
        self.name = name
        self.config = config or CircuitBreakerConfig()

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time: Optional[float] = None
        self._half_open_calls = 0

        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def is_available(self) -> bool:
        """Check if the circuit allows calls."""
        if self._state == CircuitState.CLOSED:
            return True

        if self._state == CircuitState.OPEN:
            if self._last_failure_time is not None:
                elapsed = time.monotonic() - self._last_failure_time
                if elapsed >= self.config.timeout:
                    self._transition(CircuitState.HALF_OPEN, reason="cooldown_elapsed")
                    self._half_open_calls = 0
                    return True
            return False

        return self._half_open_calls < self.config.half_open_max_calls

    def _transition(self, to_state: CircuitState, **details: Any) -> None:
        from_state = self._state
        self._state = to_state
        log = logger.warning if to_state == CircuitState.OPEN else logger.info
        log(
            "circuit_breaker_state_change",
            extra={
                "event": "circuit_breaker_state_change",
                "collaborator": self.name,
                "from_state": from_state.value,
                "to_state": to_state.value,
                **details,
            },
        )

    async def call(self, func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
        """Await ``func`` through the circuit breaker."""
        async with self._lock:
            if not self.is_available:
                raise CircuitBreakerOpen(f"Circuit '{self.name}' is OPEN. Collaborator unavailable.")
            if self._state == CircuitState.HALF_OPEN:
                self._half_open_calls += 1

        try:
            result = await func(*args, **kwargs)
        except TransientCollaboratorError:
            await self._on_failure()
            raise
        await self._on_success()
        return result

    async def _on_success(self) -> None:
        async with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self.config.success_threshold:
                    self._transition(CircuitState.CLOSED, reason="recovery_success")
                    self._failure_count = 0
                    self._success_count = 0
            else:
                self._failure_count = 0

    async def _on_failure(self) -> None:
        async with self._lock:
            self._failure_count += 1
            self._last_failure_time = time.monotonic()

            if self._state == CircuitState.HALF_OPEN:
                self._success_count = 0
                self._half_open_calls = 0
                self._transition(CircuitState.OPEN, reason="test_request_failed")
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self.config.failure_threshold
            ):
                self._transition(
                    CircuitState.OPEN,
                    failure_count=self._failure_count,
                    threshold=self.config.failure_threshold,
                )

    def get_status(self) -> dict:
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "success_count": self._success_count,
            "half_open_calls": self._half_open_calls,
            "is_available": self.is_available,
        }

    def reset(self) -> None:
        """Manually reset the circuit breaker."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time = None
        self._half_open_calls = 0
