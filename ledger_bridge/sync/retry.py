"""
Backoff retries and a circuit breaker for exchange history calls.

A fetch is retried within the cycle only for transient errors. When a
kind keeps failing across cycles its breaker opens, and that kind is
skipped until the cool-down elapses; the other kinds keep flowing.
"""

import asyncio
import random
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

import structlog

from ledger_bridge.sync.config import CircuitBreakerConfig, RetryConfig

logger = structlog.get_logger()

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"  # one trial call allowed


class CircuitOpenError(Exception):
    """The upstream kind is cooling down; no call was made."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CircuitBreaker:
    """
    Failure gate for one upstream transaction kind.

    Opens after ``failure_threshold`` consecutive failures. Once
    ``timeout`` seconds have passed since the last failure the next call
    goes through as a trial: ``success_threshold`` successes close the
    circuit again, a single failure reopens it.
    """

    def __init__(self, config: CircuitBreakerConfig, name: str = "circuit"):
        self.config = config
        self.name = name
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[datetime] = None
        self.last_state_change: datetime = _utcnow()

    def _set_state(self, state: CircuitState):
        if state is self.state:
            return
        logger.info(
            "circuit.state_changed",
            circuit=self.name,
            previous=self.state.value,
            state=state.value,
            failure_count=self.failure_count,
        )
        self.state = state
        self.last_state_change = _utcnow()
        if state is not CircuitState.OPEN:
            self.success_count = 0

    def seconds_until_retry(self) -> float:
        if self.state is not CircuitState.OPEN or self.last_failure_time is None:
            return 0.0
        elapsed = (_utcnow() - self.last_failure_time).total_seconds()
        return max(self.config.timeout - elapsed, 0.0)

    def before_call(self):
        """Raise CircuitOpenError while cooling down; move to half-open once it is over."""
        if self.state is not CircuitState.OPEN:
            return
        remaining = self.seconds_until_retry()
        if remaining > 0:
            raise CircuitOpenError(
                f"{self.name} circuit is open, next attempt in {remaining:.0f}s"
            )
        self._set_state(CircuitState.HALF_OPEN)

    def record_success(self):
        self.failure_count = 0
        if self.state is CircuitState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.config.success_threshold:
                self._set_state(CircuitState.CLOSED)

    def record_failure(self):
        self.failure_count += 1
        self.last_failure_time = _utcnow()
        if (
            self.state is CircuitState.HALF_OPEN
            or self.failure_count >= self.config.failure_threshold
        ):
            self._set_state(CircuitState.OPEN)

    async def call_async(self, func: Callable[[], Awaitable[T]]) -> T:
        """
        Await ``func`` through the breaker.

        Raises:
            CircuitOpenError: If the circuit is open and still cooling down
            Exception: Whatever ``func`` raised, after counting the failure
        """
        self.before_call()
        try:
            result = await func()
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    def get_state(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "last_failure_time": (
                self.last_failure_time.isoformat() if self.last_failure_time else None
            ),
            "last_state_change": self.last_state_change.isoformat(),
            "retry_in_seconds": round(self.seconds_until_retry(), 1),
        }


def backoff_delay(config: RetryConfig, attempt: int) -> float:
    """Delay before retry number ``attempt`` (0-based), capped and optionally jittered."""
    delay = min(config.initial_delay * config.exponential_base**attempt, config.max_delay)
    if config.jitter:
        # Spread retries over [delay/2, delay].
        delay *= random.uniform(0.5, 1.0)
    return delay


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    config: RetryConfig,
    operation_name: str = "operation",
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
) -> T:
    """
    Await ``func`` up to ``config.max_attempts`` times.

    Only exceptions matching ``retry_on`` trigger another attempt; anything
    else, and the last retryable error, propagates to the caller.
    """
    attempt = 0
    while True:
        try:
            return await func()
        except retry_on as e:
            attempt += 1
            if attempt >= config.max_attempts:
                logger.error(
                    "retry.exhausted",
                    operation=operation_name,
                    attempts=attempt,
                    error=str(e),
                )
                raise
            delay = backoff_delay(config, attempt - 1)
            logger.warning(
                "retry.scheduled",
                operation=operation_name,
                attempt=attempt,
                max_attempts=config.max_attempts,
                delay_seconds=round(delay, 3),
                error=str(e),
            )
            await asyncio.sleep(delay)
