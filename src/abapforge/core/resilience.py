"""
Fault-tolerance primitives for outbound calls.

* :class:`RetryPolicy` - bounded exponential backoff with +/-25% jitter.
* :class:`CircuitBreaker` - closed / open / half-open state machine.
* :class:`ResilientExecutor` - ``breaker(retry(thunk))``: the breaker sees one outcome per retry
  series, not one per attempt.

All entry points take a zero-argument callable returning an awaitable, so every attempt starts a
fresh coroutine.
"""

import asyncio
import logging
import random
import time
from enum import Enum
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Optional,
    Sequence,
    Type,
    TypeVar,
    Union,
)

from abapforge.core.errors import (
    CircuitOpenError,
    TransportError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
Thunk = Callable[[], Awaitable[T]]
RetryPredicate = Union[str, Type[BaseException]]

TRANSPORT_ERROR_CODES = ("ECONNRESET", "ETIMEDOUT", "ECONNREFUSED")
DEFAULT_RETRYABLE: tuple[RetryPredicate, ...] = (TransportError, *TRANSPORT_ERROR_CODES)


# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------
class RetryPolicy:
    """
    Retry a thunk with exponential backoff.

    Parameters
    ----------
    max_attempts:
        Number of *retries* after the first call; ``0`` means a single call.
    base_delay, max_delay:
        Backoff bounds in seconds.  The delay before retry ``k`` is
        ``min(base_delay * 2**k, max_delay)`` scaled by a factor in ``[0.75, 1.25]``.
    retryable:
        Predicates matched against a failure.  A string matches the error's ``code`` attribute
        exactly or appears in its message; an exception class matches by ``isinstance``.  ``None``
        selects :data:`DEFAULT_RETRYABLE` (transport faults only).
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 0.2,
        max_delay: float = 5.0,
        retryable: Optional[Sequence[RetryPredicate]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rand: Callable[[], float] = random.random,
    ) -> None:
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.retryable = tuple(DEFAULT_RETRYABLE if retryable is None else retryable)
        self._sleep = sleep
        self._rand = rand

    def is_retryable(self, exc: BaseException) -> bool:
        """Return *True* when any configured predicate matches *exc*."""
        code = getattr(exc, "code", None)
        message = str(exc)
        for matcher in self.retryable:
            if isinstance(matcher, str):
                if code == matcher or matcher in message:
                    return True
            elif isinstance(exc, matcher):
                return True
        return False

    def compute_delay(self, attempt: int) -> float:
        """Jittered backoff delay (seconds) before retrying after failed *attempt*."""
        capped = min(self.base_delay * (2**attempt), self.max_delay)
        return capped * (0.75 + self._rand() * 0.5)

    async def execute(self, fn: Thunk[T]) -> T:
        """Run *fn*, retrying retryable failures until the attempt budget is spent."""
        attempt = 0
        while True:
            try:
                return await fn()
            except Exception as exc:
                if attempt >= self.max_attempts or not self.is_retryable(exc):
                    raise
                delay = self.compute_delay(attempt)
                logger.info(
                    "Retry %d/%d after %.3fs: %s", attempt + 1, self.max_attempts, delay, exc
                )
                await self._sleep(delay)
                attempt += 1


# ---------------------------------------------------------------------------
# Circuit breaker
# ---------------------------------------------------------------------------
class CircuitState(str, Enum):
    """Circuit-breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


StateChangeCallback = Callable[[CircuitState, CircuitState], None]


class CircuitBreaker:
    """
    Fail fast while a remote dependency is unhealthy.

    ``closed`` -> ``open`` once ``failure_threshold`` consecutive failures are seen.  While
    ``open`` every call is rejected with :class:`CircuitOpenError` until ``reset_timeout`` seconds
    have passed since the last failure; the breaker then moves to ``half-open`` and admits up to
    ``half_open_max`` trial calls.  A successful trial closes the circuit, a failed one re-opens it.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout: float = 30.0,
        half_open_max: int = 1,
        on_state_change: Optional[StateChangeCallback] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.half_open_max = half_open_max
        self.on_state_change = on_state_change
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure: Optional[float] = None
        self._half_open_attempts = 0

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def stats(self) -> Dict[str, Any]:
        """Snapshot of the breaker counters."""
        return {
            "state": self._state.value,
            "failure_count": self._failure_count,
            "success_count": self._success_count,
            "last_failure": self._last_failure,
        }

    def reset(self) -> None:
        """Force the breaker back to ``closed`` with cleared counters."""
        self._failure_count = 0
        self._success_count = 0
        self._last_failure = None
        self._half_open_attempts = 0
        self._transition(CircuitState.CLOSED)

    async def execute(self, fn: Thunk[T]) -> T:
        """Run *fn* if the circuit admits it; record the outcome."""
        if self._state is CircuitState.OPEN:
            if self._reset_timeout_elapsed():
                self._transition(CircuitState.HALF_OPEN)
            else:
                raise CircuitOpenError(
                    f"Circuit breaker is open ({self._failure_count} failures)",
                    details=self.stats(),
                )

        if self._state is CircuitState.HALF_OPEN:
            if self._half_open_attempts >= self.half_open_max:
                raise CircuitOpenError(
                    "Circuit breaker is half-open, max trial calls reached",
                    details=self.stats(),
                )
            self._half_open_attempts += 1

        try:
            result = await fn()
        except Exception:
            self._on_failure()
            raise
        self._on_success()
        return result

    def _reset_timeout_elapsed(self) -> bool:
        if self._last_failure is None:
            return True
        return self._clock() - self._last_failure >= self.reset_timeout

    def _on_success(self) -> None:
        self._success_count += 1
        self._failure_count = 0
        if self._state is CircuitState.HALF_OPEN:
            self._half_open_attempts = 0
            self._transition(CircuitState.CLOSED)

    def _on_failure(self) -> None:
        self._failure_count += 1
        self._last_failure = self._clock()
        if self._state is CircuitState.HALF_OPEN:
            self._half_open_attempts = 0
            self._transition(CircuitState.OPEN)
        elif self._failure_count >= self.failure_threshold:
            self._transition(CircuitState.OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self._state
        if old_state is new_state:
            return
        self._state = new_state
        logger.info("Circuit breaker: %s -> %s", old_state.value, new_state.value)
        if self.on_state_change is not None:
            self.on_state_change(old_state, new_state)


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------
class ResilientExecutor:
    """Circuit breaker wrapped around a retry policy."""

    def __init__(
        self,
        retry: Optional[RetryPolicy] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ) -> None:
        self.retry = retry or RetryPolicy()
        self.circuit_breaker = circuit_breaker or CircuitBreaker()

    async def execute(self, fn: Thunk[T]) -> T:
        return await self.circuit_breaker.execute(lambda: self.retry.execute(fn))

    @classmethod
    def for_remote_api(
        cls,
        on_state_change: Optional[StateChangeCallback] = None,
        **overrides: Any,
    ) -> "ResilientExecutor":
        """
        Executor tuned for outbound LLM / remote-system calls.

        Retry: 3 retries, 0.5 s base, 10 s cap, transport faults only.  Breaker: 5 failures,
        30 s reset, one half-open trial.  Keyword overrides are routed by name to whichever of
        the two constructors accepts them.
        """
        retry_kwargs: Dict[str, Any] = {
            "max_attempts": 3,
            "base_delay": 0.5,
            "max_delay": 10.0,
            "retryable": DEFAULT_RETRYABLE,
        }
        breaker_kwargs: Dict[str, Any] = {
            "failure_threshold": 5,
            "reset_timeout": 30.0,
            "half_open_max": 1,
            "on_state_change": on_state_change,
        }
        for key, value in overrides.items():
            if key in retry_kwargs or key in ("sleep", "rand"):
                retry_kwargs[key] = value
            elif key in breaker_kwargs or key == "clock":
                breaker_kwargs[key] = value
            else:
                raise TypeError(f"Unknown executor option: {key}")
        return cls(RetryPolicy(**retry_kwargs), CircuitBreaker(**breaker_kwargs))
