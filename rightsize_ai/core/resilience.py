"""
Resilience primitives for collaborator calls.

Every call the core makes to a collaborator (summary fetch, allocation fetch,
baseline-cost fetch) goes through a ResilientCaller, which combines:

- retry with exponential backoff and jitter for transient failures;
- a circuit breaker that fails fast after repeated consecutive failures;
- a cancellation token carrying an optional deadline.

The breaker state is an immutable BreakerState value. Transitions are pure
methods on that value and the CircuitBreaker swaps the value under a lock,
so each transition is atomic and can be tested without threads or clocks.
"""

import logging
import random
import threading
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Optional, TypeVar

from rightsize_ai.core.collaborators import CollaboratorUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OperationCancelled(Exception):
    """Raised when an operation is cancelled before it completes."""
    pass


class DeadlineExceeded(OperationCancelled):
    """Raised when an operation runs past its deadline."""
    pass


class CircuitOpenError(CollaboratorUnavailable):
    """Raised immediately while a circuit is open."""
    pass


# ============================================================================
# Cancellation
# ============================================================================

class CancellationToken:
    """
    Cooperative cancellation signal with an optional deadline.

    Args:
        timeout: Seconds from now until the deadline, or None for no deadline.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._event = threading.Event()
        self._clock = clock
        self._deadline = clock() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def expired(self) -> bool:
        return self._deadline is not None and self._clock() >= self._deadline

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self.expired

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None without a deadline."""
        if self._deadline is None:
            return None
        return max(self._deadline - self._clock(), 0.0)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled("Operation was cancelled")
        if self.expired:
            raise DeadlineExceeded("Operation deadline exceeded")

    def wait(self, seconds: float) -> bool:
        """
        Sleep up to ``seconds``, waking early on cancellation or deadline.

        Returns:
            True if the token is cancelled when the wait ends.
        """
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        if seconds > 0:
            self._event.wait(seconds)
        return self.cancelled


# ============================================================================
# Retry
# ============================================================================

@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff policy for transient collaborator failures."""
    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_factor: float = 2.0
    jitter: float = 0.1  # fraction of the delay added at random

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must not be negative")

    def calculate_delay(
        self,
        attempt: int,
        rand: Callable[[], float] = random.random,
    ) -> float:
        """
        Calculate delay before the next retry.

        Args:
            attempt: The attempt number that just failed (0-based).
            rand: Source of uniform [0, 1) values for jitter.

        Returns:
            Delay in seconds, capped at max_delay.
        """
        delay = self.initial_delay * (self.backoff_factor ** attempt)
        if self.jitter:
            delay += delay * self.jitter * rand()
        return min(delay, self.max_delay)


# ============================================================================
# Circuit breaker
# ============================================================================

class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class BreakerState:
    """
    Immutable circuit breaker state.

    ``trial_calls`` counts half-open trial calls still in flight and
    ``trial_successes`` the trial calls that have succeeded.
    """
    state: CircuitState = CircuitState.CLOSED
    consecutive_failures: int = 0
    opened_at: Optional[float] = None
    trial_calls: int = 0
    trial_successes: int = 0

    def admit(
        self,
        now: float,
        reset_timeout: float,
        half_open_max_calls: int,
    ) -> tuple["BreakerState", bool]:
        """Decide whether a call may proceed; returns (next_state, allowed)."""
        if self.state == CircuitState.CLOSED:
            return self, True

        if self.state == CircuitState.OPEN:
            if self.opened_at is not None and now - self.opened_at >= reset_timeout:
                return BreakerState(
                    state=CircuitState.HALF_OPEN,
                    consecutive_failures=self.consecutive_failures,
                    trial_calls=1,
                ), True
            return self, False

        if self.trial_calls + self.trial_successes < half_open_max_calls:
            return replace(self, trial_calls=self.trial_calls + 1), True
        return self, False

    def record_success(self, success_threshold: int) -> "BreakerState":
        if self.state == CircuitState.HALF_OPEN:
            successes = self.trial_successes + 1
            if successes >= success_threshold:
                return BreakerState()
            return replace(
                self,
                trial_calls=max(self.trial_calls - 1, 0),
                trial_successes=successes,
            )
        if self.state == CircuitState.CLOSED:
            return BreakerState()
        # A call admitted before the circuit opened finished late.
        return self

    def record_failure(self, now: float, failure_threshold: int) -> "BreakerState":
        failures = self.consecutive_failures + 1
        if self.state == CircuitState.HALF_OPEN:
            return BreakerState(
                state=CircuitState.OPEN,
                consecutive_failures=failures,
                opened_at=now,
            )
        if self.state == CircuitState.CLOSED and failures >= failure_threshold:
            return BreakerState(
                state=CircuitState.OPEN,
                consecutive_failures=failures,
                opened_at=now,
            )
        return replace(self, consecutive_failures=failures)

    def release(self) -> "BreakerState":
        """Give back a trial slot for a call that ended without a verdict."""
        if self.state == CircuitState.HALF_OPEN and self.trial_calls > 0:
            return replace(self, trial_calls=self.trial_calls - 1)
        return self


class CircuitBreaker:
    """
    Circuit breaker guarding one collaborator.

    Only CollaboratorUnavailable counts as a failure. Other exceptions (for
    example AllocationNotFound) mean the collaborator answered, so they
    release the trial slot without changing the failure count.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        reset_timeout: float = 30.0,
        half_open_max_calls: int = 3,
        success_threshold: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the circuit breaker.

        Args:
            name: Name used in logs and errors.
            failure_threshold: Consecutive failures that open the circuit.
            reset_timeout: Seconds the circuit stays open before trial calls.
            half_open_max_calls: Trial calls admitted while half-open.
            success_threshold: Trial successes needed to close the circuit;
                defaults to half_open_max_calls.
            clock: Monotonic clock, injectable for tests.
        """
        if success_threshold is None:
            success_threshold = half_open_max_calls
        if failure_threshold < 1 or half_open_max_calls < 1:
            raise ValueError("failure_threshold and half_open_max_calls must be positive")
        if not 1 <= success_threshold <= half_open_max_calls:
            raise ValueError("success_threshold must be between 1 and half_open_max_calls")

        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.half_open_max_calls = half_open_max_calls
        self.success_threshold = success_threshold
        self._clock = clock
        self._lock = threading.Lock()
        self._state = BreakerState()

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state.state

    def snapshot(self) -> BreakerState:
        with self._lock:
            return self._state

    def reset(self) -> None:
        with self._lock:
            self._state = BreakerState()

    def get_stats(self) -> dict:
        snapshot = self.snapshot()
        return {
            "name": self.name,
            "state": snapshot.state.value,
            "consecutive_failures": snapshot.consecutive_failures,
            "trial_successes": snapshot.trial_successes,
        }

    def call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        Invoke ``fn`` under circuit breaker protection.

        Raises:
            CircuitOpenError: If the circuit does not admit the call.
        """
        with self._lock:
            previous = self._state.state
            self._state, allowed = self._state.admit(
                self._clock(), self.reset_timeout, self.half_open_max_calls
            )
            current = self._state.state

        if previous == CircuitState.OPEN and current == CircuitState.HALF_OPEN:
            logger.info(f"Circuit '{self.name}' half-open, admitting trial calls")
        if not allowed:
            raise CircuitOpenError(f"Circuit '{self.name}' is open")

        try:
            result = fn(*args, **kwargs)
        except CollaboratorUnavailable:
            with self._lock:
                previous = self._state.state
                self._state = self._state.record_failure(self._clock(), self.failure_threshold)
                current = self._state.state
            if previous != CircuitState.OPEN and current == CircuitState.OPEN:
                logger.warning(
                    f"Circuit '{self.name}' opened for {self.reset_timeout}s"
                )
            raise
        except Exception:
            with self._lock:
                self._state = self._state.release()
            raise

        with self._lock:
            previous = self._state.state
            self._state = self._state.record_success(self.success_threshold)
            current = self._state.state
        if previous == CircuitState.HALF_OPEN and current == CircuitState.CLOSED:
            logger.info(f"Circuit '{self.name}' closed")
        return result


# ============================================================================
# Guarded calls
# ============================================================================

class ResilientCaller:
    """
    Wraps collaborator calls with retry, circuit breaking and cancellation.

    Args:
        name: Name used in logs.
        breaker: Optional circuit breaker shared by all calls to the collaborator.
        retry_policy: Backoff policy; defaults to RetryPolicy().
        sleep: Optional sleep function used instead of an interruptible wait.
    """

    def __init__(
        self,
        name: str = "collaborator",
        breaker: Optional[CircuitBreaker] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.name = name
        self.breaker = breaker
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    def call(
        self,
        fn: Callable[..., T],
        *args: Any,
        cancel: Optional[CancellationToken] = None,
        **kwargs: Any,
    ) -> T:
        """
        Call ``fn`` with retries.

        Raises:
            OperationCancelled: If the token fires before a result is returned.
            CircuitOpenError: If the circuit is open (never retried).
            CollaboratorUnavailable: If every attempt failed.
        """
        cancel = cancel or CancellationToken()
        policy = self.retry_policy
        last_error: Optional[CollaboratorUnavailable] = None

        for attempt in range(policy.max_attempts):
            cancel.raise_if_cancelled()
            try:
                if self.breaker is not None:
                    result = self.breaker.call(fn, *args, **kwargs)
                else:
                    result = fn(*args, **kwargs)
            except CircuitOpenError:
                raise
            except CollaboratorUnavailable as e:
                last_error = e
                logger.warning(
                    f"{self.name} call attempt {attempt + 1}/{policy.max_attempts} failed: {e}"
                )
                if attempt < policy.max_attempts - 1:
                    self._wait(policy.calculate_delay(attempt), cancel)
                continue

            # A result that arrives after cancellation is discarded.
            cancel.raise_if_cancelled()
            return result

        raise CollaboratorUnavailable(
            f"All {policy.max_attempts} {self.name} attempts failed: {last_error}"
        ) from last_error

    def _wait(self, delay: float, cancel: CancellationToken) -> None:
        if self._sleep is not None:
            self._sleep(delay)
        else:
            cancel.wait(delay)
        cancel.raise_if_cancelled()


_breakers: dict[str, CircuitBreaker] = {}
_breakers_lock = threading.Lock()


def get_circuit_breaker(
    name: str,
    failure_threshold: int = 5,
    reset_timeout: float = 30.0,
    half_open_max_calls: int = 3,
) -> CircuitBreaker:
    """
    Get or create the process-wide circuit breaker for a collaborator.

    Breakers outlive individual requests so failures accumulate across them.
    The first registration under a name fixes its thresholds; a later call
    with different thresholds gets the existing breaker and a warning. Call
    reset_circuit_breakers() to apply new settings.
    """
    with _breakers_lock:
        breaker = _breakers.get(name)
        if breaker is None:
            breaker = CircuitBreaker(
                name,
                failure_threshold=failure_threshold,
                reset_timeout=reset_timeout,
                half_open_max_calls=half_open_max_calls,
            )
            _breakers[name] = breaker
        elif (breaker.failure_threshold, breaker.reset_timeout, breaker.half_open_max_calls) != (
            failure_threshold, reset_timeout, half_open_max_calls
        ):
            logger.warning(
                f"Circuit '{name}' already registered with failure_threshold="
                f"{breaker.failure_threshold}, reset_timeout={breaker.reset_timeout}, "
                f"half_open_max_calls={breaker.half_open_max_calls}; ignoring new settings"
            )
        return breaker


def reset_circuit_breakers() -> None:
    """Forget all registered breakers."""
    with _breakers_lock:
        _breakers.clear()
