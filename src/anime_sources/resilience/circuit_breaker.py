"""
Per-source Circuit Breaker

State machine gating whether a call to a source is attempted at all:

    closed ──(failure_threshold counted failures)──▶ open
    open ──(next access after reset_timeout)──▶ half_open
    half_open ──(probe succeeds)──▶ closed
    half_open ──(probe fails)──▶ open

Transitions are evaluated lazily when the breaker is accessed; there is no
background timer, so an idle source's breaker stays open until the next call
arrives. Cancellation, timeouts, circuit-open rejections and admission
rejections are not counted as failures.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from ..events import SourceEvents
from ..exceptions import AdmissionRejectedError, CircuitOpenError, OperationAbortedError
from ..log_config import get_context_logger
from ..metrics import MetricLabels, MetricsCollector, NoOpMetrics, SourceMetrics
from ..time_provider import RealtimeTimeProvider, TimeProvider


T = TypeVar("T")

DEFAULT_FAILURE_THRESHOLD = 5
DEFAULT_RESET_TIMEOUT = 15.0

# Errors that say nothing about the source's own health
EXEMPT_ERRORS: tuple[type[BaseException], ...] = (
    OperationAbortedError,
    CircuitOpenError,
    AdmissionRejectedError,
)


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerState:
    """Mutable state of one source's breaker."""

    source: str
    failure_threshold: int = DEFAULT_FAILURE_THRESHOLD
    reset_timeout: float = DEFAULT_RESET_TIMEOUT
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    last_failure_time: float | None = None
    last_attempt_time: float | None = None
    probe_in_flight: bool = False


class CircuitBreaker:
    """
    Circuit breaker for a single source.

    Examples:
        >>> breaker = CircuitBreaker("HiAnime", failure_threshold=5, reset_timeout=15.0)
        >>> result = await breaker.call(lambda: source.search("naruto"))
        >>> breaker.state
        <CircuitState.CLOSED: 'closed'>
    """

    def __init__(
        self,
        source: str,
        *,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        reset_timeout: float = DEFAULT_RESET_TIMEOUT,
        time_provider: TimeProvider | None = None,
        metrics: MetricsCollector | None = None,
    ):
        if failure_threshold < 1:
            raise ValueError(f"failure_threshold must be >= 1, got {failure_threshold}")
        self._state = CircuitBreakerState(
            source=source,
            failure_threshold=failure_threshold,
            reset_timeout=reset_timeout,
        )
        self.time_provider = time_provider or RealtimeTimeProvider()
        self.metrics = metrics or NoOpMetrics()
        self.logger = get_context_logger("circuit_breaker").bind(source=source)

    @property
    def source(self) -> str:
        return self._state.source

    @property
    def state(self) -> CircuitState:
        """Current state, after applying a pending open → half_open transition."""
        self._evaluate()
        return self._state.state

    @property
    def failure_count(self) -> int:
        return self._state.failure_count

    @property
    def last_failure_time(self) -> float | None:
        return self._state.last_failure_time

    def _evaluate(self) -> None:
        st = self._state
        if (
            st.state == CircuitState.OPEN
            and st.last_failure_time is not None
            and self.time_provider.now() - st.last_failure_time > st.reset_timeout
        ):
            self._transition(CircuitState.HALF_OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self._state.state
        if old_state == new_state:
            return
        self._state.state = new_state
        labels = {MetricLabels.SOURCE: self.source}

        if new_state == CircuitState.OPEN:
            self.logger.warning(
                SourceEvents.CIRCUIT_OPENED,
                from_state=old_state.value,
                failure_count=self._state.failure_count,
                reset_timeout=self._state.reset_timeout,
            )
            self.metrics.increment(SourceMetrics.CIRCUIT_OPENED, labels=labels)
        elif new_state == CircuitState.HALF_OPEN:
            self.logger.info(SourceEvents.CIRCUIT_HALF_OPEN, from_state=old_state.value)
        else:
            self.logger.info(SourceEvents.CIRCUIT_CLOSED, from_state=old_state.value)
            self.metrics.increment(SourceMetrics.CIRCUIT_CLOSED, labels=labels)

    def retry_after(self) -> float:
        """Seconds until an open breaker admits a probe call (0 if not open)."""
        st = self._state
        if st.state != CircuitState.OPEN or st.last_failure_time is None:
            return 0.0
        elapsed = self.time_provider.now() - st.last_failure_time
        return max(0.0, st.reset_timeout - elapsed)

    def _reject(self, reason: str) -> CircuitOpenError:
        self.logger.debug(SourceEvents.CIRCUIT_REJECTED, reason=reason)
        self.metrics.increment(
            SourceMetrics.CIRCUIT_REJECTED, labels={MetricLabels.SOURCE: self.source}
        )
        return CircuitOpenError(
            f"Circuit breaker is open for {self.source}",
            source=self.source,
            retry_after=self.retry_after(),
        )

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``operation`` through the breaker.

        Args:
            operation: Zero-argument coroutine function performing the call

        Returns:
            Result of the operation

        Raises:
            CircuitOpenError: If the breaker rejects the call
        """
        self._evaluate()
        st = self._state
        st.last_attempt_time = self.time_provider.now()

        if st.state == CircuitState.OPEN:
            raise self._reject("open")

        probing = False
        if st.state == CircuitState.HALF_OPEN:
            if st.probe_in_flight:
                raise self._reject("probe_in_flight")
            st.probe_in_flight = True
            probing = True

        try:
            result = await operation()
        except EXEMPT_ERRORS:
            raise
        except Exception:
            self.record_failure()
            raise
        finally:
            if probing:
                st.probe_in_flight = False

        self.record_success()
        return result

    def record_success(self) -> None:
        """Close the breaker and reset the failure counter."""
        self._state.failure_count = 0
        self._transition(CircuitState.CLOSED)

    def record_failure(self) -> None:
        """Count a failure; open the breaker at the threshold or on a failed probe."""
        st = self._state
        st.failure_count += 1
        st.last_failure_time = self.time_provider.now()
        if st.state == CircuitState.HALF_OPEN or st.failure_count >= st.failure_threshold:
            self._transition(CircuitState.OPEN)

    def reset(self) -> None:
        """Force the breaker closed."""
        self._state.failure_count = 0
        self._state.last_failure_time = None
        self._state.probe_in_flight = False
        self._transition(CircuitState.CLOSED)

    def snapshot(self) -> dict[str, Any]:
        """Read-only view for the inspection endpoint."""
        state = self.state
        return {
            "name": self.source,
            "state": state.value,
            "failure_count": self._state.failure_count,
            "failure_threshold": self._state.failure_threshold,
            "last_attempt_time": self._state.last_attempt_time,
            "last_failure_time": self._state.last_failure_time,
            "reset_time_remaining": self.retry_after(),
        }


class CircuitBreakerRegistry:
    """
    Owns exactly one CircuitBreaker per source, created on first access.

    Examples:
        >>> breakers = CircuitBreakerRegistry(failure_threshold=3)
        >>> breakers.get("HiAnime") is breakers.get("HiAnime")
        True
    """

    def __init__(
        self,
        *,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        reset_timeout: float = DEFAULT_RESET_TIMEOUT,
        time_provider: TimeProvider | None = None,
        metrics: MetricsCollector | None = None,
    ):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.time_provider = time_provider or RealtimeTimeProvider()
        self.metrics = metrics or NoOpMetrics()
        self._breakers: dict[str, CircuitBreaker] = {}

    def get(self, source: str) -> CircuitBreaker:
        breaker = self._breakers.get(source)
        if breaker is None:
            breaker = CircuitBreaker(
                source,
                failure_threshold=self.failure_threshold,
                reset_timeout=self.reset_timeout,
                time_provider=self.time_provider,
                metrics=self.metrics,
            )
            self._breakers[source] = breaker
        return breaker

    def __contains__(self, source: str) -> bool:
        return source in self._breakers

    def __len__(self) -> int:
        return len(self._breakers)

    def snapshot(self) -> list[dict[str, Any]]:
        return [breaker.snapshot() for breaker in self._breakers.values()]

    def reset(self, source: str | None = None) -> None:
        """Force one breaker, or all of them, closed."""
        if source is not None:
            if source in self._breakers:
                self._breakers[source].reset()
            return
        for breaker in self._breakers.values():
            breaker.reset()


__all__ = [
    "CircuitState",
    "CircuitBreakerState",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "EXEMPT_ERRORS",
    "DEFAULT_FAILURE_THRESHOLD",
    "DEFAULT_RESET_TIMEOUT",
]
