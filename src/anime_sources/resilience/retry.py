"""
Retry Executor

Runs an operation with a bounded number of attempts and exponential backoff.
The backoff sleep is raced against the cancellation token so a cancelled
request stops immediately instead of waiting out the delay.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, TypeVar

from ..events import SourceEvents
from ..exceptions import CircuitOpenError, OperationCancelledError, classify_error
from ..log_config import get_context_logger
from ..metrics import MetricLabels, MetricsCollector, NoOpMetrics, SourceMetrics
from ..time_provider import RealtimeTimeProvider, TimeProvider
from .cancellation import CancellationToken, wait_cancellable


T = TypeVar("T")


@dataclass
class RetryPolicy:
    """
    Retry configuration for one logical call.

    Attributes:
        max_attempts: Total attempts including the first one
        base_delay: Delay after the first failure in seconds; doubles each retry

    Examples:
        >>> RetryPolicy(max_attempts=4, base_delay=1.0).delays()
        [1.0, 2.0, 4.0]
    """

    max_attempts: int = 2
    base_delay: float = 1.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay < 0:
            raise ValueError(f"base_delay must be >= 0, got {self.base_delay}")

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after failed attempt number ``attempt`` (1-based)."""
        return self.base_delay * (2 ** (attempt - 1))

    def delays(self) -> list[float]:
        """Full backoff schedule between attempts."""
        return [self.delay_for(attempt) for attempt in range(1, self.max_attempts)]


@dataclass
class RequestContext:
    """
    Diagnostic state of one logical call, discarded when the call resolves.

    Attributes:
        source: Target source name
        operation: Operation label (e.g. "search")
        request_id: Correlation id of the façade request
        span_id: Id of this invocation
        attempt: Current attempt number
        current_delay: Last backoff delay in seconds
        errors: Error summaries of failed attempts
    """

    source: str
    operation: str
    request_id: str | None = None
    span_id: str | None = None
    max_attempts: int = 1
    attempt: int = 0
    current_delay: float = 0.0
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def label(self) -> str:
        return f"{self.operation}:{self.source}"

    def to_log_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "operation": self.operation,
            "attempt": self.attempt,
            "max_attempts": self.max_attempts,
        }


class RetryExecutor:
    """
    Bounded retry with exponential backoff.

    Errors that are never retried:
        - OperationCancelledError: the caller gave up
        - CircuitOpenError: the source is known bad for this logical request.
          The rejected attempt still counts against the budget, but no
          further attempt follows. This departs from an executor that keeps
          looping on open-breaker rejections until the budget is spent.

    On exhaustion the last error is re-raised unchanged, so callers can still
    tell a timeout from a network failure.

    Examples:
        >>> executor = RetryExecutor(RetryPolicy(max_attempts=3, base_delay=0.5))
        >>> result = await executor.run(lambda token: fetch(token), token=token)
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        time_provider: TimeProvider | None = None,
        metrics: MetricsCollector | None = None,
    ):
        self.policy = policy or RetryPolicy()
        self.time_provider = time_provider or RealtimeTimeProvider()
        self.metrics = metrics or NoOpMetrics()
        self.logger = get_context_logger("retry_executor")

    async def run(
        self,
        operation: Callable[[CancellationToken | None], Awaitable[T]],
        *,
        token: CancellationToken | None = None,
        policy: RetryPolicy | None = None,
        context: RequestContext | None = None,
    ) -> T:
        """
        Run ``operation`` until it succeeds or the attempts are exhausted.

        Args:
            operation: Callable receiving the cancellation token
            token: Cancellation token shared by every attempt
            policy: Policy override for this call
            context: Request context updated with attempt diagnostics

        Returns:
            Result of the first successful attempt

        Raises:
            OperationCancelledError: If the token is or becomes cancelled
            Exception: The last attempt's error once attempts are exhausted
        """
        policy = policy or self.policy
        if token is not None:
            token.raise_if_cancelled()
        if context is not None:
            context.max_attempts = policy.max_attempts

        attempt = 0
        while True:
            attempt += 1
            if context is not None:
                context.attempt = attempt

            try:
                return await operation(token)
            except (OperationCancelledError, CircuitOpenError):
                raise
            except Exception as exc:
                if token is not None and token.cancelled:
                    raise OperationCancelledError(reason=token.reason) from exc

                if context is not None:
                    context.errors.append(
                        {"attempt": attempt, "kind": classify_error(exc).value, "error": str(exc)}
                    )
                if attempt >= policy.max_attempts:
                    raise

                delay = policy.delay_for(attempt)
                if context is not None:
                    context.current_delay = delay
                    labels = {
                        MetricLabels.SOURCE: context.source,
                        MetricLabels.OPERATION: context.operation,
                    }
                else:
                    labels = None

                log_fields = (
                    context.to_log_dict()
                    if context is not None
                    else {"attempt": attempt, "max_attempts": policy.max_attempts}
                )
                self.logger.warning(
                    SourceEvents.REQUEST_RETRY,
                    delay=delay,
                    error=str(exc),
                    error_kind=classify_error(exc).value,
                    **log_fields,
                )
                self.metrics.increment(SourceMetrics.REQUEST_RETRIES, labels=labels)

                await wait_cancellable(self.time_provider.sleep(delay), token)


__all__ = ["RetryPolicy", "RequestContext", "RetryExecutor"]
