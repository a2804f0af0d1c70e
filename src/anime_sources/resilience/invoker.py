"""
Reliable Invoker

Single call contract used for every outbound source call. Composition, from
the outside in:

    RetryExecutor → CircuitBreaker → AdmissionController → TimeoutGuard → operation

Every retry attempt re-checks the breaker, so an open circuit fails the
attempt without reaching the network. The admission slot is held only while
an attempt is actually running, never during a backoff delay.
"""

from typing import Awaitable, Callable, TypeVar

from ..events import SourceEvents
from ..exceptions import ErrorKind, classify_error
from ..log_config import LoggingContext, get_context_logger
from ..metrics import MetricLabels, MetricsCollector, NoOpMetrics, SourceMetrics
from ..time_provider import RealtimeTimeProvider, TimeProvider
from .admission import AdmissionController
from .cancellation import CancellationToken
from .circuit_breaker import CircuitBreakerRegistry
from .retry import RequestContext, RetryExecutor, RetryPolicy
from .timeout import DEFAULT_TIMEOUT, TimeoutGuard


T = TypeVar("T")

DEFAULT_SLOW_THRESHOLD = 2.0


class ReliableInvoker:
    """
    Composes retry, circuit breaking, admission and timeouts.

    Attributes:
        breakers: Circuit breaker registry (one breaker per source)
        admission: Global admission controller
        retry: Retry executor holding the default policy
        timeout_guard: Deadline wrapper holding the default timeout
        slow_threshold: Seconds after which a call is reported as slow

    Examples:
        >>> invoker = ReliableInvoker()
        >>> result = await invoker.invoke(
        ...     "HiAnime",
        ...     "search",
        ...     lambda token: adapter.search("naruto", 1, token=token),
        ... )

        Single attempt with a short deadline:
        >>> await invoker.invoke("HiAnime", "get_by_id", call, max_attempts=1, timeout=3.0)
    """

    def __init__(
        self,
        *,
        breakers: CircuitBreakerRegistry | None = None,
        admission: AdmissionController | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout: float | None = DEFAULT_TIMEOUT,
        slow_threshold: float = DEFAULT_SLOW_THRESHOLD,
        time_provider: TimeProvider | None = None,
        metrics: MetricsCollector | None = None,
    ):
        self.time_provider = time_provider or RealtimeTimeProvider()
        self.metrics = metrics or NoOpMetrics()
        self.breakers = breakers if breakers is not None else CircuitBreakerRegistry(
            time_provider=self.time_provider, metrics=self.metrics
        )
        self.admission = (
            admission if admission is not None else AdmissionController(metrics=self.metrics)
        )
        self.retry = RetryExecutor(retry_policy, self.time_provider, self.metrics)
        self.timeout_guard = TimeoutGuard(timeout)
        self.slow_threshold = slow_threshold
        self.logger = get_context_logger("reliable_invoker")

    def _policy(self, max_attempts: int | None, base_delay: float | None) -> RetryPolicy:
        default = self.retry.policy
        if max_attempts is None and base_delay is None:
            return default
        return RetryPolicy(
            max_attempts=default.max_attempts if max_attempts is None else max_attempts,
            base_delay=default.base_delay if base_delay is None else base_delay,
        )

    async def invoke(
        self,
        source: str,
        operation: str,
        call: Callable[[CancellationToken], Awaitable[T]],
        *,
        token: CancellationToken | None = None,
        timeout: float | None = None,
        max_attempts: int | None = None,
        base_delay: float | None = None,
    ) -> T:
        """
        Execute one logical call against ``source``.

        Args:
            source: Source name (selects the circuit breaker)
            operation: Operation label for logs and metrics
            call: Callable receiving the per-attempt cancellation token
            token: Caller's cancellation token
            timeout: Per-attempt deadline override in seconds
            max_attempts: Retry attempt override
            base_delay: Backoff base delay override in seconds

        Returns:
            Result of the call

        Raises:
            CircuitOpenError: If the source's breaker is open
            SourceTimeoutError: If the last attempt timed out
            OperationCancelledError: If the caller cancelled
            Exception: The last attempt's error otherwise
        """
        policy = self._policy(max_attempts, base_delay)
        breaker = self.breakers.get(source)

        with LoggingContext(operation=f"{operation}:{source}") as log_ctx:
            context = RequestContext(
                source=source,
                operation=operation,
                request_id=log_ctx.request_id,
                span_id=log_ctx.span_id,
            )
            labels = {MetricLabels.SOURCE: source, MetricLabels.OPERATION: operation}

            async def admitted(attempt_token: CancellationToken | None) -> T:
                async with self.admission.slot(attempt_token):
                    return await self.timeout_guard.run(
                        call, timeout=timeout, token=attempt_token, label=context.label
                    )

            async def attempt(attempt_token: CancellationToken | None) -> T:
                return await breaker.call(lambda: admitted(attempt_token))

            self.logger.debug(SourceEvents.REQUEST_STARTED, **context.to_log_dict())
            self.metrics.increment(SourceMetrics.REQUESTS_TOTAL, labels=labels)
            started = self.time_provider.now()

            try:
                result = await self.retry.run(
                    attempt, token=token, policy=policy, context=context
                )
            except Exception as exc:
                elapsed = self.time_provider.now() - started
                kind = classify_error(exc)
                log = self.logger.info if kind == ErrorKind.CANCELLED else self.logger.warning
                log(
                    SourceEvents.REQUEST_FAILED,
                    error=str(exc),
                    error_kind=kind.value,
                    elapsed_ms=round(elapsed * 1000, 1),
                    errors=context.errors,
                    **context.to_log_dict(),
                )
                self.metrics.increment(
                    SourceMetrics.REQUESTS_FAILURE,
                    labels={**labels, MetricLabels.ERROR_KIND: kind.value},
                )
                raise

            elapsed = self.time_provider.now() - started
            self.metrics.increment(SourceMetrics.REQUESTS_SUCCESS, labels=labels)
            self.metrics.timing(SourceMetrics.REQUEST_DURATION_MS, elapsed * 1000, labels=labels)
            self.logger.debug(
                SourceEvents.REQUEST_SUCCESS,
                elapsed_ms=round(elapsed * 1000, 1),
                **context.to_log_dict(),
            )
            if elapsed > self.slow_threshold:
                self.logger.warning(
                    SourceEvents.REQUEST_SLOW,
                    elapsed_ms=round(elapsed * 1000, 1),
                    threshold_ms=self.slow_threshold * 1000,
                    **context.to_log_dict(),
                )
                self.metrics.increment(SourceMetrics.REQUESTS_SLOW, labels=labels)
            return result


__all__ = ["ReliableInvoker", "DEFAULT_SLOW_THRESHOLD"]
