"""
Resilience primitives for outbound source calls.

Provides cooperative cancellation, retry with exponential backoff, deadline
guards, per-source circuit breakers, global admission control, and the
ReliableInvoker composing them.
"""

from .admission import AdmissionController
from .cancellation import CancellationToken, wait_cancellable
from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitBreakerState,
    CircuitState,
)
from .invoker import ReliableInvoker
from .retry import RequestContext, RetryExecutor, RetryPolicy
from .timeout import TimeoutGuard


__all__ = [
    "AdmissionController",
    "CancellationToken",
    "wait_cancellable",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitBreakerState",
    "CircuitState",
    "ReliableInvoker",
    "RequestContext",
    "RetryExecutor",
    "RetryPolicy",
    "TimeoutGuard",
]
