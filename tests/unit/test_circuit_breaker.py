"""Unit tests for CircuitBreaker and CircuitBreakerRegistry."""

import asyncio

import pytest

from anime_sources.exceptions import (
    AdmissionRejectedError,
    CircuitOpenError,
    OperationCancelledError,
    SourceCallError,
    SourceTimeoutError,
)
from anime_sources.metrics import SourceMetrics
from anime_sources.resilience import CircuitBreaker, CircuitBreakerRegistry, CircuitState


async def fail():
    raise SourceCallError("upstream 503", status_code=503)


async def succeed():
    return "ok"


async def trip(breaker: CircuitBreaker, times: int) -> None:
    for _ in range(times):
        with pytest.raises(SourceCallError):
            await breaker.call(fail)


@pytest.mark.asyncio
class TestCircuitBreaker:
    """Test the closed → open → half_open state machine."""

    async def test_starts_closed(self, time_provider):
        breaker = CircuitBreaker("A", time_provider=time_provider)
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0

    async def test_opens_after_exactly_threshold_failures(self, time_provider):
        breaker = CircuitBreaker("A", failure_threshold=5, time_provider=time_provider)

        await trip(breaker, 4)
        assert breaker.state == CircuitState.CLOSED

        await trip(breaker, 1)
        assert breaker.state == CircuitState.OPEN
        assert breaker.failure_count == 5

    async def test_open_rejects_without_invoking(self, time_provider):
        breaker = CircuitBreaker("A", failure_threshold=2, time_provider=time_provider)
        await trip(breaker, 2)
        invoked = False

        async def operation():
            nonlocal invoked
            invoked = True

        time_provider.advance(10.0)
        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.call(operation)

        assert invoked is False
        assert exc_info.value.source == "A"
        assert exc_info.value.retry_after == pytest.approx(5.0)

    async def test_success_resets_failure_count(self, time_provider):
        breaker = CircuitBreaker("A", failure_threshold=3, time_provider=time_provider)
        await trip(breaker, 2)
        await breaker.call(succeed)
        assert breaker.failure_count == 0

        await trip(breaker, 2)
        assert breaker.state == CircuitState.CLOSED

    async def test_half_open_after_reset_window(self, time_provider):
        breaker = CircuitBreaker(
            "A", failure_threshold=1, reset_timeout=15.0, time_provider=time_provider
        )
        await trip(breaker, 1)

        time_provider.advance(15.0)
        assert breaker.state == CircuitState.OPEN

        time_provider.advance(0.1)
        assert breaker.state == CircuitState.HALF_OPEN

    async def test_half_open_success_closes(self, time_provider):
        breaker = CircuitBreaker(
            "A", failure_threshold=2, reset_timeout=15.0, time_provider=time_provider
        )
        await trip(breaker, 2)
        time_provider.advance(16.0)

        assert await breaker.call(succeed) == "ok"
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0

    async def test_half_open_failure_reopens_with_refreshed_timestamp(self, time_provider):
        breaker = CircuitBreaker(
            "A", failure_threshold=2, reset_timeout=15.0, time_provider=time_provider
        )
        await trip(breaker, 2)
        first_failure = breaker.last_failure_time
        time_provider.advance(16.0)

        await trip(breaker, 1)

        assert breaker.state == CircuitState.OPEN
        assert breaker.last_failure_time == first_failure + 16.0
        with pytest.raises(CircuitOpenError):
            await breaker.call(succeed)

    async def test_half_open_admits_single_probe(self, time_provider):
        breaker = CircuitBreaker(
            "A", failure_threshold=1, reset_timeout=1.0, time_provider=time_provider
        )
        await trip(breaker, 1)
        time_provider.advance(2.0)
        release = asyncio.Event()

        async def slow_probe():
            await release.wait()
            return "probe"

        probe = asyncio.ensure_future(breaker.call(slow_probe))
        await asyncio.sleep(0)

        with pytest.raises(CircuitOpenError):
            await breaker.call(succeed)

        release.set()
        assert await probe == "probe"
        assert breaker.state == CircuitState.CLOSED

    async def test_exempt_errors_are_not_counted(self, time_provider):
        breaker = CircuitBreaker("A", failure_threshold=1, time_provider=time_provider)

        for error in (
            OperationCancelledError(reason="caller"),
            SourceTimeoutError("slow", timeout=8.0),
            AdmissionRejectedError("queue full"),
        ):
            async def raise_it(error=error):
                raise error

            with pytest.raises(type(error)):
                await breaker.call(raise_it)

        assert breaker.failure_count == 0
        assert breaker.state == CircuitState.CLOSED

    async def test_reset_window_is_lazy(self, time_provider):
        breaker = CircuitBreaker(
            "A", failure_threshold=1, reset_timeout=1.0, time_provider=time_provider
        )
        await trip(breaker, 1)
        time_provider.advance(100.0)

        # Internal state only moves when the breaker is accessed
        assert breaker._state.state == CircuitState.OPEN
        assert breaker.state == CircuitState.HALF_OPEN

    async def test_transitions_emit_metrics(self, time_provider, metrics):
        breaker = CircuitBreaker(
            "A", failure_threshold=1, reset_timeout=1.0, time_provider=time_provider, metrics=metrics
        )
        await trip(breaker, 1)
        with pytest.raises(CircuitOpenError):
            await breaker.call(succeed)
        time_provider.advance(2.0)
        await breaker.call(succeed)

        assert metrics.count(SourceMetrics.CIRCUIT_OPENED, source="A") == 1
        assert metrics.count(SourceMetrics.CIRCUIT_REJECTED, source="A") == 1
        assert metrics.count(SourceMetrics.CIRCUIT_CLOSED, source="A") == 1

    async def test_snapshot(self, time_provider):
        breaker = CircuitBreaker(
            "A", failure_threshold=1, reset_timeout=15.0, time_provider=time_provider
        )
        time_provider.advance(100.0)
        await trip(breaker, 1)
        time_provider.advance(5.0)

        snapshot = breaker.snapshot()
        assert snapshot["name"] == "A"
        assert snapshot["state"] == "open"
        assert snapshot["failure_count"] == 1
        assert snapshot["last_failure_time"] == 100.0
        assert snapshot["last_attempt_time"] == 100.0
        assert snapshot["reset_time_remaining"] == pytest.approx(10.0)

    async def test_invalid_threshold(self):
        with pytest.raises(ValueError):
            CircuitBreaker("A", failure_threshold=0)


@pytest.mark.asyncio
class TestCircuitBreakerRegistry:
    """Test per-source breaker ownership."""

    async def test_one_breaker_per_source(self, time_provider):
        breakers = CircuitBreakerRegistry(time_provider=time_provider)
        assert breakers.get("A") is breakers.get("A")
        assert breakers.get("A") is not breakers.get("B")
        assert len(breakers) == 2
        assert "A" in breakers

    async def test_breakers_inherit_registry_settings(self, time_provider):
        breakers = CircuitBreakerRegistry(
            failure_threshold=3, reset_timeout=30.0, time_provider=time_provider
        )
        snapshot = breakers.get("A").snapshot()
        assert snapshot["failure_threshold"] == 3

    async def test_reset_one_or_all(self, time_provider):
        breakers = CircuitBreakerRegistry(failure_threshold=1, time_provider=time_provider)
        await trip(breakers.get("A"), 1)
        await trip(breakers.get("B"), 1)

        breakers.reset("A")
        assert breakers.get("A").state == CircuitState.CLOSED
        assert breakers.get("B").state == CircuitState.OPEN

        breakers.reset()
        assert breakers.get("B").state == CircuitState.CLOSED

    async def test_snapshot_lists_every_breaker(self, time_provider):
        breakers = CircuitBreakerRegistry(time_provider=time_provider)
        breakers.get("A")
        breakers.get("B")
        assert [item["name"] for item in breakers.snapshot()] == ["A", "B"]
