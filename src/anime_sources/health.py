"""
Health Monitor

Probes every registered source concurrently on a fixed interval and publishes
the results to the SourceRegistry as one snapshot. Probes call the adapter's
``health_check`` directly; they do not pass through circuit breakers.
"""

import asyncio
import contextlib

from .events import SourceEvents
from .log_config import get_context_logger
from .metrics import MetricLabels, MetricsCollector, NoOpMetrics, SourceMetrics
from .registry import RegisteredSource, SourceRegistry
from .resilience.cancellation import CancellationToken
from .resilience.timeout import TimeoutGuard
from .time_provider import RealtimeTimeProvider, TimeProvider
from .types import HealthStatus, SourceHealth


DEFAULT_INTERVAL = 120.0
DEFAULT_PROBE_TIMEOUT = 5.0
DEFAULT_DEGRADED_LATENCY = 3.0


class HealthMonitor:
    """
    Periodic concurrent health prober.

    A probe that raises, times out or returns False marks the source
    offline. A successful probe slower than ``degraded_latency`` is recorded
    as degraded, which keeps the source available.

    Examples:
        >>> monitor = HealthMonitor(registry, interval=120.0, probe_timeout=5.0)
        >>> await monitor.start()   # immediate check, then every interval
        >>> snapshot = await monitor.check_all()
        >>> await monitor.stop()
    """

    def __init__(
        self,
        registry: SourceRegistry,
        *,
        interval: float = DEFAULT_INTERVAL,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
        degraded_latency: float = DEFAULT_DEGRADED_LATENCY,
        time_provider: TimeProvider | None = None,
        metrics: MetricsCollector | None = None,
    ):
        self.registry = registry
        self.interval = interval
        self.probe_timeout = probe_timeout
        self.degraded_latency = degraded_latency
        self.time_provider = time_provider or RealtimeTimeProvider()
        self.metrics = metrics or NoOpMetrics()
        self.logger = get_context_logger("health_monitor")

        self._guard = TimeoutGuard(probe_timeout)
        self._task: asyncio.Task | None = None
        self._token: CancellationToken | None = None
        self.cycles = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _probe(self, entry: RegisteredSource, token: CancellationToken) -> SourceHealth:
        started = self.time_provider.now()
        try:
            healthy = await self._guard.run(
                lambda scope: entry.adapter.health_check(token=scope),
                timeout=self.probe_timeout,
                token=token,
                label=f"health_check:{entry.name}",
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.warning(
                SourceEvents.HEALTH_PROBE_FAILED,
                source=entry.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return SourceHealth(
                name=entry.name,
                status=HealthStatus.OFFLINE,
                last_check=self.time_provider.wall(),
                error=str(e),
            )

        elapsed = self.time_provider.now() - started
        latency_ms = round(elapsed * 1000, 1)
        if not healthy:
            status = HealthStatus.OFFLINE
        elif elapsed > self.degraded_latency:
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.ONLINE

        self.metrics.histogram(
            SourceMetrics.HEALTH_LATENCY_MS, latency_ms, labels={MetricLabels.SOURCE: entry.name}
        )
        return SourceHealth(
            name=entry.name,
            status=status,
            latency=latency_ms,
            last_check=self.time_provider.wall(),
            error=None if healthy else "health check returned false",
        )

    async def check_all(self) -> dict[str, SourceHealth]:
        """
        Run one probe cycle and publish the snapshot.

        Returns:
            Source name → SourceHealth for every registered source
        """
        entries = list(self.registry)
        self.logger.debug(SourceEvents.HEALTH_CHECK_STARTED, sources=len(entries))
        token = self._token or CancellationToken()

        results = await asyncio.gather(*(self._probe(entry, token) for entry in entries))
        snapshot = {health.name: health for health in results}
        self.registry.publish_health(snapshot)
        self.cycles += 1

        for health in results:
            self.metrics.increment(
                SourceMetrics.HEALTH_PROBES,
                labels={MetricLabels.SOURCE: health.name, MetricLabels.STATUS: health.status.value},
            )
        available = sum(1 for health in results if health.is_available)
        self.metrics.gauge(SourceMetrics.SOURCES_AVAILABLE, available)
        self.logger.info(
            SourceEvents.HEALTH_CHECK_COMPLETED,
            available=available,
            total=len(results),
            statuses={health.name: health.status.value for health in results},
        )
        return snapshot

    async def _run_loop(self) -> None:
        while True:
            await self.time_provider.sleep(self.interval)
            try:
                await self.check_all()
            except Exception as e:
                self.logger.error("Health cycle failed", error=str(e), error_type=type(e).__name__)

    async def start(self) -> dict[str, SourceHealth]:
        """Run an immediate check, then keep probing every ``interval`` seconds."""
        if self.running:
            return {health.name: health for health in self.registry.health()}
        self._token = CancellationToken()
        snapshot = await self.check_all()
        self._task = asyncio.ensure_future(self._run_loop())
        self.logger.info("Health monitor started", interval=self.interval)
        return snapshot

    async def stop(self) -> None:
        """Cancel the probe loop and any probes in flight."""
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        if self._token is not None:
            self._token.cancel("health monitor stopped")
            self._token = None
        self.logger.info("Health monitor stopped", cycles=self.cycles)


__all__ = [
    "HealthMonitor",
    "DEFAULT_INTERVAL",
    "DEFAULT_PROBE_TIMEOUT",
    "DEFAULT_DEGRADED_LATENCY",
]
