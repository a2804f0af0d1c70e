"""
Time Provider Abstraction

Pluggable clock for the resilience layer. Circuit breakers read ``now()`` to
evaluate their reset window lazily, and the retry executor sleeps through the
provider, so tests can run backoff schedules and breaker windows on virtual
time.
"""

import asyncio
import time
from abc import ABC, abstractmethod

from .log_config import get_context_logger


class TimeProvider(ABC):
    """
    Abstract base class for time providers.

    ``now()`` is a monotonic reading used for intervals; ``wall()`` is a Unix
    timestamp used in reports.
    """

    @abstractmethod
    def now(self) -> float:
        """Get the current monotonic reading in seconds."""

    @abstractmethod
    def wall(self) -> float:
        """Get the current Unix timestamp in seconds."""

    @abstractmethod
    async def sleep(self, seconds: float) -> None:
        """Sleep for the given duration.

        Args:
            seconds: Duration to sleep (wall-clock for real, virtual for simulated)
        """

    def elapsed_time(self, start_time: float) -> float:
        """Calculate elapsed time since a previous ``now()`` reading."""
        return self.now() - start_time

    @abstractmethod
    def get_mode(self) -> str:
        """Get time provider mode identifier."""


class RealtimeTimeProvider(TimeProvider):
    """
    Real-time provider using the monotonic clock and asyncio.sleep().

    Examples:
        >>> provider = RealtimeTimeProvider()
        >>> start = provider.now()
        >>> await provider.sleep(1.0)
        >>> assert 0.95 < provider.elapsed_time(start) < 1.1
    """

    def now(self) -> float:
        return time.monotonic()

    def wall(self) -> float:
        return time.time()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    def get_mode(self) -> str:
        return "realtime"


class SimulatedTimeProvider(TimeProvider):
    """
    Simulated time provider with virtual time.

    ``sleep()`` advances virtual time instantly and records the requested
    duration, which lets tests assert exact backoff schedules. ``advance()``
    moves time forward without sleeping, e.g. to expire a breaker's reset
    window.

    Examples:
        >>> provider = SimulatedTimeProvider()
        >>> await provider.sleep(1.0)
        >>> await provider.sleep(2.0)
        >>> provider.sleeps
        [1.0, 2.0]
        >>> provider.now()
        3.0
    """

    def __init__(self, initial_time: float = 0.0, wall_offset: float = 1_700_000_000.0):
        """
        Initialize simulated time provider.

        Args:
            initial_time: Starting virtual time (default: 0.0)
            wall_offset: Unix timestamp corresponding to virtual time zero
        """
        self.virtual_time = initial_time
        self.wall_offset = wall_offset
        self.sleeps: list[float] = []
        self.logger = get_context_logger("simulated_time_provider")

    def now(self) -> float:
        return self.virtual_time

    def wall(self) -> float:
        return self.wall_offset + self.virtual_time

    async def sleep(self, seconds: float) -> None:
        """Advance virtual time (no actual sleep)."""
        self.sleeps.append(seconds)
        self.virtual_time += seconds
        # Yield control so other tasks can run
        await asyncio.sleep(0)

    def advance(self, seconds: float) -> None:
        """Move virtual time forward without recording a sleep."""
        if seconds < 0:
            raise ValueError(f"Cannot move time backwards, got {seconds}")
        self.virtual_time += seconds
        self.logger.debug("Virtual time advanced", seconds=seconds, virtual_time=self.virtual_time)

    def get_mode(self) -> str:
        return "simulated"


def create_time_provider(mode: str = "real", **kwargs) -> TimeProvider:
    """
    Factory function to create the appropriate time provider.

    Args:
        mode: 'real' or 'simulated'
        **kwargs: Additional arguments passed to the simulated provider

    Returns:
        Configured TimeProvider instance
    """
    if mode == "simulated":
        return SimulatedTimeProvider(**kwargs)
    return RealtimeTimeProvider()


__all__ = [
    "TimeProvider",
    "RealtimeTimeProvider",
    "SimulatedTimeProvider",
    "create_time_provider",
]
