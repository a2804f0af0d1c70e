"""
Admission Control

Global ceiling on outbound calls in flight across all sources. Callers over
the ceiling wait in FIFO order (asyncio.Semaphore wakes waiters in arrival
order). The wait queue itself is bounded in length and in time.
"""

import asyncio
import contextlib
import time
from typing import Any, AsyncIterator

from ..events import SourceEvents
from ..exceptions import AdmissionRejectedError, OperationCancelledError
from ..log_config import get_context_logger
from ..metrics import MetricsCollector, NoOpMetrics, SourceMetrics
from .cancellation import CancellationToken, abandon


DEFAULT_MAX_CONCURRENT = 6
DEFAULT_MAX_QUEUE = 50
DEFAULT_QUEUE_TIMEOUT = 30.0


class AdmissionController:
    """
    Bounded FIFO admission for outbound source calls.

    Attributes:
        max_concurrent: Calls allowed in flight at once
        max_queue: Waiters allowed before new callers are rejected
        queue_timeout: Seconds a caller may wait for a slot

    Examples:
        >>> admission = AdmissionController(max_concurrent=6)
        >>> async with admission.slot(token):
        ...     await source.search("naruto")
    """

    def __init__(
        self,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        *,
        max_queue: int = DEFAULT_MAX_QUEUE,
        queue_timeout: float | None = DEFAULT_QUEUE_TIMEOUT,
        metrics: MetricsCollector | None = None,
    ):
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {max_concurrent}")
        self.max_concurrent = max_concurrent
        self.max_queue = max_queue
        self.queue_timeout = queue_timeout
        self.metrics = metrics or NoOpMetrics()
        self.logger = get_context_logger("admission_controller")

        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._waiting = 0
        self._in_flight = 0
        self._admitted_total = 0
        self._rejected_total = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def waiting(self) -> int:
        return self._waiting

    def _reject(self, message: str) -> AdmissionRejectedError:
        self._rejected_total += 1
        self.metrics.increment(SourceMetrics.ADMISSION_REJECTED)
        self.logger.warning(
            SourceEvents.ADMISSION_REJECTED,
            reason=message,
            waiting=self._waiting,
            in_flight=self._in_flight,
        )
        return AdmissionRejectedError(message, queue_size=self._waiting)

    async def _acquire(self, token: CancellationToken | None) -> None:
        acquire = asyncio.ensure_future(self._semaphore.acquire())
        cancel_wait = asyncio.ensure_future(token.wait()) if token is not None else None
        pending = {acquire} if cancel_wait is None else {acquire, cancel_wait}

        try:
            await asyncio.wait(
                pending, timeout=self.queue_timeout, return_when=asyncio.FIRST_COMPLETED
            )
        except BaseException:
            if acquire.done() and not acquire.cancelled():
                self._semaphore.release()
            raise
        finally:
            if cancel_wait is not None:
                abandon(cancel_wait)
            if not acquire.done():
                abandon(acquire)

        if acquire.done() and not acquire.cancelled():
            return
        if token is not None and token.cancelled:
            raise OperationCancelledError(reason=token.reason)
        raise self._reject(f"Admission queue wait exceeded {self.queue_timeout}s")

    @contextlib.asynccontextmanager
    async def slot(self, token: CancellationToken | None = None) -> AsyncIterator[None]:
        """
        Hold one admission slot for the duration of the block.

        Raises:
            AdmissionRejectedError: If the queue is full or the wait expires
            OperationCancelledError: If the token fires while waiting
        """
        if token is not None:
            token.raise_if_cancelled()

        started = time.monotonic()
        if not self._semaphore.locked():
            # uncontended acquire completes without suspending
            await self._semaphore.acquire()
        else:
            if self._waiting >= self.max_queue:
                raise self._reject("Admission queue is full")
            self.logger.debug(
                SourceEvents.ADMISSION_QUEUED, waiting=self._waiting + 1, in_flight=self._in_flight
            )
            self._waiting += 1
            try:
                await self._acquire(token)
            finally:
                self._waiting -= 1

        self.metrics.histogram(
            SourceMetrics.ADMISSION_WAIT_MS, (time.monotonic() - started) * 1000
        )
        self._in_flight += 1
        self._admitted_total += 1
        self.metrics.gauge(SourceMetrics.ADMISSION_IN_FLIGHT, 1)
        try:
            yield
        finally:
            self._in_flight -= 1
            self.metrics.gauge(SourceMetrics.ADMISSION_IN_FLIGHT, -1)
            self._semaphore.release()

    def stats(self) -> dict[str, Any]:
        """Read-only counters for the inspection endpoint."""
        return {
            "max_concurrent": self.max_concurrent,
            "in_flight": self._in_flight,
            "waiting": self._waiting,
            "max_queue": self.max_queue,
            "admitted_total": self._admitted_total,
            "rejected_total": self._rejected_total,
        }


__all__ = [
    "AdmissionController",
    "DEFAULT_MAX_CONCURRENT",
    "DEFAULT_MAX_QUEUE",
    "DEFAULT_QUEUE_TIMEOUT",
]
