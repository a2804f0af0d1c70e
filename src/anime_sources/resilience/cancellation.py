"""
Cooperative Cancellation

A CancellationToken is passed down the call chain (façade → invoker → retry →
timeout → adapter). Cancelling a token cancels every child derived from it.
Children are detached from their parent when their scope ends so long-lived
parent tokens do not accumulate listeners.
"""

import asyncio
import contextlib
import inspect
from typing import Any, Awaitable, Iterator, TypeVar

from ..exceptions import OperationCancelledError


T = TypeVar("T")


class CancellationToken:
    """
    Hierarchical cancellation token.

    Examples:
        Cancel a request and everything below it:
        >>> token = CancellationToken()
        >>> child = token.child()
        >>> token.cancel("client disconnected")
        >>> child.cancelled
        True

        Scoped child, detached on exit:
        >>> with token.child_scope() as scope:
        ...     await operation(scope)
    """

    def __init__(self, parent: "CancellationToken | None" = None):
        self._event = asyncio.Event()
        self._reason: str | None = None
        self._children: set[CancellationToken] = set()
        self._parent = parent

        if parent is not None:
            if parent.cancelled:
                self._trip(parent.reason)
            else:
                parent._children.add(self)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def _trip(self, reason: str | None) -> None:
        self._reason = reason
        self._event.set()

    def cancel(self, reason: str = "cancelled") -> None:
        """Cancel this token and all of its children. Idempotent."""
        if self.cancelled:
            return
        self._trip(reason)
        children, self._children = self._children, set()
        for child in children:
            child.cancel(reason)

    def raise_if_cancelled(self) -> None:
        """Raise OperationCancelledError if the token has been cancelled."""
        if self.cancelled:
            raise OperationCancelledError(reason=self._reason)

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        await self._event.wait()

    def child(self) -> "CancellationToken":
        """Derive a child token that is cancelled with this one."""
        return CancellationToken(parent=self)

    def detach(self) -> None:
        """Remove the link to the parent token."""
        if self._parent is not None:
            self._parent._children.discard(self)
            self._parent = None

    @contextlib.contextmanager
    def child_scope(self) -> Iterator["CancellationToken"]:
        """Yield a child token that is detached when the block exits."""
        scope = self.child()
        try:
            yield scope
        finally:
            scope.detach()

    @property
    def child_count(self) -> int:
        return len(self._children)


def _discard_result(task: "asyncio.Future[Any]") -> None:
    # Retrieve the outcome of an abandoned task so asyncio does not warn about it
    if not task.cancelled():
        task.exception()


def abandon(task: "asyncio.Future[Any]") -> None:
    """Cancel a task that the caller no longer waits for."""
    if not task.done():
        task.cancel()
    task.add_done_callback(_discard_result)


async def wait_cancellable(awaitable: Awaitable[T], token: CancellationToken | None) -> T:
    """
    Await ``awaitable`` unless ``token`` is cancelled first.

    Args:
        awaitable: Coroutine or future to await
        token: Optional cancellation token

    Returns:
        Result of the awaitable

    Raises:
        OperationCancelledError: If the token fires before completion
    """
    if token is None:
        return await awaitable

    if token.cancelled:
        if inspect.iscoroutine(awaitable):
            awaitable.close()
        token.raise_if_cancelled()

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(token.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        abandon(waiter)
        if not task.done():
            abandon(task)

    if task.done() and not task.cancelled():
        return task.result()
    raise OperationCancelledError(reason=token.reason)


__all__ = ["CancellationToken", "wait_cancellable", "abandon"]
