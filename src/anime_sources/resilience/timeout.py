"""
Timeout Guard

Races an operation against a deadline. The operation receives a child
cancellation token; deadline expiry and parent cancellation both cancel that
child and the running task, so the operation stops instead of finishing in
the background.
"""

import asyncio
from typing import Awaitable, Callable, TypeVar

from ..exceptions import OperationCancelledError, SourceTimeoutError
from .cancellation import CancellationToken, abandon


T = TypeVar("T")

DEFAULT_TIMEOUT = 8.0


class TimeoutGuard:
    """
    Deadline wrapper for a single operation attempt.

    Examples:
        >>> guard = TimeoutGuard(timeout=8.0)
        >>> result = await guard.run(lambda token: source.search("naruto", token=token))

        Shorter deadline for one call:
        >>> await guard.run(probe, timeout=5.0, label="health:HiAnime")
    """

    def __init__(self, timeout: float | None = DEFAULT_TIMEOUT):
        """
        Initialize the guard.

        Args:
            timeout: Default deadline in seconds; None disables the deadline
        """
        self.timeout = timeout

    async def run(
        self,
        operation: Callable[[CancellationToken], Awaitable[T]],
        *,
        timeout: float | None = None,
        token: CancellationToken | None = None,
        label: str = "operation",
    ) -> T:
        """
        Run ``operation`` with a deadline.

        Args:
            operation: Callable receiving the child cancellation token
            timeout: Deadline override in seconds
            token: Parent cancellation token
            label: Operation label used in error messages

        Returns:
            Result of the operation

        Raises:
            SourceTimeoutError: If the deadline expires first
            OperationCancelledError: If the parent token is cancelled first
        """
        deadline = self.timeout if timeout is None else timeout
        parent = token if token is not None else CancellationToken()
        parent.raise_if_cancelled()

        with parent.child_scope() as scope:
            task = asyncio.ensure_future(operation(scope))
            waiter = asyncio.ensure_future(parent.wait())
            try:
                await asyncio.wait(
                    {task, waiter},
                    timeout=deadline,
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if task.done():
                    return task.result()
                if parent.cancelled:
                    raise OperationCancelledError(
                        reason=parent.reason, context={"operation": label}
                    )
                scope.cancel("timeout")
                raise SourceTimeoutError(
                    f"{label} timed out after {deadline}s",
                    timeout=deadline,
                    operation=label,
                )
            finally:
                abandon(waiter)
                if not task.done():
                    scope.cancel("aborted")
                    abandon(task)


__all__ = ["TimeoutGuard", "DEFAULT_TIMEOUT"]
