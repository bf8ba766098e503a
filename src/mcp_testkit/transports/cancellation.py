"""Per-request cancellation.

Every in-flight request or stream gets its own :class:`PendingRequest`, which
owns a :class:`CancellationToken` and the timeout timer for that call.
Cancelling one token aborts only the call that owns it.
"""

import asyncio
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from mcp_testkit.core.errors import AbortReason, RequestAbortedError

T = TypeVar("T")

CancelCallback = Callable[[AbortReason], None]


class CancellationToken:
    """Cancellation signal for a single request.

    A token is cancelled at most once. While the owning task is awaiting
    inside :meth:`guard`, cancelling the token cancels that task and the
    resulting :class:`asyncio.CancelledError` is surfaced as
    :class:`RequestAbortedError`. Cancellation outside a guard is observed
    on the next guard entry.

    Example:
        >>> token = CancellationToken()
        >>> asyncio.get_running_loop().call_later(1.0, token.cancel)
        >>> await token.guard(session.get(url))  # raises RequestAbortedError
    """

    def __init__(self) -> None:
        self._reason: Optional[AbortReason] = None
        self._task: Optional["asyncio.Task[Any]"] = None
        self._callbacks: List[CancelCallback] = []

    @property
    def cancelled(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> Optional[AbortReason]:
        return self._reason

    def cancel(self, reason: AbortReason = AbortReason.CANCELLED) -> bool:
        """Cancel the token.

        Returns:
            False if the token was already cancelled
        """
        if self._reason is not None:
            return False
        self._reason = reason
        if self._task is not None and not self._task.done():
            self._task.cancel()
        for callback in list(self._callbacks):
            callback(reason)
        return True

    def add_callback(self, callback: CancelCallback) -> Callable[[], None]:
        """Register a callback run on cancellation; returns its remover."""
        self._callbacks.append(callback)

        def remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return remove

    def raise_if_cancelled(self, url: Optional[str] = None, timeout: Optional[float] = None) -> None:
        if self._reason is not None:
            raise RequestAbortedError(self._reason, url=url, timeout=timeout)

    async def guard(
        self,
        awaitable: Awaitable[T],
        url: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> T:
        """Await ``awaitable`` so that cancelling this token interrupts it.

        Raises:
            RequestAbortedError: If the token is (or becomes) cancelled
        """
        if self._reason is not None:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            self.raise_if_cancelled(url, timeout)

        task = asyncio.current_task()
        self._task = task
        try:
            return await awaitable
        except asyncio.CancelledError:
            if self._reason is None:
                raise
            uncancel = getattr(task, "uncancel", None)
            if uncancel is not None:
                uncancel()
            raise RequestAbortedError(self._reason, url=url, timeout=timeout) from None
        finally:
            self._task = None


class PendingRequest:
    """Bookkeeping for one in-flight request or stream.

    Owns its own token and timeout timer. A caller supplied token is linked
    so cancelling it aborts this request, but the timeout never cancels the
    caller's token.

    Attributes:
        url: Target URL (used in error messages)
        timeout: Timeout budget in seconds
        token: The request's own cancellation token
    """

    def __init__(
        self,
        url: str,
        timeout: float,
        cancel_token: Optional[CancellationToken] = None,
        on_release: Optional[Callable[["PendingRequest"], None]] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.token = CancellationToken()
        self._timer: Optional[asyncio.TimerHandle] = None
        self._on_release = on_release
        self._unlink: Optional[Callable[[], None]] = None
        if cancel_token is not None:
            if cancel_token.cancelled:
                self.token.cancel(cancel_token.reason or AbortReason.CANCELLED)
            else:
                self._unlink = cancel_token.add_callback(self.token.cancel)

    def arm(self) -> None:
        """Start (or restart) the timeout timer."""
        self.disarm()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.timeout, self.token.cancel, AbortReason.TIMEOUT)

    def disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def guard(self, awaitable: Awaitable[T]) -> T:
        return await self.token.guard(awaitable, url=self.url, timeout=self.timeout)

    def release(self) -> None:
        """Stop the timer and unlink from the caller's token. Idempotent."""
        self.disarm()
        if self._unlink is not None:
            self._unlink()
            self._unlink = None
        if self._on_release is not None:
            on_release, self._on_release = self._on_release, None
            on_release(self)


__all__ = ["AbortReason", "CancellationToken", "PendingRequest"]
