"""Async helpers for tests against eventually-consistent servers.

Every wait in this module is built on :func:`asyncio.sleep` with the
configured interval, and every bounded wait raises
:class:`mcp_testkit.core.errors.TimeoutError`.
"""

import asyncio
import inspect
from typing import AsyncIterator, Awaitable, Callable, List, Optional, TypeVar, Union

from mcp_testkit.core.errors import TimeoutError
from mcp_testkit.core.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

MaybeAwaitable = Union[T, Awaitable[T]]


async def _resolve(value: MaybeAwaitable[T]) -> T:
    if inspect.isawaitable(value):
        return await value
    return value  # type: ignore[return-value]


async def wait_for_condition(
    condition: Callable[[], MaybeAwaitable[bool]],
    *,
    timeout: float = 30.0,
    interval: float = 0.1,
    message: str = "Condition not met within timeout",
) -> None:
    """Wait until ``condition`` returns a truthy value.

    Args:
        condition: Sync or async predicate, checked once per interval
        timeout: Overall budget in seconds
        interval: Delay between checks in seconds
        message: Message of the raised error

    Raises:
        TimeoutError: If the condition is still false after ``timeout``

    Example:
        >>> await wait_for_condition(lambda: manager.is_running(), timeout=5.0)
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if await _resolve(condition()):
            return
        await asyncio.sleep(interval)
    raise TimeoutError(message, details={"timeout": timeout, "interval": interval})


async def poll_until(
    fn: Callable[[], MaybeAwaitable[T]],
    predicate: Callable[[T], bool],
    *,
    max_attempts: int = 10,
    interval: float = 1.0,
    message: str = "Maximum polling attempts reached",
) -> T:
    """Call ``fn`` until ``predicate`` accepts its result.

    Sleeps ``interval`` seconds between attempts (not after the last one).

    Returns:
        The first accepted result

    Raises:
        TimeoutError: After ``max_attempts`` rejected results
    """
    attempts = 0
    while attempts < max_attempts:
        attempts += 1
        result = await _resolve(fn())
        if predicate(result):
            return result
        if attempts < max_attempts:
            await asyncio.sleep(interval)
    raise TimeoutError(
        message,
        details={"max_attempts": max_attempts, "interval": interval, "attempts": attempts},
    )


async def collect_stream_responses(
    stream: AsyncIterator[T],
    *,
    timeout: float = 30.0,
    max_items: Optional[int] = None,
    throw_on_timeout: bool = True,
) -> List[T]:
    """Collect items from an async stream.

    Collection stops once ``max_items`` items are collected (no further item
    is pulled), when the stream ends or at the deadline. The stream is closed
    whenever collection stops early.

    Args:
        stream: Async iterator to consume
        timeout: Overall budget in seconds
        max_items: Maximum number of items to collect
        throw_on_timeout: Raise at the deadline instead of returning the items
            collected so far

    Raises:
        TimeoutError: At the deadline when ``throw_on_timeout`` is set; details
            carry ``collected_items`` and the partial ``items``
    """
    items: List[T] = []
    if max_items is not None and max_items <= 0:
        return items

    async def consume() -> None:
        async for item in stream:
            items.append(item)
            if max_items is not None and len(items) >= max_items:
                return

    try:
        await asyncio.wait_for(consume(), timeout=timeout)
    except asyncio.TimeoutError as exc:
        if throw_on_timeout:
            raise TimeoutError(
                f"Stream collection timed out after {timeout}s",
                cause=exc,
                details={"timeout": timeout, "collected_items": len(items), "items": list(items)},
            ) from exc
        logger.debug("Stream collection timed out with %d items", len(items))
    finally:
        aclose = getattr(stream, "aclose", None)
        if aclose is not None:
            await aclose()
    return items


async def delay(seconds: float) -> None:
    """Sleep for ``seconds``."""
    await asyncio.sleep(seconds)


async def retry(
    fn: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    interval: float = 1.0,
    backoff: bool = True,
) -> T:
    """Call ``fn`` until it succeeds.

    With ``backoff`` the delay doubles after every failure
    (``interval * 2 ** (attempt - 1)``), otherwise it stays flat.

    Raises:
        Exception: The last error, unchanged, once attempts are exhausted
    """
    attempts = 0
    last_error: Optional[BaseException] = None
    while attempts < max_attempts:
        attempts += 1
        try:
            return await fn()
        except Exception as exc:
            last_error = exc
            logger.debug("Attempt %d/%d failed: %s", attempts, max_attempts, exc)
            if attempts < max_attempts:
                await asyncio.sleep(interval * 2 ** (attempts - 1) if backoff else interval)
    if last_error is not None:
        raise last_error
    raise RuntimeError("All retry attempts failed")


__all__ = [
    "wait_for_condition",
    "poll_until",
    "collect_stream_responses",
    "delay",
    "retry",
]
