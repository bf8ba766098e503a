"""HTTP transport for mcp-testkit.

This module implements the request/response and streaming (SSE) transport
used by :class:`mcp_testkit.client.MCPTestClient` and by the health check
readiness strategy. It is built on :mod:`aiohttp` and provides:

- JSON, text and binary response handling
- Per-request timeouts and cancellation tokens
- Incremental Server-Sent Events decoding
- Bulk cancellation of every in-flight call on close
"""

import contextlib
import json
from typing import Any, AsyncIterator, Dict, Optional, Set, Union

import aiohttp

from mcp_testkit.core.errors import AbortReason, RequestAbortedError, TransportError
from mcp_testkit.core.logger import get_logger
from mcp_testkit.core.types import ResponseFormat
from mcp_testkit.transports.cancellation import CancellationToken, PendingRequest
from mcp_testkit.transports.sse import SSEFramer

logger = get_logger(__name__)

Body = Union[str, bytes, Dict[str, Any], list, None]


class HTTPTransport:
    """aiohttp based transport with per-call cancellation.

    The underlying :class:`aiohttp.ClientSession` is created lazily on the
    first request, inside the running event loop.

    Attributes:
        headers: Default headers sent with every request
        default_timeout: Timeout in seconds used when a call gives none
        follow_redirects: Whether redirects are followed
        max_redirects: Maximum number of redirects to follow

    Example:
        >>> transport = HTTPTransport(headers={"Authorization": "Bearer t"})
        >>> data = await transport.request("http://localhost:6277/health")
        >>> async for event in transport.open_stream(url, method="POST", body=payload):
        ...     print(event)
        >>> await transport.close()
    """

    def __init__(
        self,
        headers: Optional[Dict[str, str]] = None,
        default_timeout: float = 10.0,
        follow_redirects: bool = True,
        max_redirects: int = 5,
    ) -> None:
        self.headers: Dict[str, str] = dict(headers or {})
        self.default_timeout = default_timeout
        self.follow_redirects = follow_redirects
        self.max_redirects = max_redirects
        self._session: Optional[aiohttp.ClientSession] = None
        self._pending: Set[PendingRequest] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def in_flight(self) -> int:
        """Number of requests and streams currently in flight."""
        return len(self._pending)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._closed:
            raise RequestAbortedError(AbortReason.CLOSED)
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=None))
        return self._session

    def _merge_headers(self, headers: Optional[Dict[str, str]]) -> Dict[str, str]:
        merged = dict(self.headers)
        for key, value in (headers or {}).items():
            for existing in [k for k in merged if k.lower() == key.lower()]:
                del merged[existing]
            merged[key] = value
        return merged

    @staticmethod
    def _encode_body(body: Body, headers: Dict[str, str]) -> Optional[Union[str, bytes]]:
        if body is None:
            return None
        if not any(key.lower() == "content-type" for key in headers):
            headers["Content-Type"] = "application/json"
        if isinstance(body, (str, bytes)):
            return body
        return json.dumps(body)

    def _track(
        self,
        url: str,
        timeout: Optional[float],
        cancel_token: Optional[CancellationToken],
    ) -> PendingRequest:
        pending = PendingRequest(
            url,
            timeout if timeout is not None else self.default_timeout,
            cancel_token=cancel_token,
            on_release=self._pending.discard,
        )
        self._pending.add(pending)
        return pending

    def _request_kwargs(self) -> Dict[str, Any]:
        return {
            "allow_redirects": self.follow_redirects,
            "max_redirects": self.max_redirects,
        }

    @staticmethod
    def _check_status(response: aiohttp.ClientResponse) -> None:
        if not 200 <= response.status < 300:
            raise TransportError(response.status, response.reason or "", url=str(response.url))

    async def request(
        self,
        url: str,
        *,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        body: Body = None,
        timeout: Optional[float] = None,
        response_format: Optional[ResponseFormat] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Any:
        """Perform a single HTTP request.

        Args:
            url: Target URL
            method: HTTP method
            headers: Call headers (override defaults case-insensitively)
            body: Request body; non-string bodies are JSON-serialized
            timeout: Timeout in seconds (defaults to ``default_timeout``)
            response_format: ``json`` (default), ``text`` or ``binary``
            cancel_token: Optional token the caller can use to abort the call

        Returns:
            The deserialized response body

        Raises:
            TransportError: If the server answers with a non-2xx status
            RequestAbortedError: If the call timed out or was cancelled
        """
        merged = self._merge_headers(headers)
        data = self._encode_body(body, merged)
        pending = self._track(url, timeout, cancel_token)
        logger.debug("HTTP %s %s", method, url)
        try:
            pending.arm()
            return await pending.guard(
                self._send(method, url, merged, data, response_format or "json")
            )
        finally:
            pending.release()

    async def _send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        data: Optional[Union[str, bytes]],
        response_format: ResponseFormat,
    ) -> Any:
        session = self._get_session()
        async with session.request(
            method, url, headers=headers, data=data, **self._request_kwargs()
        ) as response:
            self._check_status(response)
            logger.debug("HTTP %s %s -> %s", method, url, response.status)
            if response_format == "text":
                return await response.text()
            if response_format == "binary":
                return await response.read()
            return await response.json(content_type=None)

    async def open_stream(
        self,
        url: str,
        *,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        body: Body = None,
        timeout: Optional[float] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[Any]:
        """Open a Server-Sent Events stream and yield each event payload.

        The timeout is an idle timeout: it is restarted after every complete
        event and only counts time spent waiting on the server. Bytes that do
        not complete an event do not restart it. Closing the generator
        (``aclose()`` or leaving an ``async for`` early) releases the response.

        Raises:
            TransportError: If the server answers with a non-2xx status
            RequestAbortedError: If the stream went idle for ``timeout``
                seconds or was cancelled
        """
        merged = self._merge_headers({**(headers or {}), "Accept": "text/event-stream"})
        data = self._encode_body(body, merged)
        pending = self._track(url, timeout, cancel_token)
        framer = SSEFramer()
        logger.debug("Opening stream %s %s", method, url)
        try:
            async with contextlib.AsyncExitStack() as stack:
                pending.arm()
                session = self._get_session()
                response = await pending.guard(
                    stack.enter_async_context(
                        session.request(
                            method, url, headers=merged, data=data, **self._request_kwargs()
                        )
                    )
                )
                self._check_status(response)

                while True:
                    chunk = await pending.guard(response.content.readany())
                    if not chunk:
                        break
                    events = framer.feed(chunk)
                    if not events:
                        # A partial event does not reset the idle timer.
                        continue
                    pending.disarm()
                    for event in events:
                        yield event
                    pending.arm()

                pending.disarm()
                for event in framer.flush():
                    yield event
            logger.debug("Stream %s ended", url)
        finally:
            pending.release()

    async def close(self) -> None:
        """Cancel every in-flight call and close the session. Idempotent."""
        if self._closed:
            return
        self._closed = True
        for pending in list(self._pending):
            pending.token.cancel(AbortReason.CLOSED)
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "HTTPTransport":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


__all__ = ["HTTPTransport"]
