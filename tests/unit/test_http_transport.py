"""Unit tests for the HTTP transport."""

import asyncio
import json

import pytest
import pytest_asyncio

from mcp_testkit.core.errors import AbortReason, RequestAbortedError, TransportError
from mcp_testkit.transports.cancellation import CancellationToken
from mcp_testkit.transports.http import HTTPTransport


@pytest_asyncio.fixture
async def transport():
    """Provide a transport that is closed after the test."""
    transport = HTTPTransport(default_timeout=2.0)
    yield transport
    await transport.close()


class TestRequest:
    """Tests for HTTPTransport.request."""

    @pytest.mark.asyncio
    async def test_json_response(self, fake_server, transport) -> None:
        """Test JSON responses are decoded."""
        assert await transport.request(fake_server.url("/json")) == {"hello": "world"}

    @pytest.mark.asyncio
    async def test_text_response(self, fake_server, transport) -> None:
        """Test text responses."""
        result = await transport.request(fake_server.url("/text"), response_format="text")
        assert result == "plain text"

    @pytest.mark.asyncio
    async def test_binary_response(self, fake_server, transport) -> None:
        """Test binary responses."""
        result = await transport.request(fake_server.url("/binary"), response_format="binary")
        assert result == b"\x00\x01\x02"

    @pytest.mark.asyncio
    async def test_empty_json_response(self, fake_server, transport) -> None:
        """Test an empty body decodes to None."""
        assert await transport.request(fake_server.url("/empty")) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 401, 404, 500])
    async def test_non_2xx_raises(self, fake_server, transport, status: int) -> None:
        """Test non-2xx statuses raise TransportError."""
        with pytest.raises(TransportError) as exc_info:
            await transport.request(fake_server.url(f"/status/{status}"))
        assert exc_info.value.status == status
        assert exc_info.value.message.startswith(f"HTTP error {status}: ")

    @pytest.mark.asyncio
    async def test_headers_merged_case_insensitively(self, fake_server) -> None:
        """Test call headers override defaults regardless of case."""
        async with HTTPTransport(headers={"X-Token": "default", "X-Keep": "1"}) as transport:
            result = await transport.request(fake_server.url("/echo"), headers={"x-token": "call"})

        assert result["headers"]["x-token"] == "call"
        assert "X-Token" not in result["headers"]
        assert result["headers"]["X-Keep"] == "1"

    @pytest.mark.asyncio
    async def test_dict_body_is_json_encoded(self, fake_server, transport) -> None:
        """Test object bodies are serialized with a JSON content type."""
        result = await transport.request(fake_server.url("/echo"), method="POST", body={"a": [1, 2]})

        assert result["method"] == "POST"
        assert json.loads(result["body"]) == {"a": [1, 2]}
        assert result["headers"]["Content-Type"] == "application/json"

    @pytest.mark.asyncio
    async def test_string_body_sent_as_is(self, fake_server, transport) -> None:
        """Test string bodies keep a caller supplied content type."""
        result = await transport.request(
            fake_server.url("/echo"),
            method="PUT",
            body="raw=1",
            headers={"Content-Type": "text/plain"},
        )
        assert result["body"] == "raw=1"
        assert result["headers"]["Content-Type"] == "text/plain"

    @pytest.mark.asyncio
    async def test_redirect_followed(self, fake_server, transport) -> None:
        """Test redirects are followed by default."""
        assert await transport.request(fake_server.url("/redirect")) == {"hello": "world"}

    @pytest.mark.asyncio
    async def test_redirect_not_followed(self, fake_server) -> None:
        """Test a redirect status is an error when redirects are disabled."""
        async with HTTPTransport(follow_redirects=False) as transport:
            with pytest.raises(TransportError) as exc_info:
                await transport.request(fake_server.url("/redirect"))
        assert exc_info.value.status == 302


class TestCancellation:
    """Tests for timeouts, cancellation tokens and close."""

    @pytest.mark.asyncio
    async def test_timeout_aborts_request(self, fake_server, transport) -> None:
        """Test the per-call timeout."""
        loop = asyncio.get_running_loop()
        started = loop.time()

        with pytest.raises(RequestAbortedError) as exc_info:
            await transport.request(fake_server.url("/slow"), timeout=0.1)

        assert exc_info.value.reason is AbortReason.TIMEOUT
        assert loop.time() - started < 1.0
        assert transport.in_flight == 0

    @pytest.mark.asyncio
    async def test_cancel_token_aborts_only_its_call(self, fake_server, transport) -> None:
        """Test cancelling one call leaves concurrent calls running."""
        token = CancellationToken()
        slow = asyncio.create_task(transport.request(fake_server.url("/slow"), cancel_token=token))
        await asyncio.sleep(0.05)

        token.cancel()
        with pytest.raises(RequestAbortedError) as exc_info:
            await slow
        assert exc_info.value.reason is AbortReason.CANCELLED

        assert await transport.request(fake_server.url("/json")) == {"hello": "world"}

    @pytest.mark.asyncio
    async def test_close_cancels_in_flight(self, fake_server) -> None:
        """Test close aborts every in-flight call."""
        transport = HTTPTransport()
        calls = [
            asyncio.create_task(transport.request(fake_server.url("/slow")))
            for _ in range(3)
        ]
        await asyncio.sleep(0.05)
        assert transport.in_flight == 3

        await transport.close()
        results = await asyncio.gather(*calls, return_exceptions=True)

        assert all(isinstance(result, RequestAbortedError) for result in results)
        assert all(result.reason is AbortReason.CLOSED for result in results)
        assert transport.closed is True

    @pytest.mark.asyncio
    async def test_request_after_close(self, fake_server) -> None:
        """Test requests on a closed transport are rejected."""
        transport = HTTPTransport()
        await transport.close()
        await transport.close()

        with pytest.raises(RequestAbortedError) as exc_info:
            await transport.request(fake_server.url("/json"))
        assert exc_info.value.reason is AbortReason.CLOSED


class TestOpenStream:
    """Tests for HTTPTransport.open_stream."""

    @pytest.mark.asyncio
    async def test_events_across_chunks(self, fake_server, transport) -> None:
        """Test events split over several chunks are reassembled in order."""
        fake_server.raw_chunks = [b'data: {"a":', b'1}\n\nda', b'ta: {"a":2}\n', b"\n"]
        events = [event async for event in transport.open_stream(fake_server.url("/sse"))]
        assert events == [{"a": 1}, {"a": 2}]

    @pytest.mark.asyncio
    async def test_trailing_event_flushed(self, fake_server, transport) -> None:
        """Test an unterminated final event is emitted."""
        fake_server.raw_chunks = [b"data: 1\n\ndata: tail"]
        events = [event async for event in transport.open_stream(fake_server.url("/sse"))]
        assert events == [1, "tail"]

    @pytest.mark.asyncio
    async def test_accept_header_forced(self, fake_server, transport) -> None:
        """Test streams request text/event-stream."""
        fake_server.stream_events = [{"n": 1}]
        stream = transport.open_stream(
            fake_server.url("/mcp"),
            method="POST",
            headers={"accept": "application/json"},
            body={"jsonrpc": "2.0", "id": 1, "method": "tools/call"},
        )
        events = [event async for event in stream]

        assert events == [{"n": 1}]
        assert fake_server.requests[0]["headers"]["Accept"] == "text/event-stream"

    @pytest.mark.asyncio
    async def test_stream_status_error(self, fake_server, transport) -> None:
        """Test a non-2xx stream response raises before any event."""
        with pytest.raises(TransportError):
            async for _ in transport.open_stream(fake_server.url("/status/503")):
                pass
        assert transport.in_flight == 0

    @pytest.mark.asyncio
    async def test_idle_timeout(self, fake_server, transport) -> None:
        """Test a stream that goes quiet is aborted."""
        fake_server.raw_chunks = [b"data: 1\n\n"]
        fake_server.stream_hang = True
        events = []

        with pytest.raises(RequestAbortedError) as exc_info:
            async for event in transport.open_stream(fake_server.url("/sse"), timeout=0.2):
                events.append(event)

        assert events == [1]
        assert exc_info.value.reason is AbortReason.TIMEOUT

    @pytest.mark.asyncio
    async def test_partial_event_bytes_do_not_reset_idle_timeout(self, fake_server, transport) -> None:
        """Test a stream trickling bytes that never complete an event still times out."""
        fake_server.raw_chunks = [b"data: "] + [b"1"] * 30
        fake_server.stream_interval = 0.1
        events = []

        loop = asyncio.get_running_loop()
        started = loop.time()
        with pytest.raises(RequestAbortedError) as exc_info:
            async for event in transport.open_stream(fake_server.url("/sse"), timeout=0.5):
                events.append(event)

        assert loop.time() - started < 2.0
        assert events == []
        assert exc_info.value.reason is AbortReason.TIMEOUT

    @pytest.mark.asyncio
    async def test_consumer_time_not_counted(self, fake_server, transport) -> None:
        """Test slow consumers do not trip the idle timeout."""
        fake_server.raw_chunks = [b"data: 1\n\n", b"data: 2\n\n"]
        events = []

        async for event in transport.open_stream(fake_server.url("/sse"), timeout=0.2):
            events.append(event)
            await asyncio.sleep(0.3)

        assert events == [1, 2]

    @pytest.mark.asyncio
    async def test_early_exit_releases_stream(self, fake_server, transport) -> None:
        """Test closing the generator early releases the request."""
        fake_server.raw_chunks = [b"data: 1\n\n"]
        fake_server.stream_hang = True
        stream = transport.open_stream(fake_server.url("/sse"))

        assert await stream.__anext__() == 1
        await stream.aclose()

        assert transport.in_flight == 0
