"""Shared fixtures: an in-process fake MCP server built on aiohttp.web."""

import asyncio
import contextlib
import json
from typing import Any, Callable, Dict, List, Optional

import pytest_asyncio
from aiohttp import web


class FakeMCPServer:
    """Scriptable JSON-RPC server used by transport and client tests.

    Tests tweak the public attributes to shape replies: tool handlers,
    listed tools and resources, required bearer token, forced status codes,
    artificial delays and SSE events.
    """

    def __init__(self) -> None:
        self.base_url = ""
        self.tools: List[Dict[str, Any]] = [
            {
                "name": "echo",
                "description": "Echo the input message",
                "inputSchema": {
                    "type": "object",
                    "properties": {"message": {"type": "string"}},
                    "required": ["message"],
                },
            },
            {
                "name": "add",
                "description": "Add two numbers",
                "inputSchema": {
                    "type": "object",
                    "properties": {"a": {"type": "number"}, "b": {"type": "number"}},
                },
            },
        ]
        self.resources: List[Dict[str, Any]] = [
            {"uri": "file:///readme.md", "name": "README", "mimeType": "text/markdown"},
            {"uri": "file:///notes.txt", "name": "Notes", "description": "Plain notes", "mimeType": "text/plain"},
            {"uri": "file:///logo.png", "name": "Logo", "mimeType": "image/png"},
            {"uri": "memo://scratch", "name": "Scratch"},
        ]
        self.tool_handlers: Dict[str, Callable[[Dict[str, Any]], Any]] = {
            "echo": lambda args: {"status": "success", "result": args.get("message")},
            "add": lambda args: args["a"] + args["b"],
        }
        self.rpc_errors: Dict[str, Dict[str, Any]] = {}
        self.method_status: Dict[str, int] = {}
        self.method_delay: Dict[str, float] = {}
        self.required_token: Optional[str] = None
        self.status_override: Optional[int] = None
        self.delay = 0.0
        self.stream_events: List[Any] = []
        self.stream_interval = 0.0
        self.stream_hang = False
        self.raw_chunks: List[bytes] = []
        self.requests: List[Dict[str, Any]] = []
        self.release = asyncio.Event()

    def url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def methods(self) -> List[str]:
        return [request["payload"].get("method") for request in self.requests]

    # JSON-RPC endpoint

    async def handle_rpc(self, request: web.Request) -> web.StreamResponse:
        if self.required_token and request.headers.get("Authorization") != f"Bearer {self.required_token}":
            return web.Response(status=401, reason="Unauthorized")
        if self.status_override:
            return web.Response(status=self.status_override)

        payload = await request.json()
        self.requests.append({"payload": payload, "headers": dict(request.headers)})
        method = payload.get("method")

        if method in self.method_status:
            return web.Response(status=self.method_status[method])
        delay = self.method_delay.get(method, self.delay)
        if delay:
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self.release.wait(), timeout=delay)

        if "text/event-stream" in request.headers.get("Accept", ""):
            return await self._stream_events(request)
        if "id" not in payload:
            return web.Response(status=202)
        if method in self.rpc_errors:
            return web.json_response({"jsonrpc": "2.0", "id": payload["id"], "error": self.rpc_errors[method]})
        return web.json_response({"jsonrpc": "2.0", "id": payload["id"], "result": self._dispatch(payload)})

    def _dispatch(self, payload: Dict[str, Any]) -> Any:
        method = payload["method"]
        params = payload.get("params") or {}
        if method == "initialize":
            return {
                "protocolVersion": params.get("protocolVersion"),
                "capabilities": {"tools": {}},
                "serverInfo": {"name": "fake", "version": "1.0.0"},
            }
        if method == "tools/list":
            return {"tools": self.tools}
        if method == "resources/list":
            return {"resources": self.resources}
        if method == "resources/read":
            return {"contents": [{"uri": params["uri"], "mimeType": "text/plain", "text": "contents"}]}
        if method == "tools/call":
            return self.tool_handlers[params["name"]](params.get("arguments") or {})
        raise web.HTTPNotFound()

    async def _stream_events(self, request: web.Request) -> web.StreamResponse:
        response = web.StreamResponse(headers={"Content-Type": "text/event-stream"})
        await response.prepare(request)
        for event in self.stream_events:
            await response.write(f"data: {json.dumps(event)}\n\n".encode())
            if self.stream_interval:
                await asyncio.sleep(self.stream_interval)
        if self.stream_hang:
            await asyncio.wait_for(self.release.wait(), timeout=10)
        await response.write_eof()
        return response

    # Plain HTTP endpoints for transport tests

    async def handle_json(self, request: web.Request) -> web.Response:
        return web.json_response({"hello": "world"})

    async def handle_text(self, request: web.Request) -> web.Response:
        return web.Response(text="plain text")

    async def handle_binary(self, request: web.Request) -> web.Response:
        return web.Response(body=b"\x00\x01\x02", content_type="application/octet-stream")

    async def handle_empty(self, request: web.Request) -> web.Response:
        return web.Response(status=204)

    async def handle_status(self, request: web.Request) -> web.Response:
        return web.Response(status=int(request.match_info["code"]))

    async def handle_echo(self, request: web.Request) -> web.Response:
        body = await request.text()
        self.requests.append({"payload": {}, "headers": dict(request.headers), "body": body})
        return web.json_response(
            {"method": request.method, "headers": dict(request.headers), "body": body}
        )

    async def handle_slow(self, request: web.Request) -> web.Response:
        await asyncio.wait_for(self.release.wait(), timeout=10)
        return web.json_response({"slow": True})

    async def handle_redirect(self, request: web.Request) -> web.Response:
        raise web.HTTPFound("/json")

    async def handle_sse(self, request: web.Request) -> web.StreamResponse:
        response = web.StreamResponse(headers={"Content-Type": "text/event-stream"})
        await response.prepare(request)
        for chunk in self.raw_chunks:
            await response.write(chunk)
            if self.stream_interval:
                await asyncio.sleep(self.stream_interval)
        if self.stream_hang:
            await asyncio.wait_for(self.release.wait(), timeout=10)
        await response.write_eof()
        return response

    async def handle_health(self, request: web.Request) -> web.Response:
        return web.Response(text="ok")


@pytest_asyncio.fixture
async def fake_server():
    """Start a :class:`FakeMCPServer` on an ephemeral port."""
    server = FakeMCPServer()
    app = web.Application()
    app.router.add_post("/mcp", server.handle_rpc)
    app.router.add_get("/json", server.handle_json)
    app.router.add_get("/text", server.handle_text)
    app.router.add_get("/binary", server.handle_binary)
    app.router.add_get("/empty", server.handle_empty)
    app.router.add_get("/status/{code}", server.handle_status)
    app.router.add_route("*", "/echo", server.handle_echo)
    app.router.add_get("/slow", server.handle_slow)
    app.router.add_get("/redirect", server.handle_redirect)
    app.router.add_get("/sse", server.handle_sse)
    app.router.add_get("/health", server.handle_health)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    port = runner.addresses[0][1]
    server.base_url = f"http://127.0.0.1:{port}"

    yield server

    server.release.set()
    await runner.cleanup()

