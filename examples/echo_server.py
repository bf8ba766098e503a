#!/usr/bin/env python3
"""Minimal MCP-style HTTP server to try mcp-testkit against.

Serves JSON-RPC 2.0 on ``/mcp`` (``tools/list``, ``tools/call``,
``resources/list``), a ``/health`` route, and streams ``countdown`` events
as Server-Sent Events when the client asks for ``text/event-stream``.

Usage:
    python examples/echo_server.py --port 8000

    mcp-testkit inspect --url http://localhost:8000
    mcp-testkit call echo --url http://localhost:8000 --params '{"message": "hi"}'
    mcp-testkit call countdown --url http://localhost:8000 --params '{"n": 3}' --stream

Requirements:
    - aiohttp>=3.9.0
"""

import argparse
import asyncio
import json

from aiohttp import web

TOOLS = [
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
            "required": ["a", "b"],
        },
    },
    {
        "name": "countdown",
        "description": "Stream a countdown, one event per second",
        "inputSchema": {"type": "object", "properties": {"n": {"type": "integer"}}},
    },
]

RESOURCES = [
    {"uri": "file:///readme.md", "name": "README", "mimeType": "text/markdown"},
    {"uri": "file:///logo.png", "name": "Logo", "mimeType": "image/png"},
]


def call_tool(name: str, arguments: dict):
    """Run a tool. ``echo`` replies with an envelope, ``add`` with a bare value."""
    if name == "echo":
        return {"status": "success", "result": arguments.get("message", "")}
    if name == "add":
        return arguments["a"] + arguments["b"]
    return {"status": "error", "error": f"Unknown tool: {name}"}


async def stream_countdown(request: web.Request, request_id, n: int) -> web.StreamResponse:
    response = web.StreamResponse(headers={"Content-Type": "text/event-stream"})
    await response.prepare(request)
    for remaining in range(n, 0, -1):
        event = {"jsonrpc": "2.0", "id": request_id, "result": {"remaining": remaining}}
        await response.write(f"data: {json.dumps(event)}\n\n".encode())
        await asyncio.sleep(1)
    await response.write_eof()
    return response


async def handle_rpc(request: web.Request) -> web.StreamResponse:
    payload = await request.json()
    method = payload.get("method")
    params = payload.get("params") or {}

    if "id" not in payload:
        return web.Response(status=202)

    if method == "tools/call" and "text/event-stream" in request.headers.get("Accept", ""):
        n = int((params.get("arguments") or {}).get("n", 3))
        return await stream_countdown(request, payload["id"], n)

    if method == "initialize":
        result = {
            "protocolVersion": params.get("protocolVersion"),
            "capabilities": {"tools": {}, "resources": {}},
            "serverInfo": {"name": "echo-server", "version": "1.0.0"},
        }
    elif method == "tools/list":
        result = {"tools": TOOLS}
    elif method == "resources/list":
        result = {"resources": RESOURCES}
    elif method == "tools/call":
        result = call_tool(params.get("name", ""), params.get("arguments") or {})
    else:
        error = {"code": -32601, "message": f"Method not found: {method}"}
        return web.json_response({"jsonrpc": "2.0", "id": payload["id"], "error": error})

    return web.json_response({"jsonrpc": "2.0", "id": payload["id"], "result": result})


async def handle_health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


def create_app() -> web.Application:
    app = web.Application()
    app.router.add_post("/mcp", handle_rpc)
    app.router.add_get("/health", handle_health)
    return app


def main() -> None:
    parser = argparse.ArgumentParser(description="Example MCP server for mcp-testkit")
    parser.add_argument("--host", default="localhost")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()

    print(f"Echo server listening on http://{args.host}:{args.port}", flush=True)
    web.run_app(create_app(), host=args.host, port=args.port, print=None)


if __name__ == "__main__":
    main()
