#!/usr/bin/env python3
"""End-to-end mcp-testkit example.

This example demonstrates:
- Starting a server under ServerManager with health check readiness
- Calling tools and handling the normalized responses
- Streaming tool events
- Inspecting the server schema and validating responses

Usage:
    python examples/client_example.py
"""

import asyncio
import sys
from pathlib import Path

from mcp_testkit import MCPTestClient, ServerManager
from mcp_testkit.core.errors import MCPTestError
from mcp_testkit.core.logger import LoggerContext, get_logger
from mcp_testkit.utils.async_helpers import collect_stream_responses
from mcp_testkit.utils.validators import ResponseValidator

PORT = 8765
SERVER_SCRIPT = Path(__file__).with_name("echo_server.py")

logger = get_logger("examples.client")


async def main() -> int:
    manager = ServerManager(
        command=sys.executable,
        args=[str(SERVER_SCRIPT), "--port", str(PORT)],
        port=PORT,
        readiness="health",
        health_check_interval=0.2,
        startup_timeout=10.0,
        on_stdout=lambda text: print(f"[server] {text}", end=""),
    )

    async with manager, MCPTestClient(f"http://localhost:{PORT}") as client:
        with LoggerContext(example="client"):
            await client.initialize()

            response = await client.call_tool("echo", {"message": "Hello, world!"})
            print(f"echo -> {response.model_dump()}")
            print(f"valid: {ResponseValidator.validate_tool_response(response).valid}")

            response = await client.call_tool("math/add", {"a": 5, "b": 3})
            print(f"add -> {response.model_dump()}")

            events = await collect_stream_responses(
                client.call_tool_with_stream("countdown", {"n": 3}),
                timeout=10.0,
            )
            print(f"countdown -> {events}")

            schema = await client.get_schema()
            print(f"tools: {[tool.name for tool in schema.tools]}")
            print(f"resource types: {[resource.type for resource in schema.resources]}")

            try:
                await client.get_resource("file:///missing")
            except MCPTestError as e:
                logger.warning("Expected failure: %s", e)

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
