"""Call command for the mcp-testkit CLI."""

import asyncio
import sys
from typing import Any, Dict, List, Optional

import click

from mcp_testkit.cli.utils import (
    console,
    format_error,
    managed_server,
    parse_params,
    print_json,
    resolve_client_config,
)
from mcp_testkit.client.client import MCPTestClient
from mcp_testkit.core.config import MCPTestConfig
from mcp_testkit.core.errors import MCPTestError


async def invoke_tool(
    config: MCPTestConfig,
    tool: str,
    params: Dict[str, Any],
    server: Optional[str],
) -> Dict[str, Any]:
    async with managed_server(server, config.server):
        async with MCPTestClient.from_config(config.client) as client:
            response = await client.call_tool(tool, params)
    return response.model_dump(by_alias=True)


async def stream_tool(
    config: MCPTestConfig,
    tool: str,
    params: Dict[str, Any],
    server: Optional[str],
) -> List[Any]:
    events: List[Any] = []
    async with managed_server(server, config.server):
        async with MCPTestClient.from_config(config.client) as client:
            async for event in client.call_tool_with_stream(tool, params):
                console.print(f"[dim]event {len(events) + 1}[/dim]")
                print_json(event)
                events.append(event)
    return events


@click.command("call")
@click.argument("tool")
@click.option("--url", default=None, help="Server base URL (default: from config)")
@click.option("--params", "params_json", default=None, help="Tool arguments as a JSON object")
@click.option("--stream", is_flag=True, help="Stream the tool's events (SSE)")
@click.option("--server", default=None, help="Command line of a server to start first")
@click.option("--token", default=None, help="Bearer token")
@click.option("--timeout", type=float, default=None, help="Request timeout in seconds")
@click.option("--config", "config_file", type=click.Path(exists=True), default=None,
              help="Path to configuration file")
def call(
    tool: str,
    url: Optional[str],
    params_json: Optional[str],
    stream: bool,
    server: Optional[str],
    token: Optional[str],
    timeout: Optional[float],
    config_file: Optional[str],
) -> None:
    """Call a tool and print its normalized response.

    Examples:

        \b
        mcp-testkit call echo --url http://localhost:6277 --params '{"message": "hi"}'

        \b
        # Print every streamed event as it arrives
        mcp-testkit call countdown --params '{"n": 3}' --stream
    """
    params = parse_params(params_json)

    try:
        config = resolve_client_config(config_file, url, token, timeout)
        if stream:
            events = asyncio.run(stream_tool(config, tool, params, server))
            console.print(f"[dim]{len(events)} event(s) received[/dim]")
        else:
            print_json(asyncio.run(invoke_tool(config, tool, params, server)))
    except MCPTestError as e:
        format_error(e.message, e.code)
        sys.exit(1)
    except ValueError as e:
        format_error(f"Invalid configuration: {e}", "Configuration Error")
        sys.exit(1)


__all__ = ["call", "invoke_tool", "stream_tool"]
