"""Inspect command for the mcp-testkit CLI.

Fetches a server's schema and prints its tools and resource types, optionally
starting the server first.
"""

import asyncio
import sys
from typing import Optional

import click
from rich.panel import Panel

from mcp_testkit.cli.utils import (
    console,
    create_resources_table,
    create_tools_table,
    format_error,
    managed_server,
    print_json,
    resolve_client_config,
)
from mcp_testkit.client.client import MCPTestClient
from mcp_testkit.core.config import MCPTestConfig
from mcp_testkit.core.errors import MCPTestError
from mcp_testkit.core.types import Schema


async def fetch_schema(config: MCPTestConfig, server: Optional[str]) -> Schema:
    async with managed_server(server, config.server):
        async with MCPTestClient.from_config(config.client) as client:
            return await client.get_schema()


@click.command("inspect")
@click.option("--url", default=None, help="Server base URL (default: from config)")
@click.option("--server", default=None, help="Command line of a server to start first")
@click.option("--token", default=None, help="Bearer token")
@click.option("--timeout", type=float, default=None, help="Request timeout in seconds")
@click.option("--config", "config_file", type=click.Path(exists=True), default=None,
              help="Path to configuration file")
@click.option("--json", "as_json", is_flag=True, help="Print the schema as JSON")
def inspect_server(
    url: Optional[str],
    server: Optional[str],
    token: Optional[str],
    timeout: Optional[float],
    config_file: Optional[str],
    as_json: bool,
) -> None:
    """Show the tools and resource types exposed by a server.

    Examples:

        \b
        # Inspect a running server
        mcp-testkit inspect --url http://localhost:6277

        \b
        # Start the server, inspect it, stop it
        mcp-testkit inspect --url http://localhost:8000 --server "python server.py"
    """
    try:
        config = resolve_client_config(config_file, url, token, timeout)
        schema = asyncio.run(fetch_schema(config, server))
    except MCPTestError as e:
        format_error(e.message, e.code)
        sys.exit(1)
    except ValueError as e:
        format_error(f"Invalid configuration: {e}", "Configuration Error")
        sys.exit(1)

    if as_json:
        print_json(schema.model_dump())
        return

    console.print(Panel(
        f"[bold cyan]{config.client.base_url}[/bold cyan]\n\n"
        f"Tools: [green]{len(schema.tools)}[/green]\n"
        f"Resource types: [green]{len(schema.resources)}[/green]",
        title="[bold blue]MCP Server[/bold blue]",
    ))
    if schema.tools:
        console.print(create_tools_table(schema))
    if schema.resources:
        console.print(create_resources_table(schema))


__all__ = ["inspect_server", "fetch_schema"]
