"""Shared helpers for the mcp-testkit CLI: console output and server handling."""

import json
import shlex
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from mcp_testkit.core.config import ClientConfigModel, MCPTestConfig, ServerConfigModel, load_config
from mcp_testkit.core.types import Schema
from mcp_testkit.server.manager import ServerManager

console = Console()


def format_error(message: str, title: str = "Error") -> None:
    """Print an error panel."""
    console.print(Panel(
        f"[bold red]{escape(message)}[/bold red]",
        title=f"[bold red]{escape(title)}[/bold red]",
    ))


def format_success(message: str) -> None:
    console.print(f"[bold green]✓[/bold green] {message}")


def format_info(message: str) -> None:
    console.print(f"[cyan]ℹ[/cyan] {message}")


def print_json(data: Any) -> None:
    console.print_json(json.dumps(data, default=str))


def parse_params(value: Optional[str]) -> Dict[str, Any]:
    """Parse the ``--params`` JSON object.

    Raises:
        click.BadParameter: If the value is not a JSON object
    """
    if not value:
        return {}
    try:
        params = json.loads(value)
    except ValueError as e:
        raise click.BadParameter(f"Invalid JSON: {e}", param_hint="--params")
    if not isinstance(params, dict):
        raise click.BadParameter("Parameters must be a JSON object", param_hint="--params")
    return params


def resolve_client_config(
    config_file: Optional[str],
    url: Optional[str],
    token: Optional[str],
    timeout: Optional[float],
) -> MCPTestConfig:
    """Load configuration and apply command line overrides to the client section."""
    config = load_config(config_file)
    overrides: Dict[str, Any] = {}
    if url:
        overrides["base_url"] = url
    if token:
        overrides["auth_token"] = token
    if timeout:
        overrides["timeout"] = timeout
    if overrides:
        client = ClientConfigModel(**{**config.client.model_dump(), **overrides})
        config = config.model_copy(update={"client": client})
    return config


def create_tools_table(schema: Schema) -> Table:
    table = Table(title="Tools", show_header=True, header_style="bold cyan")
    table.add_column("Name", style="green")
    table.add_column("Description")
    table.add_column("Parameters", style="dim")
    for tool in schema.tools:
        properties = tool.parameters.get("properties", {})
        table.add_row(tool.name, tool.description or "", ", ".join(properties) or "-")
    return table


def create_resources_table(schema: Schema) -> Table:
    table = Table(title="Resource Types", show_header=True, header_style="bold cyan")
    table.add_column("Type", style="green")
    table.add_column("Description")
    table.add_column("Properties", style="dim")
    for resource in schema.resources:
        table.add_row(resource.type, resource.description or "", ", ".join(resource.properties) or "-")
    return table


@asynccontextmanager
async def managed_server(
    command_line: Optional[str],
    server_config: Optional[ServerConfigModel] = None,
) -> AsyncIterator[Optional[ServerManager]]:
    """Run ``command_line`` under a :class:`ServerManager` for the duration of the block.

    Yields None when no command is given.
    """
    if not command_line:
        yield None
        return

    command, *args = shlex.split(command_line)
    options: Dict[str, Any] = {"command": command, "args": args}
    if server_config is not None:
        manager = ServerManager(server_config, **options)
    else:
        manager = ServerManager(**options)

    format_info(f"Starting server: {escape(command_line)}")
    async with manager:
        format_success(f"Server running (pid {manager.pid})")
        yield manager


__all__ = [
    "console",
    "format_error",
    "format_success",
    "format_info",
    "print_json",
    "parse_params",
    "resolve_client_config",
    "create_tools_table",
    "create_resources_table",
    "managed_server",
]
