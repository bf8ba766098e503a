"""Main CLI entry point for mcp-testkit.

Commands:
    inspect: Show the tools and resource types of a server
    call: Call a tool (optionally streaming its events)
"""

import click

from mcp_testkit import __version__


@click.group()
@click.version_option(version=__version__, prog_name="mcp-testkit")
def cli() -> None:
    """mcp-testkit: test harness for MCP servers over HTTP.

    Examples:

        \b
        # Inspect a server
        mcp-testkit inspect --url http://localhost:6277

        \b
        # Call a tool
        mcp-testkit call echo --params '{"message": "hi"}'
    """
    pass


def _register_commands() -> None:
    """Register CLI commands."""
    from mcp_testkit.cli import call, inspect_cmd

    cli.add_command(inspect_cmd.inspect_server)
    cli.add_command(call.call)


_register_commands()


__all__ = ["cli"]
