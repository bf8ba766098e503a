"""Protocol client."""

from mcp_testkit.client.client import MCPTestClient

__all__ = ["MCPTestClient"]
