"""Server process supervision."""

from mcp_testkit.server.manager import ServerManager, ServerProcessState

__all__ = ["ServerManager", "ServerProcessState"]
