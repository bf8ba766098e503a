"""mcp-testkit: a test harness for MCP servers over HTTP.

Provides a protocol client with typed errors, a subprocess supervisor for the
server under test, response validators, fixtures and async test helpers.

Example:
    >>> from mcp_testkit import MCPTestClient, ServerManager
    >>> async with ServerManager(command="python", args=["server.py"]):
    ...     async with MCPTestClient("http://localhost:6277") as client:
    ...         response = await client.call_tool("echo", {"message": "hi"})
"""

__version__ = "0.1.0"

from mcp_testkit.client.client import MCPTestClient
from mcp_testkit.core.config import (
    ClientConfigModel,
    LogConfigModel,
    MCPTestConfig,
    ServerConfigModel,
    load_config,
)
from mcp_testkit.core.errors import (
    AuthenticationError,
    ConnectionError,
    MCPTestError,
    RequestAbortedError,
    RPCError,
    ServerStartError,
    TimeoutError,
    ToolExecutionError,
    TransportError,
    ValidationError,
)
from mcp_testkit.core.types import (
    AcceptedResponse,
    ErrorResponse,
    Resource,
    ResourceSchema,
    Schema,
    SuccessResponse,
    ToolResponse,
    ToolSchema,
    ValidationResult,
    normalize_tool_response,
)
from mcp_testkit.server.manager import ServerManager, ServerProcessState
from mcp_testkit.transports.cancellation import CancellationToken
from mcp_testkit.transports.http import HTTPTransport
from mcp_testkit.utils.async_helpers import (
    collect_stream_responses,
    delay,
    poll_until,
    retry,
    wait_for_condition,
)
from mcp_testkit.utils.fixtures import TestFixtures
from mcp_testkit.utils.validators import MCPValidator, ResponseValidator, validate

__all__ = [
    "__version__",
    # Client and server
    "MCPTestClient",
    "ServerManager",
    "ServerProcessState",
    "HTTPTransport",
    "CancellationToken",
    # Configuration
    "ClientConfigModel",
    "ServerConfigModel",
    "LogConfigModel",
    "MCPTestConfig",
    "load_config",
    # Errors
    "MCPTestError",
    "ConnectionError",
    "AuthenticationError",
    "ToolExecutionError",
    "ServerStartError",
    "TimeoutError",
    "TransportError",
    "RequestAbortedError",
    "RPCError",
    "ValidationError",
    # Types
    "SuccessResponse",
    "ErrorResponse",
    "AcceptedResponse",
    "ToolResponse",
    "Resource",
    "ToolSchema",
    "ResourceSchema",
    "Schema",
    "ValidationResult",
    "normalize_tool_response",
    # Helpers
    "wait_for_condition",
    "poll_until",
    "collect_stream_responses",
    "delay",
    "retry",
    "TestFixtures",
    "ResponseValidator",
    "MCPValidator",
    "validate",
]
