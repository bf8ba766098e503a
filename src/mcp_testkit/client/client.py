"""Protocol client for testing MCP servers.

:class:`MCPTestClient` issues JSON-RPC 2.0 calls (tool invocation, tool
streaming, resource listing and schema introspection) against a running
server and translates transport failures into the classified error taxonomy
of :mod:`mcp_testkit.core.errors`.
"""

import asyncio
import itertools
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Type

from mcp.types import LATEST_PROTOCOL_VERSION

from mcp_testkit import __version__
from mcp_testkit.core.config import ClientConfigModel
from mcp_testkit.core.errors import (
    ConnectionError,
    MCPTestError,
    RPCError,
    ToolExecutionError,
    ValidationError,
    classify_error,
)
from mcp_testkit.core.logger import get_logger
from mcp_testkit.core.types import (
    Resource,
    ResourceSchema,
    ResponseFormat,
    Schema,
    ToolResponse,
    ToolSchema,
    TransportType,
    ValidationResult,
    normalize_tool_response,
)
from mcp_testkit.transports.http import HTTPTransport
from mcp_testkit.utils.validators import MCPValidator

logger = get_logger(__name__)

Validator = Callable[[Dict[str, Any]], ValidationResult]

RESOURCE_PROPERTIES: Dict[str, Any] = {
    "id": {"type": "string"},
    "name": {"type": "string"},
    "mimeType": {"type": "string"},
}


def split_tool_name(name: str) -> str:
    """Strip the namespace from a ``namespace/tool`` name."""
    return name.split("/", 1)[1] if "/" in name else name


def resource_type(mime_type: Optional[str]) -> str:
    """Map a MIME type to a resource type (its major part)."""
    return mime_type.split("/")[0] if mime_type else "unknown"


class MCPTestClient:
    """Client for exercising an MCP server over HTTP.

    Every public call is classified on failure: timeouts and aborts become
    :class:`~mcp_testkit.core.errors.TimeoutError`, 401 responses become
    :class:`~mcp_testkit.core.errors.AuthenticationError` and everything else
    falls back to the category of the operation.

    Attributes:
        config: Validated client configuration

    Example:
        >>> async with MCPTestClient("http://localhost:6277") as client:
        ...     response = await client.call_tool("echo", {"message": "hi"})
        ...     schema = await client.get_schema()
    """

    def __init__(
        self,
        base_url: str,
        auth_token: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 10.0,
        response_format: ResponseFormat = "json",
        transport: TransportType = "http",
        rpc_path: str = "/mcp",
    ) -> None:
        """Initialize the client.

        Raises:
            NotImplementedError: If the websocket transport is selected
            pydantic.ValidationError: If the options are invalid
        """
        self.config = ClientConfigModel(
            base_url=base_url,
            auth_token=auth_token,
            headers=headers or {},
            timeout=timeout,
            response_format=response_format,
            transport=transport,
            rpc_path=rpc_path,
        )
        if self.config.transport == "websocket":
            raise NotImplementedError("WebSocket transport is not implemented")
        self._ids = itertools.count(1)
        self._transport = self._create_transport()
        self._retired: List[HTTPTransport] = []

    @classmethod
    def from_config(cls, config: ClientConfigModel) -> "MCPTestClient":
        """Create a client from a :class:`ClientConfigModel`."""
        return cls(**config.model_dump())

    @property
    def base_url(self) -> str:
        return self.config.base_url

    @property
    def rpc_url(self) -> str:
        return f"{self.config.base_url}{self.config.rpc_path}"

    @property
    def transport(self) -> HTTPTransport:
        return self._transport

    def _default_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        headers.update(self.config.headers)
        if self.config.auth_token:
            headers["Authorization"] = f"Bearer {self.config.auth_token}"
        return headers

    def _create_transport(self) -> HTTPTransport:
        return HTTPTransport(headers=self._default_headers(), default_timeout=self.config.timeout)

    def _envelope(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"jsonrpc": "2.0", "id": next(self._ids), "method": method}
        if params is not None:
            payload["params"] = params
        return payload

    @staticmethod
    def _unwrap(reply: Any) -> Any:
        """Return the ``result`` of a JSON-RPC reply, raising on ``error``."""
        if not isinstance(reply, dict):
            return reply
        error = reply.get("error")
        if error is not None and ("jsonrpc" in reply or "id" in reply):
            if isinstance(error, dict):
                raise RPCError(
                    error.get("code", -32603), error.get("message", "Unknown error"), error.get("data")
                )
            raise RPCError(-32603, str(error))
        if "jsonrpc" in reply and "result" in reply:
            return reply["result"]
        return reply

    async def _close_retired(self) -> None:
        """Close transports replaced by :meth:`set_auth_token` once they are idle."""
        idle = [transport for transport in self._retired if transport.in_flight == 0]
        self._retired = [transport for transport in self._retired if transport.in_flight > 0]
        for transport in idle:
            await transport.close()

    async def _post(self, payload: Dict[str, Any]) -> Any:
        await self._close_retired()
        return await self._transport.request(
            self.rpc_url,
            method="POST",
            body=payload,
            timeout=self.config.timeout,
            response_format=self.config.response_format,
        )

    async def _rpc(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self._unwrap(await self._post(self._envelope(method, params)))

    async def _notify(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        await self._close_retired()
        payload: Dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            payload["params"] = params
        await self._transport.request(
            self.rpc_url,
            method="POST",
            body=payload,
            timeout=self.config.timeout,
            response_format="text",
        )

    def _classify(
        self,
        error: BaseException,
        operation: str,
        fallback: Type[MCPTestError] = ConnectionError,
        details: Optional[Dict[str, Any]] = None,
        not_found: bool = False,
    ) -> MCPTestError:
        classified = classify_error(
            error,
            operation,
            fallback=fallback,
            timeout=self.config.timeout,
            details=details,
            not_found=not_found,
        )
        logger.debug(
            "Classified %s as %s while trying to %s",
            type(error).__name__,
            classified.code,
            operation,
        )
        return classified

    async def initialize(self) -> Dict[str, Any]:
        """Perform the MCP ``initialize`` handshake.

        Returns:
            The server's initialize result (protocol version, capabilities,
            server info)
        """
        params = {
            "protocolVersion": LATEST_PROTOCOL_VERSION,
            "capabilities": {},
            "clientInfo": {"name": "mcp-testkit", "version": __version__},
        }
        try:
            result = await self._rpc("initialize", params)
            await self._notify("notifications/initialized")
        except Exception as exc:
            raise self._classify(exc, "initialize session") from exc
        return result or {}

    async def call_tool(self, name: str, params: Optional[Dict[str, Any]] = None) -> ToolResponse:
        """Invoke a tool and normalize its reply.

        Args:
            name: Tool name, optionally namespaced as ``namespace/tool``
            params: Tool arguments

        Returns:
            A success, error or accepted response

        Raises:
            TimeoutError: If the call timed out
            AuthenticationError: If the server rejected the credentials
            ToolExecutionError: For any other failure
        """
        params = params or {}
        try:
            raw = await self._rpc("tools/call", {"name": split_tool_name(name), "arguments": params})
            return normalize_tool_response(raw)
        except Exception as exc:
            raise self._classify(
                exc,
                f"call tool {name}",
                fallback=ToolExecutionError,
                details={"tool_name": name, "params": params},
            ) from exc

    async def call_tool_with_stream(
        self, name: str, params: Optional[Dict[str, Any]] = None
    ) -> AsyncIterator[Any]:
        """Invoke a tool and yield every streamed event as it arrives.

        A streamed JSON-RPC ``error`` ends the stream with a classified error.
        Closing the iterator early aborts the underlying request.

        Example:
            >>> async for event in client.call_tool_with_stream("countdown", {"n": 3}):
            ...     print(event)
        """
        params = params or {}
        await self._close_retired()
        stream = self._transport.open_stream(
            self.rpc_url,
            method="POST",
            body=self._envelope("tools/call", {"name": split_tool_name(name), "arguments": params}),
            timeout=self.config.timeout,
        )
        try:
            async for event in stream:
                yield self._unwrap(event)
        except Exception as exc:
            raise self._classify(
                exc,
                f"stream tool {name}",
                fallback=ToolExecutionError,
                details={"tool_name": name, "params": params},
            ) from exc
        finally:
            await stream.aclose()

    async def _list_resources(self) -> List[Resource]:
        result = await self._rpc("resources/list") or {}
        return [
            Resource(
                id=item["uri"],
                type=resource_type(item.get("mimeType")),
                name=item.get("name") or item["uri"],
                description=item.get("description"),
                metadata={"mimeType": item.get("mimeType")},
            )
            for item in result.get("resources", [])
        ]

    async def get_resources(self) -> List[Resource]:
        """List the server's resources.

        Raises:
            TimeoutError, AuthenticationError, ConnectionError
        """
        try:
            return await self._list_resources()
        except Exception as exc:
            raise self._classify(exc, "get resources") from exc

    async def get_resource(self, resource_id: str) -> Resource:
        """Return the resource with the given id.

        Raises:
            ConnectionError: If the resource does not exist (or the lookup
                failed with a 404)
            TimeoutError, AuthenticationError
        """
        try:
            resources = await self._list_resources()
        except Exception as exc:
            raise self._classify(
                exc,
                f"get resource {resource_id}",
                details={"resource_id": resource_id},
                not_found=True,
            ) from exc

        for resource in resources:
            if resource.id == resource_id:
                return resource
        raise ConnectionError(
            f"Resource {resource_id} not found", details={"resource_id": resource_id}
        )

    async def get_schema(self) -> Schema:
        """Fetch the tools and resource types exposed by the server.

        ``tools/list`` and ``resources/list`` are issued concurrently. If
        either fails the other is cancelled and no partial schema is
        returned.
        """
        tools_task = asyncio.ensure_future(self._rpc("tools/list"))
        resources_task = asyncio.ensure_future(self._rpc("resources/list"))
        try:
            tools_result, resources_result = await asyncio.gather(tools_task, resources_task)
            return self._build_schema(tools_result or {}, resources_result or {})
        except Exception as exc:
            for task in (tools_task, resources_task):
                task.cancel()
            await asyncio.gather(tools_task, resources_task, return_exceptions=True)
            raise self._classify(exc, "get schema") from exc

    @staticmethod
    def _build_schema(tools_result: Dict[str, Any], resources_result: Dict[str, Any]) -> Schema:
        tools: Dict[str, ToolSchema] = {}
        for tool in tools_result.get("tools", []):
            tools.setdefault(
                tool["name"],
                ToolSchema(
                    name=tool["name"],
                    description=tool.get("description"),
                    parameters=tool.get("inputSchema") or {},
                    returns={"type": "any"},
                ),
            )

        resources: Dict[str, ResourceSchema] = {}
        for item in resources_result.get("resources", []):
            kind = resource_type(item.get("mimeType"))
            resources.setdefault(
                kind,
                ResourceSchema(
                    type=kind,
                    description=item.get("description"),
                    properties=dict(RESOURCE_PROPERTIES),
                ),
            )

        return Schema(tools=list(tools.values()), resources=list(resources.values()))

    # Validated calls

    @staticmethod
    def _check(result: ValidationResult, stage: str, method: str) -> None:
        if not result.valid:
            errors = result.errors or []
            raise ValidationError(
                f"Invalid {stage} for {method}: {'; '.join(errors)}",
                details={"method": method, "stage": stage, "errors": errors},
            )

    async def call_validated(
        self,
        method: str,
        params: Optional[Dict[str, Any]],
        validate_request: Validator,
        validate_response: Validator,
    ) -> Any:
        """Send a JSON-RPC request, validating both the request and the reply.

        Args:
            method: JSON-RPC method name
            params: Request params
            validate_request: Called with the full request envelope
            validate_response: Called with the full reply envelope

        Returns:
            The ``result`` member of the reply

        Raises:
            ValidationError: If the request or the reply is invalid (an
                invalid request is never sent)
            TimeoutError, AuthenticationError, ConnectionError
        """
        request = self._envelope(method, params)
        self._check(validate_request(request), "request", method)
        try:
            reply = await self._post(request)
            result = self._unwrap(reply)
        except Exception as exc:
            raise self._classify(exc, f"call {method}", details={"method": method}) from exc
        self._check(validate_response(reply), "response", method)
        return result

    async def list_tools(self) -> Dict[str, Any]:
        """``tools/list`` with request and result validation."""
        return await self.call_validated(
            "tools/list",
            None,
            MCPValidator.validate_list_tools_request,
            MCPValidator.validate_list_tools_response,
        )

    async def list_resources(self) -> Dict[str, Any]:
        """``resources/list`` with request and result validation."""
        return await self.call_validated(
            "resources/list",
            None,
            MCPValidator.validate_list_resources_request,
            MCPValidator.validate_list_resources_response,
        )

    async def read_resource(self, uri: str) -> Dict[str, Any]:
        """``resources/read`` with request and result validation."""
        return await self.call_validated(
            "resources/read",
            {"uri": uri},
            MCPValidator.validate_read_resource_request,
            MCPValidator.validate_read_resource_response,
        )

    async def call_tool_validated(
        self, name: str, params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """``tools/call`` with request validation and a ``CallToolResult`` reply check.

        Unlike :meth:`call_tool` the raw result is returned, not normalized.
        """
        return await self.call_validated(
            "tools/call",
            {"name": split_tool_name(name), "arguments": params or {}},
            MCPValidator.validate_call_tool_request,
            MCPValidator.validate_call_tool_response,
        )

    def set_auth_token(self, token: Optional[str]) -> None:
        """Replace the bearer token.

        The transport is replaced wholesale; calls already in flight on the
        old transport are not affected. The old transport is closed by the
        next call once nothing is in flight on it.
        """
        old = self._transport
        self.config = self.config.model_copy(update={"auth_token": token})
        self._transport = self._create_transport()
        self._retired.append(old)

    async def close(self) -> None:
        """Release the transport. Idempotent."""
        for transport in [*self._retired, self._transport]:
            await transport.close()
        self._retired.clear()

    async def __aenter__(self) -> "MCPTestClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


__all__ = ["MCPTestClient", "split_tool_name", "resource_type"]
