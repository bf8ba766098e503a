"""Core type definitions for mcp-testkit.

This module defines the data model shared by the client, the validators and
the fixtures: the tool response envelope, resources and the server schema.
"""

from typing import Any, Callable, Dict, List, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator
from typing_extensions import Annotated

# Type aliases for common patterns
JSONValue = Union[str, int, float, bool, None, Dict[str, Any], List[Any]]
JSONDict = Dict[str, JSONValue]
OutputSink = Callable[[str], None]

T = TypeVar("T")

ResponseFormat = Literal["json", "text", "binary"]
TransportType = Literal["http", "websocket"]
ReadinessType = Literal["liveness", "health"]
ToolStatus = Literal["success", "error", "accepted"]
TOOL_STATUSES = ("success", "error", "accepted")
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
LogFormat = Literal["json", "text"]


# Tool response envelope


class SuccessResponse(BaseModel):
    """Tool call completed and produced a result.

    Attributes:
        status: Always ``"success"``
        result: Value returned by the tool
    """

    model_config = ConfigDict(extra="forbid")

    status: Literal["success"] = "success"
    result: Any = None


class ErrorResponse(BaseModel):
    """Tool call reported an error.

    Attributes:
        status: Always ``"error"``
        error: Human-readable error message
        details: Optional structured details
    """

    model_config = ConfigDict(extra="forbid")

    status: Literal["error"] = "error"
    error: str = Field(..., min_length=1)
    details: Any = None


class AcceptedResponse(BaseModel):
    """Tool call was accepted for asynchronous processing.

    The caller must poll for completion using ``task_id``.

    Attributes:
        status: Always ``"accepted"``
        task_id: Identifier of the background task (``taskId`` on the wire)
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    status: Literal["accepted"] = "accepted"
    task_id: str = Field(..., min_length=1, alias="taskId")


ToolResponse = Annotated[
    Union[SuccessResponse, ErrorResponse, AcceptedResponse],
    Field(discriminator="status"),
]

tool_response_adapter: TypeAdapter = TypeAdapter(ToolResponse)


def is_envelope(raw: Any) -> bool:
    """Return True if ``raw`` looks like a ``{status, ...}`` envelope."""
    return isinstance(raw, dict) and raw.get("status") in TOOL_STATUSES


def normalize_tool_response(raw: Any) -> Union[SuccessResponse, ErrorResponse, AcceptedResponse]:
    """Normalize a raw tool reply into a :data:`ToolResponse`.

    Two reply conventions are supported:

    * **enveloped** - a ``{status, result|error|taskId}`` mapping, validated
      into the matching response model
    * **bare** - any other value, wrapped as a success result

    Args:
        raw: Raw value returned by the server

    Returns:
        The normalized response

    Raises:
        pydantic.ValidationError: If an envelope is malformed (e.g. an
            ``accepted`` status without ``taskId``)

    Example:
        >>> normalize_tool_response({"status": "accepted", "taskId": "t-1"}).task_id
        't-1'
        >>> normalize_tool_response(42).result
        42
    """
    if is_envelope(raw):
        return _normalize_enveloped(raw)
    return _normalize_bare(raw)


def _normalize_enveloped(raw: Dict[str, Any]) -> Union[SuccessResponse, ErrorResponse, AcceptedResponse]:
    status = raw["status"]
    if status == "success":
        return SuccessResponse(result=raw.get("result"))
    if status == "error":
        return ErrorResponse(error=str(raw.get("error") or "Unknown error"), details=raw.get("details"))
    return AcceptedResponse(task_id=raw.get("taskId") or raw.get("task_id"))


def _normalize_bare(raw: Any) -> SuccessResponse:
    return SuccessResponse(result=raw)


# Resources and schema


class Resource(BaseModel):
    """A server-managed addressable object.

    Attributes:
        id: Stable identifier (the resource URI)
        type: Resource type
        name: Human-readable name
        description: Optional description
        metadata: Open-ended metadata mapping
    """

    id: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    name: str
    description: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class ToolSchema(BaseModel):
    """Schema of a tool exposed by the server."""

    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)
    returns: Optional[Dict[str, Any]] = None


class ResourceSchema(BaseModel):
    """Schema of a resource type exposed by the server."""

    type: str = Field(..., min_length=1)
    description: Optional[str] = None
    properties: Dict[str, Any] = Field(default_factory=dict)


class Schema(BaseModel):
    """Tools and resource types exposed by a server.

    Tool names and resource types are unique within a schema.
    """

    tools: List[ToolSchema] = Field(default_factory=list)
    resources: List[ResourceSchema] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_unique_keys(self) -> "Schema":
        """Reject duplicate tool names and resource types."""
        names = [tool.name for tool in self.tools]
        if len(names) != len(set(names)):
            raise ValueError("tool names must be unique")
        types = [resource.type for resource in self.resources]
        if len(types) != len(set(types)):
            raise ValueError("resource types must be unique")
        return self

    def get_tool(self, name: str) -> Optional[ToolSchema]:
        """Return the tool schema with the given name, if any."""
        return next((tool for tool in self.tools if tool.name == name), None)


class ValidationResult(BaseModel):
    """Result of a validation operation.

    Attributes:
        valid: Whether validation passed
        errors: Validation error messages (None when valid)
    """

    valid: bool
    errors: Optional[List[str]] = None

    @classmethod
    def from_errors(cls, errors: List[str]) -> "ValidationResult":
        """Build a result from a (possibly empty) list of error messages."""
        return cls(valid=not errors, errors=list(errors) or None)


__all__ = [
    # Type aliases
    "JSONValue",
    "JSONDict",
    "OutputSink",
    "ResponseFormat",
    "TransportType",
    "ReadinessType",
    "ToolStatus",
    "LogLevel",
    "LogFormat",
    # Tool responses
    "SuccessResponse",
    "ErrorResponse",
    "AcceptedResponse",
    "ToolResponse",
    "tool_response_adapter",
    "is_envelope",
    "normalize_tool_response",
    # Resources and schema
    "Resource",
    "ToolSchema",
    "ResourceSchema",
    "Schema",
    # Validation
    "ValidationResult",
]
