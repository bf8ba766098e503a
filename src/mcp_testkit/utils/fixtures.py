"""Sample data for tests: tool requests and responses, resources and a schema."""

import copy
from typing import Any, Dict, List, Optional, TypeVar

from mcp_testkit.core.types import Resource, Schema, ToolResponse, tool_response_adapter

T = TypeVar("T", bound=Dict[str, Any])

COMMON_TOOL_REQUESTS: List[Dict[str, Any]] = [
    {},  # empty
    {"invalid": True},
    {"timeout": True},
]

TOOL_REQUESTS: Dict[str, List[Dict[str, Any]]] = {
    "echo": [
        {"message": "Hello, world!"},
        {"message": ""},
        {"message": "Special characters: !@#$%^&*()"},
    ],
    "calculator": [
        {"operation": "add", "a": 5, "b": 3},
        {"operation": "subtract", "a": 10, "b": 4},
        {"operation": "multiply", "a": 3, "b": 4},
        {"operation": "divide", "a": 10, "b": 2},
        {"operation": "divide", "a": 5, "b": 0},  # error case
    ],
    "fetchData": [
        {"source": "test-db"},
        {"source": "test-db", "filter": {"status": "active"}},
        {"source": "non-existent"},  # error case
    ],
}

COMMON_TOOL_RESPONSES: List[Dict[str, Any]] = [
    {"status": "error", "error": "Invalid request"},
    {"status": "error", "error": "Tool not found"},
    {"status": "accepted", "taskId": "task-123"},
]

TOOL_RESPONSES: Dict[str, List[Dict[str, Any]]] = {
    "echo": [
        {"status": "success", "result": "Hello, world!"},
        {"status": "success", "result": ""},
    ],
    "calculator": [
        {"status": "success", "result": 8},
        {"status": "success", "result": 6},
        {"status": "success", "result": 12},
        {"status": "success", "result": 5},
        {"status": "error", "error": "Division by zero"},
    ],
    "fetchData": [
        {
            "status": "success",
            "result": {"items": [{"id": 1, "name": "Item 1"}, {"id": 2, "name": "Item 2"}], "total": 2},
        },
        {
            "status": "success",
            "result": {"items": [{"id": 1, "name": "Item 1", "status": "active"}], "total": 1},
        },
        {"status": "error", "error": "Data source not found"},
    ],
}

RESOURCES: List[Dict[str, Any]] = [
    {
        "id": "resource-1",
        "type": "document",
        "name": "Sample Document",
        "description": "A sample document resource",
        "metadata": {"created": "2025-04-01T12:00:00Z", "size": 1024},
    },
    {
        "id": "resource-2",
        "type": "image",
        "name": "Sample Image",
        "description": "A sample image resource",
        "metadata": {"created": "2025-04-02T12:00:00Z", "width": 800, "height": 600},
    },
    {
        "id": "resource-3",
        "type": "document",
        "name": "Another Document",
        "description": "Another sample document resource",
        "metadata": {"created": "2025-04-03T12:00:00Z", "size": 2048},
    },
]

SCHEMA: Dict[str, Any] = {
    "tools": [
        {
            "name": "echo",
            "description": "Echo the input message",
            "parameters": {
                "type": "object",
                "properties": {"message": {"type": "string", "description": "Message to echo"}},
                "required": ["message"],
            },
            "returns": {"type": "string"},
        },
        {
            "name": "calculator",
            "description": "Perform a calculation",
            "parameters": {
                "type": "object",
                "properties": {
                    "operation": {
                        "type": "string",
                        "enum": ["add", "subtract", "multiply", "divide"],
                        "description": "Operation to perform",
                    },
                    "a": {"type": "number", "description": "First operand"},
                    "b": {"type": "number", "description": "Second operand"},
                },
                "required": ["operation", "a", "b"],
            },
            "returns": {"type": "number"},
        },
        {
            "name": "fetchData",
            "description": "Fetch data from a source",
            "parameters": {
                "type": "object",
                "properties": {
                    "source": {"type": "string", "description": "Data source"},
                    "filter": {"type": "object", "description": "Optional filter criteria"},
                },
                "required": ["source"],
            },
        },
    ],
    "resources": [
        {
            "type": "document",
            "description": "Document resource",
            "properties": {
                "id": {"type": "string"},
                "name": {"type": "string"},
                "content": {"type": "string"},
                "metadata": {"type": "object"},
            },
        },
        {
            "type": "image",
            "description": "Image resource",
            "properties": {
                "id": {"type": "string"},
                "name": {"type": "string"},
                "url": {"type": "string"},
                "metadata": {
                    "type": "object",
                    "properties": {
                        "width": {"type": "number"},
                        "height": {"type": "number"},
                        "format": {"type": "string"},
                    },
                },
            },
        },
    ],
}


class TestFixtures:
    """Factory for sample test data.

    Every call returns fresh copies, so tests may mutate the results.
    """

    __test__ = False  # not a pytest test class

    @staticmethod
    def get_tool_requests(tool_name: str) -> List[Dict[str, Any]]:
        """Common malformed requests followed by the tool's sample requests."""
        return copy.deepcopy(COMMON_TOOL_REQUESTS + TOOL_REQUESTS.get(tool_name, []))

    @staticmethod
    def get_tool_responses(tool_name: str) -> List[ToolResponse]:
        """Common responses followed by the tool's sample responses."""
        return [
            tool_response_adapter.validate_python(response)
            for response in COMMON_TOOL_RESPONSES + TOOL_RESPONSES.get(tool_name, [])
        ]

    @staticmethod
    def get_resources(resource_type: Optional[str] = None) -> List[Resource]:
        """Sample resources, optionally filtered by type."""
        return [
            Resource.model_validate(resource)
            for resource in RESOURCES
            if resource_type is None or resource["type"] == resource_type
        ]

    @staticmethod
    def get_schema() -> Schema:
        return Schema.model_validate(SCHEMA)

    @staticmethod
    def create_custom_fixture(template: T, overrides: Optional[Dict[str, Any]] = None) -> T:
        """Shallow-merge ``overrides`` over ``template``.

        Example:
            >>> TestFixtures.create_custom_fixture({"a": 1, "b": 2}, {"a": 10})
            {'a': 10, 'b': 2}
        """
        return {**template, **(overrides or {})}  # type: ignore[return-value]


__all__ = ["TestFixtures"]
