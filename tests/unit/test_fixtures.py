"""Unit tests for the sample data factory."""

from mcp_testkit.core.types import AcceptedResponse, ErrorResponse, Resource, Schema, SuccessResponse
from mcp_testkit.utils.fixtures import TestFixtures


class TestToolFixtures:
    """Tests for tool request and response samples."""

    def test_requests_start_with_common_cases(self) -> None:
        """Test common malformed requests come first."""
        requests = TestFixtures.get_tool_requests("echo")
        assert requests[:3] == [{}, {"invalid": True}, {"timeout": True}]
        assert {"message": "Hello, world!"} in requests

    def test_unknown_tool_gets_common_requests(self) -> None:
        """Test unknown tools only get the common requests."""
        assert len(TestFixtures.get_tool_requests("unknown")) == 3

    def test_requests_are_copies(self) -> None:
        """Test callers may mutate the returned data."""
        first = TestFixtures.get_tool_requests("fetchData")
        first[-1]["source"] = "changed"
        first[-2]["filter"]["status"] = "changed"

        second = TestFixtures.get_tool_requests("fetchData")
        assert second[-1]["source"] == "non-existent"
        assert second[-2]["filter"]["status"] == "active"

    def test_responses_are_models(self) -> None:
        """Test responses come back as typed models."""
        responses = TestFixtures.get_tool_responses("calculator")

        assert isinstance(responses[0], ErrorResponse)
        assert isinstance(responses[2], AcceptedResponse)
        assert responses[2].task_id == "task-123"
        assert isinstance(responses[3], SuccessResponse)
        assert responses[3].result == 8
        assert responses[-1] == ErrorResponse(error="Division by zero")


class TestResourceAndSchemaFixtures:
    """Tests for resource and schema samples."""

    def test_all_resources(self) -> None:
        """Test every sample resource is returned."""
        resources = TestFixtures.get_resources()
        assert [r.id for r in resources] == ["resource-1", "resource-2", "resource-3"]
        assert all(isinstance(r, Resource) for r in resources)

    def test_filter_by_type(self) -> None:
        """Test filtering by resource type."""
        assert [r.id for r in TestFixtures.get_resources("document")] == ["resource-1", "resource-3"]
        assert TestFixtures.get_resources("video") == []

    def test_schema(self) -> None:
        """Test the sample schema."""
        schema = TestFixtures.get_schema()
        assert isinstance(schema, Schema)
        assert [tool.name for tool in schema.tools] == ["echo", "calculator", "fetchData"]
        assert schema.get_tool("calculator").returns == {"type": "number"}
        assert schema.get_tool("fetchData").returns is None
        assert [r.type for r in schema.resources] == ["document", "image"]

    def test_create_custom_fixture(self) -> None:
        """Test shallow overrides."""
        template = {"a": 1, "nested": {"x": 1}}
        custom = TestFixtures.create_custom_fixture(template, {"nested": {"y": 2}})

        assert custom == {"a": 1, "nested": {"y": 2}}
        assert template == {"a": 1, "nested": {"x": 1}}
        assert TestFixtures.create_custom_fixture(template) == template
