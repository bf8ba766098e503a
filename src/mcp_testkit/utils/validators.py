"""Response and schema validation.

Structural checks for tool responses, resources and server schemas live in
:class:`ResponseValidator`. JSON Schema checks are delegated to
:func:`validate`, which runs :class:`jsonschema.Draft202012Validator`.
:class:`MCPValidator` checks raw JSON-RPC traffic against the pydantic
models of the ``mcp`` SDK.
"""

import copy
import re
from typing import Any, Callable, Dict, List, Optional, Type

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError
from jsonschema.exceptions import ValidationError as JSONSchemaValidationError
from mcp import types as mcp_types
from pydantic import BaseModel, Field, ValidationError

from mcp_testkit.core.types import TOOL_STATUSES, ValidationResult

_REQUIRED_PROPERTY = re.compile(r"^'(?P<name>.+)' is a required property$")

SchemaValidatorFn = Callable[[Any], ValidationResult]


class SchemaValidationOptions(BaseModel):
    """Options for JSON Schema validation.

    Attributes:
        allow_additional_properties: Allow properties not declared in the
            schema (injects ``additionalProperties: false`` when off)
        require_all_properties: Treat every declared property as required
        custom_error_messages: Messages keyed by ``required.<prop>``,
            ``missing.<prop>``, ``additionalProperties``, ``pattern``,
            ``enum``, ``minimum``, ``maximum`` or ``type``
    """

    allow_additional_properties: bool = True
    require_all_properties: bool = False
    custom_error_messages: Dict[str, str] = Field(default_factory=dict)


def _apply_options(node: Any, options: SchemaValidationOptions) -> Any:
    if isinstance(node, list):
        return [_apply_options(item, options) for item in node]
    if not isinstance(node, dict):
        return node

    result = {key: _apply_options(value, options) for key, value in node.items()}
    properties = node.get("properties")
    if isinstance(properties, dict):
        if not options.allow_additional_properties:
            result.setdefault("additionalProperties", False)
        if options.require_all_properties:
            result["required"] = list(dict.fromkeys([*node.get("required", []), *properties]))
    return result


def _normalize_schema(schema: Any) -> Any:
    # A one-element list is shorthand for "array of <item schema>".
    if isinstance(schema, list):
        normalized: Dict[str, Any] = {"type": "array"}
        if schema:
            normalized["items"] = _normalize_schema(schema[0])
        return normalized
    return schema


def _format_error(
    error: JSONSchemaValidationError,
    original_required: List[str],
    options: SchemaValidationOptions,
) -> str:
    messages = options.custom_error_messages
    message = error.message

    if error.validator == "required":
        match = _REQUIRED_PROPERTY.match(error.message)
        if match:
            name = match.group("name")
            key = f"required.{name}" if name in original_required else f"missing.{name}"
            if name in original_required:
                default = f"Missing required property: {name}"
            else:
                default = f"Missing property: {name}"
            message = messages.get(key, default)
    elif isinstance(error.validator, str) and error.validator in messages:
        message = messages[error.validator]

    path = ".".join(str(part) for part in error.absolute_path)
    return f"{path}: {message}" if path else message


def validate(
    data: Any,
    schema: Any,
    options: Optional[SchemaValidationOptions] = None,
) -> ValidationResult:
    """Validate ``data`` against a JSON Schema.

    Args:
        data: Value to validate
        schema: JSON Schema (a mapping), or a one-element list meaning an
            array of that item schema
        options: Validation options

    Returns:
        The validation result; errors are prefixed with the dotted path of
        the offending value
    """
    options = options or SchemaValidationOptions()
    schema = _normalize_schema(schema)
    if not isinstance(schema, (dict, bool)):
        return ValidationResult(valid=False, errors=["Invalid schema: must be an object"])

    original_required: List[str] = []
    if isinstance(schema, dict):
        original_required = list(schema.get("required", []))
    prepared = _apply_options(copy.deepcopy(schema), options)

    try:
        Draft202012Validator.check_schema(prepared)
    except SchemaError as exc:
        return ValidationResult(valid=False, errors=[f"Schema validation error: {exc.message}"])

    validator = Draft202012Validator(prepared)
    errors = [
        _format_error(error, original_required, options)
        for error in sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path))
    ]
    return ValidationResult.from_errors(errors)


def _as_dict(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True)
    return value


def _entries(items: List[Any]) -> List[Dict[str, Any]]:
    return [item if isinstance(item, dict) else {} for item in items]


class ResponseValidator:
    """Structural validation of tool responses, resources and schemas."""

    @staticmethod
    def create_schema_validator(
        schema: Any,
        options: Optional[SchemaValidationOptions] = None,
    ) -> SchemaValidatorFn:
        """Return a reusable validator function bound to ``schema``."""

        def validator(data: Any) -> ValidationResult:
            return validate(data, schema, options)

        return validator

    @classmethod
    def _check_schema(cls, data: Any, schema: Any, errors: List[str]) -> None:
        result = cls.create_schema_validator(schema)(data)
        if not result.valid:
            errors.extend(result.errors or [])

    @classmethod
    def validate_tool_response(cls, response: Any, schema: Any = None) -> ValidationResult:
        """Validate a tool response envelope.

        Args:
            response: Response mapping or response model
            schema: Optional JSON Schema for the ``result``
        """
        response = _as_dict(response)
        if response is None:
            return ValidationResult.from_errors(["Response is null or undefined"])
        if not isinstance(response, dict):
            return ValidationResult.from_errors(
                [f"Response is not an object: {type(response).__name__}"]
            )

        errors: List[str] = []
        status = response.get("status")
        if not status:
            errors.append('Response is missing required "status" field')
        elif status not in TOOL_STATUSES:
            errors.append(f"Invalid status value: {status}")

        if status == "success" and "result" not in response:
            errors.append('Success response is missing "result" field')
        if status == "error" and not response.get("error"):
            errors.append('Error response is missing "error" field')
        if status == "accepted" and not (response.get("taskId") or response.get("task_id")):
            errors.append('Accepted response is missing "taskId" field')

        if schema is not None and response.get("result"):
            cls._check_schema(response["result"], schema, errors)

        return ValidationResult.from_errors(errors)

    @classmethod
    def validate_resource(cls, resource: Any, schema: Any = None) -> ValidationResult:
        """Validate a resource mapping (or :class:`~mcp_testkit.core.types.Resource`)."""
        resource = _as_dict(resource)
        if resource is None:
            return ValidationResult.from_errors(["Resource is null or undefined"])
        if not isinstance(resource, dict):
            return ValidationResult.from_errors(
                [f"Resource is not an object: {type(resource).__name__}"]
            )

        errors = [
            f'Resource is missing required "{field}" field'
            for field in ("id", "type", "name")
            if not resource.get(field)
        ]

        if schema is not None:
            cls._check_schema(resource, schema, errors)

        return ValidationResult.from_errors(errors)

    @staticmethod
    def validate_schema(schema: Any) -> ValidationResult:
        """Validate a server schema mapping (or :class:`~mcp_testkit.core.types.Schema`)."""
        schema = _as_dict(schema)
        if schema is None:
            return ValidationResult.from_errors(["Schema is null or undefined"])
        if not isinstance(schema, dict):
            return ValidationResult.from_errors(
                [f"Schema is not an object: {type(schema).__name__}"]
            )

        errors: List[str] = []
        tools = schema.get("tools")
        if not isinstance(tools, list):
            errors.append('Schema is missing or has invalid "tools" array')
        else:
            for index, tool in enumerate(_entries(tools)):
                if not tool.get("name"):
                    errors.append(f'Tool at index {index} is missing required "name" field')
                if tool.get("parameters") is None:
                    errors.append(f'Tool at index {index} is missing required "parameters" field')

        resources = schema.get("resources")
        if not isinstance(resources, list):
            errors.append('Schema is missing or has invalid "resources" array')
        else:
            for index, resource in enumerate(_entries(resources)):
                if not resource.get("type"):
                    errors.append(f'Resource at index {index} is missing required "type" field')
                if not isinstance(resource.get("properties"), dict):
                    errors.append(
                        f'Resource at index {index} is missing or has invalid "properties" field'
                    )

        return ValidationResult.from_errors(errors)


class MCPValidator:
    """Validate raw JSON-RPC messages against the ``mcp`` SDK types.

    Requests are checked as a JSON-RPC request envelope and then as the
    typed request; responses as a JSON-RPC response envelope and then as the
    typed result.
    """

    @staticmethod
    def validate_model(data: Any, model: Type[BaseModel]) -> ValidationResult:
        """Validate ``data`` against a pydantic model."""
        try:
            model.model_validate(data)
        except ValidationError as exc:
            return ValidationResult.from_errors(
                [
                    f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
                    if err["loc"]
                    else err["msg"]
                    for err in exc.errors()
                ]
            )
        return ValidationResult(valid=True)

    @classmethod
    def _validate_request(cls, request: Any, model: Type[BaseModel]) -> ValidationResult:
        envelope = cls.validate_model(request, mcp_types.JSONRPCRequest)
        if not envelope.valid:
            return envelope
        body = {key: request[key] for key in ("method", "params") if key in request}
        return cls.validate_model(body, model)

    @classmethod
    def _validate_response(cls, response: Any, model: Type[BaseModel]) -> ValidationResult:
        envelope = cls.validate_model(response, mcp_types.JSONRPCResponse)
        if not envelope.valid:
            return envelope
        return cls.validate_model(response["result"], model)

    @classmethod
    def validate_list_tools_request(cls, request: Any) -> ValidationResult:
        return cls._validate_request(request, mcp_types.ListToolsRequest)

    @classmethod
    def validate_list_tools_response(cls, response: Any) -> ValidationResult:
        return cls._validate_response(response, mcp_types.ListToolsResult)

    @classmethod
    def validate_call_tool_request(cls, request: Any) -> ValidationResult:
        return cls._validate_request(request, mcp_types.CallToolRequest)

    @classmethod
    def validate_call_tool_response(cls, response: Any) -> ValidationResult:
        return cls._validate_response(response, mcp_types.CallToolResult)

    @classmethod
    def validate_list_resources_request(cls, request: Any) -> ValidationResult:
        return cls._validate_request(request, mcp_types.ListResourcesRequest)

    @classmethod
    def validate_list_resources_response(cls, response: Any) -> ValidationResult:
        return cls._validate_response(response, mcp_types.ListResourcesResult)

    @classmethod
    def validate_read_resource_request(cls, request: Any) -> ValidationResult:
        return cls._validate_request(request, mcp_types.ReadResourceRequest)

    @classmethod
    def validate_read_resource_response(cls, response: Any) -> ValidationResult:
        return cls._validate_response(response, mcp_types.ReadResourceResult)


__all__ = [
    "SchemaValidationOptions",
    "validate",
    "ResponseValidator",
    "MCPValidator",
]
