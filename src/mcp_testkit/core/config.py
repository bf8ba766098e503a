"""Configuration management for mcp-testkit.

This module provides Pydantic models for the client, the server supervisor and
logging, loadable from files (TOML/JSON) and environment variables with proper
precedence.
"""

import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

if sys.version_info < (3, 11):
    import tomli as tomllib  # type: ignore[import-not-found]
else:
    import tomllib

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from mcp_testkit.core.types import (
    LogFormat,
    LogLevel,
    OutputSink,
    ReadinessType,
    ResponseFormat,
    TransportType,
)

DEFAULT_CONFIG_FILES = (
    "mcptest.config.toml",
    "mcptest.config.json",
    ".mcptest.toml",
    ".mcptest.json",
)


class ClientConfigModel(BaseModel):
    """Protocol client configuration.

    Attributes:
        base_url: Server base URL (trailing slash is stripped)
        auth_token: Optional bearer token
        headers: Extra headers sent with every request
        timeout: Per-request timeout in seconds
        response_format: Default response deserialization
        transport: Transport kind
        rpc_path: Path of the JSON-RPC endpoint
    """

    base_url: str = Field(default="http://localhost:6277", min_length=1, description="Base URL")
    auth_token: Optional[str] = Field(default=None, description="Bearer token")
    headers: Dict[str, str] = Field(default_factory=dict, description="Extra headers")
    timeout: float = Field(default=10.0, gt=0, description="Request timeout (seconds)")
    response_format: ResponseFormat = Field(default="json", description="Response format")
    transport: TransportType = Field(default="http", description="Transport type")
    rpc_path: str = Field(default="/mcp", description="JSON-RPC endpoint path")

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the base URL."""
        return v.rstrip("/")

    @field_validator("rpc_path")
    @classmethod
    def ensure_leading_slash(cls, v: str) -> str:
        """Make sure the RPC path is absolute."""
        return v if v.startswith("/") else f"/{v}"


class ServerConfigModel(BaseModel):
    """Server subprocess configuration.

    Attributes:
        command: Executable to launch
        args: Command line arguments
        env: Environment overrides merged over the parent environment
        cwd: Working directory
        host: Host the server listens on
        port: Port the server listens on
        startup_timeout: Readiness budget in seconds
        shutdown_timeout: Grace period before SIGKILL in seconds
        readiness: Readiness strategy
        health_check_path: Path polled by the health readiness strategy
        health_check_interval: Delay between health checks in seconds
        on_stdout: Sink for decoded stdout chunks
        on_stderr: Sink for decoded stderr chunks
    """

    command: str = Field(..., min_length=1, description="Executable")
    args: List[str] = Field(default_factory=list, description="Arguments")
    env: Dict[str, str] = Field(default_factory=dict, description="Environment overrides")
    cwd: Optional[str] = Field(default=None, description="Working directory")
    host: str = Field(default="localhost", description="Host address")
    port: int = Field(default=6277, ge=1, le=65535, description="Port number")
    startup_timeout: float = Field(default=5.0, gt=0, description="Startup timeout (seconds)")
    shutdown_timeout: float = Field(default=3.0, gt=0, description="Shutdown timeout (seconds)")
    readiness: ReadinessType = Field(default="liveness", description="Readiness strategy")
    health_check_path: str = Field(default="/health", description="Health check path")
    health_check_interval: float = Field(
        default=1.0, gt=0, description="Health check interval (seconds)"
    )
    on_stdout: Optional[OutputSink] = Field(default=None, exclude=True)
    on_stderr: Optional[OutputSink] = Field(default=None, exclude=True)


class LogConfigModel(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level
        format: Log format (json or text)
        file: Optional log file path
        enable_console: Whether to log to console
    """

    level: LogLevel = Field(default="INFO", description="Log level")
    format: LogFormat = Field(default="text", description="Log format")
    file: Optional[str] = Field(default=None, description="Log file path")
    enable_console: bool = Field(default=True, description="Enable console logging")


class MCPTestConfig(BaseSettings):
    """Complete mcp-testkit configuration.

    Can be loaded from TOML/JSON files and environment variables
    (``MCP_TEST_`` prefix, ``__`` for nested values).

    Attributes:
        client: Protocol client configuration
        server: Optional server subprocess configuration
        logging: Logging configuration
    """

    model_config = SettingsConfigDict(
        env_prefix="MCP_TEST_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    client: ClientConfigModel = Field(
        default_factory=lambda: ClientConfigModel(),
        description="Client configuration",
    )
    server: Optional[ServerConfigModel] = Field(
        default=None,
        description="Server subprocess configuration",
    )
    logging: LogConfigModel = Field(
        default_factory=lambda: LogConfigModel(),
        description="Logging configuration",
    )


def load_config_from_file(file_path: Union[str, Path]) -> MCPTestConfig:
    """Load configuration from a TOML or JSON file.

    Args:
        file_path: Path to configuration file (.toml or .json)

    Returns:
        Loaded and validated configuration

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If file format is invalid
        ValidationError: If configuration is invalid

    Example:
        >>> config = load_config_from_file("mcptest.config.toml")
        >>> print(config.client.base_url)
        http://localhost:6277
    """
    return MCPTestConfig(**_read_config_file(file_path))


def _read_config_file(file_path: Union[str, Path]) -> Dict[str, Any]:
    path = Path(file_path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")

    suffix = path.suffix.lower()

    if suffix == ".toml":
        with open(path, "rb") as f:
            return tomllib.load(f)
    if suffix == ".json":
        with open(path, "r") as f:
            return json.load(f)
    raise ValueError(f"Unsupported configuration file format: {suffix}")


def load_config_from_env() -> MCPTestConfig:
    """Load configuration from environment variables.

    Example:
        >>> # With env: MCP_TEST_CLIENT__BASE_URL=http://localhost:9000
        >>> config = load_config_from_env()
        >>> print(config.client.base_url)
        http://localhost:9000
    """
    return MCPTestConfig()


def load_config(
    file_path: Optional[Union[str, Path]] = None,
    env_override: bool = True,
) -> MCPTestConfig:
    """Load configuration from file and/or environment with precedence.

    Precedence (highest to lowest):
    1. Environment variables
    2. Configuration file
    3. Defaults

    Args:
        file_path: Optional path to configuration file. When omitted the
            default file names are searched in the working directory.
        env_override: Whether environment variables override file config

    Returns:
        Merged and validated configuration
    """
    if file_path is None:
        file_path = next(
            (Path(name) for name in DEFAULT_CONFIG_FILES if Path(name).exists()),
            None,
        )

    config_data: Dict[str, Any] = {}
    if file_path is not None:
        config_data = _read_config_file(file_path)

    if not env_override:
        return MCPTestConfig.model_validate(config_data)

    env_data = load_config_from_env().model_dump(exclude_unset=True, exclude_none=True)
    return MCPTestConfig(**_deep_merge(config_data, env_data))


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def validate_config(config: Union[MCPTestConfig, Dict[str, Any]]) -> bool:
    """Validate a configuration object or dictionary.

    Args:
        config: Configuration to validate

    Returns:
        True if valid

    Raises:
        ValidationError: If configuration is invalid
        TypeError: If config is neither a dict nor a config object
    """
    if isinstance(config, dict):
        MCPTestConfig(**config)
    elif not isinstance(config, MCPTestConfig):
        raise TypeError(f"Expected MCPTestConfig or dict, got {type(config)}")

    return True


def get_default_config() -> MCPTestConfig:
    """Get default configuration with all defaults filled in."""
    return MCPTestConfig()


__all__ = [
    # Models
    "ClientConfigModel",
    "ServerConfigModel",
    "LogConfigModel",
    "MCPTestConfig",
    # Functions
    "load_config_from_file",
    "load_config_from_env",
    "load_config",
    "validate_config",
    "get_default_config",
]
