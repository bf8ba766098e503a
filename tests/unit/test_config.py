"""Unit tests for configuration management."""

import json
import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from mcp_testkit.core.config import (
    ClientConfigModel,
    LogConfigModel,
    MCPTestConfig,
    ServerConfigModel,
    get_default_config,
    load_config,
    load_config_from_env,
    load_config_from_file,
    validate_config,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Isolate tests from MCP_TEST_* variables and default config files."""
    for key in list(os.environ):
        if key.upper().startswith("MCP_TEST_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)


class TestClientConfigModel:
    """Tests for ClientConfigModel."""

    def test_defaults(self) -> None:
        """Test default client configuration."""
        config = ClientConfigModel()
        assert config.base_url == "http://localhost:6277"
        assert config.timeout == 10.0
        assert config.response_format == "json"
        assert config.transport == "http"
        assert config.rpc_path == "/mcp"
        assert config.auth_token is None

    def test_trailing_slash_stripped(self) -> None:
        """Test base URL normalization."""
        assert ClientConfigModel(base_url="http://host:1/").base_url == "http://host:1"

    def test_rpc_path_made_absolute(self) -> None:
        """Test RPC path normalization."""
        assert ClientConfigModel(rpc_path="rpc").rpc_path == "/rpc"

    def test_timeout_must_be_positive(self) -> None:
        """Test timeout validation."""
        with pytest.raises(ValidationError):
            ClientConfigModel(timeout=0)

    def test_transport_choices(self) -> None:
        """Test transport validation."""
        with pytest.raises(ValidationError):
            ClientConfigModel(transport="grpc")  # type: ignore[arg-type]


class TestServerConfigModel:
    """Tests for ServerConfigModel."""

    def test_defaults(self) -> None:
        """Test default server configuration."""
        config = ServerConfigModel(command="python")
        assert config.args == []
        assert config.port == 6277
        assert config.startup_timeout == 5.0
        assert config.shutdown_timeout == 3.0
        assert config.readiness == "liveness"
        assert config.health_check_path == "/health"
        assert config.health_check_interval == 1.0

    def test_command_required(self) -> None:
        """Test the command is mandatory."""
        with pytest.raises(ValidationError):
            ServerConfigModel()  # type: ignore[call-arg]

    def test_port_validation(self) -> None:
        """Test port bounds."""
        with pytest.raises(ValidationError):
            ServerConfigModel(command="python", port=0)
        with pytest.raises(ValidationError):
            ServerConfigModel(command="python", port=70000)

    def test_sinks_excluded_from_dump(self) -> None:
        """Test output sinks are not serialized."""
        config = ServerConfigModel(command="python", on_stdout=print)
        assert config.on_stdout is print
        assert "on_stdout" not in config.model_dump()


class TestLogConfigModel:
    """Tests for LogConfigModel."""

    def test_defaults(self) -> None:
        """Test default log configuration."""
        config = LogConfigModel()
        assert config.level == "INFO"
        assert config.format == "text"
        assert config.enable_console is True

    def test_invalid_level(self) -> None:
        """Test log level validation."""
        with pytest.raises(ValidationError):
            LogConfigModel(level="LOUD")  # type: ignore[arg-type]


class TestLoadConfig:
    """Tests for configuration loading."""

    def test_load_toml_config(self, tmp_path: Path) -> None:
        """Test loading from TOML."""
        path = tmp_path / "custom.toml"
        path.write_text(
            '[client]\nbase_url = "http://localhost:9000/"\ntimeout = 2.5\n\n'
            '[server]\ncommand = "python"\nargs = ["server.py"]\nport = 9000\n'
        )
        config = load_config_from_file(path)
        assert config.client.base_url == "http://localhost:9000"
        assert config.client.timeout == 2.5
        assert config.server is not None
        assert config.server.args == ["server.py"]
        assert config.server.port == 9000

    def test_load_json_config(self, tmp_path: Path) -> None:
        """Test loading from JSON."""
        path = tmp_path / "custom.json"
        path.write_text(json.dumps({"logging": {"level": "DEBUG", "format": "json"}}))
        config = load_config_from_file(path)
        assert config.logging.level == "DEBUG"
        assert config.server is None

    def test_load_nonexistent_file(self) -> None:
        """Test missing files raise."""
        with pytest.raises(FileNotFoundError):
            load_config_from_file("missing.toml")

    def test_load_unsupported_format(self, tmp_path: Path) -> None:
        """Test unsupported suffixes raise."""
        path = tmp_path / "config.yaml"
        path.write_text("client: {}")
        with pytest.raises(ValueError, match="Unsupported"):
            load_config_from_file(path)

    def test_load_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test environment variables with nested delimiter."""
        monkeypatch.setenv("MCP_TEST_CLIENT__BASE_URL", "http://env:1234")
        monkeypatch.setenv("MCP_TEST_CLIENT__TIMEOUT", "3")
        config = load_config_from_env()
        assert config.client.base_url == "http://env:1234"
        assert config.client.timeout == 3.0

    def test_default_file_discovered(self, tmp_path: Path) -> None:
        """Test mcptest.config.toml in the working directory is picked up."""
        (tmp_path / "mcptest.config.toml").write_text('[client]\nrpc_path = "/rpc"\n')
        assert load_config().client.rpc_path == "/rpc"

    def test_env_overrides_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test environment has precedence over the file."""
        path = tmp_path / "custom.toml"
        path.write_text('[client]\nbase_url = "http://file:1"\ntimeout = 4.0\n')
        monkeypatch.setenv("MCP_TEST_CLIENT__TIMEOUT", "7")

        config = load_config(path)
        assert config.client.timeout == 7.0
        assert config.client.base_url == "http://file:1"

    def test_file_only_without_env_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test env_override=False ignores the environment."""
        path = tmp_path / "custom.toml"
        path.write_text("[client]\ntimeout = 4.0\n")
        monkeypatch.setenv("MCP_TEST_CLIENT__TIMEOUT", "7")

        config = load_config(path, env_override=False)
        assert config.client.timeout == 4.0


class TestValidateConfig:
    """Tests for validate_config and defaults."""

    def test_validate_dict(self) -> None:
        """Test dictionary validation."""
        assert validate_config({"client": {"timeout": 1.0}}) is True

    def test_validate_invalid_dict(self) -> None:
        """Test invalid dictionaries raise."""
        with pytest.raises(ValidationError):
            validate_config({"client": {"timeout": -1}})

    def test_validate_wrong_type(self) -> None:
        """Test wrong types raise."""
        with pytest.raises(TypeError):
            validate_config("config")  # type: ignore[arg-type]

    def test_get_default_config(self) -> None:
        """Test defaults."""
        config = get_default_config()
        assert isinstance(config, MCPTestConfig)
        assert validate_config(config) is True
        assert config.client.base_url == "http://localhost:6277"
