"""Logging setup for mcp-testkit.

Text output to the console goes through :class:`rich.logging.RichHandler`;
JSON output uses :class:`ContextualJSONFormatter`. Context fields bound with
:class:`LoggerContext` (server name, pid, tool, ...) are attached to every
record emitted inside the block, including from other asyncio tasks spawned
within it.

Example:
    >>> from mcp_testkit.core.config import LogConfigModel
    >>> logger = setup_logger(LogConfigModel(level="DEBUG", format="json"))
    >>> with LoggerContext(server="echo", pid=4242):
    ...     logger.info("spawned")
"""

import json
import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from rich.console import Console
from rich.logging import RichHandler

from mcp_testkit.core.config import LogConfigModel

ROOT_LOGGER_NAME = "mcp_testkit"
REDACTED = "***REDACTED***"

_SENSITIVE_KEYS = ("password", "passwd", "secret", "token", "apikey", "authorization", "credential")
_SENSITIVE_STRING = re.compile(
    r"(?P<key>password|passwd|secret|token|api[_-]?key|authorization)"
    r"(?P<sep>\s*[=:]\s*)(?P<quote>['\"]?)(?P<value>[^'\"\s,]+)(?P=quote)",
    re.IGNORECASE,
)
_BEARER = re.compile(r"(Bearer\s+)\S+", re.IGNORECASE)

_log_context: ContextVar[Dict[str, Any]] = ContextVar("mcp_testkit_log_context", default={})

_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "context"}


def _is_sensitive_key(key: str) -> bool:
    normalized = key.lower().replace("_", "").replace("-", "")
    return any(pattern in normalized for pattern in _SENSITIVE_KEYS)


def sanitize_sensitive_data(data: Any, redact: bool = True) -> Any:
    """Remove or redact secrets from log data.

    Mappings are walked recursively; keys that look like credentials are
    replaced with ``***REDACTED***`` (or dropped when ``redact`` is False).
    Strings have ``key=value`` credentials and bearer tokens masked.

    Args:
        data: Mapping, list, string or scalar to sanitize
        redact: Redact sensitive values instead of removing the keys

    Returns:
        A sanitized copy of ``data``
    """
    if isinstance(data, dict):
        result: Dict[Any, Any] = {}
        for key, value in data.items():
            if isinstance(key, str) and _is_sensitive_key(key):
                if redact:
                    result[key] = REDACTED
                continue
            result[key] = sanitize_sensitive_data(value, redact)
        return result
    if isinstance(data, (list, tuple)):
        return type(data)(sanitize_sensitive_data(item, redact) for item in data)
    if isinstance(data, str):
        masked = _SENSITIVE_STRING.sub(
            lambda m: f"{m.group('key')}{m.group('sep')}{m.group('quote')}{REDACTED}{m.group('quote')}",
            data,
        )
        return _BEARER.sub(lambda m: f"{m.group(1)}{REDACTED}", masked)
    return data


class _ContextFilter(logging.Filter):
    """Attach the active :class:`LoggerContext` fields to each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        bound = _log_context.get()
        extra = getattr(record, "context", None) or {}
        record.context = {**bound, **extra}
        return True


class ContextualJSONFormatter(logging.Formatter):
    """Format records as one JSON object per line.

    Context fields are merged at the top level after sanitization.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = getattr(record, "context", None) or {}
        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        }
        for key, value in sanitize_sensitive_data({**extras, **context}).items():
            entry.setdefault(key, value)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ContextualTextFormatter(logging.Formatter):
    """Plain text formatter that appends context fields as ``key=value`` pairs."""

    def __init__(self, with_timestamp: bool = True) -> None:
        fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s" if with_timestamp else "%(message)s"
        super().__init__(fmt)

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        context = sanitize_sensitive_data(getattr(record, "context", None) or {})
        if not context:
            return text
        fields = " ".join(f"{key}={value}" for key, value in context.items())
        return f"{text} [{fields}]"


def _console_handler(config: LogConfigModel) -> logging.Handler:
    if config.format == "json":
        handler: logging.Handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(ContextualJSONFormatter())
        return handler
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    handler.setFormatter(ContextualTextFormatter(with_timestamp=False))
    return handler


def _file_handler(config: LogConfigModel, path: str) -> logging.Handler:
    log_path = Path(path)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_path, encoding="utf-8")
    if config.format == "json":
        handler.setFormatter(ContextualJSONFormatter())
    else:
        handler.setFormatter(ContextualTextFormatter())
    return handler


def setup_logger(
    config: Optional[LogConfigModel] = None,
    name: str = ROOT_LOGGER_NAME,
) -> logging.Logger:
    """Configure a logger from a :class:`LogConfigModel`.

    Existing handlers on the logger are closed and replaced, so calling this
    twice does not duplicate output.

    Args:
        config: Logging configuration (defaults are used when omitted)
        name: Logger name

    Returns:
        The configured logger
    """
    config = config or LogConfigModel()
    logger = logging.getLogger(name)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(getattr(logging, config.level))
    logger.propagate = False

    handlers = []
    if config.enable_console:
        handlers.append(_console_handler(config))
    if config.file:
        handlers.append(_file_handler(config, config.file))

    for handler in handlers:
        handler.addFilter(_ContextFilter())
        logger.addHandler(handler)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return the package logger or one of its children.

    The ``mcp_testkit`` root logger is configured with defaults on first use.

    Args:
        name: Child name (module ``__name__`` values are accepted as is)
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if not root.handlers:
        setup_logger(LogConfigModel(), ROOT_LOGGER_NAME)
    if name is None or name == ROOT_LOGGER_NAME:
        return root
    if name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return root.getChild(name)


class LoggerContext:
    """Bind context fields to every record logged inside the block.

    Nested contexts merge with (and override) the enclosing fields.

    Example:
        >>> with LoggerContext(server="echo"):
        ...     with LoggerContext(tool="add"):
        ...         logger.info("calling")  # server=echo tool=add
    """

    def __init__(self, **fields: Any) -> None:
        self.fields = fields
        self._token: Any = None

    def __enter__(self) -> "LoggerContext":
        self._token = _log_context.set({**_log_context.get(), **self.fields})
        return self

    def __exit__(self, *exc_info: Any) -> None:
        _log_context.reset(self._token)
        self._token = None


def log_with_context(logger: logging.Logger, level: str, message: str, **context: Any) -> None:
    """Log a message with one-off context fields."""
    logger.log(getattr(logging, level.upper()), message, extra={"context": context})


__all__ = [
    "ContextualJSONFormatter",
    "ContextualTextFormatter",
    "LoggerContext",
    "get_logger",
    "log_with_context",
    "sanitize_sensitive_data",
    "setup_logger",
]
