"""
Structured logging for PromptIQ.
Provides JSON-formatted logs for production and text logs for development.

Features:
- JSON and text log formats
- Optional file rotation
- Request ID propagation through contextvars
- Specialized loggers for HTTP requests and chat streams
"""

import json
import logging
import os
import sys
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import IO, Any
from uuid import uuid4

_log_context: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})

_request_id: ContextVar[str | None] = ContextVar("request_id", default=None)

ROOT_LOGGER_NAME = "promptiq"


@dataclass
class LogConfig:
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "json"  # "json" or "text"
    include_timestamp: bool = True

    # File logging
    file_enabled: bool = False
    file_path: str = "logs/promptiq.log"
    file_max_bytes: int = 10 * 1024 * 1024  # 10MB
    file_backup_count: int = 5

    def __post_init__(self):
        """Validate configuration."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.level.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {self.level}. Must be one of {valid_levels}")
        self.level = self.level.upper()
        if self.format not in ("json", "text"):
            raise ValueError(f"Invalid log format: {self.format}. Must be 'json' or 'text'")

    @classmethod
    def from_env(cls) -> "LogConfig":
        """Create configuration from environment variables."""
        return cls(
            level=os.environ.get("LOG_LEVEL", "INFO"),
            format=os.environ.get("LOG_FORMAT", "json"),
            include_timestamp=os.environ.get("LOG_INCLUDE_TIMESTAMP", "true").lower() == "true",
            file_enabled=os.environ.get("LOG_FILE_ENABLED", "false").lower() == "true",
            file_path=os.environ.get("LOG_FILE_PATH", "logs/promptiq.log"),
            file_max_bytes=int(os.environ.get("LOG_FILE_MAX_BYTES", str(10 * 1024 * 1024))),
            file_backup_count=int(os.environ.get("LOG_FILE_BACKUP_COUNT", "5")),
        )


class JSONFormatter(logging.Formatter):
    """JSON log formatter with request ID support."""

    def __init__(
        self,
        include_timestamp: bool = True,
        service_name: str = "promptiq",
    ):
        super().__init__()
        self.include_timestamp = include_timestamp
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }

        if self.include_timestamp:
            log_data["timestamp"] = datetime.now(timezone.utc).isoformat()

        request_id = _request_id.get()
        if request_id:
            log_data["request_id"] = request_id

        context = _log_context.get()
        if context:
            log_data.update(context)

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        if record.levelno >= logging.ERROR:
            log_data["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else "Unknown",
                "message": str(record.exc_info[1]) if record.exc_info[1] else "",
                "stacktrace": self.formatException(record.exc_info),
            }

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text log formatter with request ID support."""

    def __init__(self, include_timestamp: bool = True):
        fmt = "%(levelname)s - %(name)s - %(message)s"
        if include_timestamp:
            fmt = "%(asctime)s - " + fmt
        super().__init__(fmt, datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        """Format with request ID if available."""
        message = super().format(record)
        request_id = _request_id.get()
        if request_id:
            return f"[{request_id[:8]}] {message}"
        return message


_console_handler: logging.Handler | None = None
_file_handler: logging.Handler | None = None


def setup_logging(
    config: LogConfig,
    stream: IO[str] | None = None,
    service_name: str = "promptiq",
) -> None:
    """Set up logging with the given configuration."""
    global _console_handler, _file_handler

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)

    if _console_handler:
        root_logger.removeHandler(_console_handler)
    if _file_handler:
        root_logger.removeHandler(_file_handler)
        _file_handler.close()
        _file_handler = None

    if config.format == "json":
        formatter: logging.Formatter = JSONFormatter(
            include_timestamp=config.include_timestamp,
            service_name=service_name,
        )
    else:
        formatter = TextFormatter(include_timestamp=config.include_timestamp)

    _console_handler = logging.StreamHandler(stream or sys.stdout)
    _console_handler.setFormatter(formatter)
    root_logger.addHandler(_console_handler)

    if config.file_enabled:
        log_path = Path(config.file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        _file_handler = RotatingFileHandler(
            config.file_path,
            maxBytes=config.file_max_bytes,
            backupCount=config.file_backup_count,
            encoding="utf-8",
        )
        _file_handler.setFormatter(formatter)
        root_logger.addHandler(_file_handler)

    root_logger.setLevel(getattr(logging, config.level))
    root_logger.propagate = False


def get_logger(name: str = "") -> logging.Logger:
    """Get a logger with the given name."""
    if name:
        return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
    return logging.getLogger(ROOT_LOGGER_NAME)


class LogContext:
    """Context manager for adding fields to all logs within a block."""

    def __init__(self, **fields: Any):
        self.fields = fields
        self.token = None

    def __enter__(self):
        current = _log_context.get()
        merged = {**current, **self.fields}
        self.token = _log_context.set(merged)
        return self

    def __exit__(self, *args):
        if self.token is not None:
            _log_context.reset(self.token)


def get_request_id() -> str | None:
    """Get the current request ID."""
    return _request_id.get()


def generate_request_id() -> str:
    """Generate a new request ID."""
    return str(uuid4())


class RequestIDContext:
    """Context manager for request ID."""

    def __init__(self, request_id: str | None = None):
        self.request_id = request_id or generate_request_id()
        self._token = None

    def __enter__(self) -> str:
        self._token = _request_id.set(self.request_id)
        return self.request_id

    def __exit__(self, *args: Any) -> None:
        if self._token:
            _request_id.reset(self._token)


class RequestLogger:
    """Logger for HTTP requests."""

    def __init__(self):
        self.logger = get_logger("http")

    def log_request_end(
        self,
        method: str,
        path: str,
        status_code: int,
        duration_ms: float,
        request_id: str,
        **extra: Any,
    ) -> None:
        """Log the completion of an HTTP request."""
        self.logger.info(
            f"{method} {path} completed with {status_code}",
            extra={
                "extra_fields": {
                    "event": "request_completed",
                    "method": method,
                    "path": path,
                    "status_code": status_code,
                    "duration_ms": duration_ms,
                    "request_id": request_id,
                    **extra,
                }
            },
        )

    def log_request_error(
        self,
        method: str,
        path: str,
        error: str,
        request_id: str,
        **extra: Any,
    ) -> None:
        """Log an HTTP request error."""
        self.logger.error(
            f"{method} {path} error: {error}",
            extra={
                "extra_fields": {
                    "event": "request_error",
                    "method": method,
                    "path": path,
                    "error": error,
                    "request_id": request_id,
                    **extra,
                }
            },
        )


class StreamLogger:
    """Logger for chat completion streams, on both the proxy and the client side."""

    def __init__(self):
        self.logger = get_logger("stream")

    def log_stream_start(
        self,
        thread_id: str,
        model: str,
        message_count: int,
        **extra: Any,
    ) -> None:
        """Log the start of a stream."""
        self.logger.info(
            f"Stream for {model} started",
            extra={
                "extra_fields": {
                    "event": "stream_started",
                    "thread_id": thread_id,
                    "model": model,
                    "message_count": message_count,
                    **extra,
                }
            },
        )

    def log_stream_end(
        self,
        thread_id: str,
        model: str,
        status: str,
        duration_ms: float,
        prompt_tokens: int | None = None,
        completion_tokens: int | None = None,
        total_tokens: int | None = None,
        **extra: Any,
    ) -> None:
        """Log a stream reaching a terminal state."""
        self.logger.info(
            f"Stream for {model} ended with status {status} in {duration_ms}ms",
            extra={
                "extra_fields": {
                    "event": "stream_completed",
                    "thread_id": thread_id,
                    "model": model,
                    "status": status,
                    "duration_ms": duration_ms,
                    "prompt_tokens": prompt_tokens,
                    "completion_tokens": completion_tokens,
                    "total_tokens": total_tokens,
                    **extra,
                }
            },
        )

    def log_stream_error(
        self,
        thread_id: str,
        model: str,
        error: str,
        **extra: Any,
    ) -> None:
        """Log a stream failure."""
        self.logger.error(
            f"Stream for {model} failed: {error}",
            extra={
                "extra_fields": {
                    "event": "stream_error",
                    "thread_id": thread_id,
                    "model": model,
                    "error": error,
                    **extra,
                }
            },
        )


request_logger = RequestLogger()
stream_logger = StreamLogger()
