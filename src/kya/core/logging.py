# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Structured logging configuration for the KYA ledger.

Provides:
- Consistent log formatting across the ledger and CLI
- JSON formatter for production (machine-parseable)
- Standard formatter for development (human-readable)
- Correlation IDs tying every log line to one ledger operation
- Sanitized operation logging (proof payloads are never logged)
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# Context variable for correlation ID (thread/async-safe)
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> str | None:
    """Get the current correlation ID.

    Returns:
        Current correlation ID or None if not set.
    """
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None) -> None:
    """Set the correlation ID for the current context.

    Args:
        correlation_id: The correlation ID to set, or None to clear.
    """
    _correlation_id.set(correlation_id)


def generate_correlation_id() -> str:
    """Generate a new unique correlation ID."""
    return str(uuid.uuid4())


@contextmanager
def correlation_context(
    correlation_id: str | None = None,
) -> Generator[str, None, None]:
    """Context manager for correlation ID scope.

    Nested contexts without an explicit ID inherit the outer ID, so a
    reentrant ledger call logs under the operation that triggered it.

    Args:
        correlation_id: Optional correlation ID to use. If None, reuses the
            current one or generates a new one.

    Yields:
        The correlation ID being used.
    """
    cid = correlation_id or get_correlation_id() or generate_correlation_id()
    token = _correlation_id.set(cid)
    try:
        yield cid
    finally:
        _correlation_id.reset(token)


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production environments.

    Produces structured logs that can be parsed by log aggregation tools.
    Includes correlation ID when present in context.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            log_data["correlation_id"] = correlation_id

        # Add source location for warnings and errors
        if record.levelno >= logging.WARNING:
            log_data["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_data"):
            log_data["extra"] = record.extra_data

        return json.dumps(log_data, default=str)


class StandardFormatter(logging.Formatter):
    """Standard log formatter for development.

    Human-readable format with colors for terminal output.
    Includes correlation ID when present in context.
    """

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"
    CORRELATION_COLOR = "\033[90m"  # Gray

    def __init__(self, use_colors: bool = True):
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        # Copy so other handlers see the unmodified record
        record = logging.makeLogRecord(record.__dict__)

        correlation_id = get_correlation_id()
        if correlation_id:
            short_cid = correlation_id[:8]
            if self.use_colors:
                cid_str = f"{self.CORRELATION_COLOR}[{short_cid}]{self.RESET} "
            else:
                cid_str = f"[{short_cid}] "
            record.msg = cid_str + str(record.msg)

        if self.use_colors:
            color = self.COLORS.get(record.levelname, "")
            record.levelname = f"{color}{record.levelname}{self.RESET}"

        return super().format(record)


def configure_logging(
    level: str | int = "INFO",
    json_format: bool | None = None,
    log_file: str | None = None,
) -> None:
    """Configure logging for the ledger and CLI.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON format (auto-detect if None)
        log_file: Optional file to write logs to

    Environment variables:
        KYA_LOG_LEVEL: Override log level
        KYA_LOG_FORMAT: Log format ("json" or "text", auto-detect if unset)
        KYA_LOG_FILE: Log file path
    """
    from .config import get_config

    config = get_config()

    level = config.log_level if level == "INFO" else level
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    if json_format is None:
        format_env = config.log_format.lower()
        if format_env == "json":
            json_format = True
        elif format_env == "text":
            json_format = False
        else:
            json_format = not sys.stderr.isatty()

    log_file = config.log_file if log_file is None else log_file

    formatter: logging.Formatter
    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = StandardFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        # Always use JSON for file output
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)


class OperationLogger:
    """Logger for ledger operations.

    Logs each operation with sanitized arguments so that proof payloads
    and other opaque attestation material never reach log storage.
    """

    # Argument names containing any of these are redacted
    SENSITIVE_PARAMS = {
        "payload",
        "secret",
        "password",
        "private_key",
    }

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger("kya.operations")

    def log_call(
        self,
        operation: str,
        arguments: dict[str, Any],
        level: int = logging.DEBUG,
    ) -> None:
        """Log an operation call with sanitized arguments.

        Args:
            operation: Ledger operation name
            arguments: Operation arguments (will be sanitized)
            level: Log level
        """
        sanitized = self._sanitize(arguments)
        self.logger.log(
            level,
            f"Ledger call: {operation}",
            extra={
                "extra_data": {
                    "operation": operation,
                    "arguments": sanitized,
                }
            },
        )

    def log_result(
        self,
        operation: str,
        success: bool,
        duration_ms: float | None = None,
        error: str | None = None,
        level: int = logging.DEBUG,
    ) -> None:
        """Log an operation outcome.

        Args:
            operation: Ledger operation name
            success: Whether the operation committed
            duration_ms: Duration in milliseconds
            error: Exception class name when the operation was rejected
            level: Log level
        """
        status = "committed" if success else f"rejected ({error})" if error else "rejected"
        msg = f"Ledger result: {operation} -> {status}"
        if duration_ms is not None:
            msg += f" ({duration_ms:.1f}ms)"

        self.logger.log(
            level,
            msg,
            extra={
                "extra_data": {
                    "operation": operation,
                    "success": success,
                    "error": error,
                    "duration_ms": duration_ms,
                }
            },
        )

    def _sanitize(self, data: Any) -> Any:
        """Recursively sanitize sensitive data."""
        if isinstance(data, dict):
            result = {}
            for key, value in data.items():
                if any(s in str(key).lower() for s in self.SENSITIVE_PARAMS):
                    result[key] = "[REDACTED]"
                else:
                    result[key] = self._sanitize(value)
            return result
        elif isinstance(data, (list, tuple)):
            return [self._sanitize(item) for item in data]
        elif isinstance(data, (bytes, bytearray)):
            return f"<{len(data)} bytes>"
        elif isinstance(data, str) and len(data) > 500:
            return data[:500] + "..."
        else:
            return data


# Default operation logger
operation_logger = OperationLogger()
