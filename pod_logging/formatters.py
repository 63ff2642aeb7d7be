"""
Log formatters for pod_logging.

Provides a JSON-lines formatter for the bootstrap log file and a
human-readable formatter for the container console.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any


CONTEXT_FIELDS = ("run_id", "stage", "service", "plugin")


class JsonFormatter(logging.Formatter):
    """JSON-lines formatter.

    Output format:
        {
            "timestamp": "2025-11-28T12:34:56.789Z",
            "severity": "INFO",
            "message": "Installing requirements.txt",
            "logger": "podboot",
            "context": {"stage": "install", "plugin": "ComfyUI-KJNodes"},
            ...
        }
    """

    SEVERITY_MAP = {
        logging.DEBUG: "DEBUG",
        logging.INFO: "INFO",
        logging.WARNING: "WARNING",
        logging.ERROR: "ERROR",
        logging.CRITICAL: "CRITICAL",
    }

    def __init__(self, service: str = "podboot", include_extra: bool = True):
        super().__init__()
        self.service = service
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON."""
        log_entry: dict[str, Any] = {
            "timestamp": self._format_timestamp(record),
            "severity": self.SEVERITY_MAP.get(record.levelno, "DEFAULT"),
            "message": record.getMessage(),
            "logger": self.service,
        }

        if record.name and record.name != self.service:
            log_entry["name"] = record.name

        context_fields = {}
        for field in CONTEXT_FIELDS:
            if getattr(record, field, None):
                context_fields[field] = getattr(record, field)

        if context_fields:
            log_entry["context"] = context_fields

        if self.include_extra:
            extra = self._extract_extra(record)
            if extra:
                log_entry["extra"] = extra

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        if record.levelno >= logging.WARNING:
            log_entry["sourceLocation"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(log_entry, default=str, ensure_ascii=False)

    def _format_timestamp(self, record: logging.LogRecord) -> str:
        """Format timestamp in ISO 8601 format with UTC timezone."""
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{int(dt.microsecond / 1000):03d}Z"

    def _extract_extra(self, record: logging.LogRecord) -> dict[str, Any]:
        """Extract extra fields that were passed to the log call."""
        standard_attrs = {
            "name",
            "msg",
            "args",
            "created",
            "filename",
            "funcName",
            "levelname",
            "levelno",
            "lineno",
            "module",
            "msecs",
            "pathname",
            "process",
            "processName",
            "relativeCreated",
            "stack_info",
            "exc_info",
            "exc_text",
            "thread",
            "threadName",
            "message",
            "taskName",
            *CONTEXT_FIELDS,
        }

        extra = {}
        for key, value in record.__dict__.items():
            if key not in standard_attrs and not key.startswith("_"):
                extra[key] = value

        return extra


class ConsoleFormatter(logging.Formatter):
    """Human-readable console formatter.

    Output format:
        2025-11-28 12:34:56 [INFO    ] podboot: Starting FileBrowser (stage=services)
    """

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(
        self,
        service: str = "podboot",
        use_colors: bool | None = None,
        show_context: bool = True,
    ):
        super().__init__()
        self.service = service
        self.use_colors = use_colors if use_colors is not None else self._detect_color_support()
        self.show_context = show_context

    def _detect_color_support(self) -> bool:
        """Detect if the terminal supports colors."""
        if not hasattr(sys.stderr, "isatty") or not sys.stderr.isatty():
            return False

        if os.environ.get("NO_COLOR"):
            return False

        return True

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record for console output."""
        dt = datetime.fromtimestamp(record.created)
        timestamp = dt.strftime("%Y-%m-%d %H:%M:%S")

        level = record.levelname
        if self.use_colors:
            color = self.COLORS.get(level, "")
            level = f"{color}{level:8}{self.RESET}"
        else:
            level = f"{level:8}"

        parts = [f"{timestamp} [{level}] {self.service}: {record.getMessage()}"]

        if self.show_context:
            context_parts = []
            for field in ("stage", "service", "plugin"):
                value = getattr(record, field, None)
                if value:
                    context_parts.append(f"{field}={value}")

            if context_parts:
                context_str = " ".join(context_parts)
                if self.use_colors:
                    context_str = f"\033[90m({context_str})\033[0m"
                else:
                    context_str = f"({context_str})"
                parts.append(f" {context_str}")

        message = "".join(parts)

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message
