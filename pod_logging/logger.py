"""
PodLogger - Structured logging for the container bootstrap.

Console output is human-readable; the optional file handler writes JSON
lines so the bootstrap history survives on the persistent volume.

Records logged with ``secret=True`` reach the console only. The file
handler drops them, so credentials shown once at startup are never
written to the volume.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from .context import get_current_context
from .formatters import ConsoleFormatter, JsonFormatter


class ConsoleOnlyFilter(logging.Filter):
    """Reject records marked secret=True."""

    def filter(self, record: logging.LogRecord) -> bool:
        return not getattr(record, "secret", False)


class PodLogger:
    """Structured logger for podboot components.

    Usage:
        from pod_logging import get_logger

        logger = get_logger("podboot")
        logger.info("Cloning custom node", url="https://github.com/kijai/ComfyUI-KJNodes")
    """

    def __init__(self, name: str, level: int | str = logging.INFO):
        """Initialize the logger.

        Args:
            name: Logger name (typically "podboot")
            level: Log level (default INFO)
        """
        self.name = name
        self._logger = logging.getLogger(name)
        self._logger.setLevel(level if isinstance(level, int) else getattr(logging, level.upper()))
        self._logger.propagate = False

    def set_level(self, level: int | str) -> None:
        """Change the log level after creation."""
        self._logger.setLevel(level if isinstance(level, int) else getattr(logging, level.upper()))

    def _ensure_handlers(self) -> None:
        """Ensure a console handler is configured (lazy initialization)."""
        if any(getattr(h, "_pod_console", False) for h in self._logger.handlers):
            return

        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(ConsoleFormatter(service=self.name))
        console_handler._pod_console = True  # type: ignore[attr-defined]

        self._logger.addHandler(console_handler)

    def _get_extra(self, extra: dict[str, Any] | None = None) -> dict[str, Any]:
        """Get extra fields including context."""
        result: dict[str, Any] = {}

        ctx = get_current_context()
        if ctx:
            result.update(ctx.to_dict())
            if ctx.extra:
                result.update(ctx.extra)

        if extra:
            result.update(extra)

        return result

    def _log(
        self,
        level: int,
        msg: str,
        *args: Any,
        exc_info: Any = None,
        stacklevel: int = 1,
        **kwargs: Any,
    ) -> None:
        self._ensure_handlers()

        # +2 skips _log and the public level method
        self._logger.log(
            level,
            msg,
            *args,
            exc_info=exc_info,
            extra=self._get_extra(kwargs),
            stacklevel=stacklevel + 2,
        )

    def debug(self, msg: str, *args: Any, stacklevel: int = 1, **kwargs: Any) -> None:
        """Log a debug message."""
        self._log(logging.DEBUG, msg, *args, stacklevel=stacklevel, **kwargs)

    def info(self, msg: str, *args: Any, stacklevel: int = 1, **kwargs: Any) -> None:
        """Log an info message."""
        self._log(logging.INFO, msg, *args, stacklevel=stacklevel, **kwargs)

    def warning(self, msg: str, *args: Any, stacklevel: int = 1, **kwargs: Any) -> None:
        """Log a warning message."""
        self._log(logging.WARNING, msg, *args, stacklevel=stacklevel, **kwargs)

    def error(
        self, msg: str, *args: Any, exc_info: Any = None, stacklevel: int = 1, **kwargs: Any
    ) -> None:
        """Log an error message."""
        self._log(logging.ERROR, msg, *args, exc_info=exc_info, stacklevel=stacklevel, **kwargs)

    def add_file_handler(
        self,
        log_file: str | Path,
        level: int = logging.DEBUG,
        max_bytes: int = 10 * 1024 * 1024,  # 10 MB
        backup_count: int = 5,
    ) -> None:
        """Add a rotating file handler with JSON formatting.

        Args:
            log_file: Path to the log file
            level: Log level for file handler
            max_bytes: Max file size before rotation
            backup_count: Number of backup files to keep
        """
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        for handler in self._logger.handlers:
            if isinstance(handler, RotatingFileHandler) and Path(handler.baseFilename) == log_file.resolve():
                return

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(JsonFormatter(service=self.name))
        file_handler.addFilter(ConsoleOnlyFilter())

        self._logger.addHandler(file_handler)


# Logger registry for singleton behavior
_loggers: dict[str, PodLogger] = {}


def get_logger(name: str = "podboot", level: int | str = logging.INFO) -> PodLogger:
    """Get or create a logger by name.

    Loggers are cached by name, so calling get_logger with the same name
    returns the same logger instance.
    """
    if name not in _loggers:
        _loggers[name] = PodLogger(name, level)

    return _loggers[name]
