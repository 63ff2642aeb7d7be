"""Console messages for the bootstrap.

Thin facade over pod_logging with quiet-mode support: info and success
messages are hidden when quiet, warnings and errors are always shown.
Everything is also recorded by any file handler attached to the
underlying logger, except messages passed with secret=True.
"""

from typing import Any

from pod_logging import PodLogger, get_logger


class Logger:
    """Simple logger with quiet mode support."""

    def __init__(self, quiet: bool = False, log: PodLogger | None = None):
        self.quiet = quiet
        self.log = log or get_logger("podboot")

    def info(self, msg: str, **fields: Any) -> None:
        """Info message (hidden in quiet mode)."""
        if self.quiet:
            self.log.debug(msg, stacklevel=2, **fields)
        else:
            self.log.info(msg, stacklevel=2, **fields)

    def success(self, msg: str, **fields: Any) -> None:
        """Success message with checkmark (hidden in quiet mode)."""
        if self.quiet:
            self.log.debug(f"✓ {msg}", stacklevel=2, **fields)
        else:
            self.log.info(f"✓ {msg}", stacklevel=2, **fields)

    def warn(self, msg: str, **fields: Any) -> None:
        """Warning message (always shown)."""
        self.log.warning(f"⚠ {msg}", stacklevel=2, **fields)

    def error(self, msg: str, **fields: Any) -> None:
        """Error message (always shown)."""
        self.log.error(f"✗ {msg}", stacklevel=2, **fields)
