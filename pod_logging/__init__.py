"""
pod_logging - Structured logging for the container bootstrap.

Usage:
    from pod_logging import get_logger, ContextScope

    logger = get_logger("podboot")
    logger.info("Starting JupyterLab", port=8888)

    with ContextScope(stage="install"):
        logger.info("Reconciling custom nodes")

    with ContextScope(service="filebrowser"):
        logger.warning("FileBrowser not installed")

    # shown on the console, never written to the log file
    logger.warning("Generated password: ...", secret=True)
"""

from .context import (
    ContextScope,
    LogContext,
    context_from_env,
    get_current_context,
    set_current_context,
)
from .formatters import ConsoleFormatter, JsonFormatter
from .logger import ConsoleOnlyFilter, PodLogger, get_logger


__all__ = [
    "ConsoleFormatter",
    "ConsoleOnlyFilter",
    "ContextScope",
    "JsonFormatter",
    "LogContext",
    "PodLogger",
    "context_from_env",
    "get_current_context",
    "get_logger",
    "set_current_context",
]

__version__ = "0.1.0"
