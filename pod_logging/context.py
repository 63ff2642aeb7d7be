"""
Context management for pod_logging.

Provides a run identifier and scoped fields (stage, service, plugin) that
are attached to every log record emitted inside the scope.
"""

import os
import secrets
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any


_current_context: ContextVar["LogContext | None"] = ContextVar("pod_log_context", default=None)


@dataclass
class LogContext:
    """Context for log correlation.

    Attributes:
        run_id: Identifier of one container start (16 hex chars)
        stage: Bootstrap stage (e.g. "ssh", "install")
        service: Service the record relates to (e.g. "filebrowser")
        plugin: Custom node directory being reconciled
        extra: Additional context fields to include in logs
    """

    run_id: str | None = None
    stage: str | None = None
    service: str | None = None
    plugin: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.run_id is None:
            self.run_id = secrets.token_hex(8)

    def to_dict(self) -> dict[str, Any]:
        """Convert context to dict for log inclusion."""
        result: dict[str, Any] = {}

        if self.run_id:
            result["run_id"] = self.run_id
        if self.stage:
            result["stage"] = self.stage
        if self.service:
            result["service"] = self.service
        if self.plugin:
            result["plugin"] = self.plugin

        return result


def get_current_context() -> LogContext | None:
    """Get the current logging context."""
    return _current_context.get()


def set_current_context(ctx: LogContext | None) -> None:
    """Set the current logging context."""
    _current_context.set(ctx)


class ContextScope:
    """Context manager for scoped logging context.

    Usage:
        with ContextScope(stage="install"):
            logger.info("Fetching ComfyUI")
            # All logs in this scope include stage=install

    Fields not given explicitly are inherited from the enclosing scope, so
    a service scope nested in a stage scope keeps the stage.
    """

    def __init__(
        self,
        run_id: str | None = None,
        stage: str | None = None,
        service: str | None = None,
        plugin: str | None = None,
        **extra: Any,
    ):
        self._run_id = run_id
        self._stage = stage
        self._service = service
        self._plugin = plugin
        self._extra = extra
        self._token: Any = None

    def __enter__(self) -> LogContext:
        parent = get_current_context()

        extra = dict(parent.extra) if parent else {}
        extra.update(self._extra)

        new_context = LogContext(
            run_id=self._run_id or (parent.run_id if parent else None),
            stage=self._stage or (parent.stage if parent else None),
            service=self._service or (parent.service if parent else None),
            plugin=self._plugin or (parent.plugin if parent else None),
            extra=extra,
        )

        self._token = _current_context.set(new_context)
        return new_context

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        _current_context.reset(self._token)


def context_from_env() -> LogContext:
    """Create a context from environment variables.

    Looks for:
        - PODBOOT_RUN_ID: run identifier (generated if absent)
        - RUNPOD_POD_ID: pod identifier, added as an extra field
    """
    extra: dict[str, Any] = {}
    if os.environ.get("RUNPOD_POD_ID"):
        extra["pod_id"] = os.environ["RUNPOD_POD_ID"]

    return LogContext(run_id=os.environ.get("PODBOOT_RUN_ID"), extra=extra)
