"""podboot - Container bootstrap for a ComfyUI GPU pod.

Provisions SSH, propagates the runtime environment, starts File Browser
and JupyterLab, installs or reconciles ComfyUI and its custom nodes, then
launches ComfyUI and follows its log for the life of the container.
"""

from .config import Config
from .entrypoint import bootstrap, main
from .environment import EnvironmentSnapshot, capture, export_env_vars
from .errors import BootstrapError
from .installer import InstallState, detect_state, install_or_reconcile
from .supervisor import ServiceTask, compose_args, follow_log


__all__ = [
    "BootstrapError",
    "Config",
    "EnvironmentSnapshot",
    "InstallState",
    "ServiceTask",
    "bootstrap",
    "capture",
    "compose_args",
    "detect_state",
    "export_env_vars",
    "follow_log",
    "install_or_reconcile",
    "main",
]

__version__ = "1.0.0"
