"""Configuration for the container bootstrap.

Values come from environment variables (set by the pod template) with an
optional YAML overlay on the persistent volume for the lists that are
awkward to pass through the environment (custom nodes, version pins).
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


COMFYUI_REPO = "https://github.com/comfyanonymous/ComfyUI.git"

# Installed on every fresh volume; ComfyUI-Manager is always first.
BASELINE_CUSTOM_NODES = (
    "https://github.com/ltdrdata/ComfyUI-Manager.git",
    "https://github.com/kijai/ComfyUI-KJNodes",
    "https://github.com/MoonGoblinDev/Civicomfy",
    "https://github.com/MadiatorLabs/ComfyUI-RunpodDirect",
)

# Custom node installs routinely upgrade these; reinstalled last, without deps.
FORCE_PINS = ("numpy==1.26.4", "opencv-python==4.10.0.84")
EXTRA_PINS = ("mediapipe==0.10.18", "sageattention")

# Name filters for the propagated environment: (name, is_prefix)
ENV_FILTERS = (
    ("RUNPOD_", True),
    ("PATH", False),
    ("_", False),
    ("CUDA", True),
    ("LD_LIBRARY_PATH", True),
    ("PYTHONPATH", True),
)

# DSA host keys are no longer supported by current OpenSSH releases.
HOST_KEY_TYPES = ("rsa", "ecdsa", "ed25519")

ARGS_FILE_PLACEHOLDER = "# Add your custom ComfyUI arguments here (one per line)"

FILEBROWSER_PORT = 8080
JUPYTER_PORT = 8888
COMFYUI_PORT = 8188


def safe_int(value: Any, default: int = 0) -> int:
    """Parse an integer, returning default on None or garbage."""
    if value is None:
        return default
    try:
        return int(value)
    except (ValueError, TypeError):
        return default


def safe_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean from a string.

    Recognizes: true, false, yes, no, on, off, 1, 0 (case-insensitive)
    """
    if value is None:
        return default

    value_lower = value.lower().strip()
    if value_lower in ("true", "yes", "1", "on"):
        return True
    if value_lower in ("false", "no", "0", "off"):
        return False
    return default


def split_urls(value: str | None) -> list[str]:
    """Split a comma and/or whitespace separated list of URLs."""
    if not value:
        return []
    return [part for part in value.replace(",", " ").split() if part]


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML mapping, or an empty dict if the file does not exist.

    A malformed file is an error: silently ignoring it would install the
    wrong node set.
    """
    if not path.exists():
        return {}

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at top level, got {type(data).__name__}")
    return data


@dataclass
class Config:
    """Bootstrap configuration from environment variables."""

    # Persistent volume
    workspace_dir: Path = field(
        default_factory=lambda: Path(os.environ.get("WORKSPACE_DIR", "/workspace"))
    )

    # System locations (overridable so tests can point them at a temp dir)
    etc_dir: Path = Path("/etc")
    root_home: Path = field(default_factory=lambda: Path(os.environ.get("PODBOOT_ROOT_HOME", "/root")))
    log_dir: Path = Path("/")

    # Access
    public_key: str | None = field(default_factory=lambda: os.environ.get("PUBLIC_KEY") or None)
    jupyter_password: str = field(default_factory=lambda: os.environ.get("JUPYTER_PASSWORD", ""))
    host_key_types: tuple[str, ...] = HOST_KEY_TYPES
    sshd_binary: str = "/usr/sbin/sshd"

    # Installation
    comfyui_repo: str = COMFYUI_REPO
    custom_nodes: list[str] = field(default_factory=lambda: list(BASELINE_CUSTOM_NODES))
    extra_custom_nodes: list[str] = field(
        default_factory=lambda: split_urls(os.environ.get("EXTRA_CUSTOM_NODES"))
    )
    force_pins: list[str] = field(default_factory=lambda: list(FORCE_PINS))
    extra_pins: list[str] = field(default_factory=lambda: list(EXTRA_PINS))
    venv_python: str = "python3.12"
    plugin_workers: int = 1

    # Runtime
    app_port: int = COMFYUI_PORT
    env_filters: tuple[tuple[str, bool], ...] = ENV_FILTERS

    # Output
    quiet: bool = field(default_factory=lambda: safe_bool(os.environ.get("PODBOOT_QUIET")))
    log_level: str = field(default_factory=lambda: os.environ.get("PODBOOT_LOG_LEVEL", "INFO"))
    timing: bool = field(default_factory=lambda: safe_bool(os.environ.get("PODBOOT_TIMING")))

    # Derived paths
    @property
    def data_dir(self) -> Path:
        return self.workspace_dir / "runpod-slim"

    @property
    def comfyui_dir(self) -> Path:
        return self.data_dir / "ComfyUI"

    @property
    def venv_dir(self) -> Path:
        return self.comfyui_dir / ".venv"

    @property
    def custom_nodes_dir(self) -> Path:
        return self.comfyui_dir / "custom_nodes"

    @property
    def args_file(self) -> Path:
        return self.data_dir / "comfyui_args.txt"

    @property
    def comfyui_log(self) -> Path:
        return self.data_dir / "comfyui.log"

    @property
    def bootstrap_log(self) -> Path:
        return self.data_dir / "bootstrap.log"

    @property
    def filebrowser_db(self) -> Path:
        return self.data_dir / "filebrowser.db"

    @property
    def filebrowser_log(self) -> Path:
        return self.log_dir / "filebrowser.log"

    @property
    def jupyter_log(self) -> Path:
        return self.log_dir / "jupyter.log"

    @property
    def ssh_dir(self) -> Path:
        return self.root_home / ".ssh"

    @property
    def sshd_config(self) -> Path:
        return self.etc_dir / "ssh" / "sshd_config"

    @property
    def overlay_file(self) -> Path:
        return Path(os.environ.get("PODBOOT_CONFIG", str(self.data_dir / "podboot.yaml")))

    @property
    def all_custom_nodes(self) -> list[str]:
        """Baseline plus extra node URLs, first occurrence wins."""
        seen: set[str] = set()
        result = []
        for url in self.custom_nodes + self.extra_custom_nodes:
            if url not in seen:
                seen.add(url)
                result.append(url)
        return result

    def apply_overlay(self, overlay: dict[str, Any]) -> None:
        """Apply settings from the YAML overlay file."""
        if "custom_nodes" in overlay:
            self.extra_custom_nodes.extend(overlay.get("custom_nodes") or [])
        if "force_pins" in overlay:
            self.force_pins = list(overlay.get("force_pins") or [])
        if "extra_pins" in overlay:
            self.extra_pins = list(overlay.get("extra_pins") or [])
        if overlay.get("venv_python"):
            self.venv_python = str(overlay["venv_python"])
        if "plugin_workers" in overlay:
            self.plugin_workers = max(1, safe_int(overlay["plugin_workers"], self.plugin_workers))
        if "app_port" in overlay:
            self.app_port = safe_int(overlay["app_port"], self.app_port)
        if overlay.get("host_key_types"):
            self.host_key_types = tuple(overlay["host_key_types"])

    @classmethod
    def load(cls) -> "Config":
        """Build config from the environment, then apply the YAML overlay if present."""
        config = cls()
        config.apply_overlay(load_yaml_file(config.overlay_file))
        return config
