"""
Environment propagation.

Processes started outside the entrypoint (SSH sessions, PAM logins, new
interactive shells) do not inherit the container's runtime environment.
This module captures a filtered snapshot of it once and writes the same
snapshot to every consumer location:

    /etc/environment            NAME="value"            0644  (backed up)
    /etc/security/pam_env.conf  NAME DEFAULT="value"    0644  (backed up)
    /root/.ssh/environment      NAME=value              0600
    /etc/rp_environment         export NAME='value'     0644

Each sink has its own quoting rule; a variable whose value one of the rules
cannot carry on a single line is left out of the snapshot altogether, so
every sink always holds the same variable set.
"""

import contextlib
import os
import shlex
import shutil
import tempfile
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType

from .config import Config
from .output import Logger


SHELL_SCRIPT_NAME = "rp_environment"

# Characters no sink can represent inside one quoted line.
UNREPRESENTABLE = ("\n", "\r", "\0", '"')


@dataclass(frozen=True)
class EnvironmentSnapshot:
    """Immutable, filtered copy of the process environment."""

    values: Mapping[str, str] = field(default_factory=dict)
    excluded: tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def __len__(self) -> int:
        return len(self.values)

    def items(self) -> list[tuple[str, str]]:
        """Variables in a stable (sorted) order."""
        return sorted(self.values.items())


def matches(name: str, filters: Iterable[tuple[str, bool]]) -> bool:
    """True if name equals an exact filter or starts with a prefix filter."""
    for pattern, is_prefix in filters:
        if (is_prefix and name.startswith(pattern)) or (not is_prefix and name == pattern):
            return True
    return False


def capture(environ: Mapping[str, str], filters: Iterable[tuple[str, bool]]) -> EnvironmentSnapshot:
    """Capture the variables selected by filters."""
    filters = tuple(filters)
    selected = {}
    excluded = []

    for name, value in environ.items():
        if not matches(name, filters):
            continue
        if any(ch in value for ch in UNREPRESENTABLE):
            excluded.append(name)
            continue
        selected[name] = value

    return EnvironmentSnapshot(values=selected, excluded=tuple(sorted(excluded)))


# =============================================================================
# Quoting rules
# =============================================================================


def format_dotenv(name: str, value: str) -> str:
    return f'{name}="{value}"'


def format_pam(name: str, value: str) -> str:
    # pam_env expands ${VAR} and @{VAR} in DEFAULT= values
    escaped = value.replace("\\", "\\\\").replace("$", "\\$").replace("@", "\\@")
    return f'{name} DEFAULT="{escaped}"'


def format_ssh(name: str, value: str) -> str:
    # sshd reads ~/.ssh/environment literally, quotes would become part of the value
    return f"{name}={value}"


def format_shell(name: str, value: str) -> str:
    return f"export {name}={shlex.quote(value)}"


@dataclass(frozen=True)
class EnvSink:
    """One consumer location for the snapshot."""

    name: str
    path: Path
    mode: int
    format_line: Callable[[str, str], str]
    backup: bool = False


def build_sinks(config: Config) -> list[EnvSink]:
    """The sink table for this container."""
    return [
        EnvSink("system", config.etc_dir / "environment", 0o644, format_dotenv, backup=True),
        EnvSink(
            "pam", config.etc_dir / "security" / "pam_env.conf", 0o644, format_pam, backup=True
        ),
        EnvSink("ssh", config.ssh_dir / "environment", 0o600, format_ssh),
        EnvSink("shell", config.etc_dir / SHELL_SCRIPT_NAME, 0o644, format_shell),
    ]


def backup_once(path: Path) -> Path | None:
    """Copy path to path.bak unless a backup already exists. Returns the backup path if made.

    A missing original is recorded as an empty backup, so a later run never
    mistakes generated content for the original.
    """
    backup = path.with_name(path.name + ".bak")
    if backup.exists():
        return None
    if path.exists():
        shutil.copy2(path, backup)
    else:
        backup.touch()
    return backup


def render(snapshot: EnvironmentSnapshot, sink: EnvSink) -> str:
    """Render the full sink file content."""
    return "".join(sink.format_line(name, value) + "\n" for name, value in snapshot.items())


def publish(snapshot: EnvironmentSnapshot, sink: EnvSink) -> None:
    """Replace the sink file with the snapshot, atomically, then set its mode."""
    sink.path.parent.mkdir(parents=True, exist_ok=True)
    if sink.backup:
        backup_once(sink.path)

    fd, tmp_name = tempfile.mkstemp(dir=sink.path.parent, prefix=f".{sink.path.name}.")
    try:
        with os.fdopen(fd, "w") as f:
            f.write(render(snapshot, sink))
        os.chmod(tmp_name, sink.mode)
        os.replace(tmp_name, sink.path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_name)
        raise
    sink.path.chmod(sink.mode)


def append_line_once(path: Path, line: str) -> bool:
    """Append line to path unless it is already there. Returns True if appended."""
    content = path.read_text() if path.exists() else ""
    if any(entry.strip() == line for entry in content.splitlines()):
        return False

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a") as f:
        if content and not content.endswith("\n"):
            f.write("\n")
        f.write(line + "\n")
    return True


def export_env_vars(
    config: Config,
    logger: Logger,
    environ: Mapping[str, str] | None = None,
) -> EnvironmentSnapshot:
    """Capture the environment and publish it to every sink."""
    logger.info("Exporting environment variables...")

    snapshot = capture(os.environ if environ is None else environ, config.env_filters)
    for name in snapshot.excluded:
        logger.warn(f"Not propagating {name}: value cannot be written to every environment file")

    for sink in build_sinks(config):
        publish(snapshot, sink)

    source_line = f"source {config.etc_dir / SHELL_SCRIPT_NAME}"
    for rc_file in (config.root_home / ".bashrc", config.etc_dir / "bash.bashrc"):
        append_line_once(rc_file, source_line)

    logger.success(f"Propagated {len(snapshot)} environment variable(s)")
    return snapshot
