"""
Main process supervision.

Every service runs as a ServiceTask: a detached process with its own log
file. Exactly one task, the ComfyUI server, is the anchor: the entrypoint
follows its log in the foreground and exits when the anchor has exited and
its log is drained. Nothing else is monitored.
"""

import shlex
import subprocess
import sys
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TextIO

from .config import ARGS_FILE_PLACEHOLDER, Config
from .errors import BootstrapError
from .installer import venv_python
from .output import Logger
from .process import spawn_detached


@dataclass
class ServiceTask:
    """A service to launch as a detached process."""

    name: str
    argv: list[str]
    log_file: Path
    cwd: Path | None = None
    anchor: bool = False
    env: dict[str, str] | None = None
    process: subprocess.Popen | None = field(default=None, repr=False)

    def launch(self) -> subprocess.Popen:
        self.process = spawn_detached(self.argv, self.log_file, cwd=self.cwd, env=self.env)
        return self.process


# =============================================================================
# Argument file
# =============================================================================


def ensure_args_file(path: Path, logger: Logger) -> bool:
    """Create the argument file with a placeholder comment. Never overwrites.

    Returns True if the file was created.
    """
    if path.exists():
        return False

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(ARGS_FILE_PLACEHOLDER + "\n", encoding="utf-8")
    logger.info(f"Created empty ComfyUI arguments file at {path}")
    return True


def read_custom_args(lines: Iterable[str]) -> list[str]:
    """User arguments from argument-file lines, in order.

    Blank lines and lines whose first non-whitespace character is '#' are
    skipped; every other line is split with shell rules, so '--bar 1'
    yields two arguments. A line whose quotes do not balance (e.g.
    "--prompt it's") is split on whitespace instead.
    """
    result: list[str] = []
    for line in lines:
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        try:
            result.extend(shlex.split(stripped))
        except ValueError:
            result.extend(stripped.split())
    return result


def fixed_args(config: Config) -> list[str]:
    return ["--listen", "0.0.0.0", "--port", str(config.app_port)]


def compose_args(fixed: list[str], lines: Iterable[str]) -> list[str]:
    """Fixed arguments first, then user arguments. Nothing in lines can displace the fixed ones."""
    return list(fixed) + read_custom_args(lines)


def load_effective_args(config: Config) -> list[str]:
    """Compose the ComfyUI argument list from the argument file."""
    lines: list[str] = []
    if config.args_file.exists():
        lines = config.args_file.read_text(encoding="utf-8").splitlines()
    return compose_args(fixed_args(config), lines)


# =============================================================================
# Launch and follow
# =============================================================================


def build_main_task(config: Config, args: list[str]) -> ServiceTask:
    """The anchor task: ComfyUI's main.py under the runtime environment."""
    return ServiceTask(
        name="comfyui",
        argv=[str(venv_python(config)), "main.py", *args],
        log_file=config.comfyui_log,
        cwd=config.comfyui_dir,
        anchor=True,
    )


def start_main_process(config: Config, logger: Logger) -> ServiceTask:
    """Compose arguments and launch ComfyUI detached. Launch failures are fatal."""
    ensure_args_file(config.args_file, logger)

    if not (config.comfyui_dir / "main.py").exists():
        raise BootstrapError(f"ComfyUI entry script not found: {config.comfyui_dir / 'main.py'}")

    args = load_effective_args(config)
    custom = args[len(fixed_args(config)):]
    if custom:
        logger.info(f"Starting ComfyUI with additional arguments: {' '.join(custom)}")
    else:
        logger.info("Starting ComfyUI with default arguments")

    task = build_main_task(config, args)
    task.launch()
    logger.success(f"ComfyUI started (PID: {task.process.pid}, port: {config.app_port})")
    logger.info(f"  Log: {task.log_file}")
    return task


def follow_log(
    log_file: Path,
    process: subprocess.Popen,
    out: TextIO | None = None,
    poll_interval: float = 0.5,
) -> int:
    """Copy log_file to out as it grows until process exits. Returns its exit code.

    This is the entrypoint's only indefinite wait; the container lives as
    long as this call does.
    """
    out = out or sys.stdout

    while not log_file.exists():
        if process.poll() is not None:
            return process.returncode
        time.sleep(poll_interval)

    with open(log_file, errors="replace") as f:
        while True:
            chunk = f.read()
            if chunk:
                out.write(chunk)
                out.flush()
                continue

            if process.poll() is not None:
                # drain anything written between the last read and exit
                rest = f.read()
                if rest:
                    out.write(rest)
                    out.flush()
                return process.returncode

            time.sleep(poll_interval)


def supervise(task: ServiceTask, logger: Logger) -> int:
    """Block on the anchor task. Returns the exit code for the entrypoint."""
    if not task.anchor or task.process is None:
        raise BootstrapError(f"{task.name} is not a launched anchor task")

    code = follow_log(task.log_file, task.process)
    logger.warn(f"{task.name} exited with status {code}; stopping container")
    return code
