"""Subprocess helpers.

`run_cmd` runs a command to completion and raises on failure; every
fail-fast bootstrap step goes through it. `spawn_detached` starts a
long-running service in its own session with output sent to a log file.
"""

import os
import subprocess
from pathlib import Path

from pod_logging import get_logger


logger = get_logger("podboot")


def run_cmd(
    cmd: list[str],
    check: bool = True,
    capture: bool = False,
    timeout: int | None = None,
    cwd: Path | None = None,
    input: str | None = None,
    env: dict[str, str] | None = None,
) -> subprocess.CompletedProcess:
    """Run a command and wait for it.

    Installs can take a long time, so there is no default timeout.
    """
    logger.debug(f"Running: {' '.join(cmd)}", cwd=str(cwd) if cwd else None)
    return subprocess.run(
        cmd,
        check=check,
        capture_output=capture,
        text=True,
        timeout=timeout,
        cwd=cwd,
        input=input,
        env=env,
    )


def spawn_detached(
    cmd: list[str],
    log_file: Path,
    cwd: Path | None = None,
    env: dict[str, str] | None = None,
) -> subprocess.Popen:
    """Start a process in a new session with stdout/stderr written to log_file.

    The child keeps running if the entrypoint exits.
    """
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logger.debug(f"Spawning: {' '.join(cmd)}", log_file=str(log_file))

    with open(log_file, "wb") as log:
        return subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=log,
            stderr=subprocess.STDOUT,
            cwd=cwd,
            env=env if env is not None else os.environ.copy(),
            start_new_session=True,
        )
