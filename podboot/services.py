"""Auxiliary services: File Browser and JupyterLab.

Both are conveniences. A service that cannot be configured or started is
logged and skipped; it never stops the bootstrap.
"""

import contextlib
import json
import shutil
import subprocess

from pod_logging import ContextScope

from .config import FILEBROWSER_PORT, JUPYTER_PORT, Config
from .output import Logger
from .process import run_cmd
from .supervisor import ServiceTask


FILEBROWSER_ADMIN_USER = "admin"
FILEBROWSER_ADMIN_PASSWORD = "adminadmin12"


def filebrowser_config_commands(config: Config) -> list[list[str]]:
    """One-time File Browser configuration, in order."""
    db = ["--database", str(config.filebrowser_db)]
    return [
        ["filebrowser", "config", "init", *db],
        ["filebrowser", "config", "set", "--address", "0.0.0.0", *db],
        ["filebrowser", "config", "set", "--port", str(FILEBROWSER_PORT), *db],
        ["filebrowser", "config", "set", "--root", str(config.workspace_dir), *db],
        ["filebrowser", "config", "set", "--auth.method=json", *db],
        [
            "filebrowser",
            "users",
            "add",
            FILEBROWSER_ADMIN_USER,
            FILEBROWSER_ADMIN_PASSWORD,
            "--perm.admin",
            *db,
        ],
    ]


def init_filebrowser(config: Config, logger: Logger) -> bool:
    """Configure File Browser unless its database already exists.

    The database file is the marker for this step. If configuration fails
    half way the database is removed again, so the next start retries
    instead of trusting a partial configuration. Returns True if usable.
    """
    if config.filebrowser_db.exists():
        logger.info("Using existing FileBrowser configuration...")
        return True

    logger.info("Initializing FileBrowser...")
    try:
        config.filebrowser_db.parent.mkdir(parents=True, exist_ok=True)
        for cmd in filebrowser_config_commands(config):
            run_cmd(cmd, capture=True)
    except (subprocess.CalledProcessError, OSError) as e:
        logger.warn(f"FileBrowser configuration failed: {e}")
        with contextlib.suppress(OSError):
            config.filebrowser_db.unlink()
        return False

    return True


def filebrowser_task(config: Config) -> ServiceTask:
    return ServiceTask(
        name="filebrowser",
        argv=["filebrowser", "--database", str(config.filebrowser_db)],
        log_file=config.filebrowser_log,
    )


def jupyter_task(config: Config) -> ServiceTask:
    workspace = str(config.workspace_dir)
    terminado_settings = json.dumps({"shell_command": ["/bin/bash"]})
    return ServiceTask(
        name="jupyter",
        argv=[
            "jupyter",
            "lab",
            "--allow-root",
            "--no-browser",
            f"--port={JUPYTER_PORT}",
            "--ip=0.0.0.0",
            "--FileContentsManager.delete_to_trash=False",
            f"--FileContentsManager.preferred_dir={workspace}",
            f"--ServerApp.root_dir={workspace}",
            f"--ServerApp.terminado_settings={terminado_settings}",
            f"--IdentityProvider.token={config.jupyter_password}",
            "--ServerApp.allow_origin=*",
        ],
        log_file=config.jupyter_log,
    )


def launch_best_effort(task: ServiceTask, logger: Logger) -> bool:
    """Start task; log and swallow launch errors. Returns True if started."""
    if shutil.which(task.argv[0]) is None:
        logger.warn(f"{task.name}: {task.argv[0]} not installed, skipping")
        return False
    try:
        task.launch()
    except OSError as e:
        logger.warn(f"{task.name} failed to start: {e}")
        return False

    logger.success(f"{task.name} started (PID: {task.process.pid}, log: {task.log_file})")
    return True


def start_filebrowser(config: Config, logger: Logger) -> ServiceTask | None:
    if shutil.which("filebrowser") is None:
        logger.warn("filebrowser not installed, skipping")
        return None

    if not init_filebrowser(config, logger):
        return None

    logger.info(f"Starting FileBrowser on port {FILEBROWSER_PORT}...")
    task = filebrowser_task(config)
    return task if launch_best_effort(task, logger) else None


def start_jupyter(config: Config, logger: Logger) -> ServiceTask | None:
    config.workspace_dir.mkdir(parents=True, exist_ok=True)
    logger.info(f"Starting Jupyter Lab on port {JUPYTER_PORT}...")
    task = jupyter_task(config)
    return task if launch_best_effort(task, logger) else None


def start_auxiliary_services(config: Config, logger: Logger) -> list[ServiceTask]:
    """Start File Browser and JupyterLab. Returns the tasks that started.

    Neither service can stop the bootstrap: filesystem errors while
    preparing one are logged and the next service is still started.
    """
    started = []
    for name, starter in (("filebrowser", start_filebrowser), ("jupyter", start_jupyter)):
        with ContextScope(service=name):
            try:
                task = starter(config, logger)
            except OSError as e:
                logger.warn(f"{name} skipped: {e}")
                continue
        if task is not None:
            started.append(task)
    return started
