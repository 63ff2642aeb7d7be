"""
ComfyUI installation and custom node reconciliation.

The persistent volume is in one of two states when the container starts:

    FIRST_RUN     ComfyUI or its .venv is missing. Clone ComfyUI and the
                  custom nodes that are not there yet, create the venv,
                  then reconcile.
    STEADY_STATE  Both exist. Activate the venv and reconcile; nothing is
                  cloned, so a custom node deleted by the user stays deleted.

Reconciliation runs every custom node's install steps (requirements.txt,
install.py, setup.py, in that order) and then re-applies the version pins,
which must come after every node because node installs upgrade shared
packages such as numpy.

Clones are made in a "<name>.partial" directory and renamed into place
only once git has finished, so an existing directory always means a
complete clone. A leftover staging directory from an interrupted start is
removed and the clone retried.
"""

import contextvars
import os
import shutil
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from pathlib import Path

from pod_logging import ContextScope

from .config import Config
from .output import Logger
from .process import run_cmd


STAGING_SUFFIX = ".partial"


class InstallState(Enum):
    FIRST_RUN = "first_run"
    STEADY_STATE = "steady_state"


def detect_state(config: Config) -> InstallState:
    """Directory presence decides the state; nothing else is inspected."""
    if config.comfyui_dir.is_dir() and config.venv_dir.is_dir():
        return InstallState.STEADY_STATE
    return InstallState.FIRST_RUN


# =============================================================================
# Fetching
# =============================================================================


def repo_dir_name(url: str) -> str:
    """Directory name git clone would use for url."""
    name = url.rstrip("/").rsplit("/", 1)[-1]
    if name.endswith(".git"):
        name = name[:-4]
    return name


def fetch_repo(url: str, dest: Path, logger: Logger) -> bool:
    """Clone url into dest unless dest exists. Returns True if cloned."""
    if dest.exists():
        return False

    staging = dest.with_name(dest.name + STAGING_SUFFIX)
    if staging.exists():
        logger.warn(f"Removing incomplete clone {staging.name} from an interrupted start")
        shutil.rmtree(staging)

    dest.parent.mkdir(parents=True, exist_ok=True)
    logger.info(f"Installing {dest.name}...", url=url)
    run_cmd(["git", "clone", url, str(staging)])
    staging.rename(dest)
    return True


def fetch_application(config: Config, logger: Logger) -> bool:
    return fetch_repo(config.comfyui_repo, config.comfyui_dir, logger)


def fetch_custom_nodes(config: Config, logger: Logger) -> list[str]:
    """Clone every configured custom node whose directory is absent. Returns cloned names."""
    cloned = []
    for url in config.all_custom_nodes:
        dest = config.custom_nodes_dir / repo_dir_name(url)
        if fetch_repo(url, dest, logger):
            cloned.append(dest.name)
    return cloned


# =============================================================================
# Runtime environment
# =============================================================================


def venv_python(config: Config) -> Path:
    return config.venv_dir / "bin" / "python"


def pip_install(config: Config, *args: str, cwd: Path | None = None) -> None:
    run_cmd([str(venv_python(config)), "-m", "pip", "install", "--no-cache-dir", *args], cwd=cwd)


def create_venv(config: Config, logger: Logger) -> None:
    """Create the venv on top of the image's system packages (torch is preinstalled there)."""
    logger.info(f"Creating virtual environment at {config.venv_dir}")
    run_cmd(
        [config.venv_python, "-m", "venv", "--system-site-packages", str(config.venv_dir)],
        cwd=config.comfyui_dir,
    )

    # ComfyUI-Manager installs nodes with the venv's own pip
    python = str(venv_python(config))
    run_cmd([python, "-m", "ensurepip", "--upgrade"])
    run_cmd([python, "-m", "pip", "install", "--upgrade", "pip"])
    logger.success("Base packages (torch, numpy, etc.) available from system site-packages")


def activate_venv(config: Config) -> None:
    """Equivalent of sourcing bin/activate for this process and its children."""
    bin_dir = str(config.venv_dir / "bin")
    os.environ["VIRTUAL_ENV"] = str(config.venv_dir)
    path = os.environ.get("PATH", "")
    if path.split(os.pathsep)[0] != bin_dir:
        os.environ["PATH"] = f"{bin_dir}{os.pathsep}{path}" if path else bin_dir
    os.environ.pop("PYTHONHOME", None)


# =============================================================================
# Custom node reconciliation
# =============================================================================


def plugin_dirs(config: Config) -> list[Path]:
    """Custom node directories in name order. Staging and hidden directories are skipped."""
    if not config.custom_nodes_dir.is_dir():
        return []
    return sorted(
        (
            d
            for d in config.custom_nodes_dir.iterdir()
            if d.is_dir()
            and not d.name.startswith((".", "__"))
            and not d.name.endswith(STAGING_SUFFIX)
        ),
        key=lambda d: d.name,
    )


def reconcile_plugin(config: Config, node_dir: Path, logger: Logger) -> list[str]:
    """Apply a custom node's install steps. Returns the steps that ran."""
    applied = []
    with ContextScope(plugin=node_dir.name):
        logger.info(f"Checking dependencies for {node_dir.name}...")

        if (node_dir / "requirements.txt").is_file():
            logger.info(f"Installing requirements.txt for {node_dir.name}")
            pip_install(config, "-r", "requirements.txt", cwd=node_dir)
            applied.append("requirements.txt")

        if (node_dir / "install.py").is_file():
            logger.info(f"Running install.py for {node_dir.name}")
            run_cmd([str(venv_python(config)), "install.py"], cwd=node_dir)
            applied.append("install.py")

        if (node_dir / "setup.py").is_file():
            logger.info(f"Running setup.py for {node_dir.name}")
            pip_install(config, "-e", ".", cwd=node_dir)
            applied.append("setup.py")

    return applied


def reconcile_plugins(config: Config, logger: Logger) -> dict[str, list[str]]:
    """Reconcile every custom node; the first failure (in name order) is raised.

    Returns {node name: steps applied}. Returns only after all node work is
    finished, so callers can rely on it as a barrier.
    """
    nodes = plugin_dirs(config)
    results: dict[str, list[str]] = {}

    with ThreadPoolExecutor(max_workers=max(1, config.plugin_workers)) as executor:
        futures = [
            executor.submit(contextvars.copy_context().run, reconcile_plugin, config, d, logger)
            for d in nodes
        ]
        try:
            for node_dir, future in zip(nodes, futures):
                results[node_dir.name] = future.result()
        except BaseException:
            for future in futures:
                future.cancel()
            raise

    return results


def enforce_package_versions(config: Config, logger: Logger) -> None:
    """Re-apply pinned versions after all custom node installs."""
    logger.info("Enforcing specific package versions...")
    if config.force_pins:
        pip_install(config, "--force-reinstall", "--no-deps", *config.force_pins)
    if config.extra_pins:
        pip_install(config, *config.extra_pins)
    logger.success("Package versions enforced")


# =============================================================================
# Entry
# =============================================================================


def install_or_reconcile(config: Config, logger: Logger) -> InstallState:
    """Bring the volume to a runnable state. Any failure propagates."""
    state = detect_state(config)

    if state is InstallState.FIRST_RUN:
        logger.info("First time setup: Installing ComfyUI and dependencies...")
        config.data_dir.mkdir(parents=True, exist_ok=True)
        fetch_application(config, logger)
        config.custom_nodes_dir.mkdir(parents=True, exist_ok=True)
        fetch_custom_nodes(config, logger)
        if not config.venv_dir.is_dir():
            create_venv(config, logger)
        activate_venv(config)
        logger.info("Installing custom node dependencies...")
    else:
        activate_venv(config)
        logger.info("Checking for custom node dependencies...")

    results = reconcile_plugins(config, logger)
    enforce_package_versions(config, logger)

    logger.success(f"ComfyUI ready ({state.value}, {len(results)} custom node(s) reconciled)")
    return state
