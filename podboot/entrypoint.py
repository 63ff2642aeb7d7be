"""
Container entrypoint.

Runs the bootstrap stages in order, one shot, no retries:

    ssh -> environment -> services -> install -> comfyui

then follows the ComfyUI log until ComfyUI exits. A failure in any stage
other than the auxiliary services stops the bootstrap with exit status 1;
later stages do not run.
"""

import signal
import subprocess
import sys

from pod_logging import ContextScope, context_from_env, get_logger

from .config import Config
from .environment import export_env_vars
from .errors import BootstrapError
from .installer import install_or_reconcile
from .output import Logger
from .services import start_auxiliary_services
from .ssh import setup_ssh
from .supervisor import ServiceTask, start_main_process, supervise
from .timing import StartupTimer


FATAL_ERRORS = (subprocess.CalledProcessError, BootstrapError, OSError)


class BootstrapFailed(Exception):
    """Raised by run_stage after the failure has been logged."""

    def __init__(self, stage: str, cause: BaseException):
        super().__init__(f"{stage}: {cause}")
        self.stage = stage
        self.cause = cause


def configure_logging(config: Config) -> Logger:
    """Console logging plus the JSON bootstrap log on the persistent volume."""
    log = get_logger("podboot")
    log.set_level(config.log_level)
    try:
        log.add_file_handler(config.bootstrap_log)
    except OSError as e:
        log.warning(f"Cannot write {config.bootstrap_log}: {e}")
    return Logger(quiet=config.quiet, log=log)


def run_stage(name: str, func, config: Config, logger: Logger, timer: StartupTimer):
    """Run one fail-fast stage inside its logging scope."""
    with ContextScope(stage=name), timer.phase(name):
        try:
            return func(config, logger)
        except FATAL_ERRORS as e:
            if isinstance(e, subprocess.CalledProcessError):
                logger.error(
                    f"Command failed with exit status {e.returncode}: {' '.join(map(str, e.cmd))}"
                )
            else:
                logger.error(str(e))
            raise BootstrapFailed(name, e) from e


def bootstrap(config: Config, logger: Logger, timer: StartupTimer) -> ServiceTask:
    """Run every stage up to and including the ComfyUI launch. Returns the anchor task."""
    run_stage("ssh", setup_ssh, config, logger, timer)
    run_stage("environment", export_env_vars, config, logger, timer)

    with ContextScope(stage="services"), timer.phase("services"):
        start_auxiliary_services(config, logger)

    run_stage("install", install_or_reconcile, config, logger, timer)
    return run_stage("comfyui", start_main_process, config, logger, timer)


def install_signal_handlers(logger: Logger) -> None:
    """Exit with 128+signum on SIGTERM/SIGINT. Detached services are left alone."""

    def handler(signum, frame):
        logger.warn(f"Received {signal.Signals(signum).name}, exiting")
        sys.exit(128 + signum)

    signal.signal(signal.SIGTERM, handler)
    signal.signal(signal.SIGINT, handler)


def main(config: Config | None = None, follow: bool = True, timer: StartupTimer | None = None) -> int:
    """Bootstrap the container and supervise ComfyUI. Returns the process exit status."""
    config = config or Config.load()
    logger = configure_logging(config)
    timer = timer or StartupTimer(enabled=config.timing)

    install_signal_handlers(logger)

    with ContextScope(run_id=context_from_env().run_id):
        try:
            anchor = bootstrap(config, logger, timer)
        except BootstrapFailed as e:
            logger.error(f"Container startup aborted in stage '{e.stage}'")
            return 1

        timer.print_summary()

        if not follow:
            return 0
        with ContextScope(stage="supervise"):
            return supervise(anchor, logger)


if __name__ == "__main__":
    sys.exit(main())
