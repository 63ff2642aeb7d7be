"""
Pytest configuration and shared fixtures for podboot tests.
"""

import logging
import subprocess
import sys
from pathlib import Path

import pytest


# Allow running the tests from a checkout without installing the package
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from pod_logging import set_current_context  # noqa: E402
from pod_logging.logger import _loggers  # noqa: E402
from podboot.config import Config  # noqa: E402
from podboot.output import Logger  # noqa: E402


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers and cached loggers so tests do not leak file handlers."""
    yield
    for name in list(_loggers):
        std_logger = logging.getLogger(name)
        for handler in std_logger.handlers[:]:
            std_logger.removeHandler(handler)
            handler.close()
    _loggers.clear()
    set_current_context(None)


@pytest.fixture
def isolated_env(monkeypatch):
    """Environment variables the bootstrap reads or writes, restored after the test."""
    monkeypatch.setenv("PATH", "/usr/local/bin:/usr/bin:/bin")
    monkeypatch.setenv("VIRTUAL_ENV", "")
    monkeypatch.delenv("PYTHONHOME", raising=False)
    monkeypatch.delenv("PODBOOT_CONFIG", raising=False)
    monkeypatch.delenv("EXTRA_CUSTOM_NODES", raising=False)
    monkeypatch.delenv("PUBLIC_KEY", raising=False)
    return monkeypatch


@pytest.fixture
def config(tmp_path, isolated_env):
    """Config with every system location redirected into tmp_path."""
    return Config(
        workspace_dir=tmp_path / "workspace",
        etc_dir=tmp_path / "etc",
        root_home=tmp_path / "root",
        log_dir=tmp_path / "logs",
        public_key=None,
        jupyter_password="",
        extra_custom_nodes=[],
        quiet=True,
        timing=False,
    )


@pytest.fixture
def logger():
    return Logger(quiet=True)


class FakeRunner:
    """Stand-in for run_cmd that records commands and fakes their side effects.

    git clone creates the target directory (plus any files registered for
    that URL in `repo_files`); `python -m venv` creates the venv's bin dir.
    Commands listed in `fail_on` raise CalledProcessError.
    """

    def __init__(self, repo_files=None, fail_on=None):
        self.calls = []
        self.repo_files = repo_files or {}
        self.fail_on = fail_on or []

    def __call__(self, cmd, check=True, capture=False, timeout=None, cwd=None, input=None, env=None):
        self.calls.append({"cmd": list(cmd), "cwd": cwd, "input": input})

        for pattern in self.fail_on:
            if pattern(cmd):
                raise subprocess.CalledProcessError(1, cmd)

        if cmd[:2] == ["git", "clone"]:
            url, dest = cmd[2], Path(cmd[3])
            dest.mkdir(parents=True)
            for name, content in self.repo_files.get(url, {}).items():
                (dest / name).write_text(content)
        elif len(cmd) >= 3 and cmd[1:3] == ["-m", "venv"]:
            (Path(cmd[-1]) / "bin").mkdir(parents=True)

        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    @property
    def commands(self):
        return [call["cmd"] for call in self.calls]

    def clones(self):
        return [cmd[2] for cmd in self.commands if cmd[:2] == ["git", "clone"]]


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def runner_factory():
    """Build a FakeRunner with repo files or failure patterns."""
    return FakeRunner
