"""Remote shell access: host keys, root credential and sshd."""

import base64
import secrets
import shutil
from pathlib import Path

from .config import Config
from .errors import BootstrapError
from .output import Logger
from .process import run_cmd


def ensure_host_keys(config: Config, logger: Logger) -> list[str]:
    """Generate any missing host key. Returns the key types that were created.

    Existing keys are never regenerated: clients that already trust this
    host would otherwise see a changed host key.
    """
    if shutil.which("ssh-keygen") is None:
        raise BootstrapError("ssh-keygen not found; cannot provide remote access")

    ssh_etc = config.etc_dir / "ssh"
    ssh_etc.mkdir(parents=True, exist_ok=True)

    created = []
    for key_type in config.host_key_types:
        key_file = ssh_etc / f"ssh_host_{key_type}_key"
        if key_file.exists():
            continue

        run_cmd(["ssh-keygen", "-t", key_type, "-f", str(key_file), "-q", "-N", ""])
        fingerprint = run_cmd(["ssh-keygen", "-lf", f"{key_file}.pub"], capture=True)
        logger.info(f"{key_type.upper()} key fingerprint: {fingerprint.stdout.strip()}")
        created.append(key_type)

    return created


def install_public_key(config: Config, public_key: str, logger: Logger) -> None:
    """Add public_key to authorized_keys and lock ~/.ssh down to the owner."""
    authorized_keys = config.ssh_dir / "authorized_keys"
    key_line = public_key.strip()

    existing = authorized_keys.read_text().splitlines() if authorized_keys.exists() else []
    if key_line not in (line.strip() for line in existing):
        with open(authorized_keys, "a") as f:
            f.write(key_line + "\n")
        logger.success("Public key added to authorized_keys")
    else:
        logger.info("Public key already authorized")

    _chmod_tree(config.ssh_dir, 0o700)


def _chmod_tree(path: Path, mode: int) -> None:
    """chmod -R equivalent."""
    path.chmod(mode)
    for child in path.rglob("*"):
        if not child.is_symlink():
            child.chmod(mode)


def generate_password() -> str:
    """Random root password: 12 random bytes, base64 (16 characters)."""
    return base64.b64encode(secrets.token_bytes(12)).decode("ascii")


def set_root_password(logger: Logger) -> str:
    """Set a random root password and print it once.

    The password goes to the console only; it is kept out of the bootstrap
    log file and not stored anywhere.
    """
    password = generate_password()
    run_cmd(["chpasswd"], input=f"root:{password}\n")
    logger.warn(f"Generated random SSH password for root: {password}", secret=True)
    return password


def enable_user_environment(config: Config) -> bool:
    """Allow sshd to read ~/.ssh/environment. Returns True if the config changed."""
    sshd_config = config.sshd_config
    directive = "PermitUserEnvironment yes"

    content = sshd_config.read_text() if sshd_config.exists() else ""
    if any(line.strip() == directive for line in content.splitlines()):
        return False

    sshd_config.parent.mkdir(parents=True, exist_ok=True)
    with open(sshd_config, "a") as f:
        if content and not content.endswith("\n"):
            f.write("\n")
        f.write(directive + "\n")
    return True


def setup_ssh(config: Config, logger: Logger) -> None:
    """Provision remote shell access and start sshd. Any failure is fatal."""
    config.ssh_dir.mkdir(parents=True, exist_ok=True)

    ensure_host_keys(config, logger)

    if config.public_key:
        install_public_key(config, config.public_key, logger)
    else:
        set_root_password(logger)

    enable_user_environment(config)

    run_cmd([config.sshd_binary])
    logger.success("SSH daemon started")
