"""CLI argument parsing and entry point for podboot."""

import argparse
import os
import shlex
import sys

import yaml

from .config import Config
from .entrypoint import main as run_entrypoint
from .environment import capture, format_shell
from .supervisor import load_effective_args
from .timing import StartupTimer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="podboot",
        description="Bootstrap a ComfyUI pod: SSH, environment, services, install, launch",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  podboot                   # Full bootstrap, then follow the ComfyUI log (container CMD)
  podboot --no-follow       # Bootstrap and launch, then return
  podboot --print-args      # Show the ComfyUI command line the args file produces
  podboot --print-env       # Show the environment that would be propagated
  podboot --time            # Print per-stage timing before following the log

Configuration:
  Environment: PUBLIC_KEY, JUPYTER_PASSWORD, EXTRA_CUSTOM_NODES, WORKSPACE_DIR,
               PODBOOT_CONFIG, PODBOOT_QUIET, PODBOOT_LOG_LEVEL, PODBOOT_TIMING
  YAML overlay (default <workspace>/runpod-slim/podboot.yaml):
               custom_nodes, force_pins, extra_pins, venv_python, plugin_workers,
               app_port, host_key_types
        """,
    )
    parser.add_argument(
        "--no-follow",
        action="store_true",
        help="Return after launching ComfyUI instead of following its log",
    )
    parser.add_argument(
        "--print-args",
        action="store_true",
        help="Print the composed ComfyUI arguments and exit",
    )
    parser.add_argument(
        "--print-env",
        action="store_true",
        help="Print the propagated environment snapshot and exit",
    )
    parser.add_argument("--time", action="store_true", help="Show per-stage timing")

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    verbosity.add_argument(
        "-q", "--quiet", action="store_true", help="Only show warnings and errors"
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = Config.load()
    except (OSError, ValueError, yaml.YAMLError) as e:
        print(f"✗ Invalid configuration: {e}", file=sys.stderr)
        return 1

    if args.verbose:
        config.log_level = "DEBUG"
    if args.quiet:
        config.quiet = True

    if args.print_args:
        print(shlex.join(["python", "main.py", *load_effective_args(config)]))
        return 0

    if args.print_env:
        snapshot = capture(os.environ, config.env_filters)
        for name, value in snapshot.items():
            print(format_shell(name, value))
        for name in snapshot.excluded:
            print(f"# skipped {name}", file=sys.stderr)
        return 0

    timer = StartupTimer(enabled=args.time or config.timing)
    return run_entrypoint(config, follow=not args.no_follow, timer=timer)


if __name__ == "__main__":
    sys.exit(main())
