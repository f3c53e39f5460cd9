"""
pgsetup CLI: Command-line interface for the local PostgreSQL setup.

Provides commands for:
- run: Reinstall, start, provision and reload the local server
- plan: Show the steps ``run`` would execute
- status: Show what the live server reports
- reload: Re-install pg_hba.conf and signal the server to reload
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from pgsetup._commands import CommandError

if TYPE_CHECKING:
    from pgsetup.config import SetupConfig
    from pgsetup.procedure import Step

logger = logging.getLogger(__name__)


def _add_config_args(parser: argparse.ArgumentParser) -> None:
    """Options shared by every subcommand that needs a config."""
    parser.add_argument(
        "--config", "-c",
        help="Path to .pgsetup.toml (default: search upwards from cwd)",
    )
    parser.add_argument(
        "--env", "-e",
        help="Environment profile from [environments] to apply",
    )
    parser.add_argument(
        "--superuser", "-U",
        help="Superuser role to create and connect as (default: postgres)",
    )
    parser.add_argument(
        "--data-dir",
        help="Server data directory (default: /usr/local/var/postgres)",
    )


def _add_run_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--package-manager",
        choices=["auto", "brew", "apt", "pacman", "dnf"],
        help="Package manager used to reinstall PostgreSQL (default: brew)",
    )
    parser.add_argument(
        "--package",
        help="Package name to reinstall (default: postgres)",
    )
    parser.add_argument(
        "--no-reinstall",
        action="store_true",
        help="Skip removing and reinstalling the package",
    )
    parser.add_argument(
        "--no-verify-reload",
        action="store_true",
        help="Do not wait for the server to report a configuration reload",
    )
    parser.add_argument(
        "--ready-timeout",
        type=float,
        help="Seconds to wait for the server to accept connections (default: 30)",
    )
    parser.add_argument(
        "--log-file",
        help="Append server output to this file (default: discard)",
    )


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="pgsetup",
        description="pgsetup: Reinstall and provision a local PostgreSQL server",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser(
        "run",
        help="Run the full setup procedure",
    )
    _add_config_args(run_parser)
    _add_run_args(run_parser)
    run_parser.add_argument(
        "--progress",
        choices=["auto", "rich", "simple"],
        default="auto",
        help="Progress display (default: auto)",
    )

    plan_parser = subparsers.add_parser(
        "plan",
        help="Print the steps 'run' would execute",
    )
    _add_config_args(plan_parser)
    _add_run_args(plan_parser)

    status_parser = subparsers.add_parser(
        "status",
        help="Show data directory, hba file and pid of the live server",
    )
    _add_config_args(status_parser)
    status_parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Output as JSON",
    )

    reload_parser = subparsers.add_parser(
        "reload",
        help="Re-install pg_hba.conf and reload the live server",
    )
    _add_config_args(reload_parser)
    reload_parser.add_argument(
        "--no-verify-reload",
        action="store_true",
        help="Do not wait for the server to report a configuration reload",
    )
    reload_parser.add_argument(
        "--progress",
        choices=["auto", "rich", "simple"],
        default="auto",
        help="Progress display (default: auto)",
    )

    args = parser.parse_args(argv)

    # Setup logging
    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    try:
        config = load_config(args)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.command == "run":
        return handle_run(args, config)
    elif args.command == "plan":
        return handle_plan(config)
    elif args.command == "status":
        return handle_status(args, config)
    elif args.command == "reload":
        return handle_reload(args, config)

    parser.print_help()
    return 1


def load_config(args: argparse.Namespace) -> SetupConfig:
    """Load the config file and apply command-line overrides."""
    from pgsetup.config import SetupConfig

    config = SetupConfig.load(
        Path(args.config) if args.config else None,
        env_name=args.env,
    )

    overrides = {
        "superuser": args.superuser,
        "data_dir": Path(args.data_dir) if args.data_dir else None,
        "package_manager": getattr(args, "package_manager", None),
        "package": getattr(args, "package", None),
        "ready_timeout": getattr(args, "ready_timeout", None),
    }
    log_file = getattr(args, "log_file", None)
    if log_file:
        overrides["log_file"] = Path(log_file)
    if getattr(args, "no_reinstall", False):
        overrides["reinstall"] = False
    if getattr(args, "no_verify_reload", False):
        overrides["verify_reload"] = False
    return config.override(**overrides)


def _exit_code(returncode: int) -> int:
    """Map a command's return code to a process exit status."""
    # subprocess reports death by signal N as -N; shells use 128 + N.
    if returncode < 0:
        return 128 - returncode
    return returncode


def _run_procedure(
    config: SetupConfig, steps: list[Step], progress_style: str
) -> int:
    from pgsetup.procedure import run_setup
    from pgsetup.progress import create_progress_tracker

    tracker = create_progress_tracker(style=progress_style)
    try:
        with tracker:
            result = run_setup(config, steps=steps, on_event=tracker)
    except CommandError as e:
        print(f"Error: {e}", file=sys.stderr)
        return _exit_code(e.returncode)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if result.hba_file:
        print(f"  hba_file: {result.hba_file}")
    if result.data_dir:
        print(f"  data_directory: {result.data_dir}")
    if result.pid:
        print(f"  pid: {result.pid}")
    if result.reloaded_at:
        print(f"  reloaded at: {result.reloaded_at.isoformat()}")
    return 0


def handle_run(args: argparse.Namespace, config: SetupConfig) -> int:
    """Handle the run command."""
    from pgsetup.procedure import build_steps

    return _run_procedure(config, build_steps(config), args.progress)


def handle_plan(config: SetupConfig) -> int:
    """Handle the plan command."""
    from pgsetup.procedure import build_steps

    steps = build_steps(config)
    print("Setup plan:")
    for index, step in enumerate(steps, start=1):
        print(f"  {index}. {step.name}: {step.description}")
    return 0


def handle_reload(args: argparse.Namespace, config: SetupConfig) -> int:
    """Handle the reload command."""
    from pgsetup.procedure import RELOAD_STEPS, build_steps

    steps = build_steps(config, RELOAD_STEPS)
    return _run_procedure(config, steps, args.progress)


def handle_status(args: argparse.Namespace, config: SetupConfig) -> int:
    """Handle the status command."""
    from pgsetup.client import conf_load_time, show_setting
    from pgsetup.server import read_pid

    try:
        data_dir = show_setting("data_directory", user=config.superuser)
        hba_file = show_setting("hba_file", user=config.superuser)
    except CommandError as e:
        if args.json_output:
            print(json.dumps({"running": False}))
        else:
            print("PostgreSQL server is not reachable")
        logger.debug(str(e))
        return _exit_code(e.returncode)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    # The server answered; failures from here on are reported as they are.
    try:
        pid = read_pid(Path(data_dir), sudo=config.sudo_pid_read)
        loaded_at = conf_load_time(user=config.superuser)
    except CommandError as e:
        print(f"Error: {e}", file=sys.stderr)
        return _exit_code(e.returncode)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    data = {
        "running": True,
        "data_directory": data_dir,
        "hba_file": hba_file,
        "pid": pid,
        "conf_load_time": loaded_at.isoformat(),
    }
    if args.json_output:
        print(json.dumps(data, indent=2))
    else:
        print("PostgreSQL server is running:")
        print(f"  Data directory: {data_dir}")
        print(f"  hba file: {hba_file}")
        print(f"  PID: {pid}")
        print(f"  Config loaded: {data['conf_load_time']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
