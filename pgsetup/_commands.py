"""
Subprocess helpers shared by the setup steps.

Every external tool (package manager, ``createuser``, ``psql``, ...) is run
through :func:`run_cmd` so that commands are logged the same way and a
non-zero exit always surfaces as a :class:`CommandError`.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)


class CommandError(RuntimeError):
    """A command exited with a non-zero status."""

    def __init__(
        self,
        cmd: list[str],
        returncode: int,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        message = f"Command failed ({returncode}): {format_cmd(cmd)}"
        if stderr.strip():
            message += f"\nstderr: {stderr.strip()}"
        super().__init__(message)


def format_cmd(cmd: list[str]) -> str:
    """Render a command the way it would be typed in a shell."""
    return " ".join(shlex.quote(part) for part in cmd)


def run_cmd(
    cmd: list[str],
    *,
    stdin_file: Path | None = None,
    env: dict[str, str] | None = None,
    timeout: float | None = None,
    check: bool = True,
    log_level: int = logging.INFO,
) -> subprocess.CompletedProcess:
    """
    Run a command and capture its output.

    Args:
        cmd: Command and arguments.
        stdin_file: File whose contents are fed to the command's stdin.
        env: Extra environment variables layered over ``os.environ``.
        timeout: Seconds before the command is killed.
        check: Raise :class:`CommandError` on a non-zero exit.
        log_level: Level the command line is logged at.

    Returns:
        The completed process with text ``stdout``/``stderr``.
    """
    full_env = os.environ.copy()
    if env:
        full_env.update(env)

    logger.log(log_level, f"$ {format_cmd(cmd)}")

    if stdin_file is not None:
        with open(stdin_file, "rb") as f:
            result = subprocess.run(
                cmd,
                stdin=f,
                capture_output=True,
                timeout=timeout,
                env=full_env,
            )
        result = subprocess.CompletedProcess(
            result.args,
            result.returncode,
            result.stdout.decode(errors="replace"),
            result.stderr.decode(errors="replace"),
        )
    else:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=full_env,
        )

    if result.stdout:
        logger.debug(result.stdout.rstrip())
    if result.stderr:
        logger.debug(result.stderr.rstrip())

    if check and result.returncode != 0:
        raise CommandError(cmd, result.returncode, result.stdout, result.stderr)

    return result
