"""
PostgreSQL server process control.

Start the server detached from this process, wait until it accepts
connections, locate its postmaster pid and signal it to reload.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

from pgsetup._commands import format_cmd, run_cmd

logger = logging.getLogger(__name__)

PID_FILENAME = "postmaster.pid"


class ServerNotReadyError(RuntimeError):
    """The server did not start accepting connections."""


@dataclass
class ServerProcess:
    """A server process spawned by :func:`start_server`."""

    process: subprocess.Popen
    data_dir: Path
    log_file: Path | None = None

    @property
    def pid(self) -> int:
        return self.process.pid

    def exit_code(self) -> int | None:
        """Exit status if the process has terminated, else ``None``."""
        return self.process.poll()


def start_server(
    data_dir: Path,
    *,
    binary: str = "postgres",
    log_file: Path | None = None,
) -> ServerProcess:
    """
    Launch ``postgres -D data_dir`` in the background.

    The child runs in its own session so it keeps running after pgsetup
    exits. Output is appended to *log_file*, or discarded when ``None``.
    """
    cmd = [binary, "-D", str(data_dir)]
    logger.info(f"$ {format_cmd(cmd)} &")

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        with open(log_file, "ab") as out:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=out,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
    else:
        process = subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )

    logger.info(f"Server process started (pid {process.pid})")
    return ServerProcess(process=process, data_dir=Path(data_dir), log_file=log_file)


def wait_until_ready(
    server: ServerProcess | None = None,
    *,
    timeout: float = 30.0,
    interval: float = 0.5,
) -> None:
    """
    Poll ``pg_isready`` until the server accepts connections.

    Args:
        server: The spawned process. When given, its early exit aborts the
            wait instead of running out the timeout.
        timeout: Seconds to keep polling.
        interval: Seconds between probes.

    Raises:
        ServerNotReadyError: On timeout or if *server* exited.
    """
    start = time.time()
    attempts = 0
    while True:
        if server is not None:
            code = server.exit_code()
            if code is not None:
                hint = f"; see {server.log_file}" if server.log_file else ""
                raise ServerNotReadyError(
                    f"Server process {server.pid} exited with status {code}{hint}"
                )

        attempts += 1
        result = run_cmd(["pg_isready", "-q"], check=False, log_level=logging.DEBUG)
        if result.returncode == 0:
            logger.info(f"Server accepting connections after {attempts} probe(s)")
            return

        if time.time() - start >= timeout:
            raise ServerNotReadyError(
                f"Server not accepting connections within {timeout}s "
                f"(pg_isready status {result.returncode})"
            )
        time.sleep(interval)


def parse_pid(text: str) -> int:
    """
    Parse the pid from the contents of ``postmaster.pid``.

    Only the first line is used.

    Raises:
        ValueError: If the first line is not a positive integer.
    """
    first = text.split("\n", 1)[0].strip()
    try:
        pid = int(first)
    except ValueError:
        raise ValueError(f"Invalid pid in {PID_FILENAME}: {first!r}") from None
    if pid <= 0:
        raise ValueError(f"Invalid pid in {PID_FILENAME}: {pid}")
    return pid


def read_pid(data_dir: Path, *, sudo: bool = True) -> int:
    """
    Read the postmaster pid from *data_dir*.

    The data directory is usually owned by the server's user, so by default
    the file is read with ``sudo head -n1``.
    """
    pid_file = Path(data_dir) / PID_FILENAME
    if sudo:
        text = run_cmd(["sudo", "head", "-n1", str(pid_file)]).stdout
    else:
        text = pid_file.read_text()
    return parse_pid(text)


def send_reload(pid: int) -> None:
    """Send SIGHUP so the server re-reads its configuration files."""
    logger.info(f"Sending SIGHUP to {pid}")
    os.kill(pid, signal.SIGHUP)
