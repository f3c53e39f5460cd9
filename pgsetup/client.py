"""
Client-side operations against the running server.

Role creation, the SQL setup script and ``SHOW`` lookups go through the
PostgreSQL command-line clients (``createuser``, ``psql``). The reload
timestamp is read over a psycopg connection.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from pathlib import Path

import psycopg

from pgsetup._commands import run_cmd

logger = logging.getLogger(__name__)


class ReloadNotObservedError(RuntimeError):
    """The server's configuration load time did not advance."""


def create_superuser(role: str) -> None:
    """Create *role* with superuser rights (``createuser -s``)."""
    logger.info(f"Creating superuser role {role!r}")
    run_cmd(["createuser", "-s", role])


def run_sql_file(sql_file: Path, *, user: str) -> None:
    """
    Feed *sql_file* to ``psql`` on stdin, connected as *user*.

    ``ON_ERROR_STOP`` makes psql exit non-zero on the first failing
    statement so the procedure stops there.
    """
    logger.info(f"Loading {sql_file} as {user!r}")
    run_cmd(
        ["psql", "-U", user, "-v", "ON_ERROR_STOP=1"],
        stdin_file=Path(sql_file),
    )


def show_setting(name: str, *, user: str) -> str:
    """
    Return a server setting via ``psql -c "SHOW name" -At``.

    Raises:
        ValueError: If psql printed nothing.
    """
    result = run_cmd(["psql", "-U", user, "-c", f"SHOW {name}", "-At"])
    value = result.stdout.strip()
    if not value:
        raise ValueError(f"Server returned an empty value for {name}")
    # -At prints one row; anything after the first line is noise.
    value = value.splitlines()[0].strip()
    logger.debug(f"{name} = {value}")
    return value


def conf_load_time(*, user: str, dbname: str = "postgres") -> datetime:
    """Return ``pg_conf_load_time()`` from the live server."""
    with psycopg.connect(dbname=dbname, user=user, autocommit=True) as conn:
        row = conn.execute("SELECT pg_conf_load_time()").fetchone()
    if row is None:
        raise RuntimeError("pg_conf_load_time() returned no rows")
    return row[0]


def wait_for_reload(
    previous: datetime,
    *,
    user: str,
    timeout: float = 10.0,
    interval: float = 0.2,
) -> datetime:
    """
    Wait until ``pg_conf_load_time()`` moves past *previous*.

    Returns:
        The new configuration load time.

    Raises:
        ReloadNotObservedError: If it has not advanced within *timeout*.
    """
    start = time.time()
    while True:
        current = conf_load_time(user=user)
        if current > previous:
            logger.info(f"Configuration reloaded at {current.isoformat()}")
            return current
        if time.time() - start >= timeout:
            raise ReloadNotObservedError(
                f"Configuration load time still {current.isoformat()} "
                f"after {timeout}s"
            )
        time.sleep(interval)
