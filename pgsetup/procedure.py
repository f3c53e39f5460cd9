"""
The setup procedure: an ordered list of steps run fail-fast.

Steps share a :class:`SetupState` that carries values discovered along the
way (the spawned server, the hba_file path, the data directory, the pid).
The first step that raises stops the procedure; the remaining steps are
reported as skipped and the exception propagates to the caller.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable

from pgsetup import client, hba, package, server
from pgsetup._commands import format_cmd
from pgsetup.config import SetupConfig
from pgsetup.events import Event, EventCallback, emit_event

logger = logging.getLogger(__name__)

# Step names, in execution order.
REINSTALL_PACKAGE = "reinstall-package"
START_SERVER = "start-server"
WAIT_READY = "wait-ready"
CREATE_SUPERUSER = "create-superuser"
LOAD_SQL = "load-sql"
INSTALL_HBA = "install-hba"
RELOAD_SERVER = "reload-server"
VERIFY_RELOAD = "verify-reload"

ALL_STEPS = (
    REINSTALL_PACKAGE,
    START_SERVER,
    WAIT_READY,
    CREATE_SUPERUSER,
    LOAD_SQL,
    INSTALL_HBA,
    RELOAD_SERVER,
    VERIFY_RELOAD,
)
RELOAD_STEPS = (INSTALL_HBA, RELOAD_SERVER, VERIFY_RELOAD)


@dataclass
class SetupState:
    """Values produced by earlier steps and consumed by later ones."""

    config: SetupConfig
    process: server.ServerProcess | None = None
    hba_file: Path | None = None
    data_dir: Path | None = None
    pid: int | None = None
    load_time_before: datetime | None = None
    reloaded_at: datetime | None = None


@dataclass
class SetupResult:
    """
    Outcome of a completed procedure.

    Attributes:
        steps: Names of the steps that ran, in order.
        durations: Seconds spent per step.
        hba_file: Where the hba file was installed.
        data_dir: Data directory reported by the server.
        pid: Postmaster pid that was signalled.
        reloaded_at: Configuration load time after the reload, if verified.
    """

    steps: list[str] = field(default_factory=list)
    durations: dict[str, float] = field(default_factory=dict)
    hba_file: Path | None = None
    data_dir: Path | None = None
    pid: int | None = None
    reloaded_at: datetime | None = None


@dataclass(frozen=True)
class Step:
    """A named unit of the procedure."""

    name: str
    description: str
    action: Callable[[SetupState], None]


# ---------------------------------------------------------------------------
# Step actions
# ---------------------------------------------------------------------------


def _reinstall_package(state: SetupState) -> None:
    config = state.config
    manager = package.get_package_manager(config.package_manager)
    package.reinstall_package(manager, config.package)


def _start_server(state: SetupState) -> None:
    config = state.config
    state.process = server.start_server(
        config.data_dir,
        binary=config.server_binary,
        log_file=config.log_file,
    )


def _wait_ready(state: SetupState) -> None:
    config = state.config
    server.wait_until_ready(
        state.process,
        timeout=config.ready_timeout,
        interval=config.ready_interval,
    )


def _create_superuser(state: SetupState) -> None:
    client.create_superuser(state.config.superuser)


def _load_sql(state: SetupState) -> None:
    config = state.config
    client.run_sql_file(config.setup_sql, user=config.superuser)


def _install_hba(state: SetupState) -> None:
    config = state.config
    destination = Path(client.show_setting("hba_file", user=config.superuser))
    state.hba_file = hba.install_hba_file(config.hba_source, destination)


def _reload_server(state: SetupState) -> None:
    config = state.config
    state.data_dir = Path(client.show_setting("data_directory", user=config.superuser))
    state.pid = server.read_pid(state.data_dir, sudo=config.sudo_pid_read)
    if config.verify_reload:
        state.load_time_before = client.conf_load_time(user=config.superuser)
    server.send_reload(state.pid)


def _verify_reload(state: SetupState) -> None:
    config = state.config
    if state.load_time_before is None:
        raise RuntimeError(f"{VERIFY_RELOAD} requires {RELOAD_SERVER} to run first")
    state.reloaded_at = client.wait_for_reload(
        state.load_time_before,
        user=config.superuser,
        timeout=config.reload_timeout,
    )


# ---------------------------------------------------------------------------
# Building and running
# ---------------------------------------------------------------------------


def build_steps(
    config: SetupConfig,
    names: tuple[str, ...] | list[str] | None = None,
) -> list[Step]:
    """
    Build the ordered step list for *config*.

    ``reinstall=False`` drops the package step and ``verify_reload=False``
    drops the verification step. *names* restricts the list further; the
    order is always the procedure's own order.

    Raises:
        ValueError: If *names* contains an unknown step, or selects
            ``verify-reload`` without ``reload-server``.
    """
    if names is not None:
        unknown = sorted(set(names) - set(ALL_STEPS))
        if unknown:
            raise ValueError(f"Unknown steps: {', '.join(unknown)}")

    su = config.superuser
    manager_label = config.package_manager
    if manager_label in package.PACKAGE_MANAGERS:
        pm = package.PACKAGE_MANAGERS[manager_label]
        reinstall_desc = (
            f"{format_cmd(pm.remove_command(config.package))} && "
            f"{format_cmd(pm.install_command(config.package))}"
        )
    else:
        reinstall_desc = f"reinstall {config.package} ({manager_label})"

    steps = [
        Step(REINSTALL_PACKAGE, reinstall_desc, _reinstall_package),
        Step(
            START_SERVER,
            f"{config.server_binary} -D {config.data_dir} &",
            _start_server,
        ),
        Step(
            WAIT_READY,
            f"pg_isready (every {config.ready_interval}s, "
            f"up to {config.ready_timeout}s)",
            _wait_ready,
        ),
        Step(CREATE_SUPERUSER, f"createuser -s {su}", _create_superuser),
        Step(
            LOAD_SQL,
            f"psql -U {su} -v ON_ERROR_STOP=1 < {config.setup_sql}",
            _load_sql,
        ),
        Step(
            INSTALL_HBA,
            f"cp {config.hba_source} $(psql -U {su} -c 'SHOW hba_file' -At)",
            _install_hba,
        ),
        Step(
            RELOAD_SERVER,
            "kill -SIGHUP $(head -n1 <data_directory>/postmaster.pid)",
            _reload_server,
        ),
        Step(VERIFY_RELOAD, "wait for pg_conf_load_time() to advance", _verify_reload),
    ]

    if not config.reinstall:
        steps = [s for s in steps if s.name != REINSTALL_PACKAGE]
    if not config.verify_reload:
        steps = [s for s in steps if s.name != VERIFY_RELOAD]
    if names is not None:
        steps = [s for s in steps if s.name in names]
        selected = {s.name for s in steps}
        if VERIFY_RELOAD in selected and RELOAD_SERVER not in selected:
            raise ValueError(f"{VERIFY_RELOAD} cannot run without {RELOAD_SERVER}")
    return steps


def run_setup(
    config: SetupConfig,
    *,
    steps: list[Step] | None = None,
    on_event: EventCallback | None = None,
) -> SetupResult:
    """
    Run the procedure, stopping at the first failure.

    Args:
        config: Settings for this run.
        steps: Steps to run (default: :func:`build_steps` for *config*).
        on_event: Optional callback receiving step events.

    Returns:
        A :class:`SetupResult` describing what was done.

    Raises:
        FileNotFoundError: If a bundled file a step needs is missing. Raised
            before any step runs.
        Exception: Whatever the failing step raised.
    """
    if steps is None:
        steps = build_steps(config)

    names = [s.name for s in steps]
    config.check_bundle(sql=LOAD_SQL in names, hba=INSTALL_HBA in names)

    state = SetupState(config=config)
    result = SetupResult()
    total = len(steps)

    for index, step in enumerate(steps, start=1):
        logger.info(f"[{index}/{total}] {step.name}: {step.description}")
        emit_event(on_event, Event.step_started(step.name, index, total, step.description))
        started = time.time()
        try:
            step.action(state)
        except Exception as e:
            logger.error(f"Step {step.name} failed: {e}")
            emit_event(on_event, Event.step_failed(step.name, index, total, str(e)))
            for later_index, later in enumerate(steps[index:], start=index + 1):
                emit_event(on_event, Event.step_skipped(later.name, later_index, total))
            raise
        duration = time.time() - started
        result.steps.append(step.name)
        result.durations[step.name] = duration
        emit_event(on_event, Event.step_finished(step.name, index, total, duration))

    result.hba_file = state.hba_file
    result.data_dir = state.data_dir
    result.pid = state.pid
    result.reloaded_at = state.reloaded_at
    logger.info("Setup complete")
    return result
