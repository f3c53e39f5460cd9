"""Tests for the fail-fast setup procedure."""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import DEFAULT, MagicMock, patch

import pytest

from pgsetup._commands import CommandError
from pgsetup.config import SetupConfig
from pgsetup.events import EventKind
from pgsetup.procedure import (
    ALL_STEPS,
    INSTALL_HBA,
    LOAD_SQL,
    RELOAD_SERVER,
    RELOAD_STEPS,
    REINSTALL_PACKAGE,
    VERIFY_RELOAD,
    Step,
    build_steps,
    run_setup,
)

T0 = datetime(2026, 10, 16, 12, 0, 0)
T1 = T0 + timedelta(seconds=2)

SETTINGS = {
    "hba_file": "/usr/local/var/postgres/pg_hba.conf",
    "data_directory": "/usr/local/var/postgres",
}


@pytest.fixture
def config(tmp_path: Path) -> SetupConfig:
    (tmp_path / "setup.sql").write_text("CREATE EXTENSION hstore;\n")
    (tmp_path / "pg_hba.conf").write_text("local all postgres trust\n")
    return SetupConfig(
        setup_sql=tmp_path / "setup.sql",
        hba_source=tmp_path / "pg_hba.conf",
    )


@pytest.fixture
def mocks():
    """Patch every external effect the real steps have."""
    with patch.multiple(
        "pgsetup.procedure.package",
        get_package_manager=DEFAULT,
        reinstall_package=DEFAULT,
    ) as pkg, patch.multiple(
        "pgsetup.procedure.server",
        start_server=DEFAULT,
        wait_until_ready=DEFAULT,
        read_pid=DEFAULT,
        send_reload=DEFAULT,
    ) as srv, patch.multiple(
        "pgsetup.procedure.client",
        create_superuser=DEFAULT,
        run_sql_file=DEFAULT,
        show_setting=DEFAULT,
        conf_load_time=DEFAULT,
        wait_for_reload=DEFAULT,
    ) as cli, patch("pgsetup.procedure.hba.install_hba_file") as install_hba:
        cli["show_setting"].side_effect = lambda name, user: SETTINGS[name]
        cli["conf_load_time"].return_value = T0
        cli["wait_for_reload"].return_value = T1
        srv["read_pid"].return_value = 4242
        install_hba.side_effect = lambda source, destination: destination
        yield {**pkg, **srv, **cli, "install_hba_file": install_hba}


# ---------------------------------------------------------------------------
# build_steps
# ---------------------------------------------------------------------------


class TestBuildSteps:
    def test_default_order(self, config):
        assert tuple(s.name for s in build_steps(config)) == ALL_STEPS

    def test_descriptions_show_commands(self, config):
        steps = {s.name: s.description for s in build_steps(config)}
        assert steps[REINSTALL_PACKAGE] == "brew remove postgres && brew install postgres"
        assert "createuser -s postgres" in steps["create-superuser"]
        assert "ON_ERROR_STOP=1" in steps[LOAD_SQL]

    def test_no_reinstall(self, config):
        names = [s.name for s in build_steps(config.override(reinstall=False))]
        assert REINSTALL_PACKAGE not in names
        assert names[0] == "start-server"

    def test_no_verify(self, config):
        names = [s.name for s in build_steps(config.override(verify_reload=False))]
        assert names[-1] == RELOAD_SERVER

    def test_subset_keeps_procedure_order(self, config):
        names = [s.name for s in build_steps(config, [RELOAD_SERVER, INSTALL_HBA])]
        assert names == [INSTALL_HBA, RELOAD_SERVER]

    def test_verify_without_reload_rejected(self, config):
        with pytest.raises(ValueError, match="verify-reload cannot run without reload-server"):
            build_steps(config, [INSTALL_HBA, VERIFY_RELOAD])

    def test_subset_without_verification(self, config):
        names = [s.name for s in build_steps(config.override(verify_reload=False), [INSTALL_HBA])]
        assert names == [INSTALL_HBA]

    def test_unknown_step(self, config):
        with pytest.raises(ValueError, match="Unknown steps: nope"):
            build_steps(config, ["nope"])


# ---------------------------------------------------------------------------
# run_setup with synthetic steps
# ---------------------------------------------------------------------------


class TestRunSetupOrdering:
    def test_runs_in_order_and_emits_events(self, config):
        ran = []
        steps = [
            Step("a", "first", lambda state: ran.append("a")),
            Step("b", "second", lambda state: ran.append("b")),
        ]
        events = []

        result = run_setup(config, steps=steps, on_event=events.append)

        assert ran == ["a", "b"]
        assert result.steps == ["a", "b"]
        assert set(result.durations) == {"a", "b"}
        assert [(e.kind, e.step) for e in events] == [
            (EventKind.STEP_STARTED, "a"),
            (EventKind.STEP_FINISHED, "a"),
            (EventKind.STEP_STARTED, "b"),
            (EventKind.STEP_FINISHED, "b"),
        ]
        assert events[0].payload["description"] == "first"
        assert events[0].total == 2

    def test_first_failure_stops_procedure(self, config):
        ran = []

        def fail(state):
            raise CommandError(["psql"], 3)

        steps = [
            Step("a", "", lambda state: ran.append("a")),
            Step("b", "", fail),
            Step("c", "", lambda state: ran.append("c")),
        ]
        events = []

        with pytest.raises(CommandError) as excinfo:
            run_setup(config, steps=steps, on_event=events.append)

        assert excinfo.value.returncode == 3
        assert ran == ["a"]
        kinds = [(e.kind, e.step) for e in events]
        assert (EventKind.STEP_FAILED, "b") in kinds
        assert kinds[-1] == (EventKind.STEP_SKIPPED, "c")

    def test_broken_callback_does_not_stop_setup(self, config):
        def callback(event):
            raise RuntimeError("display broke")

        steps = [Step("a", "", lambda state: None)]
        assert run_setup(config, steps=steps, on_event=callback).steps == ["a"]


# ---------------------------------------------------------------------------
# run_setup with the real steps
# ---------------------------------------------------------------------------


class TestRunSetupProcedure:
    def test_full_run(self, config, mocks):
        result = run_setup(config)

        assert tuple(result.steps) == ALL_STEPS
        mocks["reinstall_package"].assert_called_once_with(
            mocks["get_package_manager"].return_value, "postgres"
        )
        mocks["start_server"].assert_called_once_with(
            config.data_dir, binary="postgres", log_file=None
        )
        mocks["wait_until_ready"].assert_called_once_with(
            mocks["start_server"].return_value, timeout=30.0, interval=0.5
        )
        mocks["create_superuser"].assert_called_once_with("postgres")
        mocks["run_sql_file"].assert_called_once_with(config.setup_sql, user="postgres")
        mocks["install_hba_file"].assert_called_once_with(
            config.hba_source, Path(SETTINGS["hba_file"])
        )
        mocks["read_pid"].assert_called_once_with(
            Path(SETTINGS["data_directory"]), sudo=True
        )
        mocks["send_reload"].assert_called_once_with(4242)
        mocks["wait_for_reload"].assert_called_once_with(T0, user="postgres", timeout=10.0)

        assert result.hba_file == Path(SETTINGS["hba_file"])
        assert result.data_dir == Path(SETTINGS["data_directory"])
        assert result.pid == 4242
        assert result.reloaded_at == T1

    def test_load_time_read_before_signal(self, config, mocks):
        order = []
        mocks["conf_load_time"].side_effect = lambda user: order.append("load_time") or T0
        mocks["send_reload"].side_effect = lambda pid: order.append("sighup")

        run_setup(config)

        assert order == ["load_time", "sighup"]

    def test_sql_failure_stops_before_hba_and_reload(self, config, mocks):
        mocks["run_sql_file"].side_effect = CommandError(["psql"], 3, "", "ERROR")

        with pytest.raises(CommandError):
            run_setup(config)

        mocks["create_superuser"].assert_called_once()
        mocks["install_hba_file"].assert_not_called()
        mocks["show_setting"].assert_not_called()
        mocks["send_reload"].assert_not_called()

    def test_reload_steps_only(self, config, mocks):
        result = run_setup(config, steps=build_steps(config, RELOAD_STEPS))

        assert tuple(result.steps) == RELOAD_STEPS
        mocks["reinstall_package"].assert_not_called()
        mocks["start_server"].assert_not_called()
        mocks["send_reload"].assert_called_once_with(4242)

    def test_without_verification(self, config, mocks):
        result = run_setup(config.override(verify_reload=False))

        mocks["conf_load_time"].assert_not_called()
        mocks["wait_for_reload"].assert_not_called()
        assert result.reloaded_at is None

    def test_missing_bundle_fails_before_any_step(self, config, mocks, tmp_path):
        config = config.override(setup_sql=tmp_path / "missing.sql")

        with pytest.raises(FileNotFoundError, match="SQL setup script"):
            run_setup(config)

        mocks["reinstall_package"].assert_not_called()

    def test_verify_step_alone_fails(self, config, mocks):
        verify = [s for s in build_steps(config) if s.name == VERIFY_RELOAD]
        events = []

        with pytest.raises(RuntimeError, match="requires reload-server"):
            run_setup(config, steps=verify, on_event=events.append)

        mocks["conf_load_time"].assert_not_called()
        mocks["wait_for_reload"].assert_not_called()
        assert events[-1].kind == EventKind.STEP_FAILED
