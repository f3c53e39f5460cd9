"""Tests for the subprocess helpers."""

from __future__ import annotations

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from pgsetup._commands import CommandError, format_cmd, run_cmd


class TestFormatCmd:
    def test_plain(self):
        assert format_cmd(["createuser", "-s", "postgres"]) == "createuser -s postgres"

    def test_quotes_spaces(self):
        assert format_cmd(["psql", "-c", "SHOW hba_file"]) == "psql -c 'SHOW hba_file'"


class TestRunCmd:
    def test_returns_completed_process(self):
        completed = subprocess.CompletedProcess(["psql"], 0, "value\n", "")
        with patch("pgsetup._commands.subprocess.run", return_value=completed) as run:
            result = run_cmd(["psql", "-At"])

        assert result.stdout == "value\n"
        args, kwargs = run.call_args
        assert args[0] == ["psql", "-At"]
        assert kwargs["capture_output"] is True
        assert kwargs["text"] is True

    def test_nonzero_exit_raises(self):
        completed = subprocess.CompletedProcess(["createuser"], 3, "", "role exists\n")
        with patch("pgsetup._commands.subprocess.run", return_value=completed):
            with pytest.raises(CommandError) as excinfo:
                run_cmd(["createuser", "-s", "postgres"])

        err = excinfo.value
        assert err.returncode == 3
        assert err.cmd == ["createuser", "-s", "postgres"]
        assert err.stderr == "role exists\n"
        assert "role exists" in str(err)

    def test_check_false_returns_failure(self):
        completed = subprocess.CompletedProcess(["pg_isready"], 2, "", "")
        with patch("pgsetup._commands.subprocess.run", return_value=completed):
            result = run_cmd(["pg_isready"], check=False)
        assert result.returncode == 2

    def test_env_is_layered_over_environ(self, monkeypatch):
        monkeypatch.setenv("PGSETUP_TEST_BASE", "1")
        completed = subprocess.CompletedProcess(["true"], 0, "", "")
        with patch("pgsetup._commands.subprocess.run", return_value=completed) as run:
            run_cmd(["true"], env={"PGUSER": "postgres"})

        env = run.call_args.kwargs["env"]
        assert env["PGUSER"] == "postgres"
        assert env["PGSETUP_TEST_BASE"] == "1"

    def test_stdin_file_is_streamed_and_output_decoded(self, tmp_path: Path):
        sql = tmp_path / "setup.sql"
        sql.write_text("SELECT 1;\n")
        completed = subprocess.CompletedProcess(["psql"], 0, b"?column?\n", b"")

        with patch("pgsetup._commands.subprocess.run", return_value=completed) as run:
            result = run_cmd(["psql"], stdin_file=sql)

        stdin = run.call_args.kwargs["stdin"]
        assert Path(stdin.name) == sql
        assert stdin.closed
        assert result.stdout == "?column?\n"
        assert result.stderr == ""

    def test_stdin_file_failure_raises(self, tmp_path: Path):
        sql = tmp_path / "setup.sql"
        sql.write_text("SELEC 1;\n")
        completed = subprocess.CompletedProcess(["psql"], 3, b"", b"syntax error\n")

        with patch("pgsetup._commands.subprocess.run", return_value=completed):
            with pytest.raises(CommandError) as excinfo:
                run_cmd(["psql"], stdin_file=sql)
        assert excinfo.value.returncode == 3
        assert excinfo.value.stderr == "syntax error\n"
