"""Tests for the command-line entry point."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from pgrun import cli
from pgrun import config as config_module


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config_module, "CONFIG_FILE", tmp_path / "config.toml")
    monkeypatch.delenv("PGRUN_LOG_LEVEL", raising=False)


@pytest.fixture
def no_pool(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    calls: list[dict[str, Any]] = []

    async def _create_pool(**kwargs: Any) -> None:
        calls.append(kwargs)
        raise AssertionError("should not connect")

    monkeypatch.setattr("pgrun.connections.asyncpg.create_pool", _create_pool)
    return calls


def test_no_arguments_prints_usage(capsys: pytest.CaptureFixture[str], no_pool: list[dict[str, Any]]) -> None:
    status = cli.main([])

    assert status == cli.EXIT_USAGE
    assert "usage: pgrun" in capsys.readouterr().out
    assert no_pool == []


def test_missing_script_has_its_own_status(capsys: pytest.CaptureFixture[str]) -> None:
    status = cli.main(["--begin", "--quiet"])

    assert status == cli.EXIT_SCRIPT_MISSING
    assert "script" in capsys.readouterr().err


def test_no_connect_runs_script_and_exits_zero(tmp_path: Path, no_pool: list[dict[str, Any]]) -> None:
    marker = tmp_path / "out.txt"
    script = tmp_path / "job.py"
    script.write_text(
        "from pathlib import Path\n"
        "def main(ctx):\n"
        f"    Path({str(marker)!r}).write_text(ctx.args['table'])\n"
    )

    status = cli.main(["-X", str(script), "--table=users"])

    assert status == cli.EXIT_OK
    assert marker.read_text() == "users"
    assert no_pool == []


def test_script_failure_exits_non_zero(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    script = tmp_path / "job.py"
    script.write_text("def main(ctx):\n    raise RuntimeError('nope')\n")

    status = cli.main(["-X", "--quiet", str(script)])

    captured = capsys.readouterr()
    assert status == cli.EXIT_FAILURE
    assert "nope" in captured.err
    assert "Traceback" not in captured.err


def test_connection_failure_has_its_own_status(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    async def _refused(**kwargs: Any) -> None:
        raise OSError("refused")

    monkeypatch.setattr("pgrun.connections.asyncpg.create_pool", _refused)
    script = tmp_path / "job.py"
    script.write_text("X = 1\n")

    status = cli.main(["--quiet", "postgres://localhost/app", str(script)])

    assert status == cli.EXIT_CONNECTION


def test_invalid_sql_var_is_a_usage_error(tmp_path: Path) -> None:
    status = cli.main(["-X", "--quiet", "job.py", "--sql-var", "=x"])

    assert status == cli.EXIT_USAGE
