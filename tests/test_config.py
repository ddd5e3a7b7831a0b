"""Tests for RunnerConfig loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from pgrun import config as config_module
from pgrun.config import RunnerConfig, load_config


def test_load_config_returns_defaults_when_missing(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config_module, "CONFIG_FILE", tmp_path / "config.toml")

    result = load_config()

    assert result == RunnerConfig()
    assert result.verbose is True


def test_load_config_reads_values(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        """
verbose = false
log_level = "DEBUG"
ssl = "heroku"
sql_max = 4
sql_connect_timeout = 5
shell = "/bin/bash"
prefix = "set -euo pipefail;"
"""
    )
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_path)

    result = load_config()

    assert result.verbose is False
    assert result.log_level == "DEBUG"
    assert result.ssl == "heroku"
    assert result.sql_max == 4
    assert result.sql_connect_timeout == 5.0
    assert result.shell == "/bin/bash"
    assert result.prefix == "set -euo pipefail;"


def test_load_config_ignores_wrongly_typed_values(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text('verbose = "yes"\nsql_max = 0\nssl = 3\n')
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_path)

    result = load_config()

    assert result == RunnerConfig()


def test_load_config_handles_toml_errors(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text("ssl = [unterminated")
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_path)

    result = load_config()

    assert result == RunnerConfig()
