"""User configuration loading helpers."""

from __future__ import annotations

from pathlib import Path

import tomllib

from pydantic import BaseModel

CONFIG_FILE = Path.home() / ".config" / "pgrun" / "config.toml"


class RunnerConfig(BaseModel):
    """Shape of the optional configuration file.

    Every value acts as a default that command-line flags override.
    """

    verbose: bool = True
    log_level: str = "WARNING"
    ssl: str | None = None
    sql_max: int | None = None
    sql_connect_timeout: float | None = None
    shell: str | None = None
    prefix: str | None = None


def load_config() -> RunnerConfig:
    """Load configuration from disk; fall back to defaults if missing."""

    try:
        data = _read_config_file()
    except FileNotFoundError:
        return RunnerConfig()
    except (tomllib.TOMLDecodeError, OSError):
        return RunnerConfig()
    return RunnerConfig(**data)


def _read_config_file() -> dict[str, object]:
    with CONFIG_FILE.open("rb") as handle:
        raw = tomllib.load(handle)
    data: dict[str, object] = {}
    if not isinstance(raw, dict):
        return data
    verbose = raw.get("verbose")
    if isinstance(verbose, bool):
        data["verbose"] = verbose
    for key in ("log_level", "ssl", "shell", "prefix"):
        value = raw.get(key)
        if isinstance(value, str):
            data[key] = value
    sql_max = raw.get("sql_max")
    if isinstance(sql_max, int) and not isinstance(sql_max, bool) and sql_max > 0:
        data["sql_max"] = sql_max
    timeout = raw.get("sql_connect_timeout")
    if isinstance(timeout, (int, float)) and not isinstance(timeout, bool):
        data["sql_connect_timeout"] = float(timeout)
    return data


__all__ = ["CONFIG_FILE", "RunnerConfig", "load_config"]
