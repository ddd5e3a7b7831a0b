"""Runs the bundled example script against a fake pool."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from pgrun.models import ResolvedConfig
from pgrun.runner import run
from pgrun.shell import Shell

EXAMPLE = Path(__file__).resolve().parents[1] / "examples" / "scripts" / "table_counts.py"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class _FakePool:
    def __init__(self) -> None:
        self.queries: list[tuple[str, tuple[Any, ...]]] = []
        self.closed = False

    async def fetch(self, query: str, *args: Any) -> list[dict[str, Any]]:
        self.queries.append((query, args))
        return [{"relname": "accounts", "n_live_tup": 3}]

    async def close(self) -> None:
        self.closed = True


class _Connector:
    def __init__(self) -> None:
        self.pool = _FakePool()

    async def open(self, config: ResolvedConfig) -> _FakePool:
        return self.pool


@pytest.mark.anyio
async def test_table_counts_example(capsys: pytest.CaptureFixture[str]) -> None:
    connector = _Connector()
    config = ResolvedConfig(script_locator=str(EXAMPLE), passthrough={"schema": "sales"})

    status = await run(config, connector=connector, shell=Shell(verbose=False))

    assert status == 0
    assert connector.pool.queries[0][1] == ("sales",)
    assert "accounts" in capsys.readouterr().out
    assert connector.pool.closed is True
