"""Execution driver: connect, pick a strategy, run the script, always close."""

from __future__ import annotations

import logging
import os
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable

import asyncpg

from .connections import AsyncpgConnector, ConnectionFactory
from .models import ResolvedConfig
from .scripts import (
    ModuleScriptLoader,
    RequiredScriptMissingError,
    ScriptContext,
    ScriptLoader,
    ScriptLoadError,
    resolve_locator,
    run_entry_point,
)
from .shell import Shell

LOG = logging.getLogger(__name__)

ScriptBody = Callable[[Any], Awaitable[None]]


class ScriptExecutionError(RuntimeError):
    """Raised when the loaded script fails."""


class TransactionError(ScriptExecutionError):
    """Raised when the script fails inside a transaction (after rollback)."""


class Direct:
    """Invoke the script body with the pool (or None) and no transaction."""

    name = "direct"

    async def __call__(self, pool: Any | None, body: ScriptBody) -> None:
        try:
            await body(pool)
        except ScriptLoadError:
            raise
        except Exception as exc:
            raise ScriptExecutionError(_describe(exc)) from exc


class Transactional:
    """Run the script body on one connection inside a single transaction."""

    name = "transactional"

    async def __call__(self, pool: Any, body: ScriptBody) -> None:
        async with pool.acquire() as connection:
            try:
                async with connection.transaction():
                    await body(connection)
            except ScriptLoadError:
                raise
            except Exception as exc:
                LOG.debug("Transaction rolled back", extra={"error": type(exc).__name__})
                raise TransactionError(f"Transaction rolled back: {_describe(exc)}") from exc


ExecutionStrategy = Direct | Transactional


def select_strategy(config: ResolvedConfig) -> ExecutionStrategy:
    """Transactional only when connecting and ``--begin`` was given."""

    if config.wants_transaction:
        return Transactional()
    return Direct()


async def run(
    config: ResolvedConfig,
    *,
    connector: ConnectionFactory | None = None,
    loader: ScriptLoader | None = None,
    shell: Shell | None = None,
    cwd: str | os.PathLike[str] | None = None,
) -> int:
    """Execute the configured script and return the exit status."""

    if not config.script_locator:
        raise RequiredScriptMissingError()
    connector = connector or AsyncpgConnector()
    loader = loader or ModuleScriptLoader()
    shell = shell or Shell.from_options(config.passthrough)
    strategy = select_strategy(config)

    async with AsyncExitStack() as stack:
        pool = None
        if config.should_connect:
            pool = await connector.open(config)
            await stack.enter_async_context(_closing(pool))
        reference = resolve_locator(config.script_locator, cwd)
        context = ScriptContext(
            sql=pool,
            postgres=asyncpg,
            shell=shell,
            args=dict(config.passthrough),
            config=config,
        )

        async def body(sql: Any) -> None:
            module = await loader.load(reference)
            await run_entry_point(module, context._replace(sql=sql))

        LOG.debug("Running script", extra={"script": reference.location, "strategy": strategy.name})
        await strategy(pool, body)
    return 0


@asynccontextmanager
async def _closing(pool: Any) -> AsyncIterator[Any]:
    # A close failure must not mask the error that ended the run.
    try:
        yield pool
    except BaseException:
        try:
            await pool.close()
        except Exception:
            LOG.warning("Failed to close connection pool", exc_info=True)
        raise
    LOG.debug("Closing connection pool")
    await pool.close()


def _describe(exc: BaseException) -> str:
    message = str(exc)
    return f"{type(exc).__name__}: {message}" if message else type(exc).__name__


__all__ = [
    "Direct",
    "ExecutionStrategy",
    "ScriptExecutionError",
    "Transactional",
    "TransactionError",
    "run",
    "select_strategy",
]
