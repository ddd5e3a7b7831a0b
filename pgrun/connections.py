"""Connection pool construction on top of asyncpg."""

from __future__ import annotations

import json
import logging
import ssl
from typing import Any, Protocol
from urllib.parse import urlsplit, urlunsplit

import asyncpg

from .models import ResolvedConfig, TlsMode, TlsPolicy

LOG = logging.getLogger(__name__)

# asyncpg's own min_size default; it must never exceed max_size.
ASYNCPG_DEFAULT_MIN_SIZE = 10


class ConnectionOpenError(RuntimeError):
    """Raised when the connection pool cannot be opened."""


class ConnectionFactory(Protocol):
    """Interface implemented by pool factories."""

    async def open(self, config: ResolvedConfig) -> Any: ...


class AsyncpgConnector:
    """Opens an asyncpg pool from a resolved configuration."""

    async def open(self, config: ResolvedConfig) -> asyncpg.Pool:
        kwargs = pool_kwargs(config)
        target = redact_dsn(config.connection_target)
        LOG.debug("Opening connection pool", extra={"target": target, "options": sorted(kwargs)})
        try:
            return await asyncpg.create_pool(**kwargs)
        except Exception as exc:
            raise ConnectionOpenError(f"Failed to connect to {target}: {exc}") from exc


def pool_kwargs(config: ResolvedConfig) -> dict[str, Any]:
    """Translate a ResolvedConfig into ``asyncpg.create_pool`` arguments.

    Options that were not supplied are left out so asyncpg applies its
    defaults and reads PGHOST, PGUSER, PGSSLMODE and friends itself.
    """

    kwargs: dict[str, Any] = {}
    if config.connection_target:
        kwargs["dsn"] = config.connection_target
    ssl_value = ssl_argument(config.tls)
    if ssl_value is not None:
        kwargs["ssl"] = ssl_value
    pool = config.pool
    if pool.max_connections is not None:
        kwargs["max_size"] = pool.max_connections
        kwargs["min_size"] = min(pool.max_connections, ASYNCPG_DEFAULT_MIN_SIZE)
    if pool.idle_timeout is not None:
        kwargs["max_inactive_connection_lifetime"] = pool.idle_timeout
    if pool.connect_timeout is not None:
        kwargs["timeout"] = pool.connect_timeout
    if pool.auto_prepare is False:
        kwargs["statement_cache_size"] = 0
    if pool.named_parameters:
        kwargs["server_settings"] = {
            key: _setting_value(value)
            for key, value in pool.named_parameters.items()
        }
    return kwargs


def ssl_argument(policy: TlsPolicy) -> bool | str | ssl.SSLContext | None:
    """Map a TlsPolicy onto asyncpg's ``ssl`` argument; None means unset."""

    if policy.mode is TlsMode.ABSENT:
        return None
    if policy.mode is TlsMode.ENABLED:
        return True
    if policy.mode is TlsMode.DISABLED:
        return "disable"
    if policy.mode is TlsMode.REJECT_UNAUTHORIZED:
        return ssl.create_default_context()
    if policy.mode is TlsMode.ALLOW_UNAUTHORIZED:
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        return context
    return policy.token


def redact_dsn(dsn: str | None) -> str:
    """Hide the password in a connection string for logs and messages."""

    if not dsn:
        return "<environment>"
    try:
        parts = urlsplit(dsn)
    except ValueError:
        return "<dsn>"
    if parts.password is None:
        return dsn
    userinfo, _, hosts = parts.netloc.rpartition("@")
    user = userinfo.split(":", 1)[0]
    return urlunsplit(parts._replace(netloc=f"{user}:***@{hosts}"))


def _setting_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


__all__ = [
    "AsyncpgConnector",
    "ConnectionFactory",
    "ConnectionOpenError",
    "pool_kwargs",
    "redact_dsn",
    "ssl_argument",
]
