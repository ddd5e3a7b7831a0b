"""Shared dataclasses used across the resolver and execution driver."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


@dataclass(frozen=True, slots=True)
class RawArguments:
    """Tokenized command line: positional values plus supplied flags only."""

    positional: tuple[str, ...] = ()
    flags: Mapping[str, Any] = field(default_factory=dict)


class TlsMode(str, Enum):
    """Certificate-validation behaviour applied to the connection."""

    ABSENT = "absent"
    ENABLED = "enabled"
    PASSTHROUGH = "passthrough"
    REJECT_UNAUTHORIZED = "reject-unauthorized"
    ALLOW_UNAUTHORIZED = "allow-unauthorized"
    DISABLED = "disabled"


@dataclass(frozen=True, slots=True)
class TlsPolicy:
    """Resolved TLS policy; ``token`` carries raw values such as ``require``."""

    mode: TlsMode = TlsMode.ABSENT
    token: str | None = None


@dataclass(frozen=True, slots=True)
class PoolOptions:
    """Pool tuning supplied on the command line."""

    max_connections: int | None = None
    idle_timeout: float | None = None
    connect_timeout: float | None = None
    auto_prepare: bool | None = None
    named_parameters: Mapping[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        """Return only the options that were explicitly supplied."""

        values: dict[str, Any] = {
            "max_connections": self.max_connections,
            "idle_timeout": self.idle_timeout,
            "connect_timeout": self.connect_timeout,
            "auto_prepare": self.auto_prepare,
        }
        options = {key: value for key, value in values.items() if value is not None}
        if self.named_parameters:
            options["named_parameters"] = dict(self.named_parameters)
        return options


@dataclass(frozen=True, slots=True)
class ResolvedConfig:
    """Fully resolved invocation: what to connect to and what to run."""

    script_locator: str
    connection_target: str | None = None
    should_connect: bool = True
    tls: TlsPolicy = field(default_factory=TlsPolicy)
    pool: PoolOptions = field(default_factory=PoolOptions)
    run_in_transaction: bool = False
    passthrough: Mapping[str, Any] = field(default_factory=dict)

    @property
    def wants_transaction(self) -> bool:
        """True when the script body should run inside a single transaction."""

        return self.should_connect and self.run_in_transaction


__all__ = [
    "PoolOptions",
    "RawArguments",
    "ResolvedConfig",
    "TlsMode",
    "TlsPolicy",
]
