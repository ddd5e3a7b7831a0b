"""Command-line tokenizing and option resolution."""

from __future__ import annotations

import argparse
import json
import os
import re
from typing import Any, Iterable, Mapping, Sequence

from . import __version__
from .config import RunnerConfig
from .models import PoolOptions, RawArguments, ResolvedConfig, TlsMode, TlsPolicy
from .scripts import RequiredScriptMissingError

HOST_ENV_VAR = "PGHOST"
HEROKU_HOST_SUFFIX = ".com"
SQL_VAR_ENTRY = re.compile(r"^[A-Za-z_][A-Za-z0-9_.$]*=")

DESCRIPTION = """\
Run a Python script with a ready PostgreSQL connection.

Pass a postgres connection string (just like psql) and/or set PGHOST,
PGUSER, PGPORT and friends in the environment. The script's main(ctx)
receives the pool (or the transaction connection with --begin) as ctx.sql.
"""

EPILOG = """\
--ssl modes:
  --ssl                 enable ssl
  --ssl=prefer          prefer ssl
  --ssl=require         require ssl
  --ssl=reject          reject unauthorized certificates
  --ssl=no-reject       do not reject unauthorized certificates
  --ssl=heroku          no-reject if every host ends with .com, else no ssl
  --ssl=disabled        no ssl

A bare --ssl takes the next argument as its mode; put it after the script
or spell the mode out with --ssl=MODE.

Options not listed above are passed to the script as ctx.args and must be
written as --name=value.
"""


class ConfigurationError(ValueError):
    """Raised when command-line options cannot be resolved."""


def build_parser() -> argparse.ArgumentParser:
    """Parser whose namespace only holds flags that were actually supplied."""

    parser = argparse.ArgumentParser(
        prog="pgrun",
        usage="%(prog)s [options] [CONNECTION] SCRIPT [--name=value ...]",
        description=DESCRIPTION,
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        argument_default=argparse.SUPPRESS,
    )
    parser.add_argument("positional", nargs="*", default=[], metavar="ARG", help="optional connection string, then the script")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    pg = parser.add_argument_group("connection options")
    pg.add_argument("-X", "--no-connect", dest="no-connect", action="store_true", help="do not connect automatically")
    pg.add_argument("--begin", dest="begin", action="store_true", help="run the entire script in one transaction")
    pg.add_argument("--ssl", dest="ssl", nargs="?", const=True, metavar="MODE", help="ssl mode (see below)")
    pg.add_argument("--no-ssl", dest="ssl", action="store_const", const=False, help="disable ssl")

    pool = parser.add_argument_group("advanced")
    pool.add_argument("--sql-max", dest="sql-max", type=int, metavar="N", help="max number of pooled connections")
    pool.add_argument("--sql-idle-timeout", dest="sql-idle-timeout", type=float, metavar="SECONDS", help="idle connection timeout")
    pool.add_argument("--sql-connect-timeout", dest="sql-connect-timeout", type=float, metavar="SECONDS", help="connect timeout")
    pool.add_argument(
        "--sql-prepare",
        dest="sql-prepare",
        action=argparse.BooleanOptionalAction,
        help="automatic creation of prepared statements",
    )
    pool.add_argument(
        "--sql-var",
        dest="sql-var",
        action="append",
        metavar="KEY=VALUE",
        help="connection parameter, e.g. --sql-var application_name=\"etl\"",
    )

    shell = parser.add_argument_group("shell options")
    shell.add_argument("--quiet", dest="quiet", action="store_true", help="run shell commands quietly")
    shell.add_argument("--verbose", dest="verbose", action="store_true", help="echo shell commands")
    shell.add_argument("--shell", dest="shell", metavar="PATH", help="override the shell used by ctx.shell")
    shell.add_argument("--prefix", dest="prefix", metavar="CMD", help="prefix shell commands with another command")
    return parser


def parse_argv(argv: Sequence[str], parser: argparse.ArgumentParser | None = None) -> RawArguments:
    """Tokenize argv into positional values and supplied flags."""

    parser = parser or build_parser()
    namespace, extras = parser.parse_known_intermixed_args(expand_sql_vars(argv))
    flags: dict[str, Any] = dict(vars(namespace))
    positional = list(flags.pop("positional", []))
    flags.update(_parse_extras(extras))
    return RawArguments(positional=tuple(positional), flags=flags)


def expand_sql_vars(argv: Sequence[str]) -> list[str]:
    """Rewrite ``--sql-var a=1 b=2`` as ``--sql-var=a=1 --sql-var=b=2``.

    Only the value right after ``--sql-var`` is taken unconditionally; the run
    continues while tokens look like ``setting=value`` and stops at the first
    one that does not, so connection strings and script paths stay positional.
    """

    expanded: list[str] = []
    index = 0
    while index < len(argv):
        token = argv[index]
        index += 1
        if token == "--":
            expanded.append(token)
            expanded.extend(argv[index:])
            break
        if token == "--sql-var" and index < len(argv):
            token = f"--sql-var={argv[index]}"
            index += 1
        expanded.append(token)
        if token.startswith("--sql-var="):
            while index < len(argv) and SQL_VAR_ENTRY.match(argv[index]):
                expanded.append(f"--sql-var={argv[index]}")
                index += 1
    return expanded


def apply_config_defaults(raw: RawArguments, config: RunnerConfig) -> RawArguments:
    """Fill flags missing from the command line with config-file values."""

    flags = dict(raw.flags)
    defaults: dict[str, Any] = {
        "ssl": config.ssl,
        "sql-max": config.sql_max,
        "sql-connect-timeout": config.sql_connect_timeout,
        "shell": config.shell,
        "prefix": config.prefix,
    }
    for name, value in defaults.items():
        if value is not None and name not in flags:
            flags[name] = value
    if not config.verbose and "verbose" not in flags and "quiet" not in flags:
        flags["quiet"] = True
    return RawArguments(positional=raw.positional, flags=flags)


def resolve_options(raw: RawArguments, environ: Mapping[str, str] | None = None) -> ResolvedConfig:
    """Resolve raw arguments plus the environment into a ResolvedConfig."""

    environ = os.environ if environ is None else environ
    connection_target, script = split_positional(raw.positional)
    if not script:
        raise RequiredScriptMissingError()
    flags = dict(raw.flags)

    no_connect = any([flags.pop("no-connect", False), flags.pop("X", False)])
    begin = bool(flags.pop("begin", False))
    tls = resolve_tls(flags.pop("ssl", None), connection_target, environ)
    pool = resolve_pool(flags)

    return ResolvedConfig(
        script_locator=script,
        connection_target=connection_target,
        should_connect=not no_connect,
        tls=tls,
        pool=pool,
        run_in_transaction=begin,
        passthrough=flags,
    )


def split_positional(positional: Sequence[str]) -> tuple[str | None, str | None]:
    """Return ``(connection_target, script)`` from the positional values."""

    if len(positional) > 2:
        raise ConfigurationError(
            f"Expected at most a connection string and a script, got {len(positional)} values."
        )
    if len(positional) == 2:
        connection_target, script = positional
        return connection_target or None, script or None
    if len(positional) == 1:
        return None, positional[0] or None
    return None, None


def resolve_tls(value: Any, connection_target: str | None, environ: Mapping[str, str]) -> TlsPolicy:
    """Map an ``--ssl`` value onto a TlsPolicy."""

    if value is None:
        return TlsPolicy()
    if value == "heroku":
        value = "no-reject" if heroku_hosts_match(connection_target, environ) else False
    if value == "no-reject":
        return TlsPolicy(mode=TlsMode.ALLOW_UNAUTHORIZED)
    if value == "reject":
        return TlsPolicy(mode=TlsMode.REJECT_UNAUTHORIZED)
    if value is False or value in ("", "disabled", "false"):
        return TlsPolicy(mode=TlsMode.DISABLED)
    if value is True:
        return TlsPolicy(mode=TlsMode.ENABLED)
    return TlsPolicy(mode=TlsMode.PASSTHROUGH, token=str(value))


def heroku_hosts_match(connection_target: str | None, environ: Mapping[str, str]) -> bool:
    """True when there is at least one candidate host and all end with .com."""

    hosts = candidate_hosts(connection_target, environ)
    return bool(hosts) and all(host.endswith(HEROKU_HOST_SUFFIX) for host in hosts)


def candidate_hosts(connection_target: str | None, environ: Mapping[str, str]) -> list[str]:
    """Hosts from PGHOST if set, otherwise from the connection string authority."""

    env_hosts = environ.get(HOST_ENV_VAR)
    if env_hosts:
        entries = env_hosts.split(",")
    elif connection_target:
        entries = _authority(connection_target).split(",")
    else:
        entries = []
    hosts = (_strip_port(entry.strip()) for entry in entries)
    return [host for host in hosts if host]


def resolve_pool(flags: dict[str, Any]) -> PoolOptions:
    """Pop pool flags from ``flags`` and build PoolOptions."""

    max_connections = _coerce(flags.pop("sql-max", None), int, "--sql-max")
    if max_connections is not None and max_connections < 1:
        raise ConfigurationError("--sql-max must be at least 1.")
    idle_timeout = _coerce(flags.pop("sql-idle-timeout", None), float, "--sql-idle-timeout")
    connect_timeout = _coerce(flags.pop("sql-connect-timeout", None), float, "--sql-connect-timeout")
    for name, seconds in (("--sql-idle-timeout", idle_timeout), ("--sql-connect-timeout", connect_timeout)):
        if seconds is not None and seconds < 0:
            raise ConfigurationError(f"{name} must not be negative.")
    prepare = flags.pop("sql-prepare", None)
    entries = flags.pop("sql-var", None)
    if isinstance(entries, str):
        entries = [entries]
    return PoolOptions(
        max_connections=max_connections,
        idle_timeout=idle_timeout,
        connect_timeout=connect_timeout,
        auto_prepare=None if prepare is None else bool(prepare),
        named_parameters=parse_named_parameters(entries or ()),
    )


def parse_named_parameters(entries: Iterable[str]) -> dict[str, Any]:
    """Parse ``key=value`` entries; values are JSON when valid, else literal."""

    params: dict[str, Any] = {}
    for entry in entries:
        key, _, value = entry.partition("=")
        key = key.strip()
        if not key:
            raise ConfigurationError(f"Invalid --sql-var entry '{entry}'; expected key=value.")
        try:
            params[key] = json.loads(value, parse_constant=_reject_constant)
        except ValueError:
            params[key] = value
    return params


def _reject_constant(name: str) -> Any:
    # NaN and Infinity are not JSON; keep them as literal strings.
    raise ValueError(name)


def _coerce(value: Any, kind: type, name: str) -> Any:
    if value is None:
        return None
    try:
        return kind(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} expects a number, got '{value}'.") from exc


def _authority(connection_target: str) -> str:
    _, sep, rest = connection_target.partition("://")
    netloc = (rest if sep else connection_target).split("/", 1)[0]
    return netloc.rpartition("@")[2]


def _strip_port(host: str) -> str:
    if host.startswith("["):
        return host[1:].split("]", 1)[0]
    return host.split(":", 1)[0]


def _parse_extras(extras: Sequence[str]) -> dict[str, Any]:
    flags: dict[str, Any] = {}
    for token in extras:
        if token.startswith("--") and len(token) > 2:
            name, sep, value = token[2:].partition("=")
            flags[name] = value if sep else True
        elif token.startswith("-") and len(token) > 1:
            for letter in token[1:]:
                flags[letter] = True
        else:
            raise ConfigurationError(f"Unexpected argument '{token}'.")
    return flags


__all__ = [
    "ConfigurationError",
    "apply_config_defaults",
    "build_parser",
    "candidate_hosts",
    "expand_sql_vars",
    "heroku_hosts_match",
    "parse_argv",
    "parse_named_parameters",
    "resolve_options",
    "resolve_pool",
    "resolve_tls",
    "split_positional",
]
