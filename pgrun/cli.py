"""Command-line entry point for pgrun."""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import Sequence

from .config import load_config
from .connections import ConnectionOpenError
from .options import ConfigurationError, apply_config_defaults, build_parser, parse_argv, resolve_options
from .runner import run
from .scripts import RequiredScriptMissingError
from .shell import Shell

LOG = logging.getLogger("pgrun")

LOG_LEVEL_ENV_VAR = "PGRUN_LOG_LEVEL"

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_SCRIPT_MISSING = 3
EXIT_CONNECTION = 4


def configure_logging(level: str) -> None:
    """Configure root logging once for the process."""

    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.WARNING
    logging.basicConfig(level=numeric, format="%(levelname)s %(name)s: %(message)s")


def main(argv: Sequence[str] | None = None) -> int:
    """Run pgrun and return the process exit status."""

    args = list(sys.argv[1:] if argv is None else argv)
    parser = build_parser()
    if not args:
        print(parser.format_help())
        return EXIT_USAGE

    settings = load_config()
    configure_logging(os.environ.get(LOG_LEVEL_ENV_VAR, settings.log_level))

    try:
        raw = apply_config_defaults(parse_argv(args, parser), settings)
    except ConfigurationError as exc:
        return _report(exc, EXIT_USAGE, verbose=settings.verbose)

    shell = Shell.from_options(raw.flags)
    try:
        config = resolve_options(raw, os.environ)
        return asyncio.run(run(config, shell=shell))
    except RequiredScriptMissingError as exc:
        return _report(exc, EXIT_SCRIPT_MISSING, verbose=shell.verbose)
    except ConfigurationError as exc:
        return _report(exc, EXIT_USAGE, verbose=shell.verbose)
    except ConnectionOpenError as exc:
        return _report(exc, EXIT_CONNECTION, verbose=shell.verbose)
    except Exception as exc:
        return _report(exc, EXIT_FAILURE, verbose=shell.verbose)


def _report(exc: Exception, status: int, *, verbose: bool) -> int:
    print(f"pgrun: {exc}", file=sys.stderr)
    if verbose:
        LOG.error("Run failed", exc_info=exc)
    return status


__all__ = [
    "EXIT_CONNECTION",
    "EXIT_FAILURE",
    "EXIT_OK",
    "EXIT_SCRIPT_MISSING",
    "EXIT_USAGE",
    "configure_logging",
    "main",
]
