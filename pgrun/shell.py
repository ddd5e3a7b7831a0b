"""Shell command helper exposed to scripts as ``ctx.shell``."""

from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import dataclass
from typing import Any, Mapping

LOG = logging.getLogger(__name__)


class ShellCommandError(RuntimeError):
    """Raised when a checked shell command exits non-zero."""

    def __init__(self, result: "ShellResult") -> None:
        super().__init__(f"Command failed with exit code {result.returncode}: {result.command}")
        self.result = result


@dataclass(frozen=True, slots=True)
class ShellResult:
    """Captured outcome of a shell command."""

    command: str
    returncode: int
    stdout: str
    stderr: str


class Shell:
    """Runs shell commands; verbosity also governs error detail on exit."""

    def __init__(self, *, verbose: bool = True, executable: str | None = None, prefix: str | None = None) -> None:
        self.verbose = verbose
        self.executable = executable
        self.prefix = prefix

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> Shell:
        """Build a shell from passthrough flags (``quiet``, ``verbose``, ``shell``, ``prefix``)."""

        verbose = bool(options.get("verbose")) or not options.get("quiet", False)
        executable = options.get("shell")
        prefix = options.get("prefix")
        return cls(
            verbose=verbose,
            executable=executable if isinstance(executable, str) else None,
            prefix=prefix if isinstance(prefix, str) else None,
        )

    async def run(self, command: str, *, check: bool = True) -> ShellResult:
        """Run ``command`` through the shell and capture its output."""

        full_command = f"{self.prefix} {command}" if self.prefix else command
        if self.verbose:
            print("$", command, file=sys.stderr)
        LOG.debug("Running shell command", extra={"command": full_command})
        process = await asyncio.create_subprocess_shell(
            full_command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            executable=self.executable,
        )
        stdout, stderr = await process.communicate()
        result = ShellResult(
            command=command,
            returncode=process.returncode if process.returncode is not None else -1,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )
        if self.verbose and result.stdout:
            sys.stdout.write(result.stdout)
        if check and result.returncode != 0:
            raise ShellCommandError(result)
        return result

    __call__ = run


__all__ = ["Shell", "ShellCommandError", "ShellResult"]
