"""Script locator resolution and module loading."""

from __future__ import annotations

import asyncio
import importlib.abc
import importlib.machinery
import importlib.util
import inspect
import logging
import os
import sys
import types
import urllib.error
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Mapping, NamedTuple, Protocol

if TYPE_CHECKING:
    from .models import ResolvedConfig
    from .shell import Shell

LOG = logging.getLogger(__name__)

ENTRY_POINT = "main"
MODULE_NAME = "__pgrun_script__"
REMOTE_PREFIXES = ("http://", "https://")
FILE_URL_PREFIX = "file:///"


class RequiredScriptMissingError(RuntimeError):
    """Raised when no script locator was supplied."""

    def __init__(self, message: str = "A script to run is required.") -> None:
        super().__init__(message)


class ScriptLoadError(RuntimeError):
    """Raised when a script cannot be located, fetched, or compiled."""


class ScriptContext(NamedTuple):
    """Runtime dependencies handed to a script's ``main(ctx)``."""

    sql: Any | None = None
    postgres: types.ModuleType | None = None
    shell: Shell | None = None
    args: Mapping[str, Any] = {}
    config: ResolvedConfig | None = None


@dataclass(frozen=True, slots=True)
class ScriptReference:
    """A loadable script: a local filesystem path or a remote URL."""

    location: str
    remote: bool = False


def resolve_locator(locator: str | None, cwd: str | os.PathLike[str] | None = None) -> ScriptReference:
    """Turn a command-line script locator into a loadable reference."""

    if not locator:
        raise RequiredScriptMissingError()
    if locator.startswith(REMOTE_PREFIXES):
        return ScriptReference(location=locator, remote=True)
    if locator.startswith("/"):
        return ScriptReference(location=locator)
    if locator.startswith(FILE_URL_PREFIX):
        return ScriptReference(location=urllib.request.url2pathname(locator[len("file://"):]))
    base = Path(cwd) if cwd is not None else Path.cwd()
    return ScriptReference(location=os.path.join(base, locator))


class ScriptLoader(Protocol):
    """Interface implemented by script loaders."""

    async def load(self, reference: ScriptReference) -> types.ModuleType: ...


class RemoteSourceLoader(importlib.abc.SourceLoader):
    """Importlib loader serving source text already fetched from a URL."""

    def __init__(self, url: str, source: str) -> None:
        self._url = url
        self._source = source

    def get_filename(self, fullname: str) -> str:
        return self._url

    def get_data(self, path: str) -> bytes:
        return self._source.encode("utf-8")

    def is_package(self, fullname: str) -> bool:
        return False


class ModuleScriptLoader:
    """Executes local files via importlib and remote sources via urllib."""

    def __init__(self, *, fetch_timeout: float = 30.0) -> None:
        self._fetch_timeout = fetch_timeout

    async def load(self, reference: ScriptReference) -> types.ModuleType:
        if reference.remote:
            source = await asyncio.to_thread(self._fetch, reference.location)
            loader = RemoteSourceLoader(reference.location, source)
            spec = importlib.util.spec_from_loader(MODULE_NAME, loader, origin=reference.location)
            if spec is not None:
                spec.has_location = True
        else:
            path = Path(reference.location)
            if not path.is_file():
                raise ScriptLoadError(f"Script not found: {path}")
            spec = importlib.util.spec_from_file_location(MODULE_NAME, path)
        if spec is None or spec.loader is None:
            raise ScriptLoadError(f"Cannot load script: {reference.location}")
        return self._exec_spec(spec, reference.location)

    def _exec_spec(self, spec: importlib.machinery.ModuleSpec, origin: str) -> types.ModuleType:
        module = importlib.util.module_from_spec(spec)
        LOG.debug("Executing script", extra={"script": origin})
        sys.modules[MODULE_NAME] = module
        try:
            spec.loader.exec_module(module)  # type: ignore[union-attr]
        except SyntaxError as exc:
            raise ScriptLoadError(f"Invalid script {origin}: {exc}") from exc
        finally:
            sys.modules.pop(MODULE_NAME, None)
        return module

    def _fetch(self, url: str) -> str:
        try:
            with urllib.request.urlopen(url, timeout=self._fetch_timeout) as response:
                charset = response.headers.get_content_charset() or "utf-8"
                return response.read().decode(charset)
        except (urllib.error.URLError, OSError) as exc:
            raise ScriptLoadError(f"Failed to fetch script {url}: {exc}") from exc


async def run_entry_point(module: types.ModuleType, ctx: ScriptContext) -> None:
    """Invoke ``main(ctx)`` if the module defines one; await it when async."""

    entry = getattr(module, ENTRY_POINT, None)
    if entry is None:
        LOG.debug("Script has no entry point; top-level code only")
        return
    if not callable(entry):
        raise ScriptLoadError(f"Script attribute '{ENTRY_POINT}' is not callable.")
    result = entry(ctx)
    if inspect.isawaitable(result):
        await result


__all__ = [
    "ENTRY_POINT",
    "ModuleScriptLoader",
    "RemoteSourceLoader",
    "RequiredScriptMissingError",
    "ScriptContext",
    "ScriptLoadError",
    "ScriptLoader",
    "ScriptReference",
    "resolve_locator",
    "run_entry_point",
]
