"""File discovery and reading collaborators, with a local file-system default."""

from __future__ import annotations

import asyncio
import fnmatch
import re
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Protocol

from rich.console import Console

from cukedash.exceptions import IndexerError
from cukedash.models import ChangeKind, FileClass, FileContent

console = Console(stderr=True)

_BRACES = re.compile(r"\{([^{}]*)\}")

ChangeCallback = Callable[[Path, ChangeKind, FileClass], None]


class FileDiscovery(Protocol):
    async def find_files(self, pattern: str, exclude: Sequence[str]) -> list[Path]:
        """Absolute paths of the files matching ``pattern`` and none of ``exclude``."""
        ...


class FileReader(Protocol):
    async def read(self, path: Path) -> FileContent:
        """Full text and byte size of ``path``; raises IndexerError on failure."""
        ...


class ChangeSource(Protocol):
    def subscribe(
        self, globs: Sequence[str], file_class: FileClass, callback: ChangeCallback
    ) -> Callable[[], None]:
        """Deliver create/change/delete events for ``globs``; returns an unsubscribe callable."""
        ...


def expand_braces(pattern: str) -> list[str]:
    """Expand ``{a,b}`` alternatives, e.g. ``*.{ts,js}`` -> ``*.ts``, ``*.js``.

    A brace group without a comma (``{x}``) is kept literally.
    """
    for match in _BRACES.finditer(pattern):
        options = match.group(1).split(",")
        if len(options) < 2:
            continue
        head, tail = pattern[: match.start()], pattern[match.end() :]
        expanded: list[str] = []
        for option in options:
            for candidate in expand_braces(head + option + tail):
                if candidate not in expanded:
                    expanded.append(candidate)
        return expanded
    return [pattern]


def matches_any(relative: str, patterns: Sequence[str]) -> bool:
    """Whether a root-relative POSIX path matches one of the exclusion globs."""
    for pattern in patterns:
        for expanded in expand_braces(pattern):
            if fnmatch.fnmatch(relative, expanded) or fnmatch.fnmatch("/" + relative, expanded):
                return True
    return False


class LocalWorkspace:
    """Discovers and reads files below a project root on the local disk.

    Usage::

        workspace = LocalWorkspace(Path("/my/project"))
        paths = await workspace.find_files("**/*.feature", ["**/node_modules/**"])
    """

    def __init__(self, root: Path) -> None:
        """Initialize the workspace.

        Args:
            root: Project root; glob patterns are relative to it.

        Raises:
            IndexerError: If root does not exist.
        """
        self._root = root.resolve()
        if not self._root.is_dir():
            raise IndexerError(f"Project directory does not exist: {self._root}")

    @property
    def root(self) -> Path:
        return self._root

    async def find_files(self, pattern: str, exclude: Sequence[str]) -> list[Path]:
        return await asyncio.to_thread(self.scan, pattern, exclude)

    def scan(self, pattern: str, exclude: Sequence[str]) -> list[Path]:
        """Match ``pattern`` below the root.

        Returns:
            Sorted, de-duplicated absolute paths of regular files.
        """
        found: set[Path] = set()
        for expanded in expand_braces(pattern):
            try:
                for path in self._root.glob(expanded):
                    if not path.is_file():
                        continue
                    relative = path.relative_to(self._root).as_posix()
                    if matches_any(relative, exclude):
                        continue
                    found.add(path)
            except (OSError, ValueError, NotImplementedError) as exc:
                console.print(f"[yellow]Warning[/yellow]: Could not scan {expanded!r}: {exc}")
        return sorted(found)

    async def read(self, path: Path) -> FileContent:
        return await asyncio.to_thread(self.read_sync, path)

    @staticmethod
    def read_sync(path: Path) -> FileContent:
        try:
            raw = path.read_bytes()
            return FileContent(text=raw.decode("utf-8-sig"), size=len(raw))
        except (OSError, UnicodeDecodeError) as exc:
            raise IndexerError(f"Cannot read {path}: {exc}") from exc
