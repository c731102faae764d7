"""Entry model: a named record of text lines plus attached files.

Attachments live in two lists:
- local_files:  basenames already copied into the entry's folder
- remote_files: source paths (as given) that still have to be copied

Every mutator returns a ``Change`` instead of notifying anyone; the owning
Database applies it. The Entry itself performs no I/O.
"""

from __future__ import annotations

import os
import re
import threading
from collections.abc import Iterable
from typing import Union

from folderdb.changes import NO_CHANGE, Change
from folderdb.errors import InvalidArgument

METADATA_DIR = ".sddata"

_INVALID_NAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')

LineInput = Union[str, Iterable[str]]
PathInput = Union[str, "os.PathLike[str]", Iterable[Union[str, "os.PathLike[str]"]]]


def validate_name(name: str, *, what: str = "Entry") -> str:
    """Trim and check a name that will be used verbatim as a folder name."""
    if not isinstance(name, str):
        raise InvalidArgument(f"{what} name must be a string, got {type(name).__name__}")
    name = name.strip()
    if not name:
        raise InvalidArgument(f"Empty {what.lower()} name")
    if name in (".", "..", METADATA_DIR):
        raise InvalidArgument(f"{what} name {name!r} is reserved")
    if _INVALID_NAME_CHARS.search(name):
        raise InvalidArgument(f"{what} name {name!r} contains characters invalid in a path")
    return name


def _flatten(items: tuple, kinds: tuple[type, ...]) -> list:
    """Accept scalars of ``kinds`` or iterables of them; reject everything else."""
    flat = []
    for item in items:
        if isinstance(item, kinds):
            flat.append(item)
        elif isinstance(item, Iterable) and not isinstance(item, (bytes, bytearray)):
            for sub in item:
                if not isinstance(sub, kinds):
                    raise InvalidArgument(f"Unsupported value {sub!r}")
                flat.append(sub)
        else:
            raise InvalidArgument(f"Unsupported value {item!r}")
    return flat


class Entry:
    """In-memory representation of one named record."""

    def __init__(self, name: str) -> None:
        self.name = validate_name(name)
        self._data: list[str] = []
        self.local_files: list[str] = []
        self.remote_files: list[str] = []
        self._lock = threading.RLock()

    def __repr__(self) -> str:
        return (
            f"Entry(name={self.name!r}, data={self.data_count}, "
            f"local={len(self.local_files)}, remote={len(self.remote_files)})"
        )

    # ── Read access ──────────────────────────────────────────

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def data(self) -> list[str]:
        with self._lock:
            return list(self._data)

    @property
    def files(self) -> list[str]:
        """Local files followed by remote files."""
        with self._lock:
            return self.local_files + self.remote_files

    @property
    def data_count(self) -> int:
        return len(self._data)

    @property
    def files_count(self) -> int:
        with self._lock:
            return len(self.local_files) + len(self.remote_files)

    # ── Data ─────────────────────────────────────────────────

    def upload_data(self, *lines: LineInput) -> Change:
        """Append one line, several lines, or any iterable of lines."""
        with self._lock:
            self._data.extend(_flatten(lines, (str,)))
        return Change.data(self.name)

    def remove_data(self, index: int) -> Change:
        """Remove the line at ``index``. Returns NO_CHANGE when out of range."""
        with self._lock:
            if index < 0 or index >= len(self._data):
                return NO_CHANGE
            del self._data[index]
        return Change.data(self.name)

    def clear_data(self) -> Change:
        with self._lock:
            self._data.clear()
        return Change.data(self.name)

    # ── Files ────────────────────────────────────────────────

    def upload_files(self, *paths: PathInput) -> Change:
        """Queue file paths for copying. Paths are not checked here."""
        with self._lock:
            self.remote_files.extend(os.fspath(p) for p in _flatten(paths, (str, os.PathLike)))
        return Change.files(self.name)

    def remove_file(self, index: int) -> Change:
        """Remove by index over local_files ++ remote_files."""
        with self._lock:
            split = len(self.local_files)
            if index < 0 or index >= split + len(self.remote_files):
                return NO_CHANGE
            if index < split:
                del self.local_files[index]
            else:
                del self.remote_files[index - split]
        return Change.files(self.name)

    def clear_files(self) -> Change:
        with self._lock:
            self.local_files.clear()
            self.remote_files.clear()
        return Change.files(self.name)

    def mark_copied(self, source: str, filename: str) -> None:
        """Move ``source`` from remote_files to local_files as ``filename``."""
        with self._lock:
            self.local_files.append(filename)
            if source in self.remote_files:
                self.remote_files.remove(source)

    # ── Name ─────────────────────────────────────────────────

    def rename(self, new_name: str) -> None:
        """Update the name field only. The Database renames the folder."""
        self.name = validate_name(new_name)

    # ── Rendering ────────────────────────────────────────────

    def __str__(self) -> str:
        lines = [f"Name: {self.name}"]
        for title, items in (("Data", self.data), ("Files", self.files)):
            lines.append(f"[{len(items)}] {title}")
            for i, item in enumerate(items):
                branch = "└ " if i == len(items) - 1 else "│ "
                lines.append(branch + item)
        return os.linesep.join(lines)
