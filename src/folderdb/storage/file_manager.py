"""Persistence driver: every filesystem side effect of a database.

All public methods run under one re-entrant lock per database (shared with
the owning Database), so two operations never interleave on disk. Each
successful change appends one line to the audit log in .sddata/log.dat.
"""

from __future__ import annotations

import logging
import os
import shutil
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from folderdb.entry import METADATA_DIR, Entry
from folderdb.errors import (
    AlreadyExists,
    DatabaseError,
    InvalidArgument,
    IOFailure,
    NotFound,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

LOG_FILENAME = "log.dat"
DATA_SUFFIX = ".dat"
ENCODING = "utf-8"
ENCODING_ERRORS = "surrogateescape"


class FileManager:
    """Maps named-entry operations onto directories and files under ``root``."""

    def __init__(self, root: Path, lock: threading.RLock | None = None) -> None:
        self.root = root
        self.lock = lock or threading.RLock()

    # ── Open / create / scan ─────────────────────────────────

    @classmethod
    def open(
        cls, location: Path | str, name: str, lock: threading.RLock | None = None
    ) -> FileManager:
        """Attach to an existing database folder."""
        manager = cls(Path(location) / name, lock)
        if not manager.root.is_dir():
            raise NotFound(f"Database {name!r} not found in {location}")
        if not manager.log_path.exists():
            manager._init_log()
        return manager

    @classmethod
    def create(
        cls, location: Path | str, name: str, lock: threading.RLock | None = None
    ) -> FileManager:
        """Create a new, empty database folder."""
        manager = cls(Path(location) / name, lock)
        try:
            manager.root.mkdir(parents=True)
        except FileExistsError:
            raise AlreadyExists(
                f"Database with the name {name!r} exists in {location}"
            ) from None
        except OSError as e:
            raise IOFailure(f"Cannot create database {name!r}: {e}", cause=e) from e
        manager._init_log()
        logger.info("Created database %s", manager.root)
        return manager

    @staticmethod
    def scan(path: Path | str) -> list[str]:
        """Return names of the database folders directly under ``path``."""
        folder = Path(path)
        if not folder.is_dir():
            raise NotFound(f"{folder} not found")
        return sorted(
            child.name
            for child in folder.iterdir()
            if child.is_dir() and (child / METADATA_DIR).is_dir()
        )

    def _init_log(self) -> None:
        try:
            self.log_path.parent.mkdir(exist_ok=True)
            self.log_path.touch()
        except OSError as e:
            logger.warning("Log file error in %s: %s", self.root, e)

    # ── Paths ────────────────────────────────────────────────

    @property
    def log_path(self) -> Path:
        return self.root / METADATA_DIR / LOG_FILENAME

    def _entry_dir(self, name: str) -> Path:
        return self.root / name

    def _data_path(self, name: str) -> Path:
        return self._entry_dir(name) / f"{name}{DATA_SUFFIX}"

    # ── Audit log ────────────────────────────────────────────

    def log(self, line: str) -> None:
        """Append one line to the audit log. Best effort: errors are only logged."""
        with self.lock:
            try:
                payload = _encode([line])
                with self.log_path.open("ab") as f:
                    f.write(payload)
            except (OSError, UnicodeError) as e:
                logger.warning("Log write error (%r): %s", line, e)

    def read_log(self) -> list[str]:
        with self.lock:
            if not self.log_path.exists():
                return []
            return _read_lines(self.log_path)

    # ── Reading entries ──────────────────────────────────────

    def exists(self, name: str) -> bool:
        return self._entry_dir(name).is_dir()

    def entry_names(self) -> list[str]:
        with self.lock:
            return sorted(
                child.name
                for child in self.root.iterdir()
                if child.is_dir() and child.name != METADATA_DIR
            )

    def load_entries(self) -> list[Entry]:
        """Rebuild every Entry found on disk."""
        with self.lock:
            entries = []
            for name in self.entry_names():
                try:
                    entry = Entry(name)
                except InvalidArgument as e:
                    logger.warning("Skipping folder %r: %s", name, e)
                    continue
                if entry.name != name:
                    logger.warning("Skipping folder %r: name has surrounding whitespace", name)
                    continue
                try:
                    entry.upload_data(self.read_data(name))
                except NotFound:
                    logger.warning("Entry %r has no data file, loading it empty", name)
                except DatabaseError as e:
                    logger.warning("Cannot read data of %r, loading it empty: %s", name, e)
                entry.local_files.extend(self.read_files(name))
                entries.append(entry)
            logger.debug("Loaded %d entries from %s", len(entries), self.root)
            return entries

    def read_data(self, name: str) -> list[str]:
        with self.lock:
            path = self._data_path(name)
            if not path.is_file():
                raise NotFound(f"Data file of entry {name!r} not found")
            try:
                return _read_lines(path)
            except (OSError, UnicodeError) as e:
                raise IOFailure(f"Read error in entry {name!r}: {e}") from e

    def write_data(self, name: str, lines: Iterable[str]) -> None:
        """Overwrite the entry's data file with ``lines``."""
        with self.lock:
            path = self._data_path(name)
            if not path.is_file():
                raise NotFound(f"Data file of entry {name!r} not found")
            try:
                payload = _encode(lines)
            except UnicodeError as e:
                # Encoded before opening, so the old file stays intact.
                raise IOFailure(f"Cannot encode data of entry {name!r}: {e}") from e
            try:
                path.write_bytes(payload)
            except OSError as e:
                raise IOFailure(f"Write error in entry {name!r}: {e}", cause=e) from e
            self.log(f"edit data in '{name}'")
            logger.debug("Wrote data of %s", name)

    def read_files(self, name: str) -> list[str]:
        """Basenames of the attachments currently on disk."""
        with self.lock:
            folder = self._entry_dir(name)
            if not folder.is_dir():
                raise NotFound(f"Entry folder {name!r} not found")
            data_name = self._data_path(name).name
            return sorted(
                child.name
                for child in folder.iterdir()
                if child.is_file() and child.name != data_name
            )

    # ── Entry folders ────────────────────────────────────────

    def make_entry(self, name: str) -> None:
        """Create ``<name>/`` and an empty ``<name>/<name>.dat``."""
        with self.lock:
            folder = self._entry_dir(name)
            try:
                folder.mkdir()
            except FileExistsError:
                raise AlreadyExists(f"Directory {name!r} exists") from None
            except OSError as e:
                raise IOFailure(f"Cannot create directory {name!r}: {e}", cause=e) from e
            try:
                self._data_path(name).touch(exist_ok=False)
            except OSError as e:
                # Folder exists but has no data file; callers decide on cleanup.
                raise IOFailure(f"Make error in entry {name!r}: {e}", cause=e) from e
            self.log(f"new entry '{name}'")
            logger.info("Created entry: %s", name)

    def delete_entry(self, name: str) -> None:
        """Remove the entry folder and everything in it."""
        with self.lock:
            folder = self._entry_dir(name)
            if folder.is_dir():
                for child in folder.iterdir():
                    try:
                        if child.is_dir() and not child.is_symlink():
                            shutil.rmtree(child)
                        else:
                            child.unlink()
                    except OSError as e:
                        logger.warning("Cannot remove %s: %s", child, e)
            try:
                folder.rmdir()
            except OSError as e:
                raise NotFound(f"Directory {name!r} not found or not removable: {e}") from e
            self.log(f"del entry '{name}'")
            logger.info("Deleted entry: %s", name)

    def rename_entry(self, old: str, new: str) -> None:
        """Rename the folder, then the data file inside it.

        If the data file cannot be renamed the folder rename is reverted
        before IOFailure is raised.
        """
        with self.lock:
            old_dir, new_dir = self._entry_dir(old), self._entry_dir(new)
            if new_dir.exists():
                raise AlreadyExists(f"Directory {new!r} exists")
            if not old_dir.is_dir() or not self._data_path(old).is_file():
                raise NotFound(f"Directory or data file of {old!r} not found")

            try:
                old_dir.rename(new_dir)
            except OSError as e:
                raise IOFailure(f"Rename error {old!r} -> {new!r}: {e}", cause=e) from e
            try:
                (new_dir / f"{old}{DATA_SUFFIX}").rename(self._data_path(new))
            except OSError as e:
                try:
                    new_dir.rename(old_dir)
                except OSError as revert_error:
                    logger.error(
                        "Rename of %r left half done, folder is now %s: %s",
                        old,
                        new_dir,
                        revert_error,
                    )
                raise IOFailure(f"Rename error {old!r} -> {new!r}: {e}", cause=e) from e
            self.log(f"rename entry '{old}' -> '{new}'")
            logger.info("Renamed entry: %s -> %s", old, new)

    # ── Attachments ──────────────────────────────────────────

    def copy_attachment(self, entry: Entry, source: str) -> str:
        """Copy ``source`` into the entry folder and mark it local.

        Copy and model update happen under the same lock, so callers never
        observe a copied file that is still listed as remote. Returns the
        stored basename.
        """
        with self.lock, entry.lock:
            src = Path(source)
            if not src.exists():
                raise NotFound(f"File not found in {source}")
            if not src.is_file():
                raise NotFound(f"{source} is not a file")

            dest = self._entry_dir(entry.name) / src.name
            if dest.exists():
                raise AlreadyExists(f"File {src.name!r} is in the entry {entry.name!r}")
            try:
                shutil.copyfile(src, dest)
            except OSError as e:
                raise IOFailure(f"Copy error {source} -> {entry.name!r}: {e}", cause=e) from e

            entry.mark_copied(source, src.name)
            self.log(f"file added to '{entry.name}' [{source}]")
            logger.debug("Copied %s into %s", source, entry.name)
            return src.name

    def delete_attachment(self, name: str, filename: str) -> None:
        with self.lock:
            try:
                (self._entry_dir(name) / filename).unlink()
            except OSError as e:
                raise IOFailure(f"File delete error {name!r}/{filename}: {e}", cause=e) from e
            self.log(f"file delete from '{name}' [{filename}]")
            logger.debug("Deleted attachment %s from %s", filename, name)


def _read_lines(path: Path) -> list[str]:
    """Read a text file as lines, accepting \\n, \\r\\n and \\r terminators.

    Bytes that are not valid UTF-8 come back as surrogate escapes and are
    written back unchanged by ``_encode``.
    """
    with path.open(encoding=ENCODING, errors=ENCODING_ERRORS) as f:
        return [line[:-1] if line.endswith("\n") else line for line in f]


def _encode(lines: Iterable[str]) -> bytes:
    """One line per item, each ended by the platform line separator."""
    return "".join(line + os.linesep for line in lines).encode(ENCODING, ENCODING_ERRORS)
