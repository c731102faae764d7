"""Database: the catalog that owns the entries of one database folder.

Responsibilities:
1. Open / create / scan databases through the FileManager
2. Keep the in-memory entry list and the on-disk folders in step
3. Apply every Change returned by an Entry mutator (data overwrite or
   attachment reconciliation) before the mutating call returns
4. Serialize all of the above under one lock shared with the FileManager

Failures of structural and mutating operations are logged and reported as
False; only open/create failures and invalid names raise.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from folderdb.changes import Change, ChangeKind
from folderdb.entry import Entry, validate_name
from folderdb.errors import DatabaseError
from folderdb.storage.file_manager import FileManager

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from folderdb.entry import LineInput, PathInput

logger = logging.getLogger(__name__)


class Database:
    """A named collection of entries backed by ``location/name/``."""

    def __init__(self, files: FileManager, entries: Iterable[Entry] = ()) -> None:
        self._files = files
        self._lock = files.lock
        self._entries: list[Entry] = list(entries)

    # ── Open / create / scan ─────────────────────────────────

    @classmethod
    def create(cls, name: str, location: Path | str | None = None) -> Database:
        """Create a new database folder. Raises AlreadyExists if it is taken."""
        name = validate_name(name, what="Database")
        files = FileManager.create(_location(location), name, threading.RLock())
        return cls(files)

    @classmethod
    def connect(cls, name: str, location: Path | str | None = None) -> Database:
        """Open an existing database and load its entries. Raises NotFound."""
        name = validate_name(name, what="Database")
        files = FileManager.open(_location(location), name, threading.RLock())
        db = cls(files, files.load_entries())
        logger.info("Connected to %s (%d entries)", files.root, len(db))
        return db

    @staticmethod
    def scan(path: Path | str) -> list[str]:
        """Names of the databases directly under ``path``."""
        return FileManager.scan(Path(str(path).strip()))

    # ── Properties ───────────────────────────────────────────

    @property
    def name(self) -> str:
        return self._files.root.name

    @property
    def location(self) -> Path:
        return self._files.root.parent

    @property
    def path(self) -> Path:
        return self._files.root

    def audit_log(self) -> list[str]:
        return self._files.read_log()

    # ── Lookup ───────────────────────────────────────────────

    def _find(self, name: str) -> Entry | None:
        name = name.strip()
        for entry in self._entries:
            if entry.name == name:
                return entry
        return None

    def _is_registered(self, entry: Entry) -> bool:
        return any(e is entry for e in self._entries)

    def names(self) -> list[str]:
        with self._lock:
            return [entry.name for entry in self._entries]

    def contains(self, name: str) -> bool:
        with self._lock:
            return self._find(name) is not None

    def get(self, name: str) -> Entry | None:
        """Return the entry called ``name``, or None."""
        with self._lock:
            entry = self._find(name)
            if entry is None:
                logger.debug("Entry name %r not found", name.strip())
            return entry

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.contains(name)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Entry]:
        with self._lock:
            return iter(list(self._entries))

    def __str__(self) -> str:
        with self._lock:
            return "".join(os.linesep + str(entry) for entry in self._entries)

    # ── Structural operations ────────────────────────────────

    def add(self, entry: Entry | str) -> bool:
        """Register an entry and write it to disk.

        Returns False if the name is taken or the entry folder could not be
        created and filled. In the latter case the half-made folder is
        removed again. Remote files that fail to copy stay remote.
        """
        if isinstance(entry, str):
            entry = Entry(entry)
        with self._lock:
            if self._find(entry.name) is not None:
                logger.warning("Entry %r already exists", entry.name)
                return False
            try:
                self._files.make_entry(entry.name)
            except DatabaseError as e:
                logger.error("Cannot add entry %r: %s", entry.name, e)
                return False
            try:
                self._files.write_data(entry.name, entry.data)
            except DatabaseError as e:
                logger.error("Cannot write data of new entry %r: %s", entry.name, e)
                self._discard_folder(entry.name)
                return False
            self._entries.append(entry)
            self._sync_files(entry)
            return True

    def add_all(self, entries: Iterable[Entry | str]) -> int:
        """Add several entries, skipping taken names. Returns how many were added."""
        with self._lock:
            return sum(1 for entry in entries if self.add(entry))

    def delete(self, name: str) -> bool:
        with self._lock:
            entry = self._find(name)
            if entry is None:
                logger.warning("Entry %r not found", name.strip())
                return False
            try:
                self._files.delete_entry(entry.name)
            except DatabaseError as e:
                if self._files.exists(entry.name):
                    logger.error("Cannot delete entry %r: %s", entry.name, e)
                    return False
                logger.warning("Entry %r had no folder on disk: %s", entry.name, e)
            self._entries.remove(entry)
            return True

    def rename(self, name: str, new_name: str) -> bool:
        """Rename an entry and its folder as one step.

        The entry keeps its old name unless the folder rename succeeded.
        """
        new_name = validate_name(new_name)
        with self._lock:
            entry = self._find(name)
            if entry is None:
                logger.warning("Entry %r not found", name.strip())
                return False
            if self._find(new_name) is not None:
                logger.warning("Entry %r already exists", new_name)
                return False
            try:
                self._files.rename_entry(entry.name, new_name)
            except DatabaseError as e:
                logger.error("Cannot rename %r to %r: %s", entry.name, new_name, e)
                return False
            entry.rename(new_name)
            return True

    def _discard_folder(self, name: str) -> None:
        try:
            self._files.delete_entry(name)
        except DatabaseError as e:
            logger.error("Entry folder %r left on disk after failed add: %s", name, e)

    # ── Entry mutations ──────────────────────────────────────

    def apply(self, entry: Entry, change: Change) -> bool:
        """Persist a Change returned by one of ``entry``'s mutators.

        Changes for entries that are not registered here (never added, or
        deleted since) are refused.
        """
        if not change:
            return False
        with self._lock:
            if not self._is_registered(entry):
                logger.warning(
                    "Ignoring %s change for unregistered entry %r", change.kind.value, entry.name
                )
                return False
            if change.kind is ChangeKind.DATA:
                try:
                    self._files.write_data(entry.name, entry.data)
                except DatabaseError as e:
                    logger.error("Cannot save data of %r: %s", entry.name, e)
                    self._reload_data(entry)
                    return False
                return True
            return self._sync_files(entry)

    def _reload_data(self, entry: Entry) -> None:
        """Reset the entry's lines to what its data file holds."""
        try:
            lines = self._files.read_data(entry.name)
        except DatabaseError as e:
            logger.error("Data of %r is out of step with disk: %s", entry.name, e)
            return
        with entry.lock:
            entry.clear_data()
            entry.upload_data(lines)

    def _sync_files(self, entry: Entry) -> bool:
        """Copy pending remote files, then drop disk files no longer listed."""
        ok = True
        for source in list(entry.remote_files):
            try:
                self._files.copy_attachment(entry, source)
            except DatabaseError as e:
                logger.warning("File %s stays remote in %r: %s", source, entry.name, e)
                ok = False

        try:
            on_disk = self._files.read_files(entry.name)
        except DatabaseError as e:
            logger.error("Cannot list files of %r: %s", entry.name, e)
            return False
        keep = set(entry.local_files)
        for filename in on_disk:
            if filename in keep:
                continue
            try:
                self._files.delete_attachment(entry.name, filename)
            except DatabaseError as e:
                logger.error("Cannot delete %s from %r: %s", filename, entry.name, e)
                ok = False
        return ok

    def _mutate(self, name: str, mutator: str, *args) -> bool:
        with self._lock:
            entry = self._find(name)
            if entry is None:
                logger.warning("Entry %r not found", name.strip())
                return False
            return self.apply(entry, getattr(entry, mutator)(*args))

    def upload_data(self, name: str, *lines: LineInput) -> bool:
        return self._mutate(name, "upload_data", *lines)

    def upload_files(self, name: str, *paths: PathInput) -> bool:
        """Attach files to an entry. Returns False if any file could not be copied."""
        return self._mutate(name, "upload_files", *paths)

    def remove_data(self, name: str, index: int) -> bool:
        return self._mutate(name, "remove_data", index)

    def remove_file(self, name: str, index: int) -> bool:
        return self._mutate(name, "remove_file", index)

    def clear_data(self, name: str) -> bool:
        return self._mutate(name, "clear_data")

    def clear_files(self, name: str) -> bool:
        return self._mutate(name, "clear_files")


def _location(location: Path | str | None) -> Path:
    return Path(str(location).strip()) if location is not None else Path.cwd()
