"""folderdb: an embedded, directory-backed record store.

    db = Database.create("db1", "/tmp")
    db.add("alpha")
    db.upload_data("alpha", "line1")
    db.upload_files("alpha", "/tmp/x.txt")

Each entry is a folder holding ``<entry>.dat`` (one data line per line) and
verbatim copies of its attached files.
"""

from folderdb.changes import NO_CHANGE, Change, ChangeKind
from folderdb.core import Database
from folderdb.entry import Entry
from folderdb.errors import AlreadyExists, DatabaseError, InvalidArgument, IOFailure, NotFound

__all__ = [
    "AlreadyExists",
    "Change",
    "ChangeKind",
    "Database",
    "DatabaseError",
    "Entry",
    "InvalidArgument",
    "IOFailure",
    "NO_CHANGE",
    "NotFound",
]
