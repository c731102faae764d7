"""Entry point: python -m folderdb <command>

- scan [PATH]            List databases under PATH (default: configured location)
- create NAME            Create a database in the configured location
- list                   List entry names
- show [ENTRY]           Print one entry, or the whole database
- add ENTRY [LINE...]    Add an entry, optionally with data lines
- attach ENTRY PATH...   Copy files into an entry
- delete ENTRY           Delete an entry
- rename OLD NEW         Rename an entry
- log                    Print the audit log

Every command except scan/create acts on FOLDERDB_DATABASE (or
[store] database in folderdb.toml).
"""

from __future__ import annotations

import logging
import sys

from folderdb.config import FolderDBConfig, load_config
from folderdb.core import Database
from folderdb.errors import DatabaseError


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _open(config: FolderDBConfig) -> Database:
    if not config.store.database:
        raise DatabaseError("No database configured (set FOLDERDB_DATABASE)")
    return Database.connect(config.store.database, config.store.location)


def _cmd_scan(config: FolderDBConfig, args: list[str]) -> bool:
    for name in Database.scan(args[0] if args else config.store.location):
        print(name)
    return True


def _cmd_create(config: FolderDBConfig, args: list[str]) -> bool:
    db = Database.create(args[0], config.store.location)
    print(f"Created {db.path}")
    return True


def _cmd_list(config: FolderDBConfig, args: list[str]) -> bool:
    for name in _open(config).names():
        print(name)
    return True


def _cmd_show(config: FolderDBConfig, args: list[str]) -> bool:
    db = _open(config)
    if not args:
        print(str(db).lstrip())
        return True
    entry = db.get(args[0])
    if entry is None:
        print(f"Entry '{args[0]}' not found", file=sys.stderr)
        return False
    print(entry)
    return True


def _cmd_add(config: FolderDBConfig, args: list[str]) -> bool:
    db = _open(config)
    if not db.add(args[0]):
        return False
    return db.upload_data(args[0], args[1:]) if args[1:] else True


def _cmd_attach(config: FolderDBConfig, args: list[str]) -> bool:
    return _open(config).upload_files(args[0], args[1:])


def _cmd_delete(config: FolderDBConfig, args: list[str]) -> bool:
    return _open(config).delete(args[0])


def _cmd_rename(config: FolderDBConfig, args: list[str]) -> bool:
    return _open(config).rename(args[0], args[1])


def _cmd_log(config: FolderDBConfig, args: list[str]) -> bool:
    for line in _open(config).audit_log():
        print(line)
    return True


# command -> (handler, minimum number of arguments)
COMMANDS = {
    "scan": (_cmd_scan, 0),
    "create": (_cmd_create, 1),
    "list": (_cmd_list, 0),
    "show": (_cmd_show, 0),
    "add": (_cmd_add, 1),
    "attach": (_cmd_attach, 2),
    "delete": (_cmd_delete, 1),
    "rename": (_cmd_rename, 2),
    "log": (_cmd_log, 0),
}


def _usage() -> None:
    print("Usage: python -m folderdb <command> [args]")
    print(__doc__.split("\n\n")[1])


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    cmd = argv[0] if argv else ""
    if cmd not in COMMANDS or len(argv) - 1 < COMMANDS[cmd][1]:
        _usage()
        return 1

    config = load_config()
    _setup_logging(config.log_level)

    handler, _ = COMMANDS[cmd]
    try:
        ok = handler(config, argv[1:])
    except DatabaseError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
