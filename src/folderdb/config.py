"""Configuration loading from environment variables and folderdb.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

_CONFIG_FILENAME = "folderdb.toml"


@dataclass
class StoreConfig:
    """Where databases live and which one commands act on."""

    location: Path = field(default_factory=Path.cwd)
    database: str | None = None


@dataclass
class FolderDBConfig:
    """Top-level folderdb configuration."""

    store: StoreConfig = field(default_factory=StoreConfig)
    log_level: str = "WARNING"


def load_config(config_path: Path | None = None) -> FolderDBConfig:
    """Load configuration from environment variables and optional folderdb.toml.

    Priority: environment variables > folderdb.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search current dir and ~/.folderdb/
        for candidate in [
            Path.cwd() / _CONFIG_FILENAME,
            Path.home() / ".folderdb" / _CONFIG_FILENAME,
        ]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    store_data = file_data.get("store", {})
    location = os.getenv("FOLDERDB_LOCATION", store_data.get("location"))

    return FolderDBConfig(
        store=StoreConfig(
            location=Path(location).expanduser() if location else Path.cwd(),
            database=os.getenv("FOLDERDB_DATABASE", store_data.get("database")),
        ),
        log_level=os.getenv("FOLDERDB_LOG_LEVEL", file_data.get("log_level", "WARNING")),
    )
