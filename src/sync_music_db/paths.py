"""Where sync-music-db keeps its database, config file and logs.

By default everything follows the per-user platform directories. Setting
`SYNC_MUSIC_DB_HOME` keeps config, database and logs together under one
directory instead, which suits portable installs and scratch runs.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from platformdirs import AppDirs

DEFAULT_APP_NAME = "sync-music-db"
HOME_ENV = "SYNC_MUSIC_DB_HOME"
DB_FILE_NAME = "sync-music-db.sqlite"
CONFIG_FILE_NAME = "config.json"


@dataclass(frozen=True)
class UserPaths:
    """Resolved locations for one user; nothing is created on disk."""

    data_dir: Path
    config_dir: Path

    @property
    def log_dir(self) -> Path:
        return self.data_dir / "logs"

    @property
    def db_file(self) -> Path:
        return self.data_dir / DB_FILE_NAME

    @property
    def config_file(self) -> Path:
        return self.config_dir / CONFIG_FILE_NAME


def resolve_user_paths(
    app_name: str = DEFAULT_APP_NAME,
    *,
    env: Mapping[str, str] | None = None,
    cwd: Path | None = None,
) -> UserPaths:
    """Resolve locations from `SYNC_MUSIC_DB_HOME` or platformdirs.

    A relative home directory is anchored at `cwd`. Directories are created
    lazily by whichever component writes into them.
    """
    if env is None:
        env = os.environ
    explicit = env.get(HOME_ENV, "").strip()
    if explicit:
        home = Path(explicit).expanduser()
        if not home.is_absolute():
            home = ((cwd or Path.cwd()) / home).resolve()
        return UserPaths(data_dir=home, config_dir=home)
    dirs = AppDirs(app_name, appauthor=False)
    return UserPaths(
        data_dir=Path(dirs.user_data_dir), config_dir=Path(dirs.user_config_dir)
    )
