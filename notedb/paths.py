from __future__ import annotations

import os
from pathlib import Path

APP_ENV_HOME = "NOTEDB_HOME"
APP_ENV_DB = "NOTEDB_DB_FILE"


def app_home() -> Path:
    """
    User-writable home for NoteDB.
    Override with NOTEDB_HOME.
    """
    if os.environ.get(APP_ENV_HOME):
        return Path(os.environ[APP_ENV_HOME]).expanduser().resolve()
    return (Path.home() / ".notedb").resolve()


def config_dir() -> Path:
    """Directory holding settings.yaml. Not created on read."""
    return app_home() / "config"


def settings_file() -> Path:
    return config_dir() / "settings.yaml"


def data_dir() -> Path:
    return app_home() / "data"


def db_path() -> Path:
    """
    Default embedded database path.

    Resolution order:
    1. NOTEDB_DB_FILE env var (explicit override)
    2. ~/.notedb/data/notedb.sqlite (default)
    """
    if os.environ.get(APP_ENV_DB):
        return Path(os.environ[APP_ENV_DB]).expanduser().resolve()
    return data_dir() / "notedb.sqlite"
