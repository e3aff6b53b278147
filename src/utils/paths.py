"""File path resolution using platformdirs.

STORELOOM_DATA_DIR overrides everything. Otherwise paths resolve to the
platform user data directory:
  macOS: ~/Library/Application Support/storeloom/
  Linux: ~/.local/share/storeloom/
"""

import os
from pathlib import Path

import platformdirs

APP_NAME = "storeloom"


def get_data_dir() -> Path:
    """Return the directory for persistent data (DB, keys, uploads)."""
    override = os.environ.get("STORELOOM_DATA_DIR", "").strip()
    if override:
        return Path(override).expanduser()
    return Path(platformdirs.user_data_dir(APP_NAME, appauthor=False))


def get_uploads_dir() -> Path:
    """Return the directory for locally stored generated media.

    MEDIA_UPLOAD_DIR takes precedence over the data directory default.
    """
    override = os.environ.get("MEDIA_UPLOAD_DIR", "").strip()
    if override:
        return Path(override).expanduser()
    return get_data_dir() / "uploads"


def get_default_db_path() -> Path:
    """Return the default SQLite database file path."""
    return get_data_dir() / "storeloom.db"


def ensure_dirs_exist() -> None:
    """Create all required directories if they don't exist."""
    for d in [get_data_dir(), get_uploads_dir()]:
        d.mkdir(parents=True, exist_ok=True)
