"""
Centralized path configuration for the launcher.

Supports:
- Default settings dir: ~/.launcher
- Override: LAUNCHER_SETTINGS_DIR=/path/to/dir (or Settings.launcher_settings_dir)

Usage:
    from launcher.core.paths import get_settings_dir, get_database_path

    db_path = get_database_path()
"""
import os
import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

_DEFAULT_SETTINGS_DIR = Path.home() / ".launcher"
DATABASE_FILENAME = "app.db"


def get_settings_dir(override: Optional[str] = None) -> Path:
    """
    Resolve the settings directory.

    Resolution order:
    1. Explicit override (from Settings)
    2. LAUNCHER_SETTINGS_DIR environment variable
    3. ~/.launcher
    """
    if override:
        return Path(override).expanduser()
    env_dir = os.getenv("LAUNCHER_SETTINGS_DIR")
    if env_dir:
        return Path(env_dir).expanduser()
    return _DEFAULT_SETTINGS_DIR


def get_database_path(override: Optional[str] = None, create: bool = True) -> Path:
    """
    Path of the SQLite state database inside the settings directory.

    Args:
        override: Settings directory override
        create: Create the settings directory if missing

    Raises:
        OSError: If the directory cannot be created
    """
    settings_dir = get_settings_dir(override)
    if create and not settings_dir.exists():
        settings_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Created settings directory: {settings_dir}")
    return settings_dir / DATABASE_FILENAME
