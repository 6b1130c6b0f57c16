"""Path utilities for directory and file operations."""

from __future__ import annotations

import os
from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """Ensure directory exists, creating if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_xdg_data_home() -> Path:
    """Get XDG_DATA_HOME directory, defaulting to ~/.local/share."""
    xdg_data = os.getenv("XDG_DATA_HOME")
    if xdg_data:
        return Path(xdg_data)
    return Path.home() / ".local" / "share"


def quarantine_file(path: Path) -> Path | None:
    """Move a damaged file aside to ``<name>.corrupt``.

    Returns the backup path, or ``None`` when nothing was moved.
    """
    if not path.exists():
        return None

    backup_path = path.with_name(path.name + ".corrupt")
    if backup_path.exists():
        backup_path.unlink()
    path.replace(backup_path)
    return backup_path
