"""Filesystem helpers for inbox-sync."""

from __future__ import annotations

from pathlib import Path

from inbox_sync import constants


def ensure_runtime_directories() -> dict[str, Path]:
    """Create the directory tree required for runtime state."""
    required = {
        "home": constants.HOME_DIR,
        "logs": constants.LOG_DIR,
        "db": constants.DB_DIR,
    }

    for path in required.values():
        path.mkdir(parents=True, exist_ok=True)

    return required
