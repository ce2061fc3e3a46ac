"""Pytest configuration and shared fixtures."""
import os
import zipfile
from datetime import datetime
from pathlib import Path
from typing import Optional

import pytest


def set_mtime(path: Path, when: datetime) -> None:
    """Set a path's modification time from a naive local datetime."""
    ts = when.timestamp()
    os.utime(path, (ts, ts))


def write_mcworld(folder: Path, filename: str, when: datetime, level_name: Optional[str] = None) -> Path:
    """Create a minimal .mcworld archive."""
    path = folder / filename
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr("level.dat", b"\x00")
        if level_name is not None:
            archive.writestr("levelname.txt", level_name)
    set_mtime(path, when)
    return path


def write_world_dir(folder: Path, dirname: str, when: datetime, level_name: Optional[str] = None) -> Path:
    """Create a minimal world directory."""
    path = folder / dirname
    (path / "db").mkdir(parents=True)
    (path / "level.dat").write_bytes(b"\x00")
    (path / "db" / "CURRENT").write_text("MANIFEST-000001\n")
    if level_name is not None:
        (path / "levelname.txt").write_text(level_name)
    set_mtime(path, when)
    return path


@pytest.fixture
def backup_dir(tmp_path):
    """An empty backup folder."""
    folder = tmp_path / "backups"
    folder.mkdir()
    return folder
