"""Discovery of world backups inside a backup folder.

A backup folder holds one entry per backup:
- `.mcworld` archives (zip files exported by Bedrock servers), or
- world directories (containing `levelname.txt` or `level.dat`).

The world name is read from `levelname.txt` when available. Otherwise it is
derived from the entry name by stripping the timestamp suffix that backups
are written with (`MyWorld-20240105-120000.mcworld`).
"""

from __future__ import annotations

import re
import zipfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

from worldkeeper.api.logging_config import get_logger

logger = get_logger(__name__)

WORLD_ARCHIVE_SUFFIX = ".mcworld"
LEVEL_NAME_FILE = "levelname.txt"
LEVEL_DAT_FILE = "level.dat"

_TIMESTAMP_SUFFIX = re.compile(r"[-_.]\d{8}[-_]\d{6}$")


class BackupFolderError(RuntimeError):
    """Raised when the backup folder itself cannot be read."""


class WorldParseError(ValueError):
    """Raised when an entry does not look like a world backup."""


@dataclass(frozen=True)
class WorldArtifact:
    """A world backup found on disk.

    Attributes:
        name: World name.
        modified_at: Last modification time (naive local time).
        location: Path of the archive or directory.
    """

    name: str
    modified_at: datetime
    location: Path


def strip_timestamp(stem: str) -> str:
    """Remove a trailing `-YYYYMMDD-HHMMSS` style timestamp from a name."""

    return _TIMESTAMP_SUFFIX.sub("", stem)


def _clean_level_name(raw: str) -> Optional[str]:
    lines = raw.strip().splitlines()
    if not lines:
        return None
    return lines[0].strip() or None


def _level_name_from_archive(path: Path) -> Optional[str]:
    with zipfile.ZipFile(path) as archive:
        candidates = [n for n in archive.namelist() if n.rsplit("/", 1)[-1] == LEVEL_NAME_FILE]
        if not candidates:
            return None
        # Prefer the shallowest match; some exports nest the world in a folder.
        member = min(candidates, key=lambda n: n.count("/"))
        return _clean_level_name(archive.read(member).decode("utf-8", errors="replace"))


def parse_world(path: Union[str, Path]) -> WorldArtifact:
    """Parse one backup folder entry.

    Args:
        path: Entry path.

    Returns:
        WorldArtifact: Parsed world backup.

    Raises:
        WorldParseError: When the entry is not a world backup.
    """

    path = Path(path)

    if path.is_file():
        if path.suffix.lower() != WORLD_ARCHIVE_SUFFIX:
            raise WorldParseError(f"Not a world archive: {path.name}")
        try:
            name = _level_name_from_archive(path)
        except (zipfile.BadZipFile, OSError) as exc:
            raise WorldParseError(f"Unreadable world archive {path.name}: {exc}") from exc
        name = name or strip_timestamp(path.stem)
    elif path.is_dir():
        level_name_path = path / LEVEL_NAME_FILE
        if level_name_path.is_file():
            try:
                name = _clean_level_name(level_name_path.read_text(encoding="utf-8", errors="replace"))
            except OSError as exc:
                raise WorldParseError(f"Unreadable {LEVEL_NAME_FILE} in {path.name}: {exc}") from exc
            name = name or strip_timestamp(path.name)
        elif (path / LEVEL_DAT_FILE).is_file():
            name = strip_timestamp(path.name)
        else:
            raise WorldParseError(f"Directory is not a world: {path.name}")
    else:
        raise WorldParseError(f"Unsupported entry: {path.name}")

    if not name:
        raise WorldParseError(f"Could not determine world name for {path.name}")

    modified_at = datetime.fromtimestamp(path.stat().st_mtime)
    return WorldArtifact(name=name, modified_at=modified_at, location=path)


def list_worlds(folder: Union[str, Path]) -> List[WorldArtifact]:
    """List the world backups stored directly inside a folder.

    Entries that do not parse as world backups are skipped.

    Args:
        folder: Backup folder.

    Returns:
        List[WorldArtifact]: Discovered backups, sorted by path.

    Raises:
        BackupFolderError: When the folder is missing or cannot be listed.
    """

    folder = Path(folder)
    try:
        entries = sorted(folder.iterdir())
    except OSError as exc:
        raise BackupFolderError(f"Unable to read backup folder {folder}: {exc}") from exc

    worlds: List[WorldArtifact] = []
    for entry in entries:
        try:
            worlds.append(parse_world(entry))
        except (WorldParseError, OSError) as exc:
            logger.debug("Skipping %s: %s", entry.name, exc)

    return worlds
