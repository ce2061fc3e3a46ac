"""Ownership and permission fixing for world backups.

Backups written by a server container often end up owned by root. This
module re-applies a configured owner, group and file mode to every backup
in the backup folder, whether or not it is going to be trimmed.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple, Union

from worldkeeper.api.logging_config import get_logger
from worldkeeper.backend.services.worlds import list_worlds

logger = get_logger(__name__)


class OwnershipConfigError(ValueError):
    """Raised when the ownership configuration cannot be parsed."""


@dataclass(frozen=True)
class OwnershipConfig:
    """Ownership settings.

    Attributes:
        chown: "uid:gid", "uid" or ":gid" (numeric ids).
        permissions: Octal file mode, e.g. "644".
    """

    chown: Optional[str] = None
    permissions: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.chown or self.permissions)

    def parse_owner_and_group(self) -> Tuple[Optional[int], Optional[int]]:
        """Parse `chown` into (uid, gid). Missing parts are None.

        Raises:
            OwnershipConfigError: When an id is not a non-negative integer.
        """

        raw = str(self.chown or "").strip()
        if not raw:
            return None, None

        owner, _, group = raw.partition(":")
        return _parse_id(owner, "owner"), _parse_id(group, "group")

    def parse_permissions(self) -> Optional[int]:
        """Parse `permissions` as an octal mode.

        Raises:
            OwnershipConfigError: When the value is not an octal mode.
        """

        raw = str(self.permissions or "").strip()
        if not raw:
            return None
        try:
            mode = int(raw, 8)
        except ValueError as exc:
            raise OwnershipConfigError(f"Invalid permissions (expected octal, e.g. 644): {raw!r}") from exc
        if mode < 0 or mode > 0o7777:
            raise OwnershipConfigError(f"Invalid permissions (out of range): {raw!r}")
        return mode


def _parse_id(value: str, label: str) -> Optional[int]:
    value = value.strip()
    if not value:
        return None
    if not value.isdigit():
        raise OwnershipConfigError(f"Invalid {label} id (expected a number): {value!r}")
    return int(value)


@dataclass
class OwnershipReport:
    """Outcome of an ownership pass."""

    applied: List[str] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)


def apply_ownership(path: Path, *, uid: Optional[int], gid: Optional[int], mode: Optional[int]) -> None:
    """Apply owner, group and mode to a backup.

    Directories are handled recursively. The mode is only applied to files so
    that directories stay traversable.

    Raises:
        OSError: When a chown/chmod call fails.
    """

    def _apply(target: Path, is_file: bool) -> None:
        if uid is not None or gid is not None:
            os.chown(target, -1 if uid is None else uid, -1 if gid is None else gid)
        if mode is not None and is_file:
            os.chmod(target, mode)

    if not path.is_dir():
        _apply(path, True)
        return

    _apply(path, False)
    for root, dirs, files in os.walk(path):
        for name in dirs:
            _apply(Path(root) / name, False)
        for name in files:
            _apply(Path(root) / name, True)


def fix_ownership(folder: Union[str, Path], config: OwnershipConfig) -> OwnershipReport:
    """Apply the ownership configuration to every backup in a folder.

    Args:
        folder: Backup folder.
        config: Ownership configuration.

    Returns:
        OwnershipReport: Which backups were updated and which failed.

    Raises:
        OwnershipConfigError: When the configuration cannot be parsed.
        BackupFolderError: When the folder cannot be read.
    """

    uid, gid = config.parse_owner_and_group()
    mode = config.parse_permissions()

    report = OwnershipReport()
    if uid is None and gid is None and mode is None:
        logger.info("No ownership settings configured; nothing to do")
        return report

    for world in list_worlds(folder):
        try:
            apply_ownership(world.location, uid=uid, gid=gid, mode=mode)
        except OSError as exc:
            logger.error("Unable to fix ownership of %s: %s", world.location, exc)
            report.failures.append(world.location.name)
            continue
        logger.debug("Fixed ownership of %s", world.location.name)
        report.applied.append(world.location.name)

    logger.info(
        "Ownership pass finished (updated=%s, failed=%s)",
        len(report.applied),
        len(report.failures),
    )
    return report
