"""Trim service: discover, plan and delete world backups.

This module wires discovery, grouping and the retention classifier together
and performs the deletions. Deletion is best-effort: a backup that cannot be
removed is logged and the pass continues with the remaining ones.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from worldkeeper.api.logging_config import get_logger
from worldkeeper.backend.services.retention import (
    LoggingRetentionReporter,
    RetentionDecision,
    RetentionPolicy,
    RetentionReporter,
    group_snapshots,
    plan_retention,
)
from worldkeeper.backend.services.worlds import list_worlds

logger = get_logger(__name__)


@dataclass
class WorldTrimSummary:
    """Per-world outcome of a trim pass."""

    kept: List[str] = field(default_factory=list)
    trimmed: List[str] = field(default_factory=list)


@dataclass
class TrimReport:
    """Outcome of a trim pass."""

    dry_run: bool
    worlds: Dict[str, WorldTrimSummary] = field(default_factory=dict)
    deleted: List[str] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)

    @property
    def trimmed_count(self) -> int:
        return sum(len(summary.trimmed) for summary in self.worlds.values())

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-friendly representation."""

        return {
            "dry_run": self.dry_run,
            "worlds": {
                name: {"kept": list(summary.kept), "trimmed": list(summary.trimmed)}
                for name, summary in sorted(self.worlds.items())
            },
            "trimmed_count": self.trimmed_count,
            "deleted": list(self.deleted),
            "failures": list(self.failures),
        }


def remove_backup(location: Path) -> None:
    """Delete a backup archive or world directory.

    Raises:
        OSError: When the backup cannot be removed.
    """

    if location.is_dir() and not location.is_symlink():
        shutil.rmtree(location)
    else:
        location.unlink()


class TrimService:
    """Applies a retention policy to a backup folder."""

    def __init__(
        self,
        backup_path: Union[str, Path],
        policy: Optional[RetentionPolicy] = None,
        *,
        dry_run: bool = False,
        reporter: Optional[RetentionReporter] = None,
    ):
        """Initialize the service.

        Args:
            backup_path: Folder holding the world backups.
            policy: Retention policy (defaults apply when omitted).
            dry_run: When True, deletions are only logged.
            reporter: Retention event sink; defaults to logging.

        Raises:
            RetentionPolicyError: When the policy is invalid.
        """

        self.backup_path = Path(backup_path)
        self.policy = (policy or RetentionPolicy()).validate()
        self.dry_run = dry_run
        self.reporter = reporter or LoggingRetentionReporter()

    def plan(self, *, now: Optional[datetime] = None) -> Dict[str, List[RetentionDecision]]:
        """Classify every backup in the folder without deleting anything.

        Raises:
            BackupFolderError: When the folder cannot be read.
        """

        groups = group_snapshots(list_worlds(self.backup_path))
        return plan_retention(groups, self.policy, now=now, reporter=self.reporter)

    def trim(self, *, now: Optional[datetime] = None) -> TrimReport:
        """Run a trim pass.

        Args:
            now: Override the current time.

        Returns:
            TrimReport: What was kept, trimmed, deleted and what failed.

        Raises:
            BackupFolderError: When the folder cannot be read.
        """

        plan = self.plan(now=now)
        report = TrimReport(dry_run=self.dry_run)
        verb = "Would delete" if self.dry_run else "Deleting"

        for world_name, decisions in plan.items():
            summary = report.worlds.setdefault(world_name, WorldTrimSummary())
            for decision in decisions:
                location = decision.snapshot.location
                if decision.retained:
                    summary.kept.append(location.name)
                    continue

                summary.trimmed.append(location.name)
                logger.info("%s: %s", verb, location.name)
                if self.dry_run:
                    continue

                try:
                    remove_backup(location)
                except OSError as exc:
                    logger.error("Unable to delete %s: %s", location, exc)
                    report.failures.append(location.name)
                else:
                    report.deleted.append(location.name)

        logger.info(
            "Trim pass finished (worlds=%s, trimmed=%s, deleted=%s, failed=%s, dry_run=%s)",
            len(report.worlds),
            report.trimmed_count,
            len(report.deleted),
            len(report.failures),
            self.dry_run,
        )
        return report
