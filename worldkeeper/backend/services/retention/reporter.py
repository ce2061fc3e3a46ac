"""Observation hooks for retention planning.

The classifier never logs on its own; it reports what it does to a
`RetentionReporter`. The default reporter ignores everything, the logging
reporter forwards events to the module logger at debug level.
"""

from __future__ import annotations

from datetime import date
from pathlib import PurePath
from typing import TYPE_CHECKING, Sequence

from worldkeeper.api.logging_config import get_logger

if TYPE_CHECKING:
    from worldkeeper.backend.services.retention.classifier import Snapshot

logger = get_logger(__name__)


def snapshot_label(snapshot: "Snapshot") -> str:
    """Return a short human-readable label for a snapshot's location."""

    location = snapshot.location
    if isinstance(location, PurePath):
        return location.name
    return str(location)


class RetentionReporter:
    """No-op reporter. Subclass and override the hooks you need."""

    def processing_owner(self, owner: str, count: int) -> None:
        pass

    def bucket_trimmed(self, day: date, snapshots: Sequence["Snapshot"]) -> None:
        pass

    def snapshot_evicted(self, snapshot: "Snapshot") -> None:
        pass

    def snapshot_rejected(self, snapshot: "Snapshot") -> None:
        pass

    def snapshot_forced(self, snapshot: "Snapshot") -> None:
        pass


class LoggingRetentionReporter(RetentionReporter):
    """Reporter that writes retention events to the log."""

    def processing_owner(self, owner: str, count: int) -> None:
        logger.debug("Processing: %s (%s backup(s))", owner, count)

    def bucket_trimmed(self, day: date, snapshots: Sequence["Snapshot"]) -> None:
        logger.debug("Trimming a bucket: %s (%s backup(s))", day.isoformat(), len(snapshots))

    def snapshot_evicted(self, snapshot: "Snapshot") -> None:
        logger.debug("Ejecting %s from keep list", snapshot_label(snapshot))

    def snapshot_rejected(self, snapshot: "Snapshot") -> None:
        logger.debug("Rejecting %s from keep list", snapshot_label(snapshot))

    def snapshot_forced(self, snapshot: "Snapshot") -> None:
        logger.debug("Keeping %s to satisfy the minimum backup count", snapshot_label(snapshot))
