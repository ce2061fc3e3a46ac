"""Retention planning for world backups.

Backups are grouped per world, then each world is classified independently:

1. Backups older than the retention horizon (`keep_days`) are trimmed.
2. Backups between the horizon and the protected window (`trim_days`) are
   bucketed per calendar day and thinned to the newest backup of each day.
3. Backups inside the protected window are always retained.
4. If fewer than `min_keep` backups survive, the newest trimmed backups are
   brought back until the minimum is met.

Decisions are returned as new `RetentionDecision` values; the `Snapshot`
objects themselves are never modified.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence

from worldkeeper.backend.services.retention.policy import (
    DEFAULT_KEEP_DAYS,
    DEFAULT_MIN_KEEP,
    DEFAULT_TRIM_DAYS,
    RetentionPolicy,
)
from worldkeeper.backend.services.retention.reporter import RetentionReporter


class Action(str, enum.Enum):
    """What to do with a backup at the end of a retention pass."""

    RETAIN = "retain"
    TRIM = "trim"


@dataclass(frozen=True)
class Snapshot:
    """One backup of one world on disk.

    Attributes:
        owner: World name the backup belongs to.
        modified_at: Last modification time; the retention clock.
        location: Where the backup lives. Only used by deletion and ownership code.
    """

    owner: str
    modified_at: datetime
    location: Any


@dataclass(frozen=True)
class RetentionDecision:
    """A snapshot paired with its retention action."""

    snapshot: Snapshot
    action: Action

    @property
    def retained(self) -> bool:
        return self.action is Action.RETAIN


_SILENT = RetentionReporter()


def _local_naive(value: datetime) -> datetime:
    """Express a timestamp in naive local time so day boundaries match the local calendar."""

    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def day_key(snapshot: Snapshot) -> date:
    """Return the calendar day bucket of a snapshot."""

    return _local_naive(snapshot.modified_at).date()


def group_snapshots(artifacts: Iterable[Any]) -> Dict[str, List[Snapshot]]:
    """Group discovered artifacts by world name.

    Args:
        artifacts: Objects exposing `name`, `modified_at` and `location`
            (for example `WorldArtifact` values from discovery).

    Returns:
        Dict[str, List[Snapshot]]: Snapshots per world, in input order.
    """

    groups: Dict[str, List[Snapshot]] = {}
    for artifact in artifacts:
        snapshot = Snapshot(owner=artifact.name, modified_at=artifact.modified_at, location=artifact.location)
        groups.setdefault(snapshot.owner, []).append(snapshot)
    return groups


def dedupe(
    bucket: Sequence[Snapshot],
    keep_last: int = 1,
    *,
    reporter: Optional[RetentionReporter] = None,
) -> List[bool]:
    """Keep the `keep_last` most recently modified snapshots of a bucket.

    The bucket is walked in arrival order. The first `keep_last` entries fill
    the keep slots; after that a candidate replaces the oldest slot occupant
    only when it is strictly newer, otherwise the candidate is rejected. Ties
    therefore favour the earlier arrival.

    With `keep_last=1` (what `classify` uses) this is the classic single-slot
    comparison. For `keep_last > 1` it deliberately differs from comparing the
    candidate against every slot in turn, which can evict several occupants
    for one candidate; here a candidate displaces at most the oldest occupant,
    so the result is always the `keep_last` newest entries.

    Args:
        bucket: Snapshots of one day bucket.
        keep_last: Number of snapshots to keep.
        reporter: Receives eviction and rejection events.

    Returns:
        List[bool]: One flag per bucket entry, True when the entry is kept.

    Raises:
        ValueError: When keep_last is smaller than 1.
    """

    if keep_last < 1:
        raise ValueError(f"keep_last must be at least 1, got {keep_last}")

    reporter = reporter or _SILENT
    kept = [True] * len(bucket)
    slots: List[int] = []

    for index, candidate in enumerate(bucket):
        if len(slots) < keep_last:
            slots.append(index)
            continue

        oldest_slot = min(range(len(slots)), key=lambda s: _local_naive(bucket[slots[s]].modified_at))
        occupant = slots[oldest_slot]
        if _local_naive(bucket[occupant].modified_at) < _local_naive(candidate.modified_at):
            slots[oldest_slot] = index
            kept[occupant] = False
            reporter.snapshot_evicted(bucket[occupant])
        else:
            kept[index] = False
            reporter.snapshot_rejected(candidate)

    return kept


def classify(
    snapshots: Sequence[Snapshot],
    trim_days: int = DEFAULT_TRIM_DAYS,
    keep_days: int = DEFAULT_KEEP_DAYS,
    min_keep: int = DEFAULT_MIN_KEEP,
    *,
    now: Optional[datetime] = None,
    reporter: Optional[RetentionReporter] = None,
) -> List[RetentionDecision]:
    """Decide which backups of a single world to retain.

    Args:
        snapshots: Backups of one world, in any order.
        trim_days: Size of the protected window in days.
        keep_days: Retention horizon in days.
        min_keep: Minimum number of backups to retain.
        now: Override the current time.
        reporter: Receives bucket, eviction and override events.

    Returns:
        List[RetentionDecision]: One decision per snapshot, newest first.

    Raises:
        RetentionPolicyError: When the parameters are invalid.
    """

    policy = RetentionPolicy(trim_days=trim_days, keep_days=keep_days, min_keep=min_keep).validate()
    reporter = reporter or _SILENT

    today = _local_naive(now or datetime.now()).date()
    trim_threshold = datetime.combine(today - timedelta(days=policy.trim_days - 1), time.min)
    keep_threshold = datetime.combine(today - timedelta(days=policy.keep_days - 1), time.min)

    # Newest first. Both the bucketing and the minimum-keep walk rely on it.
    ordered = sorted(snapshots, key=lambda s: _local_naive(s.modified_at), reverse=True)
    actions = [Action.RETAIN] * len(ordered)

    buckets: Dict[date, List[int]] = {}
    for index, snapshot in enumerate(ordered):
        modified = _local_naive(snapshot.modified_at)
        if modified < keep_threshold:
            actions[index] = Action.TRIM
        elif modified < trim_threshold:
            buckets.setdefault(day_key(snapshot), []).append(index)

    for day, indices in buckets.items():
        members = [ordered[i] for i in indices]
        reporter.bucket_trimmed(day, members)
        for index, keep in zip(indices, dedupe(members, keep_last=1, reporter=reporter)):
            if not keep:
                actions[index] = Action.TRIM

    retained = sum(1 for action in actions if action is Action.RETAIN)
    missing = min(len(ordered), max(policy.min_keep - retained, 0))
    for index, snapshot in enumerate(ordered):
        if missing <= 0:
            break
        if actions[index] is not Action.RETAIN:
            actions[index] = Action.RETAIN
            reporter.snapshot_forced(snapshot)
            missing -= 1

    return [RetentionDecision(snapshot=s, action=a) for s, a in zip(ordered, actions)]


def plan_retention(
    groups: Dict[str, List[Snapshot]],
    policy: RetentionPolicy,
    *,
    now: Optional[datetime] = None,
    reporter: Optional[RetentionReporter] = None,
) -> Dict[str, List[RetentionDecision]]:
    """Classify every world of a grouping with the same policy.

    Args:
        groups: Snapshots per world.
        policy: Retention policy.
        now: Override the current time.
        reporter: Receives per-world and per-snapshot events.

    Returns:
        Dict[str, List[RetentionDecision]]: Decisions per world, newest first.
    """

    reporter = reporter or _SILENT
    now = now or datetime.now()

    plan: Dict[str, List[RetentionDecision]] = {}
    for owner, snapshots in groups.items():
        reporter.processing_owner(owner, len(snapshots))
        plan[owner] = classify(
            snapshots,
            policy.trim_days,
            policy.keep_days,
            policy.min_keep,
            now=now,
            reporter=reporter,
        )
    return plan
