"""World backup retention planning."""

from worldkeeper.backend.services.retention.classifier import (
    Action,
    RetentionDecision,
    Snapshot,
    classify,
    dedupe,
    group_snapshots,
    plan_retention,
)
from worldkeeper.backend.services.retention.policy import RetentionPolicy, RetentionPolicyError
from worldkeeper.backend.services.retention.reporter import LoggingRetentionReporter, RetentionReporter

__all__ = [
    "Action",
    "LoggingRetentionReporter",
    "RetentionDecision",
    "RetentionPolicy",
    "RetentionPolicyError",
    "RetentionReporter",
    "Snapshot",
    "classify",
    "dedupe",
    "group_snapshots",
    "plan_retention",
]
