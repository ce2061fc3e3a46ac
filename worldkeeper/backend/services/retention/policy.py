"""Retention policy parameters for world backup trimming.

The policy has three knobs:
- `trim_days`: size of the protected window where every backup is kept.
- `keep_days`: retention horizon; older backups are removed unconditionally.
- `min_keep`: minimum number of backups kept per world, whatever their age.

Between the protected window and the horizon, backups are thinned to one per
calendar day.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, Optional


DEFAULT_TRIM_DAYS = 3
DEFAULT_KEEP_DAYS = 14
DEFAULT_MIN_KEEP = 1


class RetentionPolicyError(ValueError):
    """Raised when retention parameters are invalid."""


@dataclass(frozen=True)
class RetentionPolicy:
    """Retention policy configuration.

    Attributes:
        trim_days: Keep every backup modified within this many days (today counts as one).
        keep_days: Delete backups older than this many days.
        min_keep: Always keep at least this many backups per world.
    """

    trim_days: int = DEFAULT_TRIM_DAYS
    keep_days: int = DEFAULT_KEEP_DAYS
    min_keep: int = DEFAULT_MIN_KEEP

    def validate(self) -> "RetentionPolicy":
        """Check the policy and return it unchanged.

        Returns:
            RetentionPolicy: self

        Raises:
            RetentionPolicyError: When a value is not a positive integer, or when
                keep_days is shorter than trim_days.
        """

        for field_name in ("trim_days", "keep_days", "min_keep"):
            value = getattr(self, field_name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise RetentionPolicyError(f"{field_name} must be a positive integer, got {value!r}")

        if self.keep_days < self.trim_days:
            raise RetentionPolicyError(
                f"keep_days ({self.keep_days}) must be greater than or equal to trim_days ({self.trim_days})"
            )

        return self

    def with_overrides(
        self,
        *,
        trim_days: Optional[int] = None,
        keep_days: Optional[int] = None,
        min_keep: Optional[int] = None,
    ) -> "RetentionPolicy":
        """Return a copy with the non-None overrides applied."""

        changes: Dict[str, int] = {}
        if trim_days is not None:
            changes["trim_days"] = trim_days
        if keep_days is not None:
            changes["keep_days"] = keep_days
        if min_keep is not None:
            changes["min_keep"] = min_keep
        return replace(self, **changes) if changes else self
