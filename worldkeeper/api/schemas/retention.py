"""Schemas for retention and ownership endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class PolicyOverrides(BaseModel):
    """Optional per-request overrides of the configured retention policy."""

    trim_days: Optional[int] = Field(None, ge=1, description="Keep every backup from this many recent days")
    keep_days: Optional[int] = Field(None, ge=1, description="Delete backups older than this many days")
    min_keep: Optional[int] = Field(None, ge=1, description="Minimum backups kept per world")


class TrimRequest(PolicyOverrides):
    """Request to run a trim pass."""

    dry_run: Optional[bool] = Field(None, description="Only report what would be deleted")


class OwnershipFixRequest(BaseModel):
    """Request to run an ownership pass. Empty fields fall back to the config file."""

    chown: Optional[str] = Field(None, description="uid:gid to apply")
    permissions: Optional[str] = Field(None, description="Octal file mode, e.g. 644")


class SnapshotOut(BaseModel):
    """One world backup."""

    name: str
    modified_at: datetime
    action: Optional[str] = Field(None, description="retain|trim when part of a plan")


class WorldOut(BaseModel):
    """A world and its backups, newest first."""

    world: str
    snapshots: List[SnapshotOut]


class PlanResponse(BaseModel):
    """Retention plan for every world."""

    trim_days: int
    keep_days: int
    min_keep: int
    worlds: List[WorldOut]


class WorldTrimOut(BaseModel):
    kept: List[str]
    trimmed: List[str]


class TrimResponse(BaseModel):
    """Outcome of a trim pass."""

    dry_run: bool
    worlds: Dict[str, WorldTrimOut]
    trimmed_count: int
    deleted: List[str]
    failures: List[str]


class OwnershipFixResponse(BaseModel):
    """Outcome of an ownership pass."""

    applied: List[str]
    failures: List[str]
