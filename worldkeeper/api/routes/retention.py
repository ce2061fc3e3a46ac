"""Retention, trim and ownership endpoints."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.concurrency import run_in_threadpool

from worldkeeper.api.logging_config import get_logger
from worldkeeper.api.schemas.retention import (
    OwnershipFixRequest,
    OwnershipFixResponse,
    PlanResponse,
    SnapshotOut,
    TrimRequest,
    TrimResponse,
    WorldOut,
)
from worldkeeper.api.security import verify_admin_key
from worldkeeper.api.settings import settings
from worldkeeper.backend.config import ConfigError, WorldkeeperConfig, load_config, resolve_backup_path
from worldkeeper.backend.services.ownership import OwnershipConfig, OwnershipConfigError, fix_ownership
from worldkeeper.backend.services.retention import RetentionPolicy, RetentionPolicyError, group_snapshots
from worldkeeper.backend.services.trim_service import TrimService
from worldkeeper.backend.services.worlds import BackupFolderError, list_worlds

logger = get_logger(__name__)

router = APIRouter(tags=["Retention"], dependencies=[Depends(verify_admin_key)])

class _PassGuard:
    """Marks whether a trim or ownership pass is running.

    Both passes touch the same folder, so only one runs at a time. The flag is
    only read and written on the event loop thread.
    """

    def __init__(self) -> None:
        self.busy = False

    @contextmanager
    def exclusive(self) -> Iterator[None]:
        if self.busy:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Another trim or ownership pass is already running",
            )
        self.busy = True
        try:
            yield
        finally:
            self.busy = False


_pass_guard = _PassGuard()


@dataclass(frozen=True)
class _Runtime:
    backup_path: Path
    config: Optional[WorldkeeperConfig]

    @property
    def policy(self) -> RetentionPolicy:
        if self.config is None:
            return RetentionPolicy()
        return self.config.trim.to_policy()


def _runtime() -> _Runtime:
    """Resolve the backup folder and config file from the process settings."""

    try:
        config = load_config(settings.CONFIG_PATH) if settings.CONFIG_PATH else None
        backup_path = resolve_backup_path(settings.BACKUP_PATH, config)
    except ConfigError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    return _Runtime(backup_path=backup_path, config=config)


def _policy_with(runtime: _Runtime, trim_days, keep_days, min_keep) -> RetentionPolicy:
    try:
        return runtime.policy.with_overrides(trim_days=trim_days, keep_days=keep_days, min_keep=min_keep).validate()
    except RetentionPolicyError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _folder_not_found(exc: BackupFolderError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


@router.get("/worlds", response_model=List[WorldOut])
async def list_world_backups(runtime: _Runtime = Depends(_runtime)):
    """List discovered world backups, newest first per world."""

    try:
        artifacts = await run_in_threadpool(list_worlds, runtime.backup_path)
    except BackupFolderError as exc:
        raise _folder_not_found(exc)

    groups = group_snapshots(artifacts)
    return [
        WorldOut(
            world=world,
            snapshots=[
                SnapshotOut(name=s.location.name, modified_at=s.modified_at)
                for s in sorted(snapshots, key=lambda s: s.modified_at, reverse=True)
            ],
        )
        for world, snapshots in sorted(groups.items())
    ]


@router.get("/retention/plan", response_model=PlanResponse)
async def get_retention_plan(
    trim_days: Optional[int] = Query(None, ge=1),
    keep_days: Optional[int] = Query(None, ge=1),
    min_keep: Optional[int] = Query(None, ge=1),
    runtime: _Runtime = Depends(_runtime),
):
    """Show what a trim pass would keep and delete, without deleting anything."""

    policy = _policy_with(runtime, trim_days, keep_days, min_keep)
    service = TrimService(runtime.backup_path, policy, dry_run=True)
    try:
        plan = await run_in_threadpool(service.plan)
    except BackupFolderError as exc:
        raise _folder_not_found(exc)

    return PlanResponse(
        trim_days=policy.trim_days,
        keep_days=policy.keep_days,
        min_keep=policy.min_keep,
        worlds=[
            WorldOut(
                world=world,
                snapshots=[
                    SnapshotOut(
                        name=d.snapshot.location.name,
                        modified_at=d.snapshot.modified_at,
                        action=d.action.value,
                    )
                    for d in decisions
                ],
            )
            for world, decisions in sorted(plan.items())
        ],
    )


@router.post("/retention/trim", response_model=TrimResponse)
async def run_trim(payload: Optional[TrimRequest] = None, runtime: _Runtime = Depends(_runtime)):
    """Run a trim pass now."""

    payload = payload or TrimRequest()
    policy = _policy_with(runtime, payload.trim_days, payload.keep_days, payload.min_keep)
    dry_run = settings.DRY_RUN if payload.dry_run is None else payload.dry_run

    with _pass_guard.exclusive():
        logger.info("Trim requested via API (dry_run=%s, policy=%s)", dry_run, policy)
        service = TrimService(runtime.backup_path, policy, dry_run=dry_run)
        try:
            report = await run_in_threadpool(service.trim)
        except BackupFolderError as exc:
            raise _folder_not_found(exc)

    return report.to_dict()


@router.post("/ownership/fix", response_model=OwnershipFixResponse)
async def run_ownership_fix(payload: Optional[OwnershipFixRequest] = None, runtime: _Runtime = Depends(_runtime)):
    """Apply the configured owner, group and permissions to every backup."""

    payload = payload or OwnershipFixRequest()
    configured = OwnershipConfig()
    if runtime.config is not None and runtime.config.ownership is not None:
        configured = runtime.config.ownership.to_config()
    ownership = OwnershipConfig(
        chown=payload.chown or configured.chown,
        permissions=payload.permissions or configured.permissions,
    )

    with _pass_guard.exclusive():
        try:
            report = await run_in_threadpool(fix_ownership, runtime.backup_path, ownership)
        except OwnershipConfigError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
        except BackupFolderError as exc:
            raise _folder_not_found(exc)

    return OwnershipFixResponse(applied=report.applied, failures=report.failures)
