"""One-shot command line interface.

Usage:
    worldkeeper list -b /backups
    worldkeeper trim -b /backups --dry-run --trim-days 3 --keep-days 14 --min-keep 1
    worldkeeper fix-ownership -b /backups --chown 1000:1000 --permissions 644
"""

from __future__ import annotations

import argparse
import os
import sys
from typing import List, Optional

from worldkeeper.api.logging_config import configure_logging, get_logger
from worldkeeper.api.settings import env_flag
from worldkeeper.backend.config import ConfigError, WorldkeeperConfig, load_config, resolve_backup_path
from worldkeeper.backend.services.ownership import OwnershipConfig, OwnershipConfigError, fix_ownership
from worldkeeper.backend.services.retention import RetentionPolicy, RetentionPolicyError
from worldkeeper.backend.services.trim_service import TrimService
from worldkeeper.backend.services.worlds import BackupFolderError

logger = get_logger(__name__)


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", default=os.environ.get("WORLDKEEPER_CONFIG", ""), help="Path to the config file")
    parser.add_argument(
        "-b",
        "--backup-path",
        default=os.environ.get("BACKUP_PATH", ""),
        help="Folder holding the world backups (overrides the config file)",
    )
    parser.add_argument("--debug", action="store_true", help="Log debug level information")
    parser.add_argument("--trace", action="store_true", help="Log trace level information, overriding --debug")


def _add_policy(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--trim-days", type=int, help="Keep every backup from this many recent days (default: 3)")
    parser.add_argument("--keep-days", type=int, help="Delete backups older than this many days (default: 14)")
    parser.add_argument("--min-keep", type=int, help="Minimum number of backups kept per world (default: 1)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="worldkeeper", description="World backup retention tool")
    subparsers = parser.add_subparsers(dest="command", required=True)

    list_parser = subparsers.add_parser("list", help="List world backups and what a trim would do")
    _add_common(list_parser)
    _add_policy(list_parser)

    trim_parser = subparsers.add_parser("trim", help="Delete backups according to the retention policy")
    _add_common(trim_parser)
    _add_policy(trim_parser)
    trim_parser.add_argument(
        "--dry-run",
        action="store_true",
        default=env_flag(os.environ.get("DRY_RUN")),
        help="Only log what would be deleted",
    )

    ownership_parser = subparsers.add_parser("fix-ownership", help="Apply owner, group and permissions to backups")
    _add_common(ownership_parser)
    ownership_parser.add_argument("--chown", help="uid:gid to apply (default: config file)")
    ownership_parser.add_argument("--permissions", help="Octal file mode, e.g. 644 (default: config file)")

    return parser


def _policy(args: argparse.Namespace, config: Optional[WorldkeeperConfig]) -> RetentionPolicy:
    base = config.trim.to_policy() if config else RetentionPolicy()
    return base.with_overrides(trim_days=args.trim_days, keep_days=args.keep_days, min_keep=args.min_keep).validate()


def _cmd_list(args: argparse.Namespace, config: Optional[WorldkeeperConfig]) -> int:
    service = TrimService(resolve_backup_path(args.backup_path, config), _policy(args, config), dry_run=True)
    plan = service.plan()
    if not plan:
        print("No world backups found")
        return 0

    for world, decisions in sorted(plan.items()):
        print(f"{world} ({len(decisions)} backup(s))")
        for decision in decisions:
            snapshot = decision.snapshot
            stamp = snapshot.modified_at.strftime("%Y-%m-%d %H:%M:%S")
            print(f"  {decision.action.value:<6}  {stamp}  {snapshot.location.name}")
    return 0


def _cmd_trim(args: argparse.Namespace, config: Optional[WorldkeeperConfig]) -> int:
    service = TrimService(resolve_backup_path(args.backup_path, config), _policy(args, config), dry_run=args.dry_run)
    report = service.trim()
    return 1 if report.failures else 0


def _cmd_fix_ownership(args: argparse.Namespace, config: Optional[WorldkeeperConfig]) -> int:
    configured = config.ownership.to_config() if config and config.ownership else OwnershipConfig()
    ownership = OwnershipConfig(
        chown=args.chown or configured.chown,
        permissions=args.permissions or configured.permissions,
    )
    report = fix_ownership(resolve_backup_path(args.backup_path, config), ownership)
    return 1 if report.failures else 0


_COMMANDS = {
    "list": _cmd_list,
    "trim": _cmd_trim,
    "fix-ownership": _cmd_fix_ownership,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point."""

    args = build_parser().parse_args(argv)

    log_level = "TRACE" if args.trace else ("DEBUG" if args.debug else os.environ.get("LOG_LEVEL", ""))
    configure_logging(log_dir=os.environ.get("LOG_DIR") or None, log_level=log_level)

    try:
        config = load_config(args.config) if args.config else None
        return _COMMANDS[args.command](args, config)
    except (ConfigError, RetentionPolicyError, OwnershipConfigError, BackupFolderError) as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
