#!/usr/bin/env python3
"""Trim runner service.

This script runs as a long-lived daemon that trims the world backup folder on
a schedule. It can run in two modes:
1. Direct mode: Runs trim (and ownership) passes in-process
2. API mode: Calls the worldkeeper API to run the passes

Usage:
    worldkeeper-runner [--config PATH] [--backup-path DIR] [--interval 3h] [--once]
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import httpx

from worldkeeper.api.logging_config import configure_logging, get_logger
from worldkeeper.api.settings import env_flag, get_env_or_file
from worldkeeper.backend.config import ConfigError, WorldkeeperConfig, load_config, resolve_backup_path
from worldkeeper.backend.services.ownership import OwnershipConfig, fix_ownership
from worldkeeper.backend.services.retention import RetentionPolicy
from worldkeeper.backend.services.schedule_timing import compute_next_run_at, parse_interval, seconds_until
from worldkeeper.backend.services.trim_service import TrimService

logger = get_logger(__name__)

DEFAULT_INTERVAL = "3h"


@dataclass
class RunnerOptions:
    """Resolved runner configuration."""

    mode: str
    interval_seconds: int
    run_at_time: Optional[str] = None
    backup_path: Optional[str] = None
    policy: RetentionPolicy = field(default_factory=RetentionPolicy)
    ownership: Optional[OwnershipConfig] = None
    dry_run: bool = False
    api_url: str = ""
    api_key: str = ""


async def run_trim_direct(options: RunnerOptions) -> Dict[str, Any]:
    """Run a trim pass (and an ownership pass when configured) in-process.

    Args:
        options: Runner options.

    Returns:
        dict: Trim report, plus an `ownership` entry when an ownership pass ran.
    """

    service = TrimService(options.backup_path, options.policy, dry_run=options.dry_run)
    result = (await asyncio.to_thread(service.trim)).to_dict()

    if options.ownership is not None and not options.ownership.is_empty:
        ownership = await asyncio.to_thread(fix_ownership, options.backup_path, options.ownership)
        result["ownership"] = {"applied": ownership.applied, "failures": ownership.failures}

    return result


async def run_trim_via_api(options: RunnerOptions) -> Dict[str, Any]:
    """Run a trim pass (and an ownership pass when configured) via the API.

    Args:
        options: Runner options.

    Returns:
        dict: API trim response, plus an `ownership` entry when an ownership pass ran.
    """

    headers = {"X-Admin-Key": options.api_key, "Content-Type": "application/json"}
    payload = {
        "dry_run": options.dry_run,
        "trim_days": options.policy.trim_days,
        "keep_days": options.policy.keep_days,
        "min_keep": options.policy.min_keep,
    }

    async with httpx.AsyncClient(base_url=options.api_url, timeout=300.0) as client:
        response = await client.post("/retention/trim", json=payload, headers=headers)
        response.raise_for_status()
        result = response.json()

        if options.ownership is not None and not options.ownership.is_empty:
            response = await client.post(
                "/ownership/fix",
                json={"chown": options.ownership.chown, "permissions": options.ownership.permissions},
                headers=headers,
            )
            response.raise_for_status()
            result["ownership"] = response.json()

    return result


def extract_trim_summary(result: Any) -> Tuple[int, List[str]]:
    """Extract the trimmed count and errors from a trim result.

    Args:
        result: Parsed JSON response (API mode) or returned dict (direct mode).

    Returns:
        Tuple[int, List[str]]: (trimmed_count, errors)
    """

    if not isinstance(result, dict):
        return 0, [f"Unexpected trim result type: {type(result).__name__}"]

    try:
        trimmed = int(result.get("trimmed_count") or 0)
    except (TypeError, ValueError):
        trimmed = 0

    errors: List[str] = []
    for name in result.get("failures") or []:
        errors.append(f"Unable to delete {name}")

    ownership = result.get("ownership")
    if isinstance(ownership, dict):
        for name in ownership.get("failures") or []:
            errors.append(f"Unable to fix ownership of {name}")

    return trimmed, errors


async def run_cycle(options: RunnerOptions) -> bool:
    """Run one trim cycle.

    Failures are logged; the caller keeps its schedule either way.

    Args:
        options: Runner options.

    Returns:
        bool: True when the cycle completed without errors.
    """

    try:
        logger.info("Starting trim cycle...")

        if options.mode == "api":
            result = await run_trim_via_api(options)
        else:
            result = await run_trim_direct(options)

        trimmed, errors = extract_trim_summary(result)
        verb = "Would trim" if options.dry_run else "Trimmed"
        if trimmed > 0:
            logger.info("%s %s backup(s)", verb, trimmed)
        else:
            logger.debug("Nothing to trim")

        for err in errors:
            logger.error("Trim error: %s", err)
        return not errors

    except Exception as e:
        logger.error("Trim cycle failed: %s", e)
        return False


async def main_loop(options: RunnerOptions) -> None:
    """Main runner loop.

    Args:
        options: Runner options.
    """

    logger.info(
        "Trim runner started (mode=%s, interval=%ss, run_at=%s, dry_run=%s)",
        options.mode,
        options.interval_seconds,
        options.run_at_time or "-",
        options.dry_run,
    )

    if options.run_at_time is None:
        await run_cycle(options)

    while True:
        next_run = compute_next_run_at(
            reference=datetime.now(timezone.utc),
            interval_seconds=options.interval_seconds,
            run_at_time=options.run_at_time,
        )
        logger.debug("Next trim cycle at %s", next_run.isoformat())
        await asyncio.sleep(seconds_until(next_run))
        await run_cycle(options)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="World backup trim runner")
    parser.add_argument(
        "--config",
        default=os.environ.get("WORLDKEEPER_CONFIG", ""),
        help="Path to the config file (YAML or JSON)",
    )
    parser.add_argument(
        "-b",
        "--backup-path",
        default=os.environ.get("BACKUP_PATH", ""),
        help="Folder holding the world backups (overrides the config file)",
    )
    parser.add_argument(
        "--interval",
        default=os.environ.get("RUNNER_INTERVAL", ""),
        help=f"Time between trim cycles, e.g. 3h or 3600 (default: config file or {DEFAULT_INTERVAL})",
    )
    parser.add_argument(
        "--mode",
        choices=["direct", "api"],
        default=os.environ.get("RUNNER_MODE", "direct"),
        help="Execution mode (default: direct)",
    )
    parser.add_argument(
        "--api-url",
        default=os.environ.get("WORLDKEEPER_API_URL", "http://localhost:8000"),
        help="worldkeeper API URL for API mode",
    )
    parser.add_argument(
        "--api-key",
        default=get_env_or_file("ADMIN_API_KEY", "ADMIN_API_KEY_FILE"),
        help="Admin API key for API mode",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=env_flag(os.environ.get("DRY_RUN")),
        help="Only log what would be deleted",
    )
    parser.add_argument("--once", action="store_true", help="Run once and exit")
    parser.add_argument("--debug", action="store_true", help="Log debug level information")
    parser.add_argument("--trace", action="store_true", help="Log trace level information, overriding --debug")
    return parser


def resolve_options(args: argparse.Namespace) -> RunnerOptions:
    """Merge command-line arguments with the config file.

    Raises:
        ConfigError: When the config file is invalid or no backup folder is set in direct mode.
        ValueError: When the interval cannot be parsed.
    """

    config: Optional[WorldkeeperConfig] = load_config(args.config) if args.config else None

    if args.interval:
        interval_seconds = parse_interval(args.interval)
        run_at_time = None
    elif config is not None and config.schedule.interval_seconds is not None:
        interval_seconds = config.schedule.interval_seconds
        run_at_time = config.schedule.daily if config.schedule.interval is None else None
    else:
        interval_seconds = parse_interval(DEFAULT_INTERVAL)
        run_at_time = None

    backup_path: Optional[str] = None
    if args.mode == "direct":
        backup_path = str(resolve_backup_path(args.backup_path, config))
        if not os.path.isdir(backup_path):
            raise ConfigError(f"Backup folder not found at path {backup_path}")

    return RunnerOptions(
        mode=args.mode,
        interval_seconds=interval_seconds,
        run_at_time=run_at_time,
        backup_path=backup_path,
        policy=config.trim.to_policy() if config else RetentionPolicy(),
        ownership=config.ownership.to_config() if config and config.ownership else None,
        dry_run=args.dry_run,
        api_url=args.api_url,
        api_key=args.api_key,
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point."""

    args = build_parser().parse_args(argv)

    log_level = "TRACE" if args.trace else ("DEBUG" if args.debug else os.environ.get("LOG_LEVEL", ""))
    configure_logging(
        log_dir=os.environ.get("LOG_DIR") or None,
        log_level=log_level,
        log_filename=os.environ.get("LOG_FILENAME", "worldkeeper-runner.log"),
    )

    logger.info("Initializing worldkeeper runner")

    try:
        options = resolve_options(args)
    except (ConfigError, ValueError) as exc:
        logger.error("%s", exc)
        return 1

    if options.mode == "api" and not options.api_key:
        logger.error("API key required for API mode. Set ADMIN_API_KEY or use --api-key")
        return 1

    logger.info("Configuration loaded")

    if args.once:
        return 0 if asyncio.run(run_cycle(options)) else 1

    try:
        asyncio.run(main_loop(options))
    except KeyboardInterrupt:
        logger.info("Trim runner stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
