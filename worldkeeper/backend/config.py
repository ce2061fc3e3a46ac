"""Daemon configuration file.

The configuration file is YAML (JSON is accepted too, being a YAML subset):

    backupPath: /backups
    trim:
      trimDays: 3
      keepDays: 14
      minKeep: 1
    ownership:
      chown: "1000:1000"
      permissions: "644"
    schedule:
      interval: 3h        # or `daily: "03:30"` (UTC)
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from worldkeeper.backend.services.ownership import OwnershipConfig
from worldkeeper.backend.services.retention import RetentionPolicy, RetentionPolicyError
from worldkeeper.backend.services.schedule_timing import DAY_SECONDS, parse_interval, parse_time_hhmm


class ConfigError(Exception):
    """Raised when the configuration file is missing or invalid."""


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TrimSettings(_CamelModel):
    """Retention parameters section."""

    trim_days: int = Field(3, alias="trimDays", ge=1, description="Keep every backup from this many recent days")
    keep_days: int = Field(14, alias="keepDays", ge=1, description="Delete backups older than this many days")
    min_keep: int = Field(1, alias="minKeep", ge=1, description="Minimum backups kept per world")

    @model_validator(mode="after")
    def _check_order(self) -> "TrimSettings":
        try:
            self.to_policy()
        except RetentionPolicyError as exc:
            raise ValueError(str(exc)) from exc
        return self

    def to_policy(self) -> RetentionPolicy:
        return RetentionPolicy(trim_days=self.trim_days, keep_days=self.keep_days, min_keep=self.min_keep).validate()


class OwnershipSettings(_CamelModel):
    """Ownership section."""

    chown: Optional[str] = Field(None, description="uid:gid to apply to backups")
    permissions: Optional[str] = Field(None, description="Octal file mode, e.g. 644")

    @field_validator("chown", "permissions", mode="before")
    @classmethod
    def _coerce_str(cls, value):
        # YAML reads `permissions: 644` as an int.
        if value is None:
            return None
        return str(value)

    def to_config(self) -> OwnershipConfig:
        return OwnershipConfig(chown=self.chown, permissions=self.permissions)


class ScheduleSettings(_CamelModel):
    """Schedule section."""

    interval: Optional[Union[str, int]] = Field(None, description="Time between trim passes, e.g. 3h")
    daily: Optional[str] = Field(None, description="Run once a day at HH:MM (UTC)")

    @field_validator("interval")
    @classmethod
    def _check_interval(cls, value):
        if value is not None:
            parse_interval(value)
        return value

    @field_validator("daily")
    @classmethod
    def _check_daily(cls, value):
        if value is not None:
            parse_time_hhmm(value)
        return value

    @property
    def interval_seconds(self) -> Optional[int]:
        if self.interval is not None:
            return parse_interval(self.interval)
        if self.daily is not None:
            return DAY_SECONDS
        return None


class WorldkeeperConfig(_CamelModel):
    """Top-level configuration."""

    backup_path: Optional[str] = Field(None, alias="backupPath")
    trim: TrimSettings = Field(default_factory=TrimSettings)
    ownership: Optional[OwnershipSettings] = None
    schedule: ScheduleSettings = Field(default_factory=ScheduleSettings)


def parse_config(text: str, *, source: str = "<string>") -> WorldkeeperConfig:
    """Parse configuration text.

    Args:
        text: YAML or JSON document.
        source: Name used in error messages.

    Returns:
        WorldkeeperConfig: Parsed configuration.

    Raises:
        ConfigError: When the document cannot be parsed or validated.
    """

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Unable to parse {source}: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid configuration in {source}: expected a mapping at the top level")

    try:
        return WorldkeeperConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration in {source}: {exc}") from exc


def resolve_backup_path(override: Optional[str], config: Optional[WorldkeeperConfig]) -> Path:
    """Pick the backup folder from the command line/environment or the config file.

    Raises:
        ConfigError: When no folder is configured.
    """

    value = override or (config.backup_path if config else None)
    if not value:
        raise ConfigError("Backup path needs to be specified on command-line or config file")
    return Path(value)


def load_config(path: Union[str, Path]) -> WorldkeeperConfig:
    """Load the configuration file.

    Raises:
        ConfigError: When the file is missing, unreadable or invalid.
    """

    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"Configuration file doesn't exist at path {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Unable to read configuration file {path}: {exc}") from exc
    return parse_config(text, source=str(path))
