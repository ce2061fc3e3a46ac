"""Process settings read from the environment.

Secrets may be provided either directly (`ADMIN_API_KEY`) or through a file
path (`ADMIN_API_KEY_FILE`), which is how container secrets are mounted.
"""

from __future__ import annotations

import os
from typing import Mapping, Optional


_TRUE_VALUES = ("1", "true", "yes", "on")


def get_env_or_file(env_name: str, file_env_name: str, default: str = "", *, env: Optional[Mapping[str, str]] = None) -> str:
    """Get value from environment variable or file.

    Args:
        env_name: Environment variable name.
        file_env_name: Environment variable containing path to file.
        default: Default value if neither is set.
        env: Environment mapping (defaults to os.environ).

    Returns:
        str: The value.
    """

    env = os.environ if env is None else env

    value = env.get(env_name, "")
    if value:
        return value

    file_path = env.get(file_env_name, "")
    if file_path and os.path.exists(file_path):
        with open(file_path, "r", encoding="utf-8") as f:
            return f.read().strip()

    return default


def env_flag(value: Optional[str]) -> bool:
    return str(value or "").strip().lower() in _TRUE_VALUES


class Settings:
    """Runtime settings for the API and the runner."""

    def __init__(self, env: Optional[Mapping[str, str]] = None):
        env = os.environ if env is None else env
        self._env = env

        self.IMAGE_TAG: str = env.get("IMAGE_TAG", "dev")
        self.DEBUG: bool = env_flag(env.get("DEBUG"))
        self.LOG_LEVEL: str = env.get("LOG_LEVEL", "")
        self.LOG_DIR: str = env.get("LOG_DIR", "")
        self.BACKUP_PATH: str = env.get("BACKUP_PATH", "")
        self.CONFIG_PATH: str = env.get("WORLDKEEPER_CONFIG", "")
        self.DRY_RUN: bool = env_flag(env.get("DRY_RUN"))

    def get_admin_api_key(self) -> str:
        """Return the configured admin API key (empty when unset)."""

        return get_env_or_file("ADMIN_API_KEY", "ADMIN_API_KEY_FILE", env=self._env)


settings = Settings()
