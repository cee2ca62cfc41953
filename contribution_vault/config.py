"""
Configuration loaded from the environment.

Values may come from a ``.env`` file (python-dotenv); variables already present
in the process environment win.

Variables:
    DATABASE_URL                      PostgreSQL DSN for PostgresRecordStore
    CONTRIBUTION_VAULT_KEY            base64 32-byte active key
    CONTRIBUTION_VAULT_KEY_ID         id of the active key (default "k1")
    CONTRIBUTION_VAULT_RETIRED_KEYS   "id:base64,id:base64" decrypt-only keys
    CONTRIBUTION_VAULT_LOG_LEVEL      logging level (default "INFO")
    CONTRIBUTION_VAULT_LOG_FORMAT     "console" or "json" (default "console")
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Union

from dotenv import load_dotenv

from .errors import ConfigError
from .keys import DEFAULT_KEY_ID

LOG_FORMATS = ("console", "json")


@dataclass(frozen=True)
class Settings:
    """Runtime settings."""

    database_url: Optional[str] = None
    encryption_key: Optional[str] = None
    encryption_key_id: str = DEFAULT_KEY_ID
    retired_keys: Optional[str] = None
    log_level: str = "INFO"
    log_format: str = "console"

    def __repr__(self) -> str:
        # Key material stays out of logs and tracebacks
        return (
            f"Settings(database_url={'set' if self.database_url else None}, "
            f"encryption_key={'[REDACTED]' if self.encryption_key else None}, "
            f"encryption_key_id={self.encryption_key_id!r}, "
            f"retired_keys={'[REDACTED]' if self.retired_keys else None}, "
            f"log_level={self.log_level!r}, log_format={self.log_format!r})"
        )

    @classmethod
    def from_mapping(cls, env: Mapping[str, str]) -> Settings:
        """Build settings from an environment-like mapping."""
        log_format = env.get("CONTRIBUTION_VAULT_LOG_FORMAT", "console").lower()
        if log_format not in LOG_FORMATS:
            raise ConfigError(
                f"CONTRIBUTION_VAULT_LOG_FORMAT must be one of {LOG_FORMATS}, got {log_format!r}"
            )
        return cls(
            database_url=env.get("DATABASE_URL") or None,
            encryption_key=env.get("CONTRIBUTION_VAULT_KEY") or None,
            encryption_key_id=env.get("CONTRIBUTION_VAULT_KEY_ID") or DEFAULT_KEY_ID,
            retired_keys=env.get("CONTRIBUTION_VAULT_RETIRED_KEYS") or None,
            log_level=(env.get("CONTRIBUTION_VAULT_LOG_LEVEL") or "INFO").upper(),
            log_format=log_format,
        )


def load_settings(env_file: Optional[Union[str, Path]] = None) -> Settings:
    """
    Load settings from the process environment.

    Args:
        env_file: Optional path to a .env file. When omitted, python-dotenv
            searches for one starting from the working directory.

    Returns:
        Settings instance
    """
    if env_file is not None:
        load_dotenv(env_file)
    else:
        load_dotenv()
    return Settings.from_mapping(os.environ)
