"""
Configuration: typed, validated settings loaded from the environment/.env.

Uses pydantic-settings so every knob can be set per invocation without
touching the command line:

  MKRPKI_LOG_LEVEL=DEBUG mkrpki roa ...

Load order (highest priority first):
  1. Environment variables with the MKRPKI_ prefix
  2. .env file at the project root
  3. Default values

Invalid values (a worker count of 0, a negative day count) fail at startup,
before any key is read or any object is built.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the .env file relative to the project root, independent of the
# working directory.
_ENV_FILE = Path(__file__).parent.parent.parent / ".env"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class AppSettings(BaseSettings):
    """Root application settings."""

    model_config = SettingsConfigDict(
        env_prefix="MKRPKI_",
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = Field(default="INFO")
    manifest_hash_workers: int = Field(
        default=4, ge=1, le=64, description="Threads used to hash manifest files"
    )
    default_validity_days: int = Field(
        default=365, ge=1, description="Certificate lifetime when neither --not-after nor --days is given"
    )
    default_next_update_days: int = Field(
        default=1, ge=1, description="CRL/manifest nextUpdate offset when neither --next-update nor --next-days is given"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}, got {value!r}")
        return level
