"""Job store settings.

``JobStoreSettings`` reads ``JOBSTORE_*`` environment variables (and a
``.env`` file) so every scheduler instance sharing a database is configured
the same way.

Examples:
    >>> from jobstore.core.settings import load_settings
    >>> settings = load_settings(instance_name="reports")
    >>> settings.misfire_threshold.total_seconds()
    5.0

Tags:
    settings, configuration, pydantic, environment
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Literal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from jobstore.core.errors import SchedulerConfigError
from jobstore.core.timestamps import generate_ulid


class JobStoreSettings(BaseSettings):
    """Configuration for one job store instance.

    Fields
    ──────
    database_url              : SQLAlchemy URL of the shared backing store
    database_echo             : Log every SQL statement
    instance_name             : Logical scheduler name; scopes jobs/triggers/record
    instance_id               : Unique id of this process (cluster member)
    misfire_threshold_seconds : Lateness tolerated before a trigger counts as misfired
    clustered                 : Declares that several instances share the store
    log_level / log_format    : structlog configuration
    """

    model_config = SettingsConfigDict(
        env_prefix="JOBSTORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Database ─────────────────────────────────────────────────
    database_url: str = Field(default="sqlite:///jobstore.db")
    database_echo: bool = Field(default=False)

    # ── Identity ─────────────────────────────────────────────────
    instance_name: str = Field(default="scheduler", min_length=1)
    instance_id: str = Field(default_factory=generate_ulid)
    clustered: bool = Field(default=False)

    # ── Misfires ─────────────────────────────────────────────────
    misfire_threshold_seconds: float = Field(default=5.0, ge=0)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="json")

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        value = value.upper()
        if value not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {value!r}")
        return value

    @property
    def misfire_threshold(self) -> timedelta:
        return timedelta(seconds=self.misfire_threshold_seconds)


def load_settings(**overrides: Any) -> JobStoreSettings:
    """Build settings from the environment, with explicit overrides.

    Raises:
        SchedulerConfigError: if a value fails validation
    """
    try:
        return JobStoreSettings(**overrides)
    except ValidationError as exc:
        raise SchedulerConfigError(f"Invalid job store settings: {exc}", cause=exc) from exc


__all__ = ["JobStoreSettings", "load_settings"]
