# weekblocks/core/config.py
import logging
import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    CHANGELOG_SENTINEL,
    DAY_LABELS,
    DAYS_PER_WEEK,
    DEFAULT_HEADER_ROWS,
    STANDARD_TIME_SLOTS,
)


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).resolve().parents[2] / ".env"
    logger.debug("[CONFIG] Looking for .env at: %s (exists=%s)", env_path, env_path.exists())
    load_dotenv(env_path)


class Settings(BaseSettings):
    environment: str = Field(default="development", description="Deployment environment name")
    log_level: str = Field(default="INFO", description="Root log level for workers")

    # Storage
    database_url: str = Field(
        default="sqlite:///./weekblocks.db",
        description="SQLAlchemy URL of the block store and location index",
    )
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis URL for the cache and scope locks; unset means in-process fallback",
    )
    namespace: str = Field(default="weekblocks", description="Prefix for Redis lock keys")

    # Block layout
    header_rows: int = Field(default=DEFAULT_HEADER_ROWS, ge=1)
    time_slots: List[str] = Field(default_factory=lambda: list(STANDARD_TIME_SLOTS))
    day_labels: List[str] = Field(default_factory=lambda: list(DAY_LABELS))
    changelog_sentinel: str = CHANGELOG_SENTINEL

    # Ephemeral cache TTLs (seconds)
    location_cache_ttl: int = Field(default=21600, description="Resolved block locations (6h)")
    content_cache_ttl: int = Field(default=300, description="Parsed block content (5m)")

    # Index validation
    validation_error_threshold: float = Field(default=0.1, ge=0.0, le=1.0)
    auto_rebuild_on_error: bool = True

    # Scheduled maintenance
    active_weeks_window: int = Field(default=4, ge=1, description="Current week + future weeks")
    idle_scope_days: int = Field(default=28, ge=1)

    # Scope locks
    lock_ttl_s: int = Field(default=30, ge=1)
    lock_wait_timeout_s: float = Field(default=10.0, ge=0.0)
    lock_poll_interval_s: float = Field(default=0.05, gt=0.0)

    model_config = SettingsConfigDict(
        env_prefix="WEEKBLOCKS_",
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("time_slots", "day_labels", mode="before")
    @classmethod
    def _parse_label_list(cls, value: object) -> object:
        if isinstance(value, str):
            return [token.strip() for token in value.split(",") if token.strip()]
        return value

    @field_validator("redis_url", mode="before")
    @classmethod
    def _blank_redis_url(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _check_layout(self) -> "Settings":
        if not self.time_slots:
            raise ValueError("time_slots must contain at least one label")
        if len(self.day_labels) != DAYS_PER_WEEK:
            raise ValueError(f"day_labels must contain exactly {DAYS_PER_WEEK} labels")
        return self

    @property
    def num_slots(self) -> int:
        """Rows per block."""
        return len(self.time_slots)

    @property
    def data_start_row(self) -> int:
        """First row of a scope region that may hold block data."""
        return self.header_rows + 1


settings = Settings()
