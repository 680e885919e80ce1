# backend/dateplanner/core/config.py
import logging
from typing import Dict

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

CANCELLATION_POLICIES = ("flexible", "24_hours", "48_hours", "strict")


def _default_cancellation_windows() -> Dict[str, int]:
    return {"flexible": 1, "24_hours": 24, "48_hours": 48, "strict": 72}


class Settings(BaseSettings):
    """
    Runtime configuration for the scheduling core.

    Built once by the composition root and passed to every service;
    nothing in the package reads a module-level settings instance.
    """

    model_config = SettingsConfigDict(
        env_prefix="DATEPLANNER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = "development"
    database_url: str = "sqlite:///./dateplanner.db"
    database_echo: bool = False
    log_level: str = "INFO"

    # Slot shape rules
    slot_min_duration_minutes: int = Field(default=30, ge=1)
    slot_max_duration_minutes: int = Field(default=480, ge=1)  # 8 hours
    slot_max_future_days: int = Field(default=90, ge=0)
    slot_default_buffer_minutes: int = Field(default=30, ge=0)
    slot_default_preparation_minutes: int = Field(default=15, ge=0)

    # Hours before slot start after which cancellation is refused
    cancellation_window_hours: Dict[str, int] = Field(default_factory=_default_cancellation_windows)

    recurrence_max_weeks: int = Field(default=26, ge=1)  # 6 months

    search_default_limit: int = Field(default=20, ge=1)
    search_max_limit: int = Field(default=100, ge=1)

    slow_operation_threshold_seconds: float = 1.0

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {v}")
        return level

    @model_validator(mode="after")
    def _check_consistency(self) -> "Settings":
        if self.slot_min_duration_minutes >= self.slot_max_duration_minutes:
            raise ValueError("slot_min_duration_minutes must be below slot_max_duration_minutes")
        missing = [p for p in CANCELLATION_POLICIES if p not in self.cancellation_window_hours]
        if missing:
            raise ValueError(f"cancellation_window_hours missing policies: {', '.join(missing)}")
        if self.search_default_limit > self.search_max_limit:
            raise ValueError("search_default_limit cannot exceed search_max_limit")
        return self

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    def cancellation_hours_for(self, policy: str) -> int:
        """Minimum lead time in hours for the given cancellation policy."""
        try:
            return self.cancellation_window_hours[policy]
        except KeyError:
            logger.warning(f"Unknown cancellation policy {policy!r}; applying strict window")
            return self.cancellation_window_hours["strict"]
