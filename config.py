"""
Configuration module for the booking scheduling engine.
Loads environment variables and provides typed configuration.
"""

from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file
env_path = Path(__file__).parent / ".env"
load_dotenv(dotenv_path=env_path)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Storage: "memory" (single process) or "supabase"
    storage_backend: str = "memory"

    # Supabase
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    # Scheduling
    timezone: str = "Europe/Prague"  # Wall-clock zone of provider schedules
    booking_lead_minutes: int = 5  # Slots starting sooner than this are hidden
    default_session_minutes: int = 60  # Used when a slot has no explicit end

    # Lifecycle sweep
    lifecycle_scheduler_enabled: bool = True
    lifecycle_sweep_interval_seconds: int = 60

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    environment: str = "development"  # development, staging, production

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("storage_backend")
    @classmethod
    def _check_backend(cls, value: str) -> str:
        value = value.lower().strip()
        if value not in {"memory", "supabase"}:
            raise ValueError(f"Unknown storage backend: {value}")
        return value

    @property
    def tz(self) -> ZoneInfo:
        """Provider wall-clock timezone."""
        return ZoneInfo(self.timezone)

    def validate_all_required(self) -> None:
        """
        Validate that all settings needed by the selected backend are present.

        Raises:
            ValueError: If required fields are missing or invalid
        """
        missing = []

        if self.storage_backend == "supabase":
            for field in ("supabase_url", "supabase_key"):
                value = getattr(self, field, None)
                if not value or str(value).lower().startswith("your_"):
                    missing.append(field)

        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            missing.append("timezone")

        if self.lifecycle_sweep_interval_seconds <= 0:
            missing.append("lifecycle_sweep_interval_seconds")
        if self.default_session_minutes <= 0:
            missing.append("default_session_minutes")
        if self.booking_lead_minutes < 0:
            missing.append("booking_lead_minutes")

        if missing:
            raise ValueError(
                f"Missing or invalid required configuration: "
                f"{', '.join(missing)}. "
                f"Please check your .env file and ensure all required "
                f"values are set."
            )


# Global settings instance
settings = Settings()
