"""
Configuration management for the conflict engine.

Uses Pydantic Settings for type-safe environment variable loading.
Configured via .env file in project root.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be configured via .env file or environment variables.
    """

    # Python & Application
    python_env: Literal["development", "production"] = Field(
        default="development",
        description="Application environment"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level"
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./data/expo_conflicts.db",
        description="Database connection URL"
    )

    # API Configuration
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host"
    )
    api_port: int = Field(
        default=8000,
        description="API server port"
    )
    api_reload: bool = Field(
        default=True,
        description="Enable auto-reload in development"
    )

    # Timezone Configuration
    timezone: str = Field(
        default="UTC",
        description="Timezone used to lay out day slots (IANA timezone name, e.g., America/Bogota)"
    )

    # Conflict workflow
    escalation_priority_step: int = Field(
        default=2,
        ge=1,
        description="How much an escalation lowers the numeric priority (floored at 1)"
    )
    default_conflict_priority: int = Field(
        default=5,
        ge=1,
        le=10,
        description="Priority given to newly detected schedule conflicts (1 highest, 10 lowest)"
    )
    notification_channel: str = Field(
        default="email",
        description="Channel recorded on notification log entries"
    )

    # Slot generation defaults
    default_slot_minutes: int = Field(
        default=60,
        ge=5,
        description="Length of generated slots in minutes"
    )
    default_day_start_hour: int = Field(
        default=9,
        ge=0,
        le=23,
        description="First hour of the programmable day"
    )
    default_day_end_hour: int = Field(
        default=18,
        ge=1,
        le=24,
        description="Hour at which the programmable day ends (exclusive)"
    )
    default_allowed_weekdays: list[int] = Field(
        default=[1, 2, 3, 4, 5],
        description="ISO weekdays (Monday=1 ... Sunday=7) on which slots are generated"
    )
    default_margin_minutes: int = Field(
        default=0,
        ge=0,
        description="Buffer kept between activities placed by the auto-scheduler"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("default_allowed_weekdays")
    @classmethod
    def validate_weekdays(cls, v: list[int]) -> list[int]:
        invalid = [d for d in v if d < 1 or d > 7]
        if invalid:
            raise ValueError(f"Weekdays must be ISO numbers 1-7, got {invalid}")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.python_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.python_env == "production"

    @property
    def uses_postgresql(self) -> bool:
        """Check if PostgreSQL is the configured database."""
        return "postgresql" in self.database_url.lower()

    def validate_production_config(self) -> None:
        """
        Validate configuration for production environment.

        Raises:
            ValueError: If required production settings are missing or invalid
        """
        if not self.is_production:
            return

        errors = []

        # Partial unique indexes and row versioning need a real server database
        if not self.uses_postgresql:
            errors.append(
                "Production requires PostgreSQL. "
                "Set DATABASE_URL to a PostgreSQL connection string."
            )

        if self.default_day_start_hour >= self.default_day_end_hour:
            errors.append("DEFAULT_DAY_START_HOUR must be before DEFAULT_DAY_END_HOUR.")

        if self.api_reload:
            errors.append("API_RELOAD must be disabled in production.")

        if errors:
            raise ValueError("Production configuration errors:\n- " + "\n- ".join(errors))


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    This function is cached to ensure we only load settings once.
    Use this function throughout the application to access settings.

    Returns:
        Settings instance loaded from environment

    Example:
        >>> from expo_conflicts.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.database_url)
    """
    return Settings()
