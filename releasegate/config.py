"""Configuration management using pydantic-settings.

All environment variables are loaded and validated here.
Sensitive data (reporting endpoints with embedded keys) is masked in safe dumps.
"""

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Every field has a default so the engine can start with an empty environment.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    environment: str = Field(
        default="production",
        description="Environment name (development, production)",
    )

    # Free space checks
    skip_free_space_check: bool = Field(
        default=False,
        description="Skip the free space check before accepting a release",
    )

    minimum_free_space_mb: int = Field(
        default=100,
        description="Space that must remain free after the release is stored (MB)",
        ge=0,
    )

    # Collaborator timeouts
    disk_check_timeout_seconds: float = Field(
        default=5.0,
        description="Upper bound for a free space query",
        gt=0,
    )

    profile_lookup_timeout_seconds: float = Field(
        default=5.0,
        description="Upper bound for profile, movie and existing-file lookups",
        gt=0,
    )

    # Pending queue scheduling
    pending_recheck_interval_minutes: int = Field(
        default=15,
        description="Interval between pending queue recheck runs",
        ge=1,
    )

    pending_recheck_jitter_seconds: int = Field(
        default=30,
        description="Random jitter added to each recheck run",
        ge=0,
    )

    pending_recheck_misfire_grace_seconds: int = Field(
        default=300,
        description="How late a missed recheck run may still start",
        ge=1,
    )

    pending_retry_minutes: int = Field(
        default=5,
        description="Delay before a failed grab or an overdue pending item is checked again",
        ge=1,
    )

    pending_db_path: str = Field(
        default="data/pending.db",
        description="SQLite database holding pending releases",
    )

    # Outbound collaborators
    reporting_url: SecretStr | None = Field(
        default=None,
        description="Endpoint receiving rejected decision reports (optional)",
    )

    grab_webhook_url: SecretStr | None = Field(
        default=None,
        description="Endpoint receiving releases to download (optional)",
    )

    grab_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for the grab handoff request",
        gt=0,
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard levels."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v_upper

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is development or production."""
        allowed = {"development", "production"}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v_lower

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    @property
    def minimum_free_space_bytes(self) -> int:
        """Free space margin in bytes."""
        return self.minimum_free_space_mb * 1024 * 1024

    @property
    def has_reporting(self) -> bool:
        """Check if a reporting endpoint is configured."""
        return self.reporting_url is not None

    @property
    def has_grab_webhook(self) -> bool:
        """Check if a grab webhook is configured."""
        return self.grab_webhook_url is not None

    def get_safe_dict(self) -> dict[str, str | int | float | bool | None]:
        """Get configuration as dict with sensitive values masked.

        Returns:
            Dictionary with SecretStr values shown as '***'
        """
        result = {}
        for field_name in type(self).model_fields:
            value = getattr(self, field_name)

            if isinstance(value, SecretStr):
                result[field_name] = "***"
            elif value is None:
                result[field_name] = None
            else:
                result[field_name] = value

        return result


# Global settings instance
settings = Settings()
