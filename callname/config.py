"""Application configuration using pydantic settings."""

from functools import lru_cache
from typing import Any, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Filename template, eg. "{date}_{direction}_{phone_number}".
    # None means the built-in default template is used.
    filename_template: str | None = None

    # IANA time zone used when rendering the call timestamp. None = system local zone.
    timezone: str | None = None

    # Allow the (blocking) contacts lookup when the platform doesn't supply a contact name
    contact_lookup_enabled: bool = True

    # Logging (CLI only)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @field_validator("filename_template", "timezone", mode="before")
    @classmethod
    def coerce_blank_to_none(cls, v: Any) -> Any:
        """Treat empty or whitespace-only values as unset."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str | None) -> str | None:
        """Reject time zone names unknown to the tz database."""
        if v is None:
            return None
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown time zone: {v}")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().upper()
        return v

    # Google Contacts API settings (optional, for contact name lookup)
    google_client_id: str | None = None
    google_client_secret: str | None = None
    google_refresh_token: str | None = None

    def zone(self) -> ZoneInfo | None:
        """Get the configured time zone, or None for the system local zone."""
        return ZoneInfo(self.timezone) if self.timezone else None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
