"""
Claim Lifecycle Configuration
Settings for status tracking, deadline monitoring and secondary filing.
Source: https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClaimsSettings(BaseSettings):
    """
    Claim lifecycle configuration settings.

    All values can be overridden with CLAIMS_-prefixed environment
    variables or a local .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="CLAIMS_",  # All claims settings prefixed with CLAIMS_
    )

    # =========================================================================
    # Timely Filing
    # =========================================================================
    DEFAULT_TIMELY_FILING_DAYS: int = Field(
        default=90,
        ge=1,
        description="Timely filing limit used when the payer has none on file",
    )
    DEADLINE_WARNING_DAYS: int = Field(
        default=14,
        ge=0,
        description="Claims with this many days or fewer remaining raise a warning",
    )

    # =========================================================================
    # Follow-up Monitoring
    # =========================================================================
    STALE_CLAIM_DAYS: int = Field(
        default=30,
        ge=1,
        description="Days without a status change before a claim is stale",
    )
    INQUIRY_MIN_AGE_DAYS: int = Field(
        default=14,
        ge=0,
        description="Minimum days since submission before a 276 inquiry is sent",
    )
    INQUIRY_MAX_AGE_DAYS: int = Field(
        default=90,
        ge=1,
        description="Claims submitted longer ago than this are not auto-inquired",
    )
    STALE_CHECK_INTERVAL_HOURS: float = Field(default=24, gt=0)
    TIMELY_FILING_CHECK_INTERVAL_HOURS: float = Field(default=24, gt=0)
    INQUIRY_INTERVAL_HOURS: float = Field(default=24 * 7, gt=0)

    # =========================================================================
    # Batch Processing
    # =========================================================================
    BATCH_CONCURRENCY: int = Field(
        default=1,
        ge=1,
        le=50,
        description="Max claims processed concurrently inside one batch (1 = sequential)",
    )
    ALERT_SAMPLE_SIZE: int = Field(
        default=10,
        ge=1,
        description="Number of claims echoed into a single alert log record",
    )

    # =========================================================================
    # Persistence
    # =========================================================================
    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///./claims.db",
        description="Async SQLAlchemy URL for the claim store",
    )
    DB_ECHO: bool = Field(default=False, description="Echo SQL statements")

    # =========================================================================
    # Logging
    # =========================================================================
    LOG_LEVEL: str = Field(default="INFO")
    LOG_JSON: bool = Field(default=False)
    LOG_FILE: Optional[str] = Field(default=None)

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and validate the log level name."""
        level = v.upper()
        if level not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("INQUIRY_MAX_AGE_DAYS")
    @classmethod
    def validate_inquiry_window(cls, v: int, info) -> int:
        """Inquiry window must not be inverted."""
        min_age = info.data.get("INQUIRY_MIN_AGE_DAYS")
        if min_age is not None and v < min_age:
            raise ValueError("INQUIRY_MAX_AGE_DAYS must be >= INQUIRY_MIN_AGE_DAYS")
        return v

    @property
    def stale_check_interval_seconds(self) -> float:
        return self.STALE_CHECK_INTERVAL_HOURS * 3600

    @property
    def timely_filing_check_interval_seconds(self) -> float:
        return self.TIMELY_FILING_CHECK_INTERVAL_HOURS * 3600

    @property
    def inquiry_interval_seconds(self) -> float:
        return self.INQUIRY_INTERVAL_HOURS * 3600


# Singleton instance
_claims_settings: Optional[ClaimsSettings] = None


def get_claims_settings() -> ClaimsSettings:
    """
    Get cached claims settings instance.

    Returns:
        ClaimsSettings instance
    """
    global _claims_settings
    if _claims_settings is None:
        _claims_settings = ClaimsSettings()
    return _claims_settings


def reset_claims_settings() -> None:
    """Drop the cached settings so the next access re-reads the environment."""
    global _claims_settings
    _claims_settings = None
