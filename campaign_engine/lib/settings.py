"""
Application settings loaded from environment variables.
Uses pydantic-settings for validation and .env file support.
"""
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Campaign engine configuration settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CAMPAIGN_ENGINE_",
        case_sensitive=False,
        extra="ignore"
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./campaigns.db",
        description="SQLAlchemy connection string for the campaign store"
    )

    # Execution trigger (external sender)
    execution_trigger_url: str = Field(
        default="http://localhost:5001/executeScheduledCampaigns",
        description="Endpoint of the callable that delivers a campaign to its audience"
    )
    execution_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="HTTP timeout for execution trigger calls"
    )
    execution_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per execution before the occurrence is left unconfirmed"
    )

    # Tick driver
    tick_interval_minutes: int = Field(
        default=15,
        ge=1,
        le=1440,
        description="Minutes between scheduler/automation ticks"
    )
    peak_engagement_hour: Optional[int] = Field(
        default=None,
        ge=0,
        le=23,
        description="Tenant peak-engagement hour (UTC) used by the timing lever"
    )

    # Application
    app_name: str = Field(default="HRX Campaign Engine", description="Application name")
    debug: bool = Field(default=False, description="Debug mode")
    log_json: bool = Field(default=True, description="Emit JSON log lines")


# Global settings instance
settings = Settings()
