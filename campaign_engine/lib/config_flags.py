"""
Configuration flags and feature toggles for the campaign engine.

Provides centralized configuration for:
- Automation defaults (thresholds and levers offered when automation is enabled)
- Feature flags (enable/disable automation, execution, template seeding)
- Tick settings (batching and locking behaviour of the control loop)
"""
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from campaign_engine.lib.logging import get_logger


logger = get_logger(__name__)


class AutomationDefaults(BaseModel):
    """
    Defaults used to pre-fill a campaign's automation configuration.

    Matches the automation dialog: every toggle starts off, every
    optimization rule starts on.
    """

    auto_optimize: bool = Field(default=False, description="Allow general optimization")
    smart_scheduling: bool = Field(default=False, description="Allow timing adjustments")
    adaptive_targeting: bool = Field(default=False, description="Allow audience refresh")

    engagement_rate: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Minimum acceptable average engagement score"
    )
    response_rate: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Minimum acceptable responses/recipients ratio"
    )
    satisfaction_score: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Minimum acceptable satisfaction score"
    )

    frequency_adjustment: bool = Field(default=True)
    tone_adjustment: bool = Field(default=True)
    targeting_adjustment: bool = Field(default=True)
    timing_adjustment: bool = Field(default=True)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "engagement_rate": 0.3,
                "response_rate": 0.2,
                "satisfaction_score": 0.7,
            }
        }
    )


class FeatureFlags(BaseModel):
    """Feature flags for enabling/disabling functionality."""

    automation_enabled: bool = Field(
        default=True,
        description="Run the automation policy engine during ticks"
    )
    execution_enabled: bool = Field(
        default=True,
        description="Call the execution trigger for due campaigns (off = dry run)"
    )
    template_seeding_enabled: bool = Field(
        default=True,
        description="Seed default template campaigns into an empty store"
    )


class TickSettings(BaseModel):
    """Control-loop behaviour for a single tick."""

    max_campaigns_per_tick: int = Field(default=500, ge=1, le=10000)
    warn_on_empty_audience: bool = Field(default=True)
    lock_ttl_seconds: int = Field(
        default=900,
        ge=1,
        description="How long a campaign tick lock is considered held"
    )


# Global configuration instances (can be overridden)
_automation_defaults: Optional[AutomationDefaults] = None
_feature_flags: Optional[FeatureFlags] = None
_tick_settings: Optional[TickSettings] = None


def get_automation_defaults() -> AutomationDefaults:
    """
    Get automation defaults configuration.

    Returns:
        AutomationDefaults instance with current settings
    """
    global _automation_defaults
    if _automation_defaults is None:
        _automation_defaults = AutomationDefaults()
        logger.info("Initialized default automation configuration")
    return _automation_defaults


def set_automation_defaults(defaults: AutomationDefaults) -> None:
    """
    Override automation defaults configuration.

    Args:
        defaults: New AutomationDefaults configuration
    """
    global _automation_defaults
    _automation_defaults = defaults
    logger.info("Updated automation defaults", extra={
        "engagement_rate": defaults.engagement_rate,
        "response_rate": defaults.response_rate,
    })


def get_feature_flags() -> FeatureFlags:
    """Get feature flags configuration."""
    global _feature_flags
    if _feature_flags is None:
        _feature_flags = FeatureFlags()
        logger.info("Initialized default feature flags")
    return _feature_flags


def set_feature_flags(flags: FeatureFlags) -> None:
    """Override feature flags configuration."""
    global _feature_flags
    _feature_flags = flags
    logger.info("Updated feature flags")


def get_tick_settings() -> TickSettings:
    """Get tick settings configuration."""
    global _tick_settings
    if _tick_settings is None:
        _tick_settings = TickSettings()
        logger.info("Initialized default tick settings")
    return _tick_settings


def set_tick_settings(tick_settings: TickSettings) -> None:
    """Override tick settings configuration."""
    global _tick_settings
    _tick_settings = tick_settings
    logger.info("Updated tick settings")


def reset_all_configs() -> None:
    """Reset all configurations to defaults (useful for testing)."""
    global _automation_defaults, _feature_flags, _tick_settings
    _automation_defaults = None
    _feature_flags = None
    _tick_settings = None
    logger.info("Reset all configurations to defaults")
