"""
Domain values and SQLAlchemy models.
Importing this package registers CampaignRecord with Base.metadata.
"""
from campaign_engine.models.campaign import (
    AIBehavior,
    AnalyticsSnapshot,
    AutomationConfig,
    Campaign,
    CampaignCategory,
    CampaignStatus,
    CampaignTone,
    CreatorType,
    EndByCount,
    EndByDate,
    EndCondition,
    FacetSelector,
    FollowUpStrategy,
    Frequency,
    NoEnd,
    OptimizationRules,
    PerformanceThresholds,
    TargetAudience,
    new_campaign,
)
from campaign_engine.models.records import CampaignRecord

__all__ = [
    "AIBehavior",
    "AnalyticsSnapshot",
    "AutomationConfig",
    "Campaign",
    "CampaignCategory",
    "CampaignStatus",
    "CampaignTone",
    "CreatorType",
    "EndByCount",
    "EndByDate",
    "EndCondition",
    "FacetSelector",
    "FollowUpStrategy",
    "Frequency",
    "NoEnd",
    "OptimizationRules",
    "PerformanceThresholds",
    "TargetAudience",
    "new_campaign",
    "CampaignRecord",
]
