"""
Analytics aggregation - folds per-campaign snapshots into tenant rollups.

TenantAggregate keeps the engagement sum and the number of contributing
snapshots rather than a stored mean. Sums are Decimals built from each
score's shortest repr, so merging is exactly associative and commutative:
partial rollups compare equal in any grouping or order.
"""
from decimal import Decimal
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from campaign_engine.models.campaign import AnalyticsSnapshot, Campaign


def _exact(value: float) -> Decimal:
    return Decimal(repr(value))


class TenantAggregate(BaseModel):
    """Rollup of several analytics snapshots."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    total_recipients: int = Field(default=0, ge=0)
    responses_received: int = Field(default=0, ge=0)
    engagement_sum: Decimal = Decimal(0)
    campaign_count: int = Field(default=0, ge=0)
    trait_changes: Dict[str, Decimal] = Field(default_factory=dict)

    @property
    def avg_engagement_score(self) -> float:
        """Arithmetic mean over contributing snapshots (0 when there are none)."""
        if self.campaign_count == 0:
            return 0.0
        return float(self.engagement_sum / self.campaign_count)

    @property
    def response_rate(self) -> float:
        if self.total_recipients == 0:
            return 0.0
        return self.responses_received / self.total_recipients

    @classmethod
    def from_snapshot(cls, snapshot: AnalyticsSnapshot) -> "TenantAggregate":
        return cls(
            total_recipients=snapshot.total_recipients,
            responses_received=snapshot.responses_received,
            engagement_sum=_exact(snapshot.avg_engagement_score),
            campaign_count=1,
            trait_changes={trait: _exact(delta) for trait, delta in snapshot.trait_changes.items()},
        )

    def merge(self, other: "TenantAggregate") -> "TenantAggregate":
        traits = dict(self.trait_changes)
        for trait, delta in other.trait_changes.items():
            traits[trait] = traits.get(trait, Decimal(0)) + delta
        return TenantAggregate(
            total_recipients=self.total_recipients + other.total_recipients,
            responses_received=self.responses_received + other.responses_received,
            engagement_sum=self.engagement_sum + other.engagement_sum,
            campaign_count=self.campaign_count + other.campaign_count,
            trait_changes=traits,
        )

    def summary(self) -> Dict[str, Any]:
        """Report shape used by the analytics screens."""
        return {
            "totalRecipients": self.total_recipients,
            "responsesReceived": self.responses_received,
            "avgEngagementScore": self.avg_engagement_score,
            "responseRate": self.response_rate,
            "campaignCount": self.campaign_count,
            "traitChanges": {trait: float(delta) for trait, delta in sorted(self.trait_changes.items())},
        }


Aggregatable = Union[AnalyticsSnapshot, TenantAggregate, None]


def aggregate(items: Iterable[Aggregatable]) -> TenantAggregate:
    """
    Merge snapshots (and/or earlier aggregates) into one rollup.

    None entries stand for campaigns without analytics and are excluded from
    the engagement mean rather than counted as zero.
    """
    result = TenantAggregate()
    for item in items:
        if item is None:
            continue
        if isinstance(item, AnalyticsSnapshot):
            item = TenantAggregate.from_snapshot(item)
        result = result.merge(item)
    return result


def tenant_aggregate(campaigns: Iterable[Campaign], tenant_id: str) -> Optional[TenantAggregate]:
    """
    Rollup for one tenant's campaigns.

    Returns:
        The aggregate, or None when none of the tenant's campaigns has analytics
    """
    snapshots = [
        campaign.analytics
        for campaign in campaigns
        if campaign.tenant_id == tenant_id and campaign.analytics is not None
    ]
    if not snapshots:
        return None
    return aggregate(snapshots)


def snapshot_from_function_result(payload: Mapping[str, Any]) -> AnalyticsSnapshot:
    """
    Map a getCampaignAnalytics result into a snapshot.

    The analytics function reports totalSent / totalReplied /
    avgEngagementScore / traitImpact; missing values count as zero.

    Raises:
        CampaignValidationError: if the mapped values are inconsistent
    """
    return AnalyticsSnapshot.parse({
        "total_recipients": payload.get("totalSent") or 0,
        "responses_received": payload.get("totalReplied") or 0,
        "avg_engagement_score": payload.get("avgEngagementScore") or 0.0,
        "trait_changes": payload.get("traitImpact") or {},
    })
