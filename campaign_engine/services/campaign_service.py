"""
Campaign service - the operations behind the AI Campaigns admin screens.

Wraps the store with validation, the status state machine, template
activation and an action log. Every mutating call is logged as a structured
``campaign.*`` event carrying the target id and latency, so the AI logs
dashboards can trace who changed what.
"""
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Union

from campaign_engine.lib.config_flags import get_feature_flags
from campaign_engine.lib.errors import CampaignValidationError
from campaign_engine.lib.logging import get_logger, log_with_context
from campaign_engine.models.campaign import (
    AnalyticsSnapshot,
    AutomationConfig,
    Campaign,
    CreatorType,
    EndByDate,
    NoEnd,
    new_campaign,
)
from campaign_engine.services import lifecycle, recurrence
from campaign_engine.services.analytics_aggregator import (
    TenantAggregate,
    snapshot_from_function_result,
    tenant_aggregate,
)
from campaign_engine.services.audience_resolver import AudienceResolver
from campaign_engine.services.campaign_store import CampaignFilter, CampaignStore, apply_patch


logger = get_logger(__name__)


SOURCE_MODULE = "CampaignsEngine"

# Fields owned by the state machine and the scheduler; never patchable directly
LIFECYCLE_FIELDS = frozenset({
    "status",
    "occurrences_fired", "occurrencesFired",
    "last_fired_at", "lastFiredAt",
    "audience_refresh_pending", "audienceRefreshPending",
})


DEFAULT_TEMPLATES: List[Dict[str, Any]] = [
    {
        "title": "Q3 Sales Push",
        "objective": "Motivate sales team to achieve quarterly targets",
        "category": "sales",
        "tone": "motivational",
        "target_audience": {"department_ids": ["sales"]},
        "frequency": "weekly",
        "follow_up_strategy": "ai_paced",
        "tags": ["sales", "motivation", "quarterly"],
        "ai_behavior": {
            "response_pattern": "encouraging",
            "escalation_threshold": 0.3,
            "escalation_email": "sales-manager@company.com",
            "trait_tracking": ["motivation", "engagement", "performance"],
        },
        "created_by": "HRX",
        "creator_user_id": "admin",
        "template": True,
    },
    {
        "title": "New PTO Policy Feedback",
        "objective": "Gather employee sentiment on new PTO policy",
        "category": "feedback",
        "tone": "survey",
        "frequency": "one-time",
        "follow_up_strategy": "1_followup",
        "tags": ["policy", "feedback", "pto"],
        "ai_behavior": {
            "response_pattern": "neutral",
            "escalation_threshold": 0.5,
            "trait_tracking": ["satisfaction", "engagement"],
        },
        "created_by": "HRX",
        "creator_user_id": "admin",
        "template": True,
    },
]


class CampaignService:
    """Campaign CRUD, lifecycle and template operations."""

    def __init__(self, store: CampaignStore, resolver: Optional[AudienceResolver] = None):
        self.store = store
        self.resolver = resolver

    # ===== Action log =====

    def _log_action(self, action: str, campaign: Campaign, started: float, reason: str, **extra) -> None:
        log_with_context(
            logger,
            "info",
            reason,
            event_type=f"campaign.{action}",
            action_type=f"campaign_{action}",
            source_module=SOURCE_MODULE,
            target_type="campaign",
            target_id=campaign.id,
            tenant_id=campaign.tenant_id,
            latency_ms=int((time.monotonic() - started) * 1000),
            traits_affected=list(campaign.ai_behavior.trait_tracking),
            ai_tags=["campaign", campaign.category.value],
            **extra,
        )

    # ===== CRUD =====

    def create_campaign(self, data: Mapping[str, Any]) -> Campaign:
        """
        Validate and store a new draft campaign.

        Raises:
            CampaignValidationError: if the payload is invalid
        """
        started = time.monotonic()
        campaign = self.store.create(new_campaign(**dict(data)))
        self._log_action("created", campaign, started, f'Created campaign "{campaign.title}"')
        return campaign

    def get_campaign(self, campaign_id: str) -> Campaign:
        return self.store.get(campaign_id)

    def list_campaigns(self, campaign_filter: Optional[CampaignFilter] = None) -> List[Campaign]:
        return self.store.list(campaign_filter)

    def update_campaign(self, campaign_id: str, patch: Mapping[str, Any]) -> Campaign:
        """
        Apply an edit from the admin screen.

        Lifecycle fields are rejected; use activate/pause/resume instead.
        Setting a non-null automation goes through enable_automation, which
        also activates the campaign. The edit is written once, after every
        part of it has been validated, so a rejected edit changes nothing.

        Raises:
            CampaignValidationError: on lifecycle fields or invalid values
            CampaignNotFoundError: if the campaign does not exist
            InvalidTransitionError: if automation cannot be attached in the
                campaign's current status
            StaleCampaignError: if the campaign changed while the edit was applied
        """
        started = time.monotonic()
        forbidden = sorted(LIFECYCLE_FIELDS.intersection(patch))
        if forbidden:
            raise CampaignValidationError(
                "Lifecycle fields cannot be edited directly",
                {name: "managed by campaign lifecycle" for name in forbidden},
            )

        patch = dict(patch)
        automation_given = "automation" in patch
        automation = patch.pop("automation", None)

        current = self.store.get(campaign_id)
        campaign = apply_patch(current, patch) if patch else current
        if automation_given and automation is not None:
            campaign = lifecycle.enable_automation(campaign, AutomationConfig.parse(automation))
        elif automation_given:
            campaign = lifecycle.disable_automation(campaign)
        campaign = self.store.save(campaign)
        self._log_action("updated", campaign, started, f'Updated campaign "{campaign.title}"',
                         fields=sorted(patch))
        return campaign

    def delete_campaign(self, campaign_id: str) -> None:
        """Remove a campaign in any status."""
        started = time.monotonic()
        campaign = self.store.get(campaign_id)
        self.store.delete(campaign_id)
        self._log_action("deleted", campaign, started, f'Deleted campaign "{campaign.title}"')

    # ===== Lifecycle =====

    def activate(self, campaign_id: str) -> Campaign:
        """
        Activate a draft campaign.

        When a resolver is configured the audience is resolved first; a lookup
        failure leaves the campaign in draft.

        Raises:
            InvalidTransitionError: if the campaign is not a draft
            AudienceResolutionError: if the audience lookup failed
        """
        started = time.monotonic()
        campaign = self.store.get(campaign_id)
        audience = self.resolver.resolve_campaign(campaign) if self.resolver else None
        activated = self.store.save(lifecycle.activate(campaign, audience))
        extra = {"audience_size": len(audience)} if audience is not None else {}
        self._log_action("activated", activated, started, f'Activated campaign "{campaign.title}"', **extra)
        return activated

    def pause(self, campaign_id: str) -> Campaign:
        started = time.monotonic()
        paused = self.store.save(lifecycle.pause(self.store.get(campaign_id)))
        self._log_action("paused", paused, started, f'Paused campaign "{paused.title}"')
        return paused

    def resume(self, campaign_id: str) -> Campaign:
        started = time.monotonic()
        resumed = self.store.save(lifecycle.resume(self.store.get(campaign_id)))
        self._log_action("resumed", resumed, started, f'Resumed campaign "{resumed.title}"')
        return resumed

    def enable_automation(
        self,
        campaign_id: str,
        config: Union[AutomationConfig, Mapping[str, Any], None] = None,
    ) -> Campaign:
        """
        Attach an automation policy (defaults when config is None).

        Draft and paused campaigns become active as a side effect.
        """
        started = time.monotonic()
        automation = AutomationConfig.parse(config) if config is not None else AutomationConfig.from_defaults()
        campaign = self.store.get(campaign_id)
        automated = self.store.save(lifecycle.enable_automation(campaign, automation))
        self._log_action("automation_enabled", automated, started,
                         f'Enabled automation for campaign "{campaign.title}"')
        return automated

    def disable_automation(self, campaign_id: str) -> Campaign:
        started = time.monotonic()
        manual = self.store.save(lifecycle.disable_automation(self.store.get(campaign_id)))
        self._log_action("automation_disabled", manual, started,
                         f'Disabled automation for campaign "{manual.title}"')
        return manual

    # ===== Analytics =====

    def record_analytics(
        self,
        campaign_id: str,
        snapshot: Union[AnalyticsSnapshot, Mapping[str, Any]],
    ) -> Campaign:
        """
        Store the latest analytics snapshot on a campaign.

        Accepts a snapshot, a snapshot-shaped mapping, or the raw
        getCampaignAnalytics result (totalSent/totalReplied/...).
        """
        if isinstance(snapshot, Mapping) and "totalSent" in snapshot:
            snapshot = snapshot_from_function_result(snapshot)
        snapshot = AnalyticsSnapshot.parse(snapshot)
        updated = self.store.update(campaign_id, {"analytics": snapshot})
        logger.info(
            f"Analytics updated for campaign {campaign_id}: "
            f"{snapshot.responses_received}/{snapshot.total_recipients} responses"
        )
        return updated

    def tenant_analytics(self, tenant_id: str) -> Optional[TenantAggregate]:
        return tenant_aggregate(self.store.list(CampaignFilter(tenant_id=tenant_id)), tenant_id)

    def schedule_preview(self, campaign_id: str, limit: int = 5) -> List[datetime]:
        return recurrence.upcoming(self.store.get(campaign_id), limit=limit)

    # ===== Templates =====

    def activate_template(
        self,
        template_id: str,
        tenant_id: Optional[str],
        creator_user_id: Optional[str],
        created_by: CreatorType = CreatorType.TENANT,
    ) -> Campaign:
        """
        Clone a template into a tenant-owned draft campaign.

        Raises:
            CampaignValidationError: if tenant or creator is missing, or the
                source campaign is not a template
        """
        started = time.monotonic()
        errors = {}
        if not tenant_id:
            errors["tenantId"] = "tenant context is required"
        if not creator_user_id:
            errors["creatorUserId"] = "creator is required"
        if errors:
            raise CampaignValidationError("Missing user or tenant context", errors)

        template = self.store.get(template_id)
        if not template.template:
            raise CampaignValidationError(
                f"Campaign {template_id} is not a template",
                {"templateCampaignId": "not a template"},
            )

        data = template.model_dump()
        data.update(
            tenant_id=tenant_id,
            creator_user_id=creator_user_id,
            created_by=created_by,
            template=False,
            source_campaign_id=template.id,
            automation=None,
            analytics=None,
            start_date=datetime.now(timezone.utc),
            end_condition=NoEnd() if isinstance(template.end_condition, EndByDate) else template.end_condition,
        )
        campaign = self.store.create(new_campaign(**data))
        self._log_action("template_activated", campaign, started,
                         f'Activated template "{template.title}" for tenant {tenant_id}',
                         source_campaign_id=template.id)
        return campaign

    def seed_default_templates(self) -> List[Campaign]:
        """Create the default templates when the store holds no campaigns."""
        if not get_feature_flags().template_seeding_enabled:
            return []
        if self.store.list():
            return []
        seeded = [self.store.create(new_campaign(**template)) for template in DEFAULT_TEMPLATES]
        logger.info(f"Seeded {len(seeded)} default campaign templates")
        return seeded
