"""
Automation Policy Engine.

On each evaluation tick, compares a campaign's latest analytics snapshot with
its performance thresholds and, when the campaign under-performs, pulls the
levers its optimization rules allow:

- frequency: one step denser (monthly -> weekly -> daily)
- tone: one step toward empathetic
- targeting: flag the audience for re-resolution on the next tick
- timing: ask the next scheduler call to use the tenant's peak hour

The engine is strictly corrective (healthy campaigns are never touched), each
lever is pulled at most once per evaluation, and the input campaign is never
mutated.
"""
from dataclasses import dataclass
from typing import Optional, Tuple

from campaign_engine.lib.logging import get_logger, log_with_context
from campaign_engine.lib.metrics import get_metrics_collector
from campaign_engine.models.campaign import (
    AnalyticsSnapshot,
    Campaign,
    CampaignTone,
    Frequency,
)


logger = get_logger(__name__)


class Lever:
    """Adjustable dimensions."""
    FREQUENCY = "frequency"
    TONE = "tone"
    TARGETING = "targeting"
    TIMING = "timing"


# Next denser tier. Frequencies not listed (one-time, daily, custom) stay put.
DENSER_FREQUENCY = {
    Frequency.MONTHLY: Frequency.WEEKLY,
    Frequency.WEEKLY: Frequency.DAILY,
}

# Ladder walked one rung per evaluation; empathetic is the top.
TONE_LADDER: Tuple[CampaignTone, ...] = (
    CampaignTone.DIRECTIVE,
    CampaignTone.MOTIVATIONAL,
    CampaignTone.SURVEY,
    CampaignTone.COACHING,
    CampaignTone.FEEDBACK_SEEKING,
    CampaignTone.EMPATHETIC,
)


def denser_frequency(frequency: Frequency) -> Frequency:
    return DENSER_FREQUENCY.get(frequency, frequency)


def tone_toward_empathetic(tone: CampaignTone) -> CampaignTone:
    index = TONE_LADDER.index(tone)
    return TONE_LADDER[min(index + 1, len(TONE_LADDER) - 1)]


@dataclass(frozen=True)
class AutomationDecision:
    """Outcome of one evaluation."""

    campaign: Campaign
    levers: Tuple[str, ...] = ()
    use_peak_hour: bool = False
    engagement_rate: Optional[float] = None
    response_rate: Optional[float] = None
    underperforming: bool = False
    skipped_reason: Optional[str] = None
    notes: Tuple[str, ...] = ()

    @property
    def changed(self) -> bool:
        return bool(self.levers)


class AutomationPolicyEngine:
    """Pure evaluator; safe to run for many campaigns in parallel."""

    def __init__(self, record_metrics: bool = True):
        self.record_metrics = record_metrics

    def evaluate(self, campaign: Campaign, snapshot: Optional[AnalyticsSnapshot] = None) -> Campaign:
        """
        Evaluate a campaign and return the (possibly adjusted) campaign.

        Args:
            campaign: Campaign to evaluate
            snapshot: Analytics to judge by; defaults to campaign.analytics

        Returns:
            New campaign value, or the same campaign when nothing changed
        """
        return self.decide(campaign, snapshot).campaign

    def decide(self, campaign: Campaign, snapshot: Optional[AnalyticsSnapshot] = None) -> AutomationDecision:
        """Same as evaluate, but reports which levers were pulled and why."""
        automation = campaign.automation
        if automation is None:
            return self._skip(campaign, "manual campaign")
        if not automation.auto_optimize:
            return self._skip(campaign, "autoOptimize disabled")

        if snapshot is None:
            snapshot = campaign.analytics
        if snapshot is None:
            return self._skip(campaign, "no analytics snapshot")

        thresholds = automation.performance_thresholds
        engagement = snapshot.avg_engagement_score
        response = snapshot.response_rate

        below = []
        if engagement < thresholds.engagement_rate:
            below.append("engagement")
        if response < thresholds.response_rate:
            below.append("response")

        if not below:
            self._count("healthy")
            return AutomationDecision(
                campaign=campaign,
                engagement_rate=engagement,
                response_rate=response,
            )

        rules = automation.optimization_rules
        updates = {}
        levers = []
        use_peak_hour = False

        if rules.frequency_adjustment:
            denser = denser_frequency(campaign.frequency)
            if denser != campaign.frequency:
                updates["frequency"] = denser
                levers.append(Lever.FREQUENCY)

        if rules.tone_adjustment and campaign.tone != CampaignTone.EMPATHETIC:
            updates["tone"] = tone_toward_empathetic(campaign.tone)
            levers.append(Lever.TONE)

        if rules.targeting_adjustment and automation.adaptive_targeting:
            if not campaign.audience_refresh_pending:
                updates["audience_refresh_pending"] = True
            levers.append(Lever.TARGETING)

        if rules.timing_adjustment and automation.smart_scheduling:
            use_peak_hour = True
            levers.append(Lever.TIMING)

        adjusted = campaign.with_changes(**updates) if updates else campaign

        log_with_context(
            logger,
            "info",
            f"Campaign {campaign.id} below threshold ({', '.join(below)}); "
            f"levers pulled: {', '.join(levers) or 'none'}",
            campaign_id=campaign.id,
            engagement_rate=engagement,
            response_rate=response,
            levers=levers,
        )
        self._count("adjusted" if levers else "underperforming", levers)

        return AutomationDecision(
            campaign=adjusted,
            levers=tuple(levers),
            use_peak_hour=use_peak_hour,
            engagement_rate=engagement,
            response_rate=response,
            underperforming=True,
            notes=tuple(f"{name} below threshold" for name in below),
        )

    def _skip(self, campaign: Campaign, reason: str) -> AutomationDecision:
        logger.debug(f"Automation skipped for campaign {campaign.id}: {reason}")
        self._count("skipped")
        return AutomationDecision(campaign=campaign, skipped_reason=reason)

    def _count(self, result: str, levers=()) -> None:
        if not self.record_metrics:
            return
        metrics = get_metrics_collector()
        metrics.increment_evaluations(result)
        for lever in levers:
            metrics.increment_adjustments(lever)


_engine: Optional[AutomationPolicyEngine] = None


def get_policy_engine() -> AutomationPolicyEngine:
    """Shared engine instance."""
    global _engine
    if _engine is None:
        _engine = AutomationPolicyEngine()
    return _engine


def evaluate(campaign: Campaign, snapshot: Optional[AnalyticsSnapshot] = None) -> Campaign:
    """Module-level shortcut for AutomationPolicyEngine.evaluate."""
    return get_policy_engine().evaluate(campaign, snapshot)
