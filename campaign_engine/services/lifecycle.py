"""
Campaign status state machine.

    draft -> active -> {paused <-> active} -> completed

- draft -> active: explicit activation (audience may be empty, callers warn)
- active -> paused / paused -> active: occurrence count is preserved
- active -> completed: automatic, once an occurrence is confirmed and the
  end condition is reached; irreversible
- a delivery confirmed after a pause landed is still counted; the campaign
  stays paused and completes on resume if that was its last occurrence
- enabling automation forces draft/paused campaigns to active

Deletion is an operation on the store, not a state. Every function returns a
new Campaign; nothing is mutated in place.
"""
from datetime import datetime
from typing import Dict, FrozenSet, Optional

from campaign_engine.lib.errors import InvalidTransitionError
from campaign_engine.lib.logging import get_logger
from campaign_engine.models.campaign import (
    AutomationConfig,
    Campaign,
    CampaignStatus,
)
from campaign_engine.services import recurrence


logger = get_logger(__name__)


ALLOWED_TRANSITIONS: Dict[CampaignStatus, FrozenSet[CampaignStatus]] = {
    CampaignStatus.DRAFT: frozenset({CampaignStatus.ACTIVE}),
    CampaignStatus.ACTIVE: frozenset({CampaignStatus.PAUSED, CampaignStatus.COMPLETED}),
    CampaignStatus.PAUSED: frozenset({CampaignStatus.ACTIVE}),
    CampaignStatus.COMPLETED: frozenset(),
}


def can_transition(current: CampaignStatus, target: CampaignStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def _transition(campaign: Campaign, target: CampaignStatus) -> Campaign:
    if not can_transition(campaign.status, target):
        raise InvalidTransitionError(campaign.id, campaign.status.value, target.value)
    return campaign.with_changes(status=target)


def activate(campaign: Campaign, audience: Optional[FrozenSet[str]] = None) -> Campaign:
    """
    Move a draft campaign to active.

    Args:
        campaign: Draft campaign
        audience: Resolved audience, when the caller resolved it; an empty
            audience is allowed but logged

    Raises:
        InvalidTransitionError: if the campaign is not a draft
    """
    if campaign.status != CampaignStatus.DRAFT:
        raise InvalidTransitionError(campaign.id, campaign.status.value, CampaignStatus.ACTIVE.value)
    if audience is not None and not audience:
        logger.warning(f"Activating campaign {campaign.id} with an empty audience")
    return _transition(campaign, CampaignStatus.ACTIVE)


def pause(campaign: Campaign) -> Campaign:
    """Pause an active campaign; the scheduler stops producing occurrences."""
    return _transition(campaign, CampaignStatus.PAUSED)


def resume(campaign: Campaign) -> Campaign:
    """Resume a paused campaign without resetting its occurrence count."""
    if campaign.status != CampaignStatus.PAUSED:
        raise InvalidTransitionError(campaign.id, campaign.status.value, CampaignStatus.ACTIVE.value)
    resumed = _transition(campaign, CampaignStatus.ACTIVE)
    if recurrence.has_ended(resumed, resumed.occurrences_fired):
        return complete(resumed)
    return resumed


def complete(campaign: Campaign) -> Campaign:
    return _transition(campaign, CampaignStatus.COMPLETED)


def record_occurrence(campaign: Campaign, fired_at: Optional[datetime] = None) -> Campaign:
    """
    Record one confirmed execution.

    Must only be called once the execution trigger confirmed delivery; failed
    or unconfirmed attempts never advance the count. The campaign completes
    when its end condition is reached.

    Args:
        campaign: Campaign that just fired; active, or paused while the
            delivery was in flight
        fired_at: Scheduled instant of the occurrence (defaults to the
            computed next occurrence)

    Raises:
        InvalidTransitionError: if the campaign is neither active nor paused
    """
    if campaign.status not in (CampaignStatus.ACTIVE, CampaignStatus.PAUSED):
        raise InvalidTransitionError(campaign.id, campaign.status.value, "fired")

    occurrence = fired_at or recurrence.occurrence_at(campaign, campaign.occurrences_fired)
    fired = campaign.occurrences_fired + 1
    updated = campaign.with_changes(occurrences_fired=fired, last_fired_at=occurrence)

    if campaign.status == CampaignStatus.PAUSED:
        return updated
    if recurrence.has_ended(updated, fired):
        logger.info(f"Campaign {campaign.id} reached its end condition after {fired} occurrences")
        return complete(updated)
    return updated


def enable_automation(campaign: Campaign, config: AutomationConfig) -> Campaign:
    """
    Attach an automation policy. Draft and paused campaigns become active.

    Raises:
        InvalidTransitionError: for completed campaigns
    """
    if campaign.status == CampaignStatus.COMPLETED:
        raise InvalidTransitionError(campaign.id, campaign.status.value, "automated")
    return campaign.with_changes(automation=config, status=CampaignStatus.ACTIVE)


def disable_automation(campaign: Campaign) -> Campaign:
    """Turn a campaign back into a manual one; status is unchanged."""
    return campaign.with_changes(automation=None)
