"""
Unit tests for the campaign status state machine.
"""
from datetime import datetime, timedelta, timezone

import pytest

from campaign_engine.lib.errors import InvalidTransitionError
from campaign_engine.models.campaign import AutomationConfig, CampaignStatus, EndByCount
from campaign_engine.services import lifecycle


START = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)


@pytest.mark.unit
@pytest.mark.parametrize("current,target,allowed", [
    (CampaignStatus.DRAFT, CampaignStatus.ACTIVE, True),
    (CampaignStatus.DRAFT, CampaignStatus.COMPLETED, False),
    (CampaignStatus.ACTIVE, CampaignStatus.PAUSED, True),
    (CampaignStatus.ACTIVE, CampaignStatus.COMPLETED, True),
    (CampaignStatus.PAUSED, CampaignStatus.ACTIVE, True),
    (CampaignStatus.PAUSED, CampaignStatus.DRAFT, False),
    (CampaignStatus.COMPLETED, CampaignStatus.ACTIVE, False),
])
def test_can_transition(current, target, allowed):
    assert lifecycle.can_transition(current, target) is allowed


@pytest.mark.unit
def test_activate_draft(make_campaign):
    active = lifecycle.activate(make_campaign(), audience=frozenset({"w1"}))

    assert active.status == CampaignStatus.ACTIVE


@pytest.mark.unit
def test_activate_with_empty_audience_warns(make_campaign, caplog):
    active = lifecycle.activate(make_campaign(), audience=frozenset())

    assert active.status == CampaignStatus.ACTIVE
    assert "empty audience" in caplog.text


@pytest.mark.unit
def test_activate_requires_draft(make_campaign):
    paused = make_campaign().with_changes(status=CampaignStatus.PAUSED)

    with pytest.raises(InvalidTransitionError):
        lifecycle.activate(paused)


@pytest.mark.unit
def test_pause_resume_preserves_occurrences(make_campaign):
    active = lifecycle.activate(make_campaign()).with_changes(occurrences_fired=4)

    resumed = lifecycle.resume(lifecycle.pause(active))

    assert resumed.status == CampaignStatus.ACTIVE
    assert resumed.occurrences_fired == 4


@pytest.mark.unit
def test_resume_requires_paused(make_campaign):
    with pytest.raises(InvalidTransitionError):
        lifecycle.resume(make_campaign())


@pytest.mark.unit
def test_completed_is_terminal(make_campaign):
    completed = make_campaign().with_changes(status=CampaignStatus.COMPLETED)

    with pytest.raises(InvalidTransitionError):
        lifecycle.pause(completed)
    with pytest.raises(InvalidTransitionError):
        lifecycle.resume(completed)
    with pytest.raises(InvalidTransitionError):
        lifecycle.activate(completed)


@pytest.mark.unit
def test_record_occurrence_advances_count(make_campaign):
    active = lifecycle.activate(make_campaign())

    fired = lifecycle.record_occurrence(active)

    assert fired.occurrences_fired == 1
    assert fired.last_fired_at == START
    assert fired.status == CampaignStatus.ACTIVE
    assert active.occurrences_fired == 0


@pytest.mark.unit
def test_record_occurrence_completes_at_end_condition(make_campaign):
    active = lifecycle.activate(make_campaign(end_condition=EndByCount(end_after_count=2)))

    once = lifecycle.record_occurrence(active)
    twice = lifecycle.record_occurrence(once, fired_at=START + timedelta(weeks=1))

    assert once.status == CampaignStatus.ACTIVE
    assert twice.status == CampaignStatus.COMPLETED
    assert twice.occurrences_fired == 2


@pytest.mark.unit
def test_one_time_completes_after_first_occurrence(make_campaign):
    active = lifecycle.activate(make_campaign(frequency="one-time"))

    assert lifecycle.record_occurrence(active).status == CampaignStatus.COMPLETED


@pytest.mark.unit
def test_record_occurrence_requires_active(make_campaign):
    with pytest.raises(InvalidTransitionError):
        lifecycle.record_occurrence(make_campaign())


@pytest.mark.unit
def test_delivery_confirmed_after_pause_is_counted(make_campaign):
    paused = lifecycle.pause(lifecycle.activate(make_campaign()))

    fired = lifecycle.record_occurrence(paused)

    assert fired.status == CampaignStatus.PAUSED
    assert fired.occurrences_fired == 1
    assert fired.last_fired_at == START


@pytest.mark.unit
def test_resume_completes_when_last_occurrence_fired_while_paused(make_campaign):
    active = lifecycle.activate(make_campaign(end_condition=EndByCount(end_after_count=1)))
    paused = lifecycle.record_occurrence(lifecycle.pause(active))

    assert lifecycle.resume(paused).status == CampaignStatus.COMPLETED


@pytest.mark.unit
@pytest.mark.parametrize("status", [CampaignStatus.DRAFT, CampaignStatus.PAUSED, CampaignStatus.ACTIVE])
def test_enable_automation_forces_active(make_campaign, status):
    campaign = make_campaign().with_changes(status=status)

    automated = lifecycle.enable_automation(campaign, AutomationConfig.from_defaults())

    assert automated.status == CampaignStatus.ACTIVE
    assert automated.automation is not None


@pytest.mark.unit
def test_enable_automation_rejects_completed(make_campaign):
    completed = make_campaign().with_changes(status=CampaignStatus.COMPLETED)

    with pytest.raises(InvalidTransitionError):
        lifecycle.enable_automation(completed, AutomationConfig.from_defaults())


@pytest.mark.unit
def test_disable_automation_keeps_status(make_campaign):
    automated = lifecycle.enable_automation(make_campaign(), AutomationConfig.from_defaults())

    manual = lifecycle.disable_automation(automated)

    assert manual.automation is None
    assert manual.status == CampaignStatus.ACTIVE
