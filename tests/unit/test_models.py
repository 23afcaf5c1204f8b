"""
Unit tests for the campaign domain model.
"""
from datetime import datetime, timedelta, timezone

import pytest

from campaign_engine.lib.errors import CampaignValidationError
from campaign_engine.models.campaign import (
    AnalyticsSnapshot,
    AutomationConfig,
    Campaign,
    CampaignStatus,
    EndByCount,
    EndByDate,
    NoEnd,
    TargetAudience,
    new_campaign,
)


START = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)


@pytest.mark.unit
def test_new_campaign_is_draft_with_defaults(make_campaign):
    campaign = make_campaign()

    assert campaign.status == CampaignStatus.DRAFT
    assert campaign.occurrences_fired == 0
    assert campaign.last_fired_at is None
    assert campaign.automation is None
    assert campaign.is_manual
    assert isinstance(campaign.end_condition, NoEnd)


@pytest.mark.unit
def test_new_campaign_ignores_managed_fields(make_campaign):
    """Status, id and scheduling state cannot be smuggled in."""
    campaign = make_campaign(
        id="forged",
        status="completed",
        occurrencesFired=7,
        last_fired_at=START,
    )

    assert campaign.id is None
    assert campaign.status == CampaignStatus.DRAFT
    assert campaign.occurrences_fired == 0
    assert campaign.last_fired_at is None


@pytest.mark.unit
def test_camel_case_document_round_trip(make_campaign):
    campaign = make_campaign(
        target_audience={"regionIds": ["r2", "r1"]},
        end_condition={"kind": "count", "endAfterCount": 3},
    )

    document = campaign.to_document()

    assert document["targetAudience"]["regionIds"] == ["r1", "r2"]
    assert document["endCondition"] == {"kind": "count", "endAfterCount": 3}
    assert document["startDate"].startswith("2025-01-06T09:00:00")
    assert Campaign.parse(document) == campaign


@pytest.mark.unit
def test_naive_datetimes_are_treated_as_utc(make_campaign):
    campaign = make_campaign(start_date=datetime(2025, 1, 6, 9, 0))

    assert campaign.start_date == START
    assert campaign.start_date.tzinfo is not None


@pytest.mark.unit
def test_blank_title_rejected(make_campaign):
    with pytest.raises(CampaignValidationError) as exc_info:
        make_campaign(title="   ")

    assert "title" in exc_info.value.errors


@pytest.mark.unit
def test_end_date_before_start_rejected(make_campaign):
    with pytest.raises(CampaignValidationError):
        make_campaign(end_condition=EndByDate(end_date=START - timedelta(days=1)))


@pytest.mark.unit
def test_end_after_count_must_be_positive(make_campaign):
    with pytest.raises(CampaignValidationError):
        make_campaign(end_condition={"kind": "count", "endAfterCount": 0})


@pytest.mark.unit
def test_unknown_end_condition_kind_rejected(make_campaign):
    with pytest.raises(CampaignValidationError):
        make_campaign(end_condition={"kind": "forever"})


@pytest.mark.unit
def test_entire_workforce_excludes_facets():
    with pytest.raises(ValueError, match="entireWorkforce"):
        TargetAudience(entire_workforce=True, region_ids=frozenset({"r1"}))


@pytest.mark.unit
def test_invalid_enum_value_rejected(make_campaign):
    with pytest.raises(CampaignValidationError) as exc_info:
        make_campaign(frequency="hourly")

    assert "frequency" in exc_info.value.errors


@pytest.mark.unit
def test_unknown_field_rejected(make_campaign):
    with pytest.raises(CampaignValidationError):
        make_campaign(priority="high")


@pytest.mark.unit
def test_with_changes_returns_new_value(make_campaign):
    campaign = make_campaign()

    changed = campaign.with_changes(title="Renamed")

    assert changed.title == "Renamed"
    assert campaign.title == "Weekly pulse"


@pytest.mark.unit
def test_campaign_is_immutable(make_campaign):
    campaign = make_campaign()

    with pytest.raises(Exception):
        campaign.title = "Mutated"


@pytest.mark.unit
def test_thresholds_must_be_unit_interval():
    config = AutomationConfig.from_defaults()

    with pytest.raises(CampaignValidationError):
        config.with_thresholds(engagement_rate=1.5)


@pytest.mark.unit
def test_automation_defaults_match_dialog():
    config = AutomationConfig.from_defaults()

    assert config.auto_optimize is False
    assert config.smart_scheduling is False
    assert config.adaptive_targeting is False
    assert config.performance_thresholds.engagement_rate == pytest.approx(0.3)
    assert config.performance_thresholds.response_rate == pytest.approx(0.2)
    assert config.performance_thresholds.satisfaction_score == pytest.approx(0.7)
    assert config.optimization_rules.frequency_adjustment is True
    assert config.optimization_rules.timing_adjustment is True


@pytest.mark.unit
def test_automation_named_updates():
    config = AutomationConfig.from_defaults().with_toggles(auto_optimize=True).with_rules(tone_adjustment=False)

    assert config.auto_optimize is True
    assert config.optimization_rules.tone_adjustment is False
    assert config.optimization_rules.frequency_adjustment is True


@pytest.mark.unit
def test_snapshot_responses_cannot_exceed_recipients():
    with pytest.raises(CampaignValidationError):
        AnalyticsSnapshot.parse({"totalRecipients": 5, "responsesReceived": 6})


@pytest.mark.unit
def test_snapshot_response_rate():
    assert AnalyticsSnapshot(total_recipients=0).response_rate == 0.0
    snapshot = AnalyticsSnapshot(total_recipients=100, responses_received=25)
    assert snapshot.response_rate == pytest.approx(0.25)


@pytest.mark.unit
def test_end_by_count_value():
    assert EndByCount(end_after_count=2).kind == "count"


@pytest.mark.unit
def test_new_campaign_defaults_start_date_to_now():
    before = datetime.now(timezone.utc)
    campaign = new_campaign(title="Now")
    assert campaign.start_date >= before
