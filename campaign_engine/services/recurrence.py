"""
Recurrence scheduling for campaigns.

Occurrence k (0-based) of a campaign is always computed from start_date:

    occurrence(k) = start_date + k * step(frequency)

never from the wall-clock time a previous run happened to execute, so late
ticks do not accumulate drift. Monthly steps use calendar months and clamp to
the end of shorter months while staying anchored on start_date
(Jan 31 -> Feb 29 -> Mar 31).
"""
from datetime import datetime
from typing import List, Optional

from dateutil.relativedelta import relativedelta

from campaign_engine.models.campaign import (
    Campaign,
    CampaignStatus,
    EndByCount,
    EndByDate,
    Frequency,
    ensure_utc,
)


# Calendar step per frequency. CUSTOM has no interval of its own yet and runs
# on a daily cadence.
FREQUENCY_STEPS = {
    Frequency.DAILY: relativedelta(days=1),
    Frequency.WEEKLY: relativedelta(weeks=1),
    Frequency.MONTHLY: relativedelta(months=1),
    Frequency.CUSTOM: relativedelta(days=1),
}


def occurrence_at(campaign: Campaign, index: int) -> datetime:
    """
    Instant of the index-th occurrence (0 = start_date).

    Raises:
        ValueError: for negative indexes
    """
    if index < 0:
        raise ValueError(f"Occurrence index must be >= 0, got {index}")
    if index == 0 or campaign.frequency == Frequency.ONE_TIME:
        return campaign.start_date
    step = FREQUENCY_STEPS[campaign.frequency]
    return campaign.start_date + step * index


def has_ended(campaign: Campaign, occurrences_so_far: int) -> bool:
    """
    Whether the campaign has no further occurrences after the given count.

    - one-time: ended after its single occurrence
    - end by count: ended once occurrences_so_far >= count
    - end by date: ended once the next occurrence would fall after end_date
    - no end: never ends on its own
    """
    if campaign.frequency == Frequency.ONE_TIME and occurrences_so_far >= 1:
        return True

    end = campaign.end_condition
    if isinstance(end, EndByCount):
        return occurrences_so_far >= end.end_after_count
    if isinstance(end, EndByDate):
        return occurrence_at(campaign, occurrences_so_far) > end.end_date
    return False


def next_fire(campaign: Campaign, peak_hour: Optional[int] = None) -> Optional[datetime]:
    """
    Next occurrence instant, or None when the campaign is not schedulable.

    Only active campaigns are schedulable. The index of the next occurrence is
    the number of confirmed occurrences so far.

    Args:
        campaign: Campaign to schedule
        peak_hour: When set (timing lever), the occurrence is moved to this
            hour of its day, unless that would put it after the end date

    Returns:
        Timezone-aware UTC datetime, or None
    """
    if campaign.status != CampaignStatus.ACTIVE:
        return None
    if has_ended(campaign, campaign.occurrences_fired):
        return None

    fire_at = occurrence_at(campaign, campaign.occurrences_fired)
    if peak_hour is not None:
        shifted = fire_at.replace(hour=peak_hour, minute=0, second=0, microsecond=0)
        end = campaign.end_condition
        if not (isinstance(end, EndByDate) and shifted > end.end_date):
            fire_at = shifted
    return fire_at


def is_due(campaign: Campaign, now: datetime, peak_hour: Optional[int] = None) -> bool:
    """True if the campaign has a next occurrence at or before now."""
    fire_at = next_fire(campaign, peak_hour=peak_hour)
    return fire_at is not None and fire_at <= ensure_utc(now)


def upcoming(campaign: Campaign, limit: int = 5) -> List[datetime]:
    """
    Preview of the next occurrences regardless of status.

    Useful for showing a draft's schedule before it is activated.
    """
    occurrences = []
    index = campaign.occurrences_fired
    while len(occurrences) < limit and not has_ended(campaign, index):
        occurrences.append(occurrence_at(campaign, index))
        index += 1
    return occurrences
