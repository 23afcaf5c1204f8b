"""
Unit tests for the HTTP execution trigger.
"""
import json
from datetime import datetime, timezone

import httpx
import pytest

from campaign_engine.lib.errors import ExecutionError
from campaign_engine.services.execution_trigger import HttpExecutionTrigger, RecordingExecutionTrigger


OCCURRENCE = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)
URL = "http://sender.test/executeScheduledCampaigns"


def _trigger(handler, max_attempts=3):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return HttpExecutionTrigger(
        url=URL,
        client=client,
        max_attempts=max_attempts,
        wait_min_seconds=0,
        wait_max_seconds=0,
    )


@pytest.fixture
def campaign(make_campaign):
    return make_campaign().with_changes(id="c1")


@pytest.mark.unit
def test_execute_posts_campaign_and_audience(campaign):
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "totalWorkers": 2})

    result = _trigger(handler).execute(campaign, frozenset({"w2", "w1"}), OCCURRENCE)

    assert result.confirmed
    assert result.total_workers == 2
    assert seen["body"]["campaignId"] == "c1"
    assert seen["body"]["workerIds"] == ["w1", "w2"]
    assert seen["body"]["occurrence"] == OCCURRENCE.isoformat()


@pytest.mark.unit
def test_transport_errors_are_retried(campaign):
    attempts = []

    def handler(request):
        attempts.append(request)
        if len(attempts) < 3:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"success": True, "totalWorkers": 1})

    result = _trigger(handler).execute(campaign, frozenset({"w1"}), OCCURRENCE)

    assert len(attempts) == 3
    assert result.total_workers == 1


@pytest.mark.unit
def test_gives_up_after_max_attempts(campaign):
    attempts = []

    def handler(request):
        attempts.append(request)
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(ExecutionError):
        _trigger(handler, max_attempts=2).execute(campaign, frozenset({"w1"}), OCCURRENCE)

    assert len(attempts) == 2


@pytest.mark.unit
def test_http_error_not_retried(campaign):
    attempts = []

    def handler(request):
        attempts.append(request)
        return httpx.Response(500, json={"error": "boom"})

    with pytest.raises(ExecutionError, match="HTTP 500"):
        _trigger(handler).execute(campaign, frozenset({"w1"}), OCCURRENCE)

    assert len(attempts) == 1


@pytest.mark.unit
def test_unsuccessful_body_is_not_confirmed(campaign):
    def handler(request):
        return httpx.Response(200, json={"success": False, "error": "quota exceeded"})

    with pytest.raises(ExecutionError, match="quota exceeded"):
        _trigger(handler).execute(campaign, frozenset({"w1"}), OCCURRENCE)


@pytest.mark.unit
def test_missing_total_defaults_to_audience_size(campaign):
    def handler(request):
        return httpx.Response(200, json={"success": True})

    result = _trigger(handler).execute(campaign, frozenset({"w1", "w2", "w3"}), OCCURRENCE)

    assert result.total_workers == 3


@pytest.mark.unit
def test_recording_trigger(campaign):
    trigger = RecordingExecutionTrigger(fail_for=("other",))

    trigger.execute(campaign, frozenset({"w1"}), OCCURRENCE)

    assert trigger.calls == [("c1", frozenset({"w1"}), OCCURRENCE)]
    with pytest.raises(ExecutionError):
        trigger.execute(campaign.with_changes(id="other"), frozenset(), OCCURRENCE)
