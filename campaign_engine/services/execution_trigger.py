"""
Execution trigger - hands a due campaign and its audience to the external sender.

The engine never delivers messages itself. An occurrence only counts once
the trigger confirms execution; any failure leaves the campaign untouched so
the next tick retries it without double counting.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import FrozenSet, List, Optional, Tuple

import httpx
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from campaign_engine.lib.errors import ExecutionError
from campaign_engine.lib.logging import get_logger
from campaign_engine.lib.settings import settings
from campaign_engine.models.campaign import Campaign


logger = get_logger(__name__)


@dataclass(frozen=True)
class ExecutionResult:
    """What the sender reported for one occurrence."""

    campaign_id: str
    total_workers: int
    confirmed: bool = True


class ExecutionTrigger(ABC):
    """Contract of the external sender."""

    @abstractmethod
    def execute(self, campaign: Campaign, audience: FrozenSet[str], occurrence: datetime) -> ExecutionResult:
        """
        Deliver one occurrence of a campaign.

        Raises:
            ExecutionError: if delivery could not be confirmed
        """


class HttpExecutionTrigger(ExecutionTrigger):
    """
    Calls the executeScheduledCampaigns function over HTTP.

    Transport errors are retried with exponential backoff; HTTP error
    responses are not retried and surface as ExecutionError.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        max_attempts: Optional[int] = None,
        wait_min_seconds: float = 2,
        wait_max_seconds: float = 10,
    ):
        self.url = url or settings.execution_trigger_url
        self.client = client or httpx.Client(timeout=settings.execution_timeout_seconds)
        self.max_attempts = max_attempts or settings.execution_max_attempts
        self.wait = wait_exponential(multiplier=1, min=wait_min_seconds, max=wait_max_seconds)

    def _post(self, payload: dict) -> httpx.Response:
        response = self.client.post(self.url, json=payload)
        response.raise_for_status()
        return response

    def execute(self, campaign: Campaign, audience: FrozenSet[str], occurrence: datetime) -> ExecutionResult:
        payload = {
            "campaignId": campaign.id,
            "tenantId": campaign.tenant_id,
            "workerIds": sorted(audience),
            "occurrence": occurrence.isoformat(),
            "followUpStrategy": campaign.follow_up_strategy.value,
        }
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self.wait,
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        )

        try:
            response = retrying(self._post, payload)
        except httpx.HTTPStatusError as e:
            raise ExecutionError(
                f"Execution of campaign {campaign.id} rejected with HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise ExecutionError(f"Execution of campaign {campaign.id} failed: {e}") from e

        data = response.json() if response.content else {}
        if data.get("success") is False:
            raise ExecutionError(
                f"Execution of campaign {campaign.id} not confirmed: {data.get('error', 'unknown error')}"
            )

        total = int(data.get("totalWorkers", len(audience)))
        logger.info(f"Campaign {campaign.id} executed for {total} workers")
        return ExecutionResult(campaign_id=campaign.id, total_workers=total)

    def close(self) -> None:
        self.client.close()


class RecordingExecutionTrigger(ExecutionTrigger):
    """
    Trigger that only records calls; used for dry runs and tests.

    Args:
        fail_for: campaign ids whose execution should fail
    """

    def __init__(self, fail_for: Tuple[str, ...] = ()):
        self.fail_for = set(fail_for)
        self.calls: List[Tuple[str, FrozenSet[str], datetime]] = []

    def execute(self, campaign: Campaign, audience: FrozenSet[str], occurrence: datetime) -> ExecutionResult:
        if campaign.id in self.fail_for:
            raise ExecutionError(f"Execution of campaign {campaign.id} failed")
        self.calls.append((campaign.id, audience, occurrence))
        return ExecutionResult(campaign_id=campaign.id, total_workers=len(audience))
