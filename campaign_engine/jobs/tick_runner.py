"""
Tick Runner Job - scheduled execution and automation of campaigns.

Runs on every tick of the scheduler to fire due campaigns and let the
automation policy engine adjust the under-performing ones.

Execution flow, per active campaign:
1. Acquire the campaign tick lock (skip if another worker holds it) and
   reload the campaign; one paused or deleted since listing is left alone
2. Re-resolve the audience when the targeting lever asked for it
3. If an occurrence is due: resolve the audience, call the execution
   trigger, and record the occurrence once execution is confirmed
4. Evaluate automation and persist any adjustment
5. Release the lock

Campaigns are independent: a failure in one is logged and reported, never
propagated to the others or to the scheduler.

Default schedule: every CAMPAIGN_ENGINE_TICK_INTERVAL_MINUTES minutes.
"""
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, FrozenSet, List, Optional, Set, Tuple
from uuid import uuid4

from campaign_engine.lib.config_flags import get_feature_flags, get_tick_settings
from campaign_engine.lib.errors import (
    AudienceResolutionError,
    CampaignNotFoundError,
    ExecutionError,
    LockNotAcquired,
    StaleCampaignError,
)
from campaign_engine.lib.logging import get_logger, log_with_context, set_correlation_id
from campaign_engine.lib.metrics import get_metrics_collector
from campaign_engine.lib.settings import settings
from campaign_engine.models.campaign import Campaign, CampaignStatus, ensure_utc
from campaign_engine.services import lifecycle, recurrence
from campaign_engine.services.audience_resolver import AudienceResolver
from campaign_engine.services.campaign_store import CampaignFilter, CampaignStore
from campaign_engine.services.execution_trigger import ExecutionTrigger
from campaign_engine.services.policy_engine import AutomationPolicyEngine, get_policy_engine
from campaign_engine.jobs.scheduler import CampaignLock, InMemoryCampaignLock, campaign_tick_lock

logger = get_logger(__name__)

# Writes of a confirmed occurrence before giving up on a busy campaign
RECORD_ATTEMPTS = 3


class Outcome:
    """Per-campaign tick outcomes."""
    FIRED = "fired"
    COMPLETED = "completed"
    NOT_DUE = "not_due"
    SKIPPED_LOCKED = "skipped_locked"
    FAILED = "failed"


@dataclass
class CampaignTickResult:
    campaign_id: str
    outcome: str
    levers: Tuple[str, ...] = ()
    audience_size: Optional[int] = None
    error: Optional[str] = None


@dataclass
class TickReport:
    """Summary of one tick."""

    correlation_id: str
    tick_at: datetime
    started_at: datetime
    finished_at: Optional[datetime] = None
    results: List[CampaignTickResult] = field(default_factory=list)

    def count(self, outcome: str) -> int:
        return sum(1 for result in self.results if result.outcome == outcome)

    @property
    def fired(self) -> int:
        return self.count(Outcome.FIRED) + self.count(Outcome.COMPLETED)

    @property
    def adjusted(self) -> int:
        return sum(1 for result in self.results if result.levers)

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "correlation_id": self.correlation_id,
            "tick_at": self.tick_at.isoformat(),
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration_seconds,
            "total": len(self.results),
            "fired": self.fired,
            "completed": self.count(Outcome.COMPLETED),
            "not_due": self.count(Outcome.NOT_DUE),
            "skipped": self.count(Outcome.SKIPPED_LOCKED),
            "failed": self.count(Outcome.FAILED),
            "adjusted": self.adjusted,
            "results": [
                {
                    "campaign_id": result.campaign_id,
                    "outcome": result.outcome,
                    "levers": list(result.levers),
                    "audience_size": result.audience_size,
                    "error": result.error,
                }
                for result in self.results
            ],
        }


class TickRunner:
    """
    Drives the scheduler and the automation policy engine.

    Args:
        store: Campaign store
        resolver: Audience resolver used before every execution
        trigger: External sender
        lock: Per-campaign tick lock (process-local by default)
        engine: Automation policy engine
        peak_hour: Peak-engagement hour used by the timing lever; defaults to
            CAMPAIGN_ENGINE_PEAK_ENGAGEMENT_HOUR
        max_workers: Campaigns processed in parallel within one tick
    """

    def __init__(
        self,
        store: CampaignStore,
        resolver: AudienceResolver,
        trigger: ExecutionTrigger,
        lock: Optional[CampaignLock] = None,
        engine: Optional[AutomationPolicyEngine] = None,
        peak_hour: Optional[int] = None,
        max_workers: int = 1,
    ):
        self.store = store
        self.resolver = resolver
        self.trigger = trigger
        self.lock = lock or InMemoryCampaignLock(ttl_seconds=get_tick_settings().lock_ttl_seconds)
        self.engine = engine or get_policy_engine()
        self.peak_hour = peak_hour if peak_hour is not None else settings.peak_engagement_hour
        self.max_workers = max_workers

        # Campaigns whose next occurrence should move to the peak hour
        self._peak_hour_campaigns: Set[str] = set()
        self._peak_lock = Lock()

    def wants_peak_hour(self, campaign_id: str) -> bool:
        with self._peak_lock:
            return campaign_id in self._peak_hour_campaigns

    def _set_peak_hour(self, campaign_id: str, enabled: bool) -> None:
        with self._peak_lock:
            if enabled:
                self._peak_hour_campaigns.add(campaign_id)
            else:
                self._peak_hour_campaigns.discard(campaign_id)

    def _peak_hour_for(self, campaign: Campaign) -> Optional[int]:
        if self.peak_hour is None or not self.wants_peak_hour(campaign.id):
            return None
        return self.peak_hour

    # ===== Tick =====

    def run_tick(self, now: Optional[datetime] = None) -> TickReport:
        """
        Process every active campaign once.

        Args:
            now: Tick instant (defaults to the current UTC time)

        Returns:
            TickReport with one result per processed campaign
        """
        tick_at = ensure_utc(now) if now is not None else datetime.now(timezone.utc)
        correlation_id = str(uuid4())
        set_correlation_id(correlation_id)
        report = TickReport(
            correlation_id=correlation_id,
            tick_at=tick_at,
            started_at=datetime.now(timezone.utc),
        )

        limit = get_tick_settings().max_campaigns_per_tick
        campaigns = self.store.list(CampaignFilter(status=CampaignStatus.ACTIVE))
        if len(campaigns) > limit:
            logger.warning(f"{len(campaigns)} active campaigns, processing the first {limit} this tick")
            campaigns = campaigns[:limit]

        logger.info(
            f"Starting campaign tick "
            f"(correlation_id: {correlation_id}, tick_at: {tick_at.isoformat()}, "
            f"active: {len(campaigns)})"
        )

        if self.max_workers > 1 and len(campaigns) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                report.results = list(pool.map(lambda c: self.process_campaign(c, tick_at), campaigns))
        else:
            report.results = [self.process_campaign(campaign, tick_at) for campaign in campaigns]

        report.finished_at = datetime.now(timezone.utc)

        metrics = get_metrics_collector()
        metrics.increment_ticks()
        for result in report.results:
            metrics.increment_tick_outcome(result.outcome)

        logger.info(
            f"Campaign tick completed "
            f"(correlation_id: {correlation_id}, "
            f"duration: {report.duration_seconds:.2f}s, "
            f"fired: {report.fired}, "
            f"failed: {report.count(Outcome.FAILED)}, "
            f"skipped: {report.count(Outcome.SKIPPED_LOCKED)}, "
            f"adjusted: {report.adjusted})"
        )
        return report

    def process_campaign(self, campaign: Campaign, tick_at: datetime) -> CampaignTickResult:
        """
        Run scheduling and automation for one campaign; never raises.

        The given campaign only identifies the work: it is reloaded under the
        tick lock, so a pause or an occurrence recorded since it was listed is
        honoured.
        """
        try:
            with campaign_tick_lock(self.lock, campaign.id, tick_at):
                return self._process(campaign.id, tick_at)
        except LockNotAcquired as e:
            logger.info(f"Skipping campaign {campaign.id}: {e}")
            return CampaignTickResult(campaign_id=campaign.id, outcome=Outcome.SKIPPED_LOCKED)
        except (AudienceResolutionError, ExecutionError, StaleCampaignError) as e:
            logger.error(f"Campaign {campaign.id} failed this tick: {e}")
            get_metrics_collector().increment_execution_failures(type(e).__name__)
            return CampaignTickResult(campaign_id=campaign.id, outcome=Outcome.FAILED, error=str(e))
        except Exception as e:
            logger.error(f"Unexpected error processing campaign {campaign.id}: {e}", exc_info=True)
            get_metrics_collector().increment_execution_failures("unexpected")
            return CampaignTickResult(campaign_id=campaign.id, outcome=Outcome.FAILED, error=str(e))

    def _resolve(self, campaign: Campaign) -> FrozenSet[str]:
        metrics = get_metrics_collector()
        try:
            audience = self.resolver.resolve_campaign(campaign)
        except AudienceResolutionError:
            metrics.increment_resolutions("error")
            raise
        metrics.increment_resolutions("ok" if audience else "empty")
        if not audience and get_tick_settings().warn_on_empty_audience:
            logger.warning(f"Campaign {campaign.id} resolved to an empty audience")
        return audience

    def _record_fired(self, campaign: Campaign, occurrence: datetime) -> Campaign:
        """
        Persist a confirmed occurrence.

        An admin edit that lands while the sender is working makes the write
        stale; the occurrence is then applied to a fresh copy. A fresh copy
        that already counts it means another worker recorded the same
        occurrence, which is reported instead of counted twice.
        """
        for attempt in range(RECORD_ATTEMPTS):
            try:
                return self.store.save(lifecycle.record_occurrence(campaign, fired_at=occurrence))
            except StaleCampaignError:
                fresh = self.store.get(campaign.id)
                if attempt == RECORD_ATTEMPTS - 1 or fresh.occurrences_fired != campaign.occurrences_fired:
                    raise
                logger.info(f"Campaign {campaign.id} changed during delivery; recording on the fresh copy")
                campaign = fresh
        raise AssertionError("unreachable")

    def _process(self, campaign_id: str, tick_at: datetime) -> CampaignTickResult:
        try:
            campaign = self.store.get(campaign_id)
        except CampaignNotFoundError:
            logger.info(f"Campaign {campaign_id} was deleted before the tick reached it")
            return CampaignTickResult(campaign_id=campaign_id, outcome=Outcome.NOT_DUE)
        if campaign.status != CampaignStatus.ACTIVE:
            logger.info(f"Campaign {campaign_id} is {campaign.status.value} now; nothing to do this tick")
            return CampaignTickResult(campaign_id=campaign_id, outcome=Outcome.NOT_DUE)

        flags = get_feature_flags()
        outcome = Outcome.NOT_DUE
        audience: Optional[FrozenSet[str]] = None

        if campaign.audience_refresh_pending:
            audience = self._resolve(campaign)
            campaign = self.store.save(campaign.with_changes(audience_refresh_pending=False))
            logger.info(f"Re-resolved audience for campaign {campaign.id}: {len(audience)} workers")

        peak_hour = self._peak_hour_for(campaign)
        if recurrence.is_due(campaign, tick_at, peak_hour=peak_hour):
            occurrence = recurrence.next_fire(campaign, peak_hour=peak_hour)
            if audience is None:
                audience = self._resolve(campaign)

            if not flags.execution_enabled:
                logger.info(
                    f"Execution disabled; campaign {campaign.id} due at "
                    f"{occurrence.isoformat()} left unfired"
                )
            else:
                result = self.trigger.execute(campaign, audience, occurrence)
                if not result.confirmed:
                    raise ExecutionError(f"Execution of campaign {campaign.id} was not confirmed")

                # Persisted before automation runs
                campaign = self._record_fired(campaign, occurrence)
                get_metrics_collector().increment_occurrences(campaign.frequency.value)
                self._set_peak_hour(campaign.id, False)
                outcome = Outcome.COMPLETED if campaign.status == CampaignStatus.COMPLETED else Outcome.FIRED
                log_with_context(
                    logger,
                    "info",
                    f"Campaign {campaign.id} fired occurrence {campaign.occurrences_fired}",
                    campaign_id=campaign.id,
                    occurrence=occurrence.isoformat(),
                    total_workers=result.total_workers,
                    status=campaign.status.value,
                )

        levers: Tuple[str, ...] = ()
        if (
            flags.automation_enabled
            and campaign.automation is not None
            and campaign.status == CampaignStatus.ACTIVE
        ):
            decision = self.engine.decide(campaign)
            try:
                if decision.campaign != campaign:
                    campaign = self.store.save(decision.campaign)
            except StaleCampaignError:
                logger.info(f"Campaign {campaign.id} changed during evaluation; adjustment left to the next tick")
            else:
                levers = decision.levers
                if decision.use_peak_hour:
                    self._set_peak_hour(campaign.id, True)

        return CampaignTickResult(
            campaign_id=campaign.id,
            outcome=outcome,
            levers=levers,
            audience_size=len(audience) if audience is not None else None,
        )

    # ===== Dry run =====

    def due_campaigns(self, now: Optional[datetime] = None) -> List[Tuple[Campaign, datetime]]:
        """Active campaigns that would fire at `now`, with their occurrence instant."""
        tick_at = ensure_utc(now) if now is not None else datetime.now(timezone.utc)
        due = []
        for campaign in self.store.list(CampaignFilter(status=CampaignStatus.ACTIVE)):
            peak_hour = self._peak_hour_for(campaign)
            if recurrence.is_due(campaign, tick_at, peak_hour=peak_hour):
                due.append((campaign, recurrence.next_fire(campaign, peak_hour=peak_hour)))
        return due


# ============================================================================
# Scheduler Registration
# ============================================================================


def register_tick_jobs(scheduler_manager, runner: TickRunner) -> None:
    """
    Register the campaign tick with the scheduler.

    Args:
        scheduler_manager: SchedulerManager instance from get_scheduler()
        runner: TickRunner to invoke on every tick

    Example:
        scheduler = get_scheduler()
        register_tick_jobs(scheduler, runner)
        scheduler.start()
    """
    logger.info("Registering campaign tick job")

    scheduler_manager.add_interval_job(
        func=runner.run_tick,
        job_id="campaign_tick",
        minutes=settings.tick_interval_minutes,
    )

    logger.info(f"Campaign tick job registered (every {settings.tick_interval_minutes} minutes)")


# ============================================================================
# Manual Trigger (for testing and debugging)
# ============================================================================


def trigger_tick_manual(runner: TickRunner, now: Optional[datetime] = None, dry_run: bool = False) -> Dict[str, Any]:
    """
    Run a tick immediately, bypassing the scheduler.

    Args:
        runner: TickRunner to use
        now: Tick instant (defaults to now)
        dry_run: If True, only list due campaigns without firing anything

    Returns:
        Tick report as a dictionary, or the due list for dry runs
    """
    if dry_run:
        due = runner.due_campaigns(now)
        logger.info(f"Dry run: {len(due)} campaigns due")
        return {
            "dry_run": True,
            "due": [
                {"campaign_id": campaign.id, "title": campaign.title, "occurrence": occurrence.isoformat()}
                for campaign, occurrence in due
            ],
        }

    logger.info("Manual campaign tick triggered")
    return runner.run_tick(now).to_dict()
