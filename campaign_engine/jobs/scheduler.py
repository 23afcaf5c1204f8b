"""
Scheduler runner using APScheduler, plus per-campaign tick locks.

The tick driver is an APScheduler BackgroundScheduler; a tick is only ever a
callable registered as an interval or cron job. Campaign-level exclusivity is
handled by a CampaignLock keyed on (campaign id, tick timestamp): a campaign
that is already being processed is skipped, never treated as an error.

Usage:
    scheduler = get_scheduler()
    register_tick_jobs(scheduler, runner)
    scheduler.start()
"""
import hashlib
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from contextlib import contextmanager
from datetime import datetime
from threading import Lock
from typing import Callable, Dict, Iterator, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

from campaign_engine.lib.errors import LockNotAcquired
from campaign_engine.lib.logging import get_logger

logger = get_logger(__name__)


# Singleton scheduler instance
_scheduler: Optional["SchedulerManager"] = None


def get_lock_key(campaign_id: str, tick_at: Optional[datetime] = None) -> int:
    """
    Generate a consistent integer lock key for a campaign (and tick).

    Args:
        campaign_id: Campaign identifier
        tick_at: Tick timestamp; omitted for campaign-wide keys

    Returns:
        Positive integer within Postgres bigint range
    """
    seed = campaign_id if tick_at is None else f"{campaign_id}:{tick_at.isoformat()}"
    hash_bytes = hashlib.sha256(seed.encode()).digest()[:8]
    lock_key = int.from_bytes(hash_bytes, byteorder='big', signed=False)
    if lock_key > 2**63 - 1:
        lock_key = lock_key - 2**64
    return abs(lock_key)


class CampaignLock(ABC):
    """At-most-one concurrent processing per campaign and tick."""

    @abstractmethod
    def try_acquire(self, campaign_id: str, tick_at: datetime) -> bool:
        """Return False when the campaign is already running or this tick was done."""

    @abstractmethod
    def release(self, campaign_id: str, tick_at: datetime) -> None:
        """Release a lock obtained with try_acquire."""


class InMemoryCampaignLock(CampaignLock):
    """
    Process-local lock.

    A campaign is held while being processed (expires after ttl_seconds), and
    every finished (campaign, tick) pair is remembered so a redelivered tick
    is skipped.
    """

    def __init__(self, ttl_seconds: float = 900, remember: int = 10000):
        self.ttl_seconds = ttl_seconds
        self.remember = remember
        self._held: Dict[str, float] = {}
        self._done: "OrderedDict[int, None]" = OrderedDict()
        self._lock = Lock()

    def try_acquire(self, campaign_id: str, tick_at: datetime) -> bool:
        key = get_lock_key(campaign_id, tick_at)
        now = time.monotonic()
        with self._lock:
            if key in self._done:
                return False
            acquired_at = self._held.get(campaign_id)
            if acquired_at is not None and now - acquired_at < self.ttl_seconds:
                return False
            self._held[campaign_id] = now
            return True

    def release(self, campaign_id: str, tick_at: datetime) -> None:
        key = get_lock_key(campaign_id, tick_at)
        with self._lock:
            self._held.pop(campaign_id, None)
            self._done[key] = None
            while len(self._done) > self.remember:
                self._done.popitem(last=False)


class AdvisoryCampaignLock(CampaignLock):
    """
    Postgres advisory lock per campaign, shared across scheduler instances.

    Advisory locks are session scoped, so the connection that took the lock is
    kept open until release.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._connections: Dict[str, Connection] = {}
        self._lock = Lock()

    def try_acquire(self, campaign_id: str, tick_at: datetime) -> bool:
        lock_key = get_lock_key(campaign_id)
        conn = self.engine.connect()
        acquired = bool(
            conn.execute(text("SELECT pg_try_advisory_lock(:lock_key)"), {"lock_key": lock_key}).scalar()
        )
        if not acquired:
            conn.close()
            return False
        with self._lock:
            self._connections[campaign_id] = conn
        return True

    def release(self, campaign_id: str, tick_at: datetime) -> None:
        with self._lock:
            conn = self._connections.pop(campaign_id, None)
        if conn is None:
            return
        try:
            conn.execute(text("SELECT pg_advisory_unlock(:lock_key)"), {"lock_key": get_lock_key(campaign_id)})
        finally:
            conn.close()


@contextmanager
def campaign_tick_lock(lock: CampaignLock, campaign_id: str, tick_at: datetime) -> Iterator[int]:
    """
    Hold the tick lock of one campaign for the duration of the block.

    Yields:
        The lock key

    Raises:
        LockNotAcquired: if the campaign is already running or this tick was
            already processed
    """
    lock_key = get_lock_key(campaign_id, tick_at)
    if not lock.try_acquire(campaign_id, tick_at):
        raise LockNotAcquired(campaign_id, lock_key)
    logger.debug(f"Campaign {campaign_id} acquired lock {lock_key}")
    try:
        yield lock_key
    finally:
        lock.release(campaign_id, tick_at)
        logger.debug(f"Campaign {campaign_id} released lock {lock_key}")


class SchedulerManager:
    """
    Manager for APScheduler with lifecycle management.
    """

    def __init__(self):
        """Initialize scheduler manager."""
        self.scheduler = BackgroundScheduler(
            timezone="UTC",
            job_defaults={
                'coalesce': True,  # Combine missed runs
                'max_instances': 1,  # Only one instance per job
                'misfire_grace_time': 300,
            }
        )

        self.scheduler.add_listener(self._on_job_executed, EVENT_JOB_EXECUTED)
        self.scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)

        logger.info("SchedulerManager initialized")

    def _on_job_executed(self, event):
        logger.info(f"Job {event.job_id} executed successfully")

    def _on_job_error(self, event):
        logger.error(
            f"Job {event.job_id} raised {event.exception.__class__.__name__}: "
            f"{event.exception}",
            exc_info=event.exception
        )

    def start(self) -> None:
        """Start the scheduler."""
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Scheduler started")
        else:
            logger.warning("Scheduler already running")

    def shutdown(self, wait: bool = True) -> None:
        """
        Shutdown the scheduler.

        Args:
            wait: Whether to wait for running jobs to finish
        """
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            logger.info("Scheduler shutdown")
        else:
            logger.warning("Scheduler not running")

    def add_cron_job(
        self,
        func: Callable,
        job_id: str,
        hour: Optional[int] = None,
        minute: Optional[int] = None,
        day_of_week: Optional[str] = None,
        **kwargs
    ) -> None:
        """
        Add a cron-scheduled job.

        Args:
            func: Job function
            job_id: Unique job identifier
            hour: Hour to run (0-23)
            minute: Minute to run (0-59)
            day_of_week: Day of week (mon,tue,wed,thu,fri,sat,sun)
            **kwargs: Additional APScheduler job options
        """
        trigger = CronTrigger(hour=hour, minute=minute, day_of_week=day_of_week, timezone="UTC")
        self.scheduler.add_job(func, trigger=trigger, id=job_id, replace_existing=True, **kwargs)
        logger.info(f"Added cron job: {job_id} (hour={hour}, minute={minute})")

    def add_interval_job(
        self,
        func: Callable,
        job_id: str,
        seconds: Optional[int] = None,
        minutes: Optional[int] = None,
        hours: Optional[int] = None,
        **kwargs
    ) -> None:
        """
        Add an interval-scheduled job.

        Raises:
            ValueError: if no interval is given
        """
        if not any([seconds, minutes, hours]):
            raise ValueError("At least one of seconds, minutes, or hours must be specified")

        trigger = IntervalTrigger(
            seconds=seconds or 0,
            minutes=minutes or 0,
            hours=hours or 0,
            timezone="UTC"
        )
        self.scheduler.add_job(func, trigger=trigger, id=job_id, replace_existing=True, **kwargs)
        logger.info(
            f"Added interval job: {job_id} "
            f"(seconds={seconds}, minutes={minutes}, hours={hours})"
        )

    def remove_job(self, job_id: str) -> None:
        self.scheduler.remove_job(job_id)
        logger.info(f"Removed job: {job_id}")

    def get_jobs(self) -> list:
        """Get list of scheduled jobs."""
        return self.scheduler.get_jobs()


def get_scheduler() -> SchedulerManager:
    """
    Get singleton scheduler instance.
    """
    global _scheduler

    if _scheduler is None:
        _scheduler = SchedulerManager()

    return _scheduler
