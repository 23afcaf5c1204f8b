"""
API dependencies for FastAPI dependency injection.

The store, audience resolver, execution trigger and tick runner are built
once per process and shared by the admin routes and the scheduler. Tests (or
an embedding application) replace them with configure() or through
app.dependency_overrides.
"""
from typing import Optional

from fastapi import Depends

from campaign_engine.jobs.tick_runner import TickRunner
from campaign_engine.lib.db import SessionLocal
from campaign_engine.lib.logging import get_logger
from campaign_engine.services.audience_resolver import AudienceResolver, InMemoryFacetLookup
from campaign_engine.services.campaign_service import CampaignService
from campaign_engine.services.campaign_store import CampaignStore, SqlCampaignStore
from campaign_engine.services.execution_trigger import ExecutionTrigger, HttpExecutionTrigger

logger = get_logger(__name__)


_store: Optional[CampaignStore] = None
_resolver: Optional[AudienceResolver] = None
_trigger: Optional[ExecutionTrigger] = None
_runner: Optional[TickRunner] = None


def get_store() -> CampaignStore:
    """Shared campaign store (SQL-backed by default)."""
    global _store
    if _store is None:
        _store = SqlCampaignStore(SessionLocal)
    return _store


def get_resolver() -> AudienceResolver:
    """
    Shared audience resolver.

    Without a configured facet lookup, facet memberships are empty and only
    explicit user ids resolve.
    """
    global _resolver
    if _resolver is None:
        logger.warning("No facet lookup configured; using an empty in-memory lookup")
        _resolver = AudienceResolver(InMemoryFacetLookup())
    return _resolver


def get_trigger() -> ExecutionTrigger:
    """Shared execution trigger (HTTP by default)."""
    global _trigger
    if _trigger is None:
        _trigger = HttpExecutionTrigger()
    return _trigger


def get_campaign_service(
    store: CampaignStore = Depends(get_store),
    resolver: AudienceResolver = Depends(get_resolver),
) -> CampaignService:
    return CampaignService(store, resolver)


def get_tick_runner(
    store: CampaignStore = Depends(get_store),
    resolver: AudienceResolver = Depends(get_resolver),
    trigger: ExecutionTrigger = Depends(get_trigger),
) -> TickRunner:
    """Tick runner bound to the shared collaborators; rebuilt if they change."""
    global _runner
    if _runner is None or (_runner.store, _runner.resolver, _runner.trigger) != (store, resolver, trigger):
        _runner = TickRunner(store, resolver, trigger)
    return _runner


def configure(
    store: Optional[CampaignStore] = None,
    resolver: Optional[AudienceResolver] = None,
    trigger: Optional[ExecutionTrigger] = None,
) -> None:
    """Install collaborators; arguments left as None keep the current ones."""
    global _store, _resolver, _trigger, _runner
    if store is not None:
        _store = store
    if resolver is not None:
        _resolver = resolver
    if trigger is not None:
        _trigger = trigger
    _runner = None


def reset_dependencies() -> None:
    """Forget all shared collaborators (useful for testing)."""
    global _store, _resolver, _trigger, _runner
    _store = None
    _resolver = None
    _trigger = None
    _runner = None
