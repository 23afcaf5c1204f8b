"""
Shared fixtures for unit and integration tests.
"""
from datetime import datetime, timezone

import pytest

from campaign_engine.lib.config_flags import reset_all_configs
from campaign_engine.lib.metrics import reset_metrics
from campaign_engine.models.campaign import new_campaign
from campaign_engine.services.audience_resolver import (
    AudienceResolver,
    Facet,
    InMemoryFacetLookup,
)
from campaign_engine.services.campaign_store import InMemoryCampaignStore


START = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def reset_global_state():
    """Start every test with default flags and empty counters."""
    reset_all_configs()
    reset_metrics()
    yield
    reset_all_configs()
    reset_metrics()


@pytest.fixture
def make_campaign():
    """Factory for valid draft campaigns with overridable fields."""
    def _make(**overrides):
        fields = {
            "title": "Weekly pulse",
            "objective": "Check in with the team",
            "tenant_id": "tenant-1",
            "start_date": START,
            "frequency": "weekly",
        }
        fields.update(overrides)
        return new_campaign(**fields)
    return _make


@pytest.fixture
def lookup():
    """Small workforce: two regions, one department, one user group."""
    return InMemoryFacetLookup(
        facets={
            Facet.REGION: {"r1": ["w1", "w2"], "r2": ["w2", "w3"]},
            Facet.DEPARTMENT: {"sales": ["w3", "w4"]},
            Facet.USER_GROUP: {"g1": ["w5"]},
        },
        workforce=["w1", "w2", "w3", "w4", "w5", "w6"],
    )


@pytest.fixture
def resolver(lookup):
    return AudienceResolver(lookup)


@pytest.fixture
def store():
    return InMemoryCampaignStore()
