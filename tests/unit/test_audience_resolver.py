"""
Unit tests for audience resolution.
"""
from unittest.mock import MagicMock

import pytest

from campaign_engine.lib.errors import AudienceResolutionError
from campaign_engine.models.campaign import FacetSelector, TargetAudience
from campaign_engine.services.audience_resolver import AudienceResolver, Facet


@pytest.mark.unit
def test_union_of_facets_deduplicated(resolver):
    """Two regions sharing a worker resolve to the union without duplicates."""
    selector = FacetSelector(region_ids=frozenset({"r1", "r2"}))

    assert resolver.resolve(selector) == frozenset({"w1", "w2", "w3"})


@pytest.mark.unit
def test_user_ids_taken_verbatim(resolver, lookup):
    selector = FacetSelector(user_ids=frozenset({"u-external"}), department_ids=frozenset({"sales"}))

    assert resolver.resolve(selector) == frozenset({"u-external", "w3", "w4"})


@pytest.mark.unit
def test_entire_workforce_ignores_facets(resolver):
    audience = resolver.resolve(FacetSelector(region_ids=frozenset({"r1"})), entire_workforce=True)

    assert audience == frozenset({"w1", "w2", "w3", "w4", "w5", "w6"})


@pytest.mark.unit
def test_empty_selector_resolves_to_empty_audience(resolver):
    assert resolver.resolve(FacetSelector()) == frozenset()


@pytest.mark.unit
def test_unknown_facet_id_contributes_nothing(resolver):
    assert resolver.resolve(FacetSelector(region_ids=frozenset({"nowhere"}))) == frozenset()


@pytest.mark.unit
def test_monotone_in_selector(resolver):
    """Adding ids to any facet list never shrinks the audience."""
    smaller = FacetSelector(region_ids=frozenset({"r1"}))
    larger = FacetSelector(region_ids=frozenset({"r1"}), user_group_ids=frozenset({"g1"}))

    assert resolver.resolve(smaller) <= resolver.resolve(larger)


@pytest.mark.unit
def test_order_independent(resolver):
    first = resolver.resolve(FacetSelector(region_ids=frozenset(["r1", "r2"])))
    second = resolver.resolve(FacetSelector(region_ids=frozenset(["r2", "r1"])))

    assert first == second


@pytest.mark.unit
def test_lookup_failure_raises_resolution_error():
    lookup = MagicMock()
    lookup.members.side_effect = ConnectionError("directory down")
    resolver = AudienceResolver(lookup)

    with pytest.raises(AudienceResolutionError) as exc_info:
        resolver.resolve(FacetSelector(division_ids=frozenset({"d1"})))

    assert exc_info.value.facet == Facet.DIVISION
    assert exc_info.value.facet_id == "d1"
    assert isinstance(exc_info.value.cause, ConnectionError)


@pytest.mark.unit
def test_workforce_lookup_failure_raises_resolution_error():
    lookup = MagicMock()
    lookup.entire_workforce.side_effect = TimeoutError("slow")
    resolver = AudienceResolver(lookup)

    with pytest.raises(AudienceResolutionError):
        resolver.resolve(FacetSelector(), entire_workforce=True)


@pytest.mark.unit
def test_lookup_receives_tenant_and_facet_type():
    lookup = MagicMock()
    lookup.members.return_value = ["w9"]
    resolver = AudienceResolver(lookup)

    resolver.resolve(FacetSelector(job_order_ids=frozenset({"jo-1"})), tenant_id="tenant-7")

    lookup.members.assert_called_once_with("tenant-7", Facet.JOB_ORDER, "jo-1")


@pytest.mark.unit
def test_resolve_campaign_uses_target_audience(resolver, make_campaign):
    campaign = make_campaign(target_audience=TargetAudience(entire_workforce=True))

    assert len(resolver.resolve_campaign(campaign)) == 6
