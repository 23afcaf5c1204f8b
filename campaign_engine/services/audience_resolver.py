"""
Audience resolution for campaigns.

Turns a campaign's target audience (facet selections or the entire-workforce
switch) into a concrete, deduplicated set of worker ids.

Resolution rules:
- entire workforce: the tenant's full worker population, facets ignored
- otherwise: union of every facet id translated through the lookup,
  plus explicit user ids verbatim
- nothing selected: empty audience (valid, logged as a warning by callers)
"""
from abc import ABC, abstractmethod
from typing import Dict, FrozenSet, Iterable, Mapping, Optional

from campaign_engine.lib.errors import AudienceResolutionError
from campaign_engine.lib.logging import get_logger
from campaign_engine.models.campaign import Campaign, FacetSelector, TargetAudience


logger = get_logger(__name__)


class Facet:
    """Facet type names understood by lookup providers."""
    REGION = "region"
    DIVISION = "division"
    LOCATION = "location"
    DEPARTMENT = "department"
    USER_GROUP = "userGroup"
    JOB_ORDER = "jobOrder"


# Selector field -> facet type passed to the lookup. Explicit user_ids bypass
# the lookup.
LOOKUP_FACETS: Dict[str, str] = {
    "region_ids": Facet.REGION,
    "division_ids": Facet.DIVISION,
    "location_ids": Facet.LOCATION,
    "department_ids": Facet.DEPARTMENT,
    "user_group_ids": Facet.USER_GROUP,
    "job_order_ids": Facet.JOB_ORDER,
}


class FacetLookup(ABC):
    """
    Provider of facet membership for a tenant.

    Implementations may be backed by any store; they are called
    synchronously and should raise on failure rather than return partial data.
    """

    @abstractmethod
    def members(self, tenant_id: Optional[str], facet: str, facet_id: str) -> Iterable[str]:
        """
        Worker ids belonging to one facet value.

        Args:
            tenant_id: Owning tenant (None for global campaigns)
            facet: One of the Facet constants
            facet_id: Id of the region/division/... to expand
        """

    @abstractmethod
    def entire_workforce(self, tenant_id: Optional[str]) -> Iterable[str]:
        """All current worker ids of the tenant."""


class InMemoryFacetLookup(FacetLookup):
    """
    Dict-backed lookup for tests and local runs.

    Args:
        facets: {facet: {facet_id: [worker ids]}}
        workforce: all worker ids
    """

    def __init__(
        self,
        facets: Optional[Mapping[str, Mapping[str, Iterable[str]]]] = None,
        workforce: Iterable[str] = (),
    ):
        self._facets = {
            facet: {facet_id: frozenset(ids) for facet_id, ids in values.items()}
            for facet, values in (facets or {}).items()
        }
        self._workforce = frozenset(workforce)

    def members(self, tenant_id, facet, facet_id):
        return self._facets.get(facet, {}).get(facet_id, frozenset())

    def entire_workforce(self, tenant_id):
        return self._workforce


class AudienceResolver:
    """Resolves target audiences through a FacetLookup."""

    def __init__(self, lookup: FacetLookup):
        self.lookup = lookup

    def resolve(
        self,
        selector: FacetSelector,
        entire_workforce: bool = False,
        tenant_id: Optional[str] = None,
    ) -> FrozenSet[str]:
        """
        Resolve a selector into worker ids.

        Args:
            selector: Facet selections
            entire_workforce: Ignore facets and take the whole tenant
            tenant_id: Tenant scoping passed through to the lookup

        Returns:
            Deduplicated set of worker ids (possibly empty)

        Raises:
            AudienceResolutionError: if any lookup call fails
        """
        if entire_workforce:
            try:
                return frozenset(self.lookup.entire_workforce(tenant_id))
            except Exception as e:
                raise AudienceResolutionError("entireWorkforce", None, e) from e

        audience = set(selector.user_ids)

        # Sorted iteration keeps lookup call order stable; the union itself is
        # order independent.
        for field_name, facet in LOOKUP_FACETS.items():
            for facet_id in sorted(getattr(selector, field_name)):
                try:
                    audience.update(self.lookup.members(tenant_id, facet, facet_id))
                except Exception as e:
                    raise AudienceResolutionError(facet, facet_id, e) from e

        return frozenset(audience)

    def resolve_campaign(self, campaign: Campaign) -> FrozenSet[str]:
        """Resolve a campaign's target audience within its tenant."""
        audience: TargetAudience = campaign.target_audience
        resolved = self.resolve(
            audience,
            entire_workforce=audience.entire_workforce,
            tenant_id=campaign.tenant_id,
        )
        logger.debug(
            f"Resolved audience for campaign {campaign.id}: {len(resolved)} workers"
        )
        return resolved
