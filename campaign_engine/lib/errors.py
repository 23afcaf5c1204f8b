"""
Domain exceptions for the campaign engine.

These are raised by the core (models, services, jobs) and translated into
HTTP responses by the API error handlers.
"""
from datetime import datetime
from typing import Dict, Optional


class CampaignEngineError(Exception):
    """Base class for all campaign engine errors."""


class CampaignValidationError(CampaignEngineError, ValueError):
    """
    A campaign (or one of its parts) failed boundary validation.

    Carries a field -> message mapping so callers can report every problem
    at once instead of the first one.
    """

    def __init__(self, message: str, errors: Optional[Dict[str, str]] = None):
        self.message = message
        self.errors = errors or {}
        super().__init__(message)


class InvalidTransitionError(CampaignEngineError):
    """Requested status transition is not allowed from the current status."""

    def __init__(self, campaign_id: Optional[str], current: str, target: str):
        self.campaign_id = campaign_id
        self.current = current
        self.target = target
        super().__init__(
            f"Campaign {campaign_id or '<new>'} cannot move from '{current}' to '{target}'"
        )


class CampaignNotFoundError(CampaignEngineError, LookupError):
    """No campaign with the given id exists in the store."""

    def __init__(self, campaign_id: str):
        self.campaign_id = campaign_id
        super().__init__(f"Campaign '{campaign_id}' not found")


class AudienceResolutionError(CampaignEngineError):
    """A facet lookup failed while resolving a campaign audience."""

    def __init__(self, facet: str, facet_id: Optional[str], cause: Exception):
        self.facet = facet
        self.facet_id = facet_id
        self.cause = cause
        target = f"{facet}:{facet_id}" if facet_id else facet
        super().__init__(f"Audience lookup failed for {target}: {cause}")


class ExecutionError(CampaignEngineError):
    """The external execution trigger did not confirm delivery."""


class LockNotAcquired(CampaignEngineError):
    """Another worker is already processing this campaign for the tick."""

    def __init__(self, campaign_id: str, lock_key: int):
        self.campaign_id = campaign_id
        self.lock_key = lock_key
        super().__init__(f"Campaign {campaign_id} already running (lock {lock_key})")


class StaleCampaignError(CampaignEngineError):
    """A full write was based on a copy that has since been changed."""

    def __init__(self, campaign_id: str, expected: Optional[datetime], actual: Optional[datetime]):
        self.campaign_id = campaign_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Campaign {campaign_id} changed since it was read "
            f"(read at version {expected}, stored version {actual})"
        )
