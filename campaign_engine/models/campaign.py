"""
Campaign domain model - immutable values for AI engagement campaigns.

Every value here is a frozen pydantic model. Updates go through named
operations (``with_changes``, ``AutomationConfig.with_thresholds`` ...) that
return a new, re-validated value, so the scheduler and the automation engine
can treat campaigns as plain inputs and outputs.

Field names are snake_case in Python and camelCase on the wire
(``targetAudience``, ``endAfterCount`` ...), matching the documents the admin
screens already read and write.
"""
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, FrozenSet, Literal, Optional, Tuple, Union
import enum

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from campaign_engine.lib.errors import CampaignValidationError


# ============================================================================
# Enumerations
# ============================================================================


class CampaignCategory(str, enum.Enum):
    """What the campaign is about."""
    MORALE = "morale"
    FEEDBACK = "feedback"
    SALES = "sales"
    POLICY = "policy"
    SUPPORT = "support"
    WELLNESS = "wellness"


class CampaignTone(str, enum.Enum):
    """Voice used by the AI when talking to recipients."""
    MOTIVATIONAL = "motivational"
    SURVEY = "survey"
    COACHING = "coaching"
    FEEDBACK_SEEKING = "feedback-seeking"
    EMPATHETIC = "empathetic"
    DIRECTIVE = "directive"


class Frequency(str, enum.Enum):
    """Recurrence cadence."""
    ONE_TIME = "one-time"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


class CampaignStatus(str, enum.Enum):
    """Campaign lifecycle status."""
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class FollowUpStrategy(str, enum.Enum):
    """How recipients who do not answer are followed up."""
    NONE = "none"
    ONE_FOLLOWUP = "1_followup"
    CONTINUOUS = "continuous"
    AI_PACED = "ai_paced"


class CreatorType(str, enum.Enum):
    """Organization type that authored the campaign."""
    HRX = "HRX"
    AGENCY = "Agency"
    CUSTOMER = "Customer"
    TENANT = "Tenant"


# ============================================================================
# Shared helpers
# ============================================================================


# Set of opaque identifiers; serialized as a sorted list so output is stable
IdSet = Annotated[
    FrozenSet[str],
    PlainSerializer(lambda ids: sorted(ids), return_type=list),
]

UnitInterval = Annotated[float, Field(ge=0.0, le=1.0)]


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and normalize aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class _Value(BaseModel):
    """Base for immutable, camelCase-aliased domain values."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="forbid",
    )


def _validation_error(exc: ValidationError, message: str) -> CampaignValidationError:
    errors = {}
    for error in exc.errors():
        loc = ".".join(str(part) for part in error["loc"]) or "__root__"
        errors[loc] = error["msg"]
    return CampaignValidationError(message, errors)


# ============================================================================
# Audience
# ============================================================================


FACET_FIELDS: Tuple[str, ...] = (
    "region_ids",
    "division_ids",
    "location_ids",
    "department_ids",
    "user_ids",
    "user_group_ids",
    "job_order_ids",
)


class FacetSelector(_Value):
    """Seven independent sets of facet identifiers."""

    region_ids: IdSet = frozenset()
    division_ids: IdSet = frozenset()
    location_ids: IdSet = frozenset()
    department_ids: IdSet = frozenset()
    user_ids: IdSet = frozenset()
    user_group_ids: IdSet = frozenset()
    job_order_ids: IdSet = frozenset()

    def is_empty(self) -> bool:
        return not any(getattr(self, name) for name in FACET_FIELDS)

    def populated_facets(self) -> Tuple[str, ...]:
        """Names of the facet lists that hold at least one id."""
        return tuple(name for name in FACET_FIELDS if getattr(self, name))


class TargetAudience(FacetSelector):
    """A facet selector plus the entire-workforce switch."""

    entire_workforce: bool = False

    @model_validator(mode="after")
    def _workforce_excludes_facets(self) -> "TargetAudience":
        if self.entire_workforce and not self.is_empty():
            raise ValueError(
                "entireWorkforce cannot be combined with facet selections: "
                + ", ".join(to_camel(name) for name in self.populated_facets())
            )
        return self


# ============================================================================
# End condition (tagged union)
# ============================================================================


class NoEnd(_Value):
    """Campaign never ends on its own."""
    kind: Literal["none"] = "none"


class EndByDate(_Value):
    """Campaign ends once the next occurrence would fall after end_date."""
    kind: Literal["date"] = "date"
    end_date: datetime

    @field_validator("end_date")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class EndByCount(_Value):
    """Campaign ends after a fixed number of confirmed occurrences."""
    kind: Literal["count"] = "count"
    end_after_count: int = Field(gt=0)


EndCondition = Annotated[Union[NoEnd, EndByDate, EndByCount], Field(discriminator="kind")]


# ============================================================================
# Automation
# ============================================================================


class PerformanceThresholds(_Value):
    engagement_rate: UnitInterval = 0.3
    response_rate: UnitInterval = 0.2
    satisfaction_score: UnitInterval = 0.7


class OptimizationRules(_Value):
    """Which levers the policy engine may pull."""
    frequency_adjustment: bool = True
    tone_adjustment: bool = True
    targeting_adjustment: bool = True
    timing_adjustment: bool = True


class AutomationConfig(_Value):
    """Automation policy attached to a campaign."""

    auto_optimize: bool = False
    smart_scheduling: bool = False
    adaptive_targeting: bool = False
    performance_thresholds: PerformanceThresholds = PerformanceThresholds()
    optimization_rules: OptimizationRules = OptimizationRules()

    @classmethod
    def from_defaults(cls, **overrides: Any) -> "AutomationConfig":
        """Build a config pre-filled from the configured automation defaults."""
        from campaign_engine.lib.config_flags import get_automation_defaults

        defaults = get_automation_defaults()
        data: Dict[str, Any] = {
            "auto_optimize": defaults.auto_optimize,
            "smart_scheduling": defaults.smart_scheduling,
            "adaptive_targeting": defaults.adaptive_targeting,
            "performance_thresholds": PerformanceThresholds(
                engagement_rate=defaults.engagement_rate,
                response_rate=defaults.response_rate,
                satisfaction_score=defaults.satisfaction_score,
            ),
            "optimization_rules": OptimizationRules(
                frequency_adjustment=defaults.frequency_adjustment,
                tone_adjustment=defaults.tone_adjustment,
                targeting_adjustment=defaults.targeting_adjustment,
                timing_adjustment=defaults.timing_adjustment,
            ),
        }
        data.update(overrides)
        return cls.parse(data)

    @classmethod
    def parse(cls, data: Any) -> "AutomationConfig":
        """Validate raw input, raising CampaignValidationError on failure."""
        if isinstance(data, cls):
            return data
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise _validation_error(exc, "Invalid automation configuration") from exc

    def with_toggles(self, **toggles: bool) -> "AutomationConfig":
        """Set auto_optimize / smart_scheduling / adaptive_targeting."""
        return self._replace(**toggles)

    def with_thresholds(self, **thresholds: float) -> "AutomationConfig":
        merged = {**self.performance_thresholds.model_dump(), **thresholds}
        return self._replace(performance_thresholds=merged)

    def with_rules(self, **rules: bool) -> "AutomationConfig":
        merged = {**self.optimization_rules.model_dump(), **rules}
        return self._replace(optimization_rules=merged)

    def _replace(self, **updates: Any) -> "AutomationConfig":
        return AutomationConfig.parse({**self.model_dump(), **updates})


# ============================================================================
# Analytics
# ============================================================================


class AnalyticsSnapshot(_Value):
    """Latest known results of a campaign."""

    total_recipients: int = Field(default=0, ge=0)
    responses_received: int = Field(default=0, ge=0)
    avg_engagement_score: UnitInterval = 0.0
    trait_changes: Dict[str, float] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _responses_within_recipients(self) -> "AnalyticsSnapshot":
        if self.responses_received > self.total_recipients:
            raise ValueError(
                f"responsesReceived ({self.responses_received}) exceeds "
                f"totalRecipients ({self.total_recipients})"
            )
        return self

    @property
    def response_rate(self) -> float:
        """responses / recipients, 0 when nobody was reached."""
        if self.total_recipients == 0:
            return 0.0
        return self.responses_received / self.total_recipients

    @classmethod
    def parse(cls, data: Any) -> "AnalyticsSnapshot":
        if isinstance(data, cls):
            return data
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise _validation_error(exc, "Invalid analytics snapshot") from exc


# ============================================================================
# Campaign
# ============================================================================


class AIBehavior(_Value):
    """How the AI conducts the conversation (consumed by the external sender)."""

    response_pattern: str = "encouraging"
    escalation_threshold: UnitInterval = 0.3
    escalation_email: Optional[str] = None
    trait_tracking: Tuple[str, ...] = ("motivation", "engagement")


class Campaign(_Value):
    """
    An AI engagement campaign.

    Scheduling state (occurrences_fired, last_fired_at) only ever advances on
    confirmed execution; see campaign_engine.services.lifecycle.
    """

    id: Optional[str] = None
    tenant_id: Optional[str] = None

    title: str = Field(min_length=1, max_length=200)
    objective: str = ""
    category: CampaignCategory = CampaignCategory.MORALE
    tone: CampaignTone = CampaignTone.MOTIVATIONAL
    target_audience: TargetAudience = TargetAudience()

    start_date: datetime
    frequency: Frequency = Frequency.ONE_TIME
    end_condition: EndCondition = NoEnd()
    status: CampaignStatus = CampaignStatus.DRAFT
    follow_up_strategy: FollowUpStrategy = FollowUpStrategy.NONE

    automation: Optional[AutomationConfig] = None
    analytics: Optional[AnalyticsSnapshot] = None

    tags: IdSet = frozenset()
    ai_behavior: AIBehavior = AIBehavior()
    created_by: CreatorType = CreatorType.AGENCY
    creator_user_id: str = ""
    template: bool = False
    source_campaign_id: Optional[str] = None

    occurrences_fired: int = Field(default=0, ge=0)
    last_fired_at: Optional[datetime] = None
    audience_refresh_pending: bool = False

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("start_date", "last_fired_at", "created_at", "updated_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("title must not be blank")
        return value

    @model_validator(mode="after")
    def _end_after_start(self) -> "Campaign":
        if isinstance(self.end_condition, EndByDate) and self.end_condition.end_date < self.start_date:
            raise ValueError("endDate must not be before startDate")
        return self

    @property
    def is_manual(self) -> bool:
        return self.automation is None

    def with_changes(self, **updates: Any) -> "Campaign":
        """Return a re-validated copy with the given fields replaced."""
        return Campaign.parse({**self.model_dump(), **updates})

    @classmethod
    def parse(cls, data: Any) -> "Campaign":
        """Validate raw input, raising CampaignValidationError on failure."""
        if isinstance(data, cls):
            return data
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise _validation_error(exc, "Invalid campaign") from exc

    def to_document(self) -> Dict[str, Any]:
        """camelCase JSON-compatible representation."""
        return self.model_dump(mode="json", by_alias=True)

    def __repr__(self) -> str:
        return f"<Campaign(id={self.id}, title={self.title!r}, status={self.status.value})>"


def new_campaign(**fields: Any) -> Campaign:
    """
    Build a fully populated draft campaign.

    Scheduling state and store-managed fields are reset, so a payload copied
    from an existing campaign cannot smuggle in an id, a status or fired
    occurrences.

    Raises:
        CampaignValidationError: if any field is invalid
    """
    managed = (
        "id", "created_at", "updated_at", "status",
        "occurrences_fired", "last_fired_at", "audience_refresh_pending",
    )
    for name in managed:
        fields.pop(name, None)
        fields.pop(to_camel(name), None)
    fields.update(
        status=CampaignStatus.DRAFT,
        occurrences_fired=0,
        last_fired_at=None,
        audience_refresh_pending=False,
    )
    if "start_date" not in fields and "startDate" not in fields:
        fields["start_date"] = datetime.now(timezone.utc)
    return Campaign.parse(fields)
