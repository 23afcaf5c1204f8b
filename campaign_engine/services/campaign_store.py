"""
Campaign Store - durable persistence behind a narrow interface.

The core only ever talks to CampaignStore (get/list/create/update/delete).
Two implementations ship with the engine:
- InMemoryCampaignStore: thread-safe dict, used in tests and local runs
- SqlCampaignStore: SQLAlchemy-backed, one CampaignRecord per campaign
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Any, Dict, List, Mapping, Optional
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from campaign_engine.lib.errors import CampaignNotFoundError, StaleCampaignError
from campaign_engine.lib.logging import get_logger
from campaign_engine.models.campaign import Campaign, CampaignCategory, CampaignStatus
from campaign_engine.models.records import CampaignRecord


logger = get_logger(__name__)


# camelCase alias -> field name, so patches may use either spelling
_FIELD_BY_ALIAS = {
    (info.alias or name): name for name, info in Campaign.model_fields.items()
}


@dataclass(frozen=True)
class CampaignFilter:
    """Optional equality filters; None means 'any'."""

    tenant_id: Optional[str] = None
    status: Optional[CampaignStatus] = None
    category: Optional[CampaignCategory] = None
    template: Optional[bool] = None

    def matches(self, campaign: Campaign) -> bool:
        if self.tenant_id is not None and campaign.tenant_id != self.tenant_id:
            return False
        if self.status is not None and campaign.status != self.status:
            return False
        if self.category is not None and campaign.category != self.category:
            return False
        if self.template is not None and campaign.template != self.template:
            return False
        return True


def apply_patch(campaign: Campaign, patch: Mapping[str, Any]) -> Campaign:
    """
    Merge a partial update (snake_case or camelCase keys) into a campaign.

    Raises:
        CampaignValidationError: if the result is not a valid campaign
    """
    updates = {_FIELD_BY_ALIAS.get(key, key): value for key, value in patch.items()}
    updates.pop("id", None)
    updates.pop("created_at", None)
    return campaign.with_changes(**updates)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _next_version(current: Campaign) -> datetime:
    """updated_at for the next write; strictly increasing per campaign."""
    now = _now()
    if current.updated_at is not None and now <= current.updated_at:
        return current.updated_at + timedelta(microseconds=1)
    return now


def _check_version(current: Campaign, expected_updated_at: Optional[datetime]) -> None:
    if expected_updated_at is not None and current.updated_at != expected_updated_at:
        raise StaleCampaignError(current.id, expected_updated_at, current.updated_at)


class CampaignStore(ABC):
    """Persistence contract for campaigns."""

    @abstractmethod
    def get(self, campaign_id: str) -> Campaign:
        """Raises CampaignNotFoundError if missing."""

    @abstractmethod
    def list(self, campaign_filter: Optional[CampaignFilter] = None) -> List[Campaign]:
        """Campaigns matching the filter, oldest first."""

    @abstractmethod
    def create(self, campaign: Campaign) -> Campaign:
        """Persist a new campaign; assigns id, created_at and updated_at."""

    @abstractmethod
    def update(
        self,
        campaign_id: str,
        patch: Mapping[str, Any],
        expected_updated_at: Optional[datetime] = None,
    ) -> Campaign:
        """
        Apply a partial update and bump updated_at.

        Raises:
            StaleCampaignError: if expected_updated_at is given and the stored
                campaign has a different updated_at
        """

    @abstractmethod
    def delete(self, campaign_id: str) -> None:
        """Remove a campaign entirely. Raises CampaignNotFoundError if missing."""

    def save(self, campaign: Campaign) -> Campaign:
        """
        Write back a full campaign value obtained from this store.

        The write only succeeds if nobody changed the campaign since it was
        read (its updated_at still matches the stored one).

        Raises:
            StaleCampaignError: if the stored campaign has moved on
        """
        if campaign.id is None:
            return self.create(campaign)
        document = campaign.model_dump()
        document.pop("id")
        document.pop("created_at")
        document.pop("updated_at")
        return self.update(campaign.id, document, expected_updated_at=campaign.updated_at)


class InMemoryCampaignStore(CampaignStore):
    """Dict-backed store; safe to share between the API and the scheduler thread."""

    def __init__(self):
        self._campaigns: Dict[str, Campaign] = {}
        self._lock = Lock()

    def get(self, campaign_id: str) -> Campaign:
        with self._lock:
            campaign = self._campaigns.get(campaign_id)
        if campaign is None:
            raise CampaignNotFoundError(campaign_id)
        return campaign

    def list(self, campaign_filter: Optional[CampaignFilter] = None) -> List[Campaign]:
        campaign_filter = campaign_filter or CampaignFilter()
        with self._lock:
            campaigns = list(self._campaigns.values())
        return [c for c in campaigns if campaign_filter.matches(c)]

    def create(self, campaign: Campaign) -> Campaign:
        now = _now()
        stored = campaign.with_changes(id=str(uuid4()), created_at=now, updated_at=now)
        with self._lock:
            self._campaigns[stored.id] = stored
        logger.debug(f"Created campaign {stored.id}")
        return stored

    def update(
        self,
        campaign_id: str,
        patch: Mapping[str, Any],
        expected_updated_at: Optional[datetime] = None,
    ) -> Campaign:
        with self._lock:
            current = self._campaigns.get(campaign_id)
            if current is None:
                raise CampaignNotFoundError(campaign_id)
            _check_version(current, expected_updated_at)
            updated = apply_patch(current, patch).with_changes(updated_at=_next_version(current))
            self._campaigns[campaign_id] = updated
        return updated

    def delete(self, campaign_id: str) -> None:
        with self._lock:
            if self._campaigns.pop(campaign_id, None) is None:
                raise CampaignNotFoundError(campaign_id)


class SqlCampaignStore(CampaignStore):
    """
    SQLAlchemy-backed store.

    Args:
        session_factory: sessionmaker bound to the campaign database; each
            operation runs in its own short transaction
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def _load(self, db: Session, campaign_id: str, for_update: bool = False) -> CampaignRecord:
        record = db.get(CampaignRecord, campaign_id, with_for_update=for_update)
        if record is None:
            raise CampaignNotFoundError(campaign_id)
        return record

    @staticmethod
    def _to_campaign(record: CampaignRecord) -> Campaign:
        return Campaign.parse(record.document)

    @staticmethod
    def _write(record: CampaignRecord, campaign: Campaign) -> None:
        record.tenant_id = campaign.tenant_id
        record.status = campaign.status.value
        record.category = campaign.category.value
        record.template = campaign.template
        record.document = campaign.to_document()
        record.updated_at = campaign.updated_at

    def get(self, campaign_id: str) -> Campaign:
        with self.session_factory() as db:
            return self._to_campaign(self._load(db, campaign_id))

    def list(self, campaign_filter: Optional[CampaignFilter] = None) -> List[Campaign]:
        campaign_filter = campaign_filter or CampaignFilter()
        stmt = select(CampaignRecord).order_by(CampaignRecord.created_at)
        if campaign_filter.tenant_id is not None:
            stmt = stmt.where(CampaignRecord.tenant_id == campaign_filter.tenant_id)
        if campaign_filter.status is not None:
            stmt = stmt.where(CampaignRecord.status == campaign_filter.status.value)
        if campaign_filter.category is not None:
            stmt = stmt.where(CampaignRecord.category == campaign_filter.category.value)
        if campaign_filter.template is not None:
            stmt = stmt.where(CampaignRecord.template == campaign_filter.template)

        with self.session_factory() as db:
            records = db.execute(stmt).scalars().all()
            return [self._to_campaign(record) for record in records]

    def create(self, campaign: Campaign) -> Campaign:
        now = _now()
        stored = campaign.with_changes(id=str(uuid4()), created_at=now, updated_at=now)
        record = CampaignRecord(id=stored.id, created_at=now)
        self._write(record, stored)
        with self.session_factory() as db:
            db.add(record)
            db.commit()
        logger.debug(f"Created campaign {stored.id}")
        return stored

    def update(
        self,
        campaign_id: str,
        patch: Mapping[str, Any],
        expected_updated_at: Optional[datetime] = None,
    ) -> Campaign:
        with self.session_factory() as db:
            # Row lock on Postgres; SQLite serializes writers itself
            record = self._load(db, campaign_id, for_update=True)
            current = self._to_campaign(record)
            _check_version(current, expected_updated_at)
            updated = apply_patch(current, patch).with_changes(updated_at=_next_version(current))
            self._write(record, updated)
            db.commit()
        return updated

    def delete(self, campaign_id: str) -> None:
        with self.session_factory() as db:
            db.delete(self._load(db, campaign_id))
            db.commit()
