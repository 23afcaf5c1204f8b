"""
CampaignRecord - SQL persistence for campaigns.

Indexed columns hold what the store filters on (tenant, status, category,
template); the full camelCase campaign document lives in a JSON column so the
domain model can evolve without migrations.
"""
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from campaign_engine.lib.db import Base


class CampaignRecord(Base):
    """
    Campaign row - one per campaign, templates included.
    """
    __tablename__ = "campaigns"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )

    # Filter columns (mirrors of the document)
    tenant_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    template: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    document: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        comment="camelCase campaign document",
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<CampaignRecord(id={self.id}, status={self.status}, tenant={self.tenant_id})>"
