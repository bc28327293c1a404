"""Campaign model for group-buy offers."""

import uuid
from datetime import date
from typing import Any, Optional

from sqlalchemy import CheckConstraint, Date, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from groupbuy.core.database import Base
from groupbuy.models.base import TimestampMixin
from groupbuy.models.enums import CampaignStatus, status_type


class Campaign(TimestampMixin, Base):
    """Campaign model representing a supplier's bulk-purchase offer."""

    __tablename__ = "campaigns"

    campaign_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    supplier_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    product_details: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=True,
    )
    target_quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    start_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )
    end_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )
    grace_period_end_date: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
    )
    status: Mapped[CampaignStatus] = mapped_column(
        status_type(CampaignStatus, "campaign_status"),
        nullable=False,
        default=CampaignStatus.DRAFT,
    )
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="chk_campaign_dates"),
        CheckConstraint("target_quantity > 0", name="chk_campaign_target_positive"),
        Index("idx_campaigns_status", "status"),
        Index("idx_campaigns_status_end_date", "status", "end_date"),
    )

    def __repr__(self) -> str:
        return f"<Campaign {self.campaign_id} {self.status.name if self.status else None}>"
