"""Pledge model for buyer organizations' quantity commitments."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from groupbuy.core.database import Base
from groupbuy.models.base import TimestampMixin
from groupbuy.models.enums import PledgeStatus, status_type


class Pledge(TimestampMixin, Base):
    """A buyer organization's pledged quantity in a campaign."""

    __tablename__ = "pledges"

    pledge_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    campaign_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("campaigns.campaign_id"),
        nullable=False,
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
    )
    quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    status: Mapped[PledgeStatus] = mapped_column(
        status_type(PledgeStatus, "pledge_status"),
        nullable=False,
        default=PledgeStatus.PENDING,
    )
    committed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint("quantity > 0", name="chk_pledge_quantity_positive"),
        # One pledge row per organization and campaign; withdrawn rows are reactivated
        Index("idx_pledges_campaign_org", "campaign_id", "organization_id", unique=True),
        Index("idx_pledges_campaign_status", "campaign_id", "status"),
    )
