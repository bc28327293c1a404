"""Fulfillment model: delivery progress of a pledge's goods."""

import uuid

from sqlalchemy import ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from groupbuy.core.database import Base
from groupbuy.models.base import TimestampMixin
from groupbuy.models.enums import DeliveryStatus, status_type


class CampaignFulfillment(TimestampMixin, Base):
    __tablename__ = "campaign_fulfillments"

    fulfillment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    campaign_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("campaigns.campaign_id"),
        nullable=False,
    )
    pledge_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("pledges.pledge_id"),
        nullable=False,
    )
    delivery_status: Mapped[DeliveryStatus] = mapped_column(
        status_type(DeliveryStatus, "delivery_status"),
        nullable=False,
        default=DeliveryStatus.PENDING,
    )

    __table_args__ = (
        Index("idx_fulfillments_campaign", "campaign_id"),
        Index("idx_fulfillments_pledge", "pledge_id"),
    )
