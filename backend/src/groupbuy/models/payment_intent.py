"""Payment intent model tracking collection of one pledge's amount."""

import uuid
from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, Numeric
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from groupbuy.core.database import Base
from groupbuy.models.base import TimestampMixin
from groupbuy.models.enums import PaymentIntentStatus, status_type


class PaymentIntent(TimestampMixin, Base):
    """Payment attempt state for a committed pledge. Never deleted."""

    __tablename__ = "payment_intents"

    payment_intent_id: Mapped[uuid.UUID] = mapped_column(
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
        unique=True,
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(19, 4),
        nullable=False,
    )
    status: Mapped[PaymentIntentStatus] = mapped_column(
        status_type(PaymentIntentStatus, "payment_intent_status"),
        nullable=False,
        default=PaymentIntentStatus.PENDING,
    )
    retry_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("retry_count BETWEEN 0 AND 3", name="chk_payment_retry_count"),
        CheckConstraint("amount >= 0", name="chk_payment_amount_non_negative"),
        Index("idx_payment_intents_campaign", "campaign_id"),
        Index("idx_payment_intents_status", "status"),
    )
