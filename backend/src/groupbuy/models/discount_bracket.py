"""Discount bracket model: one quantity tier of a campaign's price table."""

import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, Numeric
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from groupbuy.core.database import Base
from groupbuy.models.base import TimestampMixin


class DiscountBracket(TimestampMixin, Base):
    """Quantity range ``[min_quantity, max_quantity]`` priced at ``unit_price``.

    ``max_quantity`` of ``None`` marks the unbounded top tier.
    """

    __tablename__ = "discount_brackets"

    bracket_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    campaign_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("campaigns.campaign_id"),
        nullable=False,
    )
    min_quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    max_quantity: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
    )
    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(19, 4),
        nullable=False,
    )
    bracket_order: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("min_quantity >= 0", name="chk_bracket_min_non_negative"),
        CheckConstraint("unit_price > 0", name="chk_bracket_price_positive"),
        CheckConstraint(
            "max_quantity IS NULL OR max_quantity > min_quantity",
            name="chk_bracket_range",
        ),
        Index("idx_brackets_campaign_order", "campaign_id", "bracket_order", unique=True),
    )

    def contains(self, quantity: int) -> bool:
        if quantity < self.min_quantity:
            return False
        return self.max_quantity is None or quantity <= self.max_quantity
