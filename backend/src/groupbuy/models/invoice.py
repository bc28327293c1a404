"""Invoice model: one invoice per committed pledge of a locked campaign."""

import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from groupbuy.core.database import Base
from groupbuy.models.base import TimestampMixin
from groupbuy.models.enums import InvoiceStatus, status_type


class Invoice(TimestampMixin, Base):
    """Invoice issued to a buyer organization. Amount is fixed at creation."""

    __tablename__ = "invoices"

    invoice_id: Mapped[uuid.UUID] = mapped_column(
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
    payment_intent_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("payment_intents.payment_intent_id"),
        nullable=True,
        unique=True,
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
    )
    invoice_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )
    quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(19, 4),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(19, 4),
        nullable=False,
    )
    status: Mapped[InvoiceStatus] = mapped_column(
        status_type(InvoiceStatus, "invoice_status"),
        nullable=False,
        default=InvoiceStatus.SENT,
    )
    issue_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )
    due_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )
    paid_date: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
    )
    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("amount >= 0", name="chk_invoice_amount_non_negative"),
        CheckConstraint("due_date >= issue_date", name="chk_invoice_due_date"),
        Index("idx_invoices_campaign", "campaign_id"),
        Index("idx_invoices_status_due_date", "status", "due_date"),
    )
