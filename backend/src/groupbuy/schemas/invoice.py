"""Invoice schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import Field

from groupbuy.models import InvoiceStatus
from groupbuy.schemas.common import CamelModel


class InvoiceResponse(CamelModel):
    invoice_id: UUID
    campaign_id: UUID
    pledge_id: UUID
    payment_intent_id: Optional[UUID] = None
    organization_id: UUID
    invoice_number: str
    quantity: int
    unit_price: Decimal
    amount: Decimal
    status: InvoiceStatus
    issue_date: date
    due_date: date
    paid_date: Optional[date] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class MarkAsPaidRequest(CamelModel):
    """Schema for recording a full invoice payment."""

    amount: Decimal = Field(ge=0)
    paid_date: Optional[date] = None
    notes: Optional[str] = Field(default=None, max_length=2000)
