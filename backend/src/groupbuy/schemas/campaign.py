"""Campaign and discount bracket schemas for request/response validation."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import Field

from groupbuy.models import CampaignStatus
from groupbuy.schemas.common import CamelModel


class CampaignResponse(CamelModel):
    """Schema for campaign response."""

    campaign_id: UUID
    supplier_id: UUID
    title: str
    description: Optional[str] = None
    target_quantity: int
    start_date: date
    end_date: date
    grace_period_end_date: Optional[date] = None
    status: CampaignStatus
    created_at: datetime
    updated_at: datetime


class BracketCreate(CamelModel):
    """One tier of a bracket table submitted while the campaign is a draft."""

    min_quantity: int = Field(ge=0)
    max_quantity: Optional[int] = Field(default=None, ge=0)
    unit_price: Decimal = Field(gt=0, max_digits=19, decimal_places=4)
    bracket_order: int = Field(ge=0)


class BracketReplaceRequest(CamelModel):
    brackets: list[BracketCreate] = Field(min_length=1)


class BracketResponse(CamelModel):
    bracket_id: UUID
    min_quantity: int
    max_quantity: Optional[int] = None
    unit_price: Decimal
    bracket_order: int


class BracketProgressResponse(CamelModel):
    """Schema for public bracket progress of an active campaign."""

    campaign_id: UUID
    total_pledged: int
    current_bracket: Optional[BracketResponse] = None
    next_bracket: Optional[BracketResponse] = None
    percentage_to_next_tier: Decimal


class SettlementRecoveryResponse(CamelModel):
    campaign_id: UUID
    invoices_created: int
