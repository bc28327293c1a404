"""Pledge schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field

from groupbuy.models import PledgeStatus
from groupbuy.schemas.common import CamelModel


class PledgeCreate(CamelModel):
    organization_id: UUID
    quantity: int = Field(gt=0)


class PledgeAction(CamelModel):
    """Identifies the buyer organization acting on its own pledge."""

    organization_id: UUID


class PledgeResponse(CamelModel):
    pledge_id: UUID
    campaign_id: UUID
    organization_id: UUID
    quantity: int
    status: PledgeStatus
    committed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class PledgeTotalsResponse(CamelModel):
    campaign_id: UUID
    total_committed: int
    total_active: int
