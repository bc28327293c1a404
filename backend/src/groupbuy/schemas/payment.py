"""Payment intent schemas."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from groupbuy.models import PaymentIntentStatus
from groupbuy.schemas.common import CamelModel


class PaymentIntentResponse(CamelModel):
    payment_intent_id: UUID
    campaign_id: UUID
    pledge_id: UUID
    organization_id: UUID
    amount: Decimal
    status: PaymentIntentStatus
    retry_count: int
    created_at: datetime
    updated_at: datetime


class PaymentStatusUpdate(CamelModel):
    """Target status, matched case-insensitively (e.g. "processing" or "PROCESSING")."""

    status: str


class GatewayOutcome(CamelModel):
    succeeded: bool


class ArResolution(CamelModel):
    collected: bool
