"""Pydantic schemas for request/response validation."""

from groupbuy.schemas.campaign import (
    BracketCreate,
    BracketProgressResponse,
    BracketReplaceRequest,
    BracketResponse,
    CampaignResponse,
    SettlementRecoveryResponse,
)
from groupbuy.schemas.common import CamelModel, ErrorResponse
from groupbuy.schemas.invoice import InvoiceResponse, MarkAsPaidRequest
from groupbuy.schemas.payment import (
    ArResolution,
    GatewayOutcome,
    PaymentIntentResponse,
    PaymentStatusUpdate,
)
from groupbuy.schemas.pledge import (
    PledgeAction,
    PledgeCreate,
    PledgeResponse,
    PledgeTotalsResponse,
)

__all__ = [
    "CamelModel",
    "ErrorResponse",
    "CampaignResponse",
    "BracketCreate",
    "BracketReplaceRequest",
    "BracketResponse",
    "BracketProgressResponse",
    "SettlementRecoveryResponse",
    "PledgeCreate",
    "PledgeAction",
    "PledgeResponse",
    "PledgeTotalsResponse",
    "InvoiceResponse",
    "MarkAsPaidRequest",
    "PaymentIntentResponse",
    "PaymentStatusUpdate",
    "GatewayOutcome",
    "ArResolution",
]
