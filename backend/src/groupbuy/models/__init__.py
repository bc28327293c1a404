"""SQLAlchemy ORM models."""

from groupbuy.models.base import TimestampMixin
from groupbuy.models.campaign import Campaign
from groupbuy.models.discount_bracket import DiscountBracket
from groupbuy.models.enums import (
    CampaignStatus,
    DeliveryStatus,
    InvoiceStatus,
    PaymentIntentStatus,
    PledgeStatus,
)
from groupbuy.models.fulfillment import CampaignFulfillment
from groupbuy.models.invoice import Invoice
from groupbuy.models.payment_intent import PaymentIntent
from groupbuy.models.pledge import Pledge

__all__ = [
    "TimestampMixin",
    "Campaign",
    "DiscountBracket",
    "Pledge",
    "Invoice",
    "PaymentIntent",
    "CampaignFulfillment",
    "CampaignStatus",
    "PledgeStatus",
    "InvoiceStatus",
    "PaymentIntentStatus",
    "DeliveryStatus",
]
