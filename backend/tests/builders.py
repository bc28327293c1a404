"""Entity builders for tests. Every builder assigns an explicit primary key."""

import uuid
from datetime import date, timedelta
from decimal import Decimal

from groupbuy.models import (
    Campaign,
    CampaignFulfillment,
    CampaignStatus,
    DeliveryStatus,
    DiscountBracket,
    Invoice,
    InvoiceStatus,
    PaymentIntent,
    PaymentIntentStatus,
    Pledge,
    PledgeStatus,
)

TODAY = date(2026, 3, 16)

# (min_quantity, max_quantity, unit_price)
DEFAULT_BRACKETS = [
    (10, 50, Decimal("100.00")),
    (51, None, Decimal("80.00")),
]


def make_campaign(status: CampaignStatus = CampaignStatus.DRAFT, **overrides) -> Campaign:
    fields = dict(
        campaign_id=uuid.uuid4(),
        supplier_id=uuid.uuid4(),
        title="Bulk nitrile gloves",
        target_quantity=10,
        start_date=TODAY - timedelta(days=10),
        end_date=TODAY + timedelta(days=5),
        status=status,
    )
    fields.update(overrides)
    return Campaign(**fields)


def make_brackets(campaign_id: uuid.UUID, table=DEFAULT_BRACKETS) -> list[DiscountBracket]:
    return [
        DiscountBracket(
            bracket_id=uuid.uuid4(),
            campaign_id=campaign_id,
            min_quantity=low,
            max_quantity=high,
            unit_price=price,
            bracket_order=order,
        )
        for order, (low, high, price) in enumerate(table)
    ]


def make_pledge(
    campaign_id: uuid.UUID,
    quantity: int,
    status: PledgeStatus = PledgeStatus.COMMITTED,
    organization_id: uuid.UUID | None = None,
) -> Pledge:
    return Pledge(
        pledge_id=uuid.uuid4(),
        campaign_id=campaign_id,
        organization_id=organization_id or uuid.uuid4(),
        quantity=quantity,
        status=status,
    )


def make_payment_intent(
    status: PaymentIntentStatus = PaymentIntentStatus.PENDING,
    retry_count: int = 0,
    pledge: Pledge | None = None,
    amount: Decimal = Decimal("500.00"),
) -> PaymentIntent:
    campaign_id = pledge.campaign_id if pledge else uuid.uuid4()
    return PaymentIntent(
        payment_intent_id=uuid.uuid4(),
        campaign_id=campaign_id,
        pledge_id=pledge.pledge_id if pledge else uuid.uuid4(),
        organization_id=pledge.organization_id if pledge else uuid.uuid4(),
        amount=amount,
        status=status,
        retry_count=retry_count,
    )


def make_invoice(
    pledge: Pledge,
    intent: PaymentIntent | None,
    status: InvoiceStatus = InvoiceStatus.SENT,
    number: str = "INV-202603-0001",
    unit_price: Decimal = Decimal("100.00"),
    issue_date: date = TODAY,
    due_days: int = 30,
) -> Invoice:
    return Invoice(
        invoice_id=uuid.uuid4(),
        campaign_id=pledge.campaign_id,
        pledge_id=pledge.pledge_id,
        payment_intent_id=intent.payment_intent_id if intent else None,
        organization_id=pledge.organization_id,
        invoice_number=number,
        quantity=pledge.quantity,
        unit_price=unit_price,
        amount=unit_price * Decimal(pledge.quantity),
        status=status,
        issue_date=issue_date,
        due_date=issue_date + timedelta(days=due_days),
    )


def make_fulfillment(
    pledge: Pledge, delivery_status: DeliveryStatus = DeliveryStatus.PENDING
) -> CampaignFulfillment:
    return CampaignFulfillment(
        fulfillment_id=uuid.uuid4(),
        campaign_id=pledge.campaign_id,
        pledge_id=pledge.pledge_id,
        delivery_status=delivery_status,
    )
