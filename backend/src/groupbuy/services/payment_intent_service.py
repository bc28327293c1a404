"""Payment intent workflow: bounded retries and accounts-receivable escalation.

Status graph::

    PENDING -> PROCESSING -> SUCCEEDED | FAILED_RETRY_1
    FAILED_RETRY_1 -> PROCESSING | FAILED_RETRY_2
    FAILED_RETRY_2 -> PROCESSING | FAILED_RETRY_3
    FAILED_RETRY_3 -> PROCESSING | SENT_TO_AR
    SENT_TO_AR -> COLLECTED_VIA_AR | WRITTEN_OFF

SUCCEEDED, COLLECTED_VIA_AR and WRITTEN_OFF are terminal. ``retry_count`` is
only ever changed by ``retry_failed_payment``.
"""

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Callable
from uuid import UUID

from groupbuy.middleware.metrics import record_payment_intent_transition
from groupbuy.models import (
    CampaignStatus,
    DiscountBracket,
    Invoice,
    InvoiceStatus,
    PaymentIntent,
    PaymentIntentStatus,
    Pledge,
    PledgeStatus,
)
from groupbuy.repositories import UnitOfWork
from groupbuy.services.exceptions import (
    CampaignNotFoundError,
    IllegalStateError,
    InvalidPaymentStatusTransitionError,
    PaymentIntentNotFoundError,
)

logger = logging.getLogger(__name__)

S = PaymentIntentStatus

VALID_TRANSITIONS: dict[PaymentIntentStatus, frozenset[PaymentIntentStatus]] = {
    S.PENDING: frozenset({S.PROCESSING}),
    S.PROCESSING: frozenset({S.SUCCEEDED, S.FAILED_RETRY_1}),
    S.FAILED_RETRY_1: frozenset({S.PROCESSING, S.FAILED_RETRY_2}),
    S.FAILED_RETRY_2: frozenset({S.PROCESSING, S.FAILED_RETRY_3}),
    S.FAILED_RETRY_3: frozenset({S.PROCESSING, S.SENT_TO_AR}),
    S.SENT_TO_AR: frozenset({S.COLLECTED_VIA_AR, S.WRITTEN_OFF}),
    S.SUCCEEDED: frozenset(),
    S.COLLECTED_VIA_AR: frozenset(),
    S.WRITTEN_OFF: frozenset(),
}

RETRYABLE_STATUSES = frozenset({S.PROCESSING, S.FAILED_RETRY_1, S.FAILED_RETRY_2})

# Reaching one of these pays the linked invoice
COLLECTED_STATUSES = frozenset({S.SUCCEEDED, S.COLLECTED_VIA_AR})
PAYABLE_INVOICE_STATUSES = frozenset({InvoiceStatus.SENT, InvoiceStatus.OVERDUE})

MAX_RETRIES = 3


def can_transition(current: PaymentIntentStatus, target: PaymentIntentStatus) -> bool:
    return target in VALID_TRANSITIONS.get(current, frozenset())


def calculate_payment_amount(pledge: Pledge, bracket: DiscountBracket) -> Decimal:
    """``quantity x unit_price`` in exact decimal arithmetic, keeping the price's scale."""
    return bracket.unit_price * Decimal(pledge.quantity)


class PaymentIntentService:
    """Service for generating payment intents and driving their workflow."""

    def __init__(
        self,
        uow: UnitOfWork,
        max_retries: int = MAX_RETRIES,
        clock: Callable[[], date] = date.today,
    ):
        """Initialize payment intent service.

        Args:
            uow: Unit of work providing the repositories
            max_retries: Length of the retry ladder, fixed at 3 by the status set
            clock: Returns today's date, used as the paid date of settled invoices
        """
        if max_retries != MAX_RETRIES:
            raise ValueError(
                f"max_retries must be {MAX_RETRIES}: the ladder has exactly "
                f"{MAX_RETRIES} FAILED_RETRY states"
            )
        self.uow = uow
        self.max_retries = max_retries
        self.clock = clock

    calculate_payment_amount = staticmethod(calculate_payment_amount)

    # ==================== Generation ====================

    async def generate_payment_intents(
        self, campaign_id: UUID, bracket: DiscountBracket
    ) -> list[PaymentIntent]:
        """Create one PENDING intent per COMMITTED pledge of a LOCKED campaign.

        Pledges that already have an intent keep it, so re-running after a
        partial failure only fills the gaps. Runs inside the caller's unit of
        work and does not commit.

        Args:
            campaign_id: Campaign UUID
            bracket: Winning bracket fixing the unit price

        Returns:
            Intents for every committed pledge, existing and new

        Raises:
            CampaignNotFoundError: Campaign does not exist
            IllegalStateError: Campaign is not LOCKED
        """
        campaign = await self.uow.campaigns.get(campaign_id)
        if campaign is None:
            raise CampaignNotFoundError(f"Campaign with id {campaign_id} not found")
        if campaign.status != CampaignStatus.LOCKED:
            raise IllegalStateError(
                f"Campaign must be locked to generate payment intents. "
                f"Current status: {campaign.status.name}"
            )

        pledges = await self.uow.pledges.find_by_campaign_id_and_status(
            campaign_id, PledgeStatus.COMMITTED
        )

        intents = []
        created = 0
        for pledge in pledges:
            existing = await self.uow.payment_intents.find_by_pledge_id(pledge.pledge_id)
            if existing is not None:
                intents.append(existing)
                continue

            intent = PaymentIntent(
                payment_intent_id=uuid.uuid4(),
                campaign_id=campaign_id,
                pledge_id=pledge.pledge_id,
                organization_id=pledge.organization_id,
                amount=calculate_payment_amount(pledge, bracket),
                status=S.PENDING,
                retry_count=0,
            )
            await self.uow.payment_intents.add(intent)
            intents.append(intent)
            created += 1

        logger.info(
            f"Generated {created} payment intents for campaign {campaign_id} "
            f"({len(intents) - created} already existed)"
        )
        return intents

    # ==================== Workflow ====================

    async def update_payment_status(
        self, payment_intent_id: UUID, new_status: PaymentIntentStatus | str
    ) -> PaymentIntent:
        """Move an intent along one edge of the status graph.

        Args:
            payment_intent_id: Payment intent UUID
            new_status: Target status, as enum member or case-insensitive name

        Raises:
            PaymentIntentNotFoundError: Intent does not exist
            UnknownStatusError: ``new_status`` names no status
            InvalidPaymentStatusTransitionError: Not an edge of the graph
        """
        target = S.parse(new_status)
        intent = await self._get(payment_intent_id)
        self._validate_transition(intent.status, target)
        return await self._apply(intent, target)

    async def retry_failed_payment(self, payment_intent_id: UUID) -> PaymentIntent:
        """Record a failed attempt: bump retry_count and set FAILED_RETRY_{retry_count}.

        Raises:
            IllegalStateError: Retries exhausted, or the intent is not in a retryable state
        """
        intent = await self._get(payment_intent_id)

        if intent.retry_count >= self.max_retries:
            raise IllegalStateError(f"Maximum retries ({self.max_retries}) exceeded")
        if intent.status not in RETRYABLE_STATUSES:
            raise IllegalStateError(f"Cannot retry payment with status {intent.status.name}")

        new_count = intent.retry_count + 1
        return await self._apply(intent, S.failed_retry(new_count), retry_count=new_count)

    async def mark_as_sent_to_ar(self, payment_intent_id: UUID) -> PaymentIntent:
        """Hand an intent that exhausted its retries to accounts receivable.

        Raises:
            IllegalStateError: retry_count below 3, or status is not FAILED_RETRY_3
        """
        intent = await self._get(payment_intent_id)

        if intent.retry_count < self.max_retries:
            raise IllegalStateError(
                f"Payment must have exhausted all {self.max_retries} retries before sending "
                f"to AR. Current retry count: {intent.retry_count}"
            )
        if intent.status != S.FAILED_RETRY_3:
            raise IllegalStateError(
                f"Payment must be in FAILED_RETRY_3 status to send to AR. "
                f"Current status: {intent.status.name}"
            )

        return await self._apply(intent, S.SENT_TO_AR)

    async def record_gateway_outcome(
        self, payment_intent_id: UUID, succeeded: bool
    ) -> PaymentIntent:
        """Apply the payment gateway's report for an attempt in flight.

        Success moves PROCESSING to SUCCEEDED; failure counts as one retry.

        Raises:
            IllegalStateError: The intent has no attempt in flight
        """
        intent = await self._get(payment_intent_id)
        if intent.status != S.PROCESSING:
            raise IllegalStateError(
                f"No payment attempt in progress for {payment_intent_id} "
                f"(status {intent.status.name})"
            )
        if succeeded:
            return await self._apply(intent, S.SUCCEEDED)
        return await self.retry_failed_payment(payment_intent_id)

    async def resolve_ar(self, payment_intent_id: UUID, collected: bool) -> PaymentIntent:
        """Close an AR case as collected or written off."""
        intent = await self._get(payment_intent_id)
        if intent.status != S.SENT_TO_AR:
            raise IllegalStateError(
                f"Payment must be SENT_TO_AR to resolve. Current status: {intent.status.name}"
            )
        target = S.COLLECTED_VIA_AR if collected else S.WRITTEN_OFF
        return await self._apply(intent, target)

    # ==================== Queries ====================

    async def get_payment_intent(self, payment_intent_id: UUID) -> PaymentIntent:
        return await self._get(payment_intent_id)

    async def find_by_pledge_id(self, pledge_id: UUID) -> PaymentIntent | None:
        return await self.uow.payment_intents.find_by_pledge_id(pledge_id)

    async def find_all_by_campaign_id(self, campaign_id: UUID) -> list[PaymentIntent]:
        return await self.uow.payment_intents.find_by_campaign_id(campaign_id)

    async def get_payment_intents_by_status(
        self, campaign_id: UUID, status: PaymentIntentStatus | str
    ) -> list[PaymentIntent]:
        return await self.uow.payment_intents.find_by_campaign_id_and_status(
            campaign_id, S.parse(status)
        )

    # ==================== Helpers ====================

    async def _get(self, payment_intent_id: UUID) -> PaymentIntent:
        intent = await self.uow.payment_intents.get(payment_intent_id)
        if intent is None:
            raise PaymentIntentNotFoundError(
                f"Payment intent with id {payment_intent_id} not found"
            )
        return intent

    @staticmethod
    def _validate_transition(current: PaymentIntentStatus, target: PaymentIntentStatus) -> None:
        if not can_transition(current, target):
            raise InvalidPaymentStatusTransitionError(current, target)

    async def _apply(
        self,
        intent: PaymentIntent,
        target: PaymentIntentStatus,
        retry_count: int | None = None,
    ) -> PaymentIntent:
        """Set status (and retry count), commit, and log the transition.

        Entering SUCCEEDED or COLLECTED_VIA_AR pays the linked invoice in the
        same commit.
        """
        previous = intent.status
        paid_invoice = None
        try:
            intent.status = target
            if retry_count is not None:
                intent.retry_count = retry_count
            intent.touch()
            if target in COLLECTED_STATUSES:
                paid_invoice = await self._pay_linked_invoice(intent)
            await self.uow.commit()
        except Exception:
            await self.uow.rollback()
            raise

        record_payment_intent_transition(previous, target)
        logger.info(
            f"Payment intent {intent.payment_intent_id}: {previous.name} -> {target.name} "
            f"(retry_count={intent.retry_count})"
        )
        if paid_invoice is not None:
            logger.info(
                f"Invoice {paid_invoice.invoice_number} marked as PAID "
                f"({target.name} payment intent {intent.payment_intent_id})"
            )
        return intent

    async def _pay_linked_invoice(self, intent: PaymentIntent) -> Invoice | None:
        invoice = await self.uow.invoices.find_by_pledge_id(intent.pledge_id)
        if invoice is None or invoice.status not in PAYABLE_INVOICE_STATUSES:
            return None
        invoice.status = InvoiceStatus.PAID
        invoice.paid_date = self.clock()
        invoice.touch()
        return invoice
