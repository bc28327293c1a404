"""Invoice generation, numbering and payment recording.

Status graph: SENT -> PAID | OVERDUE | CANCELLED, OVERDUE -> PAID | CANCELLED.
PAID and CANCELLED are terminal.
"""

import logging
import uuid
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from groupbuy.middleware.metrics import record_payment_intent_transition
from groupbuy.models import (
    DiscountBracket,
    Invoice,
    InvoiceStatus,
    PaymentIntent,
    PaymentIntentStatus,
    PledgeStatus,
)
from groupbuy.repositories import InvoiceRepository, UnitOfWork
from groupbuy.services.exceptions import (
    InvalidInvoiceStatusTransitionError,
    InvoiceNotFoundError,
    InvoiceValidationError,
    PaymentIntentNotFoundError,
)

logger = logging.getLogger(__name__)

VALID_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.SENT: frozenset(
        {InvoiceStatus.PAID, InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED}
    ),
    InvoiceStatus.OVERDUE: frozenset({InvoiceStatus.PAID, InvoiceStatus.CANCELLED}),
    InvoiceStatus.PAID: frozenset(),
    InvoiceStatus.CANCELLED: frozenset(),
}

# Intermediate hops taken when an invoice payment settles its payment intent
_COLLECTION_PATHS: dict[PaymentIntentStatus, tuple[PaymentIntentStatus, ...]] = {
    PaymentIntentStatus.PENDING: (PaymentIntentStatus.PROCESSING, PaymentIntentStatus.SUCCEEDED),
    PaymentIntentStatus.PROCESSING: (PaymentIntentStatus.SUCCEEDED,),
    PaymentIntentStatus.FAILED_RETRY_1: (PaymentIntentStatus.PROCESSING, PaymentIntentStatus.SUCCEEDED),
    PaymentIntentStatus.FAILED_RETRY_2: (PaymentIntentStatus.PROCESSING, PaymentIntentStatus.SUCCEEDED),
    PaymentIntentStatus.FAILED_RETRY_3: (PaymentIntentStatus.PROCESSING, PaymentIntentStatus.SUCCEEDED),
    PaymentIntentStatus.SENT_TO_AR: (PaymentIntentStatus.COLLECTED_VIA_AR,),
}


class InvoiceNumberGenerator:
    """Sequential invoice numbers of the form ``{prefix}-YYYYMM-####``.

    The sequence restarts every month and continues from the highest number
    already stored for that month.
    """

    def __init__(self, invoices: InvoiceRepository, prefix: str = "INV"):
        self.invoices = invoices
        self.prefix = prefix

    def month_prefix(self, issue_date: date) -> str:
        return f"{self.prefix}-{issue_date:%Y%m}-"

    async def next_numbers(self, issue_date: date, count: int) -> list[str]:
        month_prefix = self.month_prefix(issue_date)
        latest = await self.invoices.find_latest_number_with_prefix(month_prefix)
        last_sequence = int(latest[len(month_prefix):]) if latest else 0
        return [
            f"{month_prefix}{sequence:04d}"
            for sequence in range(last_sequence + 1, last_sequence + 1 + count)
        ]


class InvoiceService:
    """Service for invoice generation and invoice status changes."""

    def __init__(
        self,
        uow: UnitOfWork,
        invoice_prefix: str = "INV",
        due_days: int = 30,
    ):
        """Initialize invoice service.

        Args:
            uow: Unit of work providing the repositories
            invoice_prefix: Leading part of every invoice number
            due_days: Days between issue date and due date
        """
        self.uow = uow
        self.due_days = due_days
        self.number_generator = InvoiceNumberGenerator(uow.invoices, invoice_prefix)

    async def generate_invoices_for_campaign(
        self,
        campaign_id: UUID,
        bracket: DiscountBracket,
        issue_date: date | None = None,
    ) -> list[Invoice]:
        """Issue one SENT invoice per COMMITTED pledge at the bracket's unit price.

        Pledges that already have an invoice are skipped. Each invoice links
        the pledge's payment intent, which must exist. Runs inside the caller's
        unit of work and does not commit.

        Args:
            campaign_id: Campaign UUID
            bracket: Winning bracket fixing the unit price
            issue_date: Defaults to today

        Returns:
            Newly created invoices only

        Raises:
            PaymentIntentNotFoundError: A committed pledge has no payment intent
        """
        issue_date = issue_date or date.today()
        due_date = issue_date + timedelta(days=self.due_days)

        pledges = await self.uow.pledges.find_by_campaign_id_and_status(
            campaign_id, PledgeStatus.COMMITTED
        )

        pending = []
        for pledge in pledges:
            if await self.uow.invoices.find_by_pledge_id(pledge.pledge_id) is not None:
                continue
            intent = await self.uow.payment_intents.find_by_pledge_id(pledge.pledge_id)
            if intent is None:
                raise PaymentIntentNotFoundError(
                    f"No payment intent found for pledge: {pledge.pledge_id}"
                )
            pending.append((pledge, intent))

        numbers = await self.number_generator.next_numbers(issue_date, len(pending))

        invoices = []
        for (pledge, intent), number in zip(pending, numbers):
            invoice = Invoice(
                invoice_id=uuid.uuid4(),
                campaign_id=campaign_id,
                pledge_id=pledge.pledge_id,
                payment_intent_id=intent.payment_intent_id,
                organization_id=pledge.organization_id,
                invoice_number=number,
                quantity=pledge.quantity,
                unit_price=bracket.unit_price,
                amount=bracket.unit_price * Decimal(pledge.quantity),
                status=InvoiceStatus.SENT,
                issue_date=issue_date,
                due_date=due_date,
            )
            await self.uow.invoices.add(invoice)
            invoices.append(invoice)
            logger.debug(f"Created invoice {number} for pledge {pledge.pledge_id}")

        logger.info(f"Generated {len(invoices)} invoices for campaign {campaign_id}")
        return invoices

    async def find_all_by_campaign_id(self, campaign_id: UUID) -> list[Invoice]:
        return await self.uow.invoices.find_by_campaign_id(campaign_id)

    async def get_invoice(self, invoice_id: UUID) -> Invoice:
        invoice = await self.uow.invoices.get(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(f"Invoice with id {invoice_id} not found")
        return invoice

    async def mark_as_paid(
        self,
        invoice_id: UUID,
        amount: Decimal,
        paid_date: date | None = None,
        notes: str | None = None,
    ) -> Invoice:
        """Record full payment of an invoice and settle its payment intent.

        The payment intent walks legal edges to SUCCEEDED, or to
        COLLECTED_VIA_AR when the debt was with accounts receivable.

        Raises:
            InvalidInvoiceStatusTransitionError: Invoice is not SENT or OVERDUE
            InvoiceValidationError: Amount mismatch, or the payment intent is already closed
        """
        invoice = await self.get_invoice(invoice_id)
        self._validate_transition(invoice.status, InvoiceStatus.PAID)

        if Decimal(amount) != invoice.amount:
            raise InvoiceValidationError(
                f"Payment amount {amount} does not match invoice total {invoice.amount}"
            )

        intent = None
        path: tuple[PaymentIntentStatus, ...] = ()
        if invoice.payment_intent_id is not None:
            intent = await self.uow.payment_intents.get(invoice.payment_intent_id)
            if intent is None:
                raise PaymentIntentNotFoundError(
                    f"Payment intent with id {invoice.payment_intent_id} not found"
                )
            path = self._collection_path(intent)

        hops = []
        try:
            invoice.status = InvoiceStatus.PAID
            invoice.paid_date = paid_date or date.today()
            if notes is not None:
                invoice.notes = notes
            invoice.touch()

            if intent is not None:
                for target in path:
                    hops.append((intent.status, target))
                    intent.status = target
                intent.touch()

            await self.uow.commit()
        except Exception:
            await self.uow.rollback()
            raise

        for previous, target in hops:
            record_payment_intent_transition(previous, target)
        logger.info(f"Invoice {invoice.invoice_number} marked as PAID")
        return invoice

    async def cancel_invoice(self, invoice_id: UUID) -> Invoice:
        invoice = await self.get_invoice(invoice_id)
        self._validate_transition(invoice.status, InvoiceStatus.CANCELLED)

        try:
            invoice.status = InvoiceStatus.CANCELLED
            invoice.touch()
            await self.uow.commit()
        except Exception:
            await self.uow.rollback()
            raise

        logger.info(f"Invoice {invoice.invoice_number} cancelled")
        return invoice

    async def mark_overdue_invoices(self, today: date | None = None) -> int:
        """Move SENT invoices past their due date to OVERDUE.

        Returns:
            Number of invoices marked overdue
        """
        today = today or date.today()
        overdue = await self.uow.invoices.find_by_status_due_before(InvoiceStatus.SENT, today)
        if not overdue:
            return 0

        try:
            for invoice in overdue:
                invoice.status = InvoiceStatus.OVERDUE
                invoice.touch()
            await self.uow.commit()
        except Exception:
            await self.uow.rollback()
            raise

        for invoice in overdue:
            logger.info(f"Invoice {invoice.invoice_number} marked as OVERDUE")
        return len(overdue)

    @staticmethod
    def _validate_transition(current: InvoiceStatus, target: InvoiceStatus) -> None:
        if target not in VALID_TRANSITIONS.get(current, frozenset()):
            raise InvalidInvoiceStatusTransitionError(current, target)

    @staticmethod
    def _collection_path(intent: PaymentIntent) -> tuple[PaymentIntentStatus, ...]:
        path = _COLLECTION_PATHS.get(intent.status)
        if path is None:
            raise InvoiceValidationError(
                f"Cannot mark payment as collected from PaymentIntent status: {intent.status.name}"
            )
        return path
