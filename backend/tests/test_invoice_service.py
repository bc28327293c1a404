"""Tests for invoice numbering, generation and payment recording."""

import uuid
from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from builders import TODAY, make_brackets, make_campaign, make_invoice, make_payment_intent, make_pledge
from groupbuy.models import CampaignStatus, InvoiceStatus, PaymentIntentStatus, PledgeStatus
from groupbuy.repositories.sql import SqlAlchemyInvoiceRepository
from groupbuy.services.exceptions import (
    InvalidInvoiceStatusTransitionError,
    InvoiceNotFoundError,
    InvoiceValidationError,
    PaymentIntentNotFoundError,
)
from groupbuy.services.invoice_service import InvoiceNumberGenerator, InvoiceService

S = PaymentIntentStatus


@pytest.fixture
def locked(uow):
    """LOCKED campaign with two committed pledges, each with a PENDING payment intent."""
    campaign = make_campaign(CampaignStatus.LOCKED)
    brackets = make_brackets(campaign.campaign_id)
    pledges = [make_pledge(campaign.campaign_id, q) for q in (7, 8)]
    intents = [make_payment_intent(pledge=p) for p in pledges]
    uow.seed(campaign, *brackets, *pledges, *intents)
    return campaign, brackets[0], pledges


class TestInvoiceNumbering:

    @pytest.mark.asyncio
    async def test_first_numbers_of_the_month(self, uow):
        generator = InvoiceNumberGenerator(uow.invoices, "INV")

        numbers = await generator.next_numbers(date(2026, 3, 16), 3)

        assert numbers == ["INV-202603-0001", "INV-202603-0002", "INV-202603-0003"]

    @pytest.mark.asyncio
    async def test_continues_from_latest(self, uow):
        pledge = make_pledge(uuid.uuid4(), 1)
        uow.seed(
            make_invoice(pledge, None, number="INV-202603-0041"),
            make_invoice(make_pledge(uuid.uuid4(), 1), None, number="INV-202602-0099"),
        )
        generator = InvoiceNumberGenerator(uow.invoices, "INV")

        assert await generator.next_numbers(date(2026, 3, 1), 2) == [
            "INV-202603-0042",
            "INV-202603-0043",
        ]
        assert await generator.next_numbers(date(2026, 4, 1), 1) == ["INV-202604-0001"]

    @pytest.mark.asyncio
    async def test_custom_prefix(self, uow):
        generator = InvoiceNumberGenerator(uow.invoices, "GB")

        assert await generator.next_numbers(date(2026, 12, 1), 1) == ["GB-202612-0001"]

    @pytest.mark.asyncio
    async def test_sequence_grows_past_four_digits(self, uow):
        uow.seed(
            make_invoice(make_pledge(uuid.uuid4(), 1), None, number="INV-202603-9999"),
            make_invoice(make_pledge(uuid.uuid4(), 1), None, number="INV-202603-10000"),
        )
        generator = InvoiceNumberGenerator(uow.invoices, "INV")

        assert await generator.next_numbers(date(2026, 3, 20), 2) == [
            "INV-202603-10001",
            "INV-202603-10002",
        ]

    @pytest.mark.asyncio
    async def test_latest_number_query_orders_by_length(self):
        session = MagicMock()
        session.execute = AsyncMock(return_value=MagicMock())

        await SqlAlchemyInvoiceRepository(session).find_latest_number_with_prefix("INV-202603-")

        statement = session.execute.await_args.args[0]
        sql = str(statement.compile(dialect=postgresql.dialect()))
        assert "ORDER BY length(invoices.invoice_number) DESC, invoices.invoice_number DESC" in sql


class TestGenerateInvoices:

    @pytest.mark.asyncio
    async def test_one_invoice_per_committed_pledge(self, uow, locked):
        campaign, bracket, pledges = locked
        service = InvoiceService(uow, invoice_prefix="INV", due_days=30)

        invoices = await service.generate_invoices_for_campaign(
            campaign.campaign_id, bracket, issue_date=TODAY
        )

        assert len(invoices) == 2
        by_pledge = {i.pledge_id: i for i in invoices}
        for pledge in pledges:
            invoice = by_pledge[pledge.pledge_id]
            intent = await uow.payment_intents.find_by_pledge_id(pledge.pledge_id)
            assert invoice.status == InvoiceStatus.SENT
            assert invoice.unit_price == Decimal("100.00")
            assert invoice.amount == Decimal("100.00") * pledge.quantity
            assert invoice.payment_intent_id == intent.payment_intent_id
            assert invoice.due_date == TODAY + timedelta(days=30)
        assert sorted(i.invoice_number for i in invoices) == [
            "INV-202603-0001",
            "INV-202603-0002",
        ]
        assert uow.commits == 0

    @pytest.mark.asyncio
    async def test_generation_is_idempotent(self, uow, locked):
        campaign, bracket, _ = locked
        service = InvoiceService(uow)

        first = await service.generate_invoices_for_campaign(campaign.campaign_id, bracket, TODAY)
        second = await service.generate_invoices_for_campaign(campaign.campaign_id, bracket, TODAY)

        assert len(first) == 2
        assert second == []
        assert len(await service.find_all_by_campaign_id(campaign.campaign_id)) == 2

    @pytest.mark.asyncio
    async def test_fills_only_missing_invoices(self, uow, locked):
        campaign, bracket, pledges = locked
        intent = await uow.payment_intents.find_by_pledge_id(pledges[0].pledge_id)
        uow.seed(make_invoice(pledges[0], intent, number="INV-202603-0001"))

        created = await InvoiceService(uow).generate_invoices_for_campaign(
            campaign.campaign_id, bracket, TODAY
        )

        assert [i.pledge_id for i in created] == [pledges[1].pledge_id]
        assert created[0].invoice_number == "INV-202603-0002"

    @pytest.mark.asyncio
    async def test_ignores_uncommitted_pledges(self, uow, locked):
        campaign, bracket, _ = locked
        uow.seed(make_pledge(campaign.campaign_id, 30, PledgeStatus.WITHDRAWN))

        created = await InvoiceService(uow).generate_invoices_for_campaign(
            campaign.campaign_id, bracket, TODAY
        )

        assert len(created) == 2

    @pytest.mark.asyncio
    async def test_missing_payment_intent(self, uow, locked):
        campaign, bracket, _ = locked
        orphan = make_pledge(campaign.campaign_id, 3)
        uow.seed(orphan)

        with pytest.raises(PaymentIntentNotFoundError, match="No payment intent found for pledge"):
            await InvoiceService(uow).generate_invoices_for_campaign(
                campaign.campaign_id, bracket, TODAY
            )


class TestMarkAsPaid:

    def seed_invoice(self, uow, intent_status=S.PENDING, status=InvoiceStatus.SENT):
        pledge = make_pledge(uuid.uuid4(), 5)
        intent = make_payment_intent(intent_status, pledge=pledge)
        invoice = make_invoice(pledge, intent, status=status)
        uow.seed(pledge, intent, invoice)
        return invoice, intent

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "intent_status, expected",
        [
            (S.PENDING, S.SUCCEEDED),
            (S.PROCESSING, S.SUCCEEDED),
            (S.FAILED_RETRY_2, S.SUCCEEDED),
            (S.FAILED_RETRY_3, S.SUCCEEDED),
            (S.SENT_TO_AR, S.COLLECTED_VIA_AR),
        ],
    )
    async def test_settles_payment_intent(self, uow, intent_status, expected):
        invoice, intent = self.seed_invoice(uow, intent_status)

        paid = await InvoiceService(uow).mark_as_paid(
            invoice.invoice_id, Decimal("500"), paid_date=TODAY, notes="wire 8812"
        )

        assert paid.status == InvoiceStatus.PAID
        assert paid.paid_date == TODAY
        assert paid.notes == "wire 8812"
        assert intent.status == expected
        assert uow.commits == 1

    @pytest.mark.asyncio
    async def test_overdue_invoice_can_be_paid(self, uow):
        invoice, _ = self.seed_invoice(uow, status=InvoiceStatus.OVERDUE)

        paid = await InvoiceService(uow).mark_as_paid(invoice.invoice_id, invoice.amount)

        assert paid.status == InvoiceStatus.PAID

    @pytest.mark.asyncio
    async def test_amount_must_match(self, uow):
        invoice, intent = self.seed_invoice(uow)

        with pytest.raises(InvoiceValidationError, match="does not match invoice total"):
            await InvoiceService(uow).mark_as_paid(invoice.invoice_id, Decimal("499.99"))

        assert invoice.status == InvoiceStatus.SENT
        assert intent.status == S.PENDING

    @pytest.mark.asyncio
    @pytest.mark.parametrize("intent_status", [S.SUCCEEDED, S.WRITTEN_OFF])
    async def test_closed_payment_intent(self, uow, intent_status):
        invoice, _ = self.seed_invoice(uow, intent_status)

        with pytest.raises(InvoiceValidationError, match="Cannot mark payment as collected"):
            await InvoiceService(uow).mark_as_paid(invoice.invoice_id, invoice.amount)
        assert invoice.status == InvoiceStatus.SENT

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [InvoiceStatus.PAID, InvoiceStatus.CANCELLED])
    async def test_terminal_invoice(self, uow, status):
        invoice, _ = self.seed_invoice(uow, status=status)

        with pytest.raises(InvalidInvoiceStatusTransitionError):
            await InvoiceService(uow).mark_as_paid(invoice.invoice_id, invoice.amount)

    @pytest.mark.asyncio
    async def test_unknown_invoice(self, uow):
        with pytest.raises(InvoiceNotFoundError):
            await InvoiceService(uow).mark_as_paid(uuid.uuid4(), Decimal("1"))


class TestInvoiceStatusJobs:

    @pytest.mark.asyncio
    async def test_mark_overdue(self, uow):
        old = make_invoice(make_pledge(uuid.uuid4(), 1), None, number="INV-202601-0001",
                           issue_date=TODAY - timedelta(days=40))
        due_today = make_invoice(make_pledge(uuid.uuid4(), 1), None, number="INV-202602-0001",
                                 issue_date=TODAY - timedelta(days=30))
        paid = make_invoice(make_pledge(uuid.uuid4(), 1), None, number="INV-202601-0002",
                            status=InvoiceStatus.PAID, issue_date=TODAY - timedelta(days=40))
        uow.seed(old, due_today, paid)

        count = await InvoiceService(uow).mark_overdue_invoices(TODAY)

        assert count == 1
        assert old.status == InvoiceStatus.OVERDUE
        assert due_today.status == InvoiceStatus.SENT
        assert paid.status == InvoiceStatus.PAID
        assert uow.commits == 1

    @pytest.mark.asyncio
    async def test_nothing_overdue_does_not_commit(self, uow):
        assert await InvoiceService(uow).mark_overdue_invoices(TODAY) == 0
        assert uow.commits == 0

    @pytest.mark.asyncio
    async def test_cancel(self, uow):
        invoice = make_invoice(make_pledge(uuid.uuid4(), 1), None)
        uow.seed(invoice)
        service = InvoiceService(uow)

        cancelled = await service.cancel_invoice(invoice.invoice_id)

        assert cancelled.status == InvoiceStatus.CANCELLED
        with pytest.raises(InvalidInvoiceStatusTransitionError):
            await service.cancel_invoice(invoice.invoice_id)
