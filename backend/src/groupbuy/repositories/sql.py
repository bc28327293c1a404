"""SQLAlchemy implementations of the repository protocols."""

import functools
import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from groupbuy.models import (
    Campaign,
    CampaignFulfillment,
    CampaignStatus,
    DiscountBracket,
    Invoice,
    InvoiceStatus,
    PaymentIntent,
    PaymentIntentStatus,
    Pledge,
    PledgeStatus,
)
from groupbuy.services.exceptions import ConcurrentModificationError

logger = logging.getLogger(__name__)


def translate_conflicts(func_):
    """Surface optimistic-lock and unique-constraint failures as ConcurrentModificationError.

    Queries autoflush pending changes, so a conflicting write can fail in any
    repository call, not only in commit.
    """

    @functools.wraps(func_)
    async def wrapper(*args, **kwargs):
        try:
            return await func_(*args, **kwargs)
        except StaleDataError as e:
            raise ConcurrentModificationError(
                "Row was modified by a concurrent transaction"
            ) from e
        except IntegrityError as e:
            raise ConcurrentModificationError(
                f"Conflicting write rejected by the database: {e.orig}"
            ) from e

    return wrapper


class _SessionRepository:

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _all(self, stmt) -> list:
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def _one_or_none(self, stmt):
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()


class SqlAlchemyCampaignRepository(_SessionRepository):

    @translate_conflicts
    async def get(self, campaign_id: UUID) -> Optional[Campaign]:
        return await self.session.get(Campaign, campaign_id)

    async def add(self, campaign: Campaign) -> None:
        self.session.add(campaign)

    @translate_conflicts
    async def find_active_ending_on_or_before(self, cutoff: date) -> list[Campaign]:
        return await self._all(
            select(Campaign)
            .where(Campaign.status == CampaignStatus.ACTIVE, Campaign.end_date <= cutoff)
            .order_by(Campaign.end_date)
        )

    @translate_conflicts
    async def find_grace_period_ended_before(self, cutoff: date) -> list[Campaign]:
        return await self._all(
            select(Campaign)
            .where(
                Campaign.status == CampaignStatus.GRACE_PERIOD,
                Campaign.grace_period_end_date < cutoff,
            )
            .order_by(Campaign.grace_period_end_date)
        )


class SqlAlchemyDiscountBracketRepository(_SessionRepository):

    @translate_conflicts
    async def find_by_campaign_id(self, campaign_id: UUID) -> list[DiscountBracket]:
        return await self._all(
            select(DiscountBracket)
            .where(DiscountBracket.campaign_id == campaign_id)
            .order_by(DiscountBracket.bracket_order)
        )

    @translate_conflicts
    async def replace_for_campaign(
        self, campaign_id: UUID, brackets: Iterable[DiscountBracket]
    ) -> None:
        await self.session.execute(
            delete(DiscountBracket).where(DiscountBracket.campaign_id == campaign_id)
        )
        self.session.add_all(list(brackets))


class SqlAlchemyPledgeRepository(_SessionRepository):

    @translate_conflicts
    async def get(self, pledge_id: UUID) -> Optional[Pledge]:
        return await self.session.get(Pledge, pledge_id)

    async def add(self, pledge: Pledge) -> None:
        self.session.add(pledge)

    @translate_conflicts
    async def find_by_campaign_and_organization(
        self, campaign_id: UUID, organization_id: UUID
    ) -> Optional[Pledge]:
        return await self._one_or_none(
            select(Pledge).where(
                Pledge.campaign_id == campaign_id,
                Pledge.organization_id == organization_id,
            )
        )

    @translate_conflicts
    async def find_by_campaign_id_and_status(
        self, campaign_id: UUID, status: PledgeStatus
    ) -> list[Pledge]:
        return await self._all(
            select(Pledge)
            .where(Pledge.campaign_id == campaign_id, Pledge.status == status)
            .order_by(Pledge.created_at)
        )

    @translate_conflicts
    async def sum_quantity(self, campaign_id: UUID, statuses: Iterable[PledgeStatus]) -> int:
        result = await self.session.execute(
            select(func.coalesce(func.sum(Pledge.quantity), 0)).where(
                Pledge.campaign_id == campaign_id,
                Pledge.status.in_(list(statuses)),
            )
        )
        return int(result.scalar_one())


class SqlAlchemyInvoiceRepository(_SessionRepository):

    @translate_conflicts
    async def get(self, invoice_id: UUID) -> Optional[Invoice]:
        return await self.session.get(Invoice, invoice_id)

    async def add(self, invoice: Invoice) -> None:
        self.session.add(invoice)

    @translate_conflicts
    async def find_by_campaign_id(self, campaign_id: UUID) -> list[Invoice]:
        return await self._all(
            select(Invoice)
            .where(Invoice.campaign_id == campaign_id)
            .order_by(Invoice.invoice_number)
        )

    @translate_conflicts
    async def find_by_pledge_id(self, pledge_id: UUID) -> Optional[Invoice]:
        return await self._one_or_none(select(Invoice).where(Invoice.pledge_id == pledge_id))

    @translate_conflicts
    async def find_latest_number_with_prefix(self, prefix: str) -> Optional[str]:
        # Longer sequences sort after shorter ones once past 9999
        result = await self.session.execute(
            select(Invoice.invoice_number)
            .where(Invoice.invoice_number.startswith(prefix, autoescape=True))
            .order_by(func.length(Invoice.invoice_number).desc(), Invoice.invoice_number.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    @translate_conflicts
    async def find_by_status_due_before(
        self, status: InvoiceStatus, cutoff: date
    ) -> list[Invoice]:
        return await self._all(
            select(Invoice)
            .where(Invoice.status == status, Invoice.due_date < cutoff)
            .order_by(Invoice.due_date)
        )


class SqlAlchemyPaymentIntentRepository(_SessionRepository):

    @translate_conflicts
    async def get(self, payment_intent_id: UUID) -> Optional[PaymentIntent]:
        return await self.session.get(PaymentIntent, payment_intent_id)

    async def add(self, payment_intent: PaymentIntent) -> None:
        self.session.add(payment_intent)

    @translate_conflicts
    async def find_by_pledge_id(self, pledge_id: UUID) -> Optional[PaymentIntent]:
        return await self._one_or_none(
            select(PaymentIntent).where(PaymentIntent.pledge_id == pledge_id)
        )

    @translate_conflicts
    async def find_by_campaign_id(self, campaign_id: UUID) -> list[PaymentIntent]:
        return await self._all(
            select(PaymentIntent)
            .where(PaymentIntent.campaign_id == campaign_id)
            .order_by(PaymentIntent.created_at)
        )

    @translate_conflicts
    async def find_by_campaign_id_and_status(
        self, campaign_id: UUID, status: PaymentIntentStatus
    ) -> list[PaymentIntent]:
        return await self._all(
            select(PaymentIntent).where(
                PaymentIntent.campaign_id == campaign_id,
                PaymentIntent.status == status,
            )
        )

    @translate_conflicts
    async def find_by_statuses(
        self, statuses: Iterable[PaymentIntentStatus]
    ) -> list[PaymentIntent]:
        return await self._all(
            select(PaymentIntent)
            .where(PaymentIntent.status.in_(list(statuses)))
            .order_by(PaymentIntent.updated_at)
        )


class SqlAlchemyFulfillmentRepository(_SessionRepository):

    @translate_conflicts
    async def find_by_campaign_id(self, campaign_id: UUID) -> list[CampaignFulfillment]:
        return await self._all(
            select(CampaignFulfillment).where(CampaignFulfillment.campaign_id == campaign_id)
        )


class SqlAlchemyUnitOfWork:
    """Unit of work over a single AsyncSession."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.campaigns = SqlAlchemyCampaignRepository(session)
        self.brackets = SqlAlchemyDiscountBracketRepository(session)
        self.pledges = SqlAlchemyPledgeRepository(session)
        self.invoices = SqlAlchemyInvoiceRepository(session)
        self.payment_intents = SqlAlchemyPaymentIntentRepository(session)
        self.fulfillments = SqlAlchemyFulfillmentRepository(session)

    async def commit(self) -> None:
        try:
            await translate_conflicts(self.session.commit)()
        except ConcurrentModificationError:
            logger.warning("Commit lost to a concurrent writer, rolling back")
            await self.session.rollback()
            raise

    async def rollback(self) -> None:
        await self.session.rollback()


def unit_of_work_factory(session_maker: async_sessionmaker):
    """Build a callable opening one SqlAlchemyUnitOfWork per ``async with`` block.

    Uncommitted work is rolled back when the block exits.
    """

    @asynccontextmanager
    async def unit_of_work():
        async with session_maker() as session:
            yield SqlAlchemyUnitOfWork(session)

    return unit_of_work
