"""
Repository Protocols (Interfaces)

The engine services depend only on these contracts. ``SqlAlchemyUnitOfWork``
implements them over one ``AsyncSession``; tests substitute in-memory fakes.
No import-time I/O - safe to import anywhere.
"""

from datetime import date
from typing import Iterable, Optional, Protocol, runtime_checkable
from uuid import UUID

from groupbuy.models import (
    Campaign,
    CampaignFulfillment,
    DiscountBracket,
    Invoice,
    InvoiceStatus,
    PaymentIntent,
    PaymentIntentStatus,
    Pledge,
    PledgeStatus,
)


@runtime_checkable
class CampaignRepository(Protocol):

    async def get(self, campaign_id: UUID) -> Optional[Campaign]:
        ...

    async def add(self, campaign: Campaign) -> None:
        ...

    async def find_active_ending_on_or_before(self, cutoff: date) -> list[Campaign]:
        """ACTIVE campaigns whose end_date <= cutoff."""
        ...

    async def find_grace_period_ended_before(self, cutoff: date) -> list[Campaign]:
        """GRACE_PERIOD campaigns whose grace_period_end_date < cutoff."""
        ...


@runtime_checkable
class DiscountBracketRepository(Protocol):

    async def find_by_campaign_id(self, campaign_id: UUID) -> list[DiscountBracket]:
        """Brackets of a campaign ordered by bracket_order."""
        ...

    async def replace_for_campaign(
        self, campaign_id: UUID, brackets: Iterable[DiscountBracket]
    ) -> None:
        ...


@runtime_checkable
class PledgeRepository(Protocol):

    async def get(self, pledge_id: UUID) -> Optional[Pledge]:
        ...

    async def add(self, pledge: Pledge) -> None:
        ...

    async def find_by_campaign_and_organization(
        self, campaign_id: UUID, organization_id: UUID
    ) -> Optional[Pledge]:
        ...

    async def find_by_campaign_id_and_status(
        self, campaign_id: UUID, status: PledgeStatus
    ) -> list[Pledge]:
        ...

    async def sum_quantity(self, campaign_id: UUID, statuses: Iterable[PledgeStatus]) -> int:
        """Total pledged quantity over the given statuses (0 when none)."""
        ...


@runtime_checkable
class InvoiceRepository(Protocol):

    async def get(self, invoice_id: UUID) -> Optional[Invoice]:
        ...

    async def add(self, invoice: Invoice) -> None:
        ...

    async def find_by_campaign_id(self, campaign_id: UUID) -> list[Invoice]:
        ...

    async def find_by_pledge_id(self, pledge_id: UUID) -> Optional[Invoice]:
        ...

    async def find_latest_number_with_prefix(self, prefix: str) -> Optional[str]:
        """Highest invoice number starting with ``prefix``, comparing sequences numerically."""
        ...

    async def find_by_status_due_before(
        self, status: InvoiceStatus, cutoff: date
    ) -> list[Invoice]:
        ...


@runtime_checkable
class PaymentIntentRepository(Protocol):

    async def get(self, payment_intent_id: UUID) -> Optional[PaymentIntent]:
        ...

    async def add(self, payment_intent: PaymentIntent) -> None:
        ...

    async def find_by_pledge_id(self, pledge_id: UUID) -> Optional[PaymentIntent]:
        ...

    async def find_by_campaign_id(self, campaign_id: UUID) -> list[PaymentIntent]:
        ...

    async def find_by_campaign_id_and_status(
        self, campaign_id: UUID, status: PaymentIntentStatus
    ) -> list[PaymentIntent]:
        ...

    async def find_by_statuses(
        self, statuses: Iterable[PaymentIntentStatus]
    ) -> list[PaymentIntent]:
        ...


@runtime_checkable
class FulfillmentRepository(Protocol):

    async def find_by_campaign_id(self, campaign_id: UUID) -> list[CampaignFulfillment]:
        ...


@runtime_checkable
class UnitOfWork(Protocol):
    """One transaction spanning every repository.

    Mutations made to loaded entities and entities passed to ``add`` become
    durable on ``commit``. A stale write or duplicate row surfaces as
    ``ConcurrentModificationError``.
    """

    campaigns: CampaignRepository
    brackets: DiscountBracketRepository
    pledges: PledgeRepository
    invoices: InvoiceRepository
    payment_intents: PaymentIntentRepository
    fulfillments: FulfillmentRepository

    async def commit(self) -> None:
        ...

    async def rollback(self) -> None:
        ...
