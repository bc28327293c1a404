"""Campaign state machine.

    DRAFT -> ACTIVE -> GRACE_PERIOD -> LOCKED | CANCELLED
    LOCKED -> DONE
    DRAFT | ACTIVE | GRACE_PERIOD -> CANCELLED

DONE and CANCELLED are terminal. Each operation is one unit of work: load,
validate, mutate, commit. Locking generates payment intents and invoices in
the same transaction as the status change.
"""

import logging
from datetime import date, timedelta
from typing import Callable
from uuid import UUID

from groupbuy.middleware.metrics import record_campaign_transition, record_invoices_generated
from groupbuy.models import Campaign, CampaignStatus, DiscountBracket, InvoiceStatus, PledgeStatus
from groupbuy.repositories import UnitOfWork
from groupbuy.services.bracket_service import DiscountBracketService, find_bracket_for_quantity
from groupbuy.services.exceptions import (
    CampaignNotFoundError,
    CampaignValidationError,
    IllegalStateError,
    InvalidStateTransitionError,
)
from groupbuy.services.fulfillment_service import FulfillmentService
from groupbuy.services.invoice_service import InvoiceService
from groupbuy.services.payment_intent_service import PaymentIntentService
from groupbuy.services.pledge_service import PledgeService

logger = logging.getLogger(__name__)

LOCKABLE_STATUSES = frozenset({CampaignStatus.ACTIVE, CampaignStatus.GRACE_PERIOD})
CANCELLABLE_STATUSES = frozenset(
    {CampaignStatus.DRAFT, CampaignStatus.ACTIVE, CampaignStatus.GRACE_PERIOD}
)


class CampaignLifecycleService:
    """Owns campaign status and enforces the lifecycle graph."""

    def __init__(
        self,
        uow: UnitOfWork,
        grace_period_days: int = 3,
        invoice_service: InvoiceService | None = None,
        payment_intent_service: PaymentIntentService | None = None,
        clock: Callable[[], date] = date.today,
    ):
        """Initialize lifecycle service.

        Args:
            uow: Unit of work shared with every collaborating service
            grace_period_days: Days after end_date during which pledges may still be committed
            invoice_service: Invoice generator (built over ``uow`` if omitted)
            payment_intent_service: Payment workflow (built over ``uow`` if omitted)
            clock: Returns today's date
        """
        self.uow = uow
        self.grace_period_days = grace_period_days
        self.clock = clock
        self.brackets = DiscountBracketService(uow)
        self.pledges = PledgeService(uow)
        self.fulfillments = FulfillmentService(uow)
        self.invoices = invoice_service or InvoiceService(uow)
        self.payment_intents = payment_intent_service or PaymentIntentService(uow, clock=clock)

    async def get_campaign(self, campaign_id: UUID) -> Campaign:
        campaign = await self.uow.campaigns.get(campaign_id)
        if campaign is None:
            raise CampaignNotFoundError(f"Campaign with id {campaign_id} not found")
        return campaign

    # ==================== Transitions ====================

    async def publish(self, campaign_id: UUID) -> Campaign:
        """DRAFT -> ACTIVE.

        Raises:
            CampaignValidationError: No brackets, start date in the future, or end date passed
        """
        campaign = await self.get_campaign(campaign_id)
        self._require_status(campaign, CampaignStatus.ACTIVE, {CampaignStatus.DRAFT})

        brackets = await self.brackets.get_all_brackets(campaign_id)
        if not brackets:
            raise CampaignValidationError(
                "Campaign must have at least one discount bracket to be published"
            )
        today = self.clock()
        if campaign.start_date > today:
            raise CampaignValidationError(
                "Campaign start date must be on or before today to publish"
            )
        if campaign.end_date < today:
            raise CampaignValidationError(
                "Campaign end date must be today or later to publish"
            )

        return await self._transition(campaign, CampaignStatus.ACTIVE)

    async def start_grace_period(self, campaign_id: UUID) -> Campaign:
        """ACTIVE -> GRACE_PERIOD, fixing grace_period_end_date."""
        campaign = await self.get_campaign(campaign_id)
        self._require_status(campaign, CampaignStatus.GRACE_PERIOD, {CampaignStatus.ACTIVE})

        grace_end = campaign.end_date + timedelta(days=self.grace_period_days)

        async def apply() -> None:
            campaign.grace_period_end_date = grace_end

        campaign = await self._transition(campaign, CampaignStatus.GRACE_PERIOD, apply)
        logger.info(f"Grace period for campaign {campaign_id} ends on {grace_end}")
        return campaign

    async def evaluate_campaign(self, campaign_id: UUID) -> Campaign:
        """GRACE_PERIOD -> LOCKED when the committed total reaches bracket 0, else CANCELLED.

        Pending pledges are withdrawn either way.
        """
        campaign = await self.get_campaign(campaign_id)
        self._require_status(campaign, CampaignStatus.LOCKED, {CampaignStatus.GRACE_PERIOD})

        total, minimum, brackets = await self._viability(campaign_id)
        if total >= minimum:
            winner = self._winning_bracket(brackets, total)
            logger.info(
                f"Campaign {campaign_id} minimum met ({total} >= {minimum}), "
                f"locking at bracket {winner.bracket_order}"
            )
            return await self._lock(campaign, winner)

        logger.info(f"Campaign {campaign_id} minimum not met ({total} < {minimum}), cancelling")

        async def apply() -> None:
            await self.pledges.withdraw_all_pending_pledges(campaign_id)

        return await self._transition(campaign, CampaignStatus.CANCELLED, apply)

    async def lock_campaign(self, campaign_id: UUID) -> Campaign:
        """ACTIVE | GRACE_PERIOD -> LOCKED ahead of the scheduled evaluation.

        Raises:
            CampaignValidationError: Minimum viable quantity not met (never cancels)
        """
        campaign = await self.get_campaign(campaign_id)
        self._require_status(campaign, CampaignStatus.LOCKED, LOCKABLE_STATUSES)

        total, minimum, brackets = await self._viability(campaign_id)
        if total < minimum:
            raise CampaignValidationError(
                f"Cannot lock campaign: minimum pledges not met ({total} < {minimum})"
            )
        winner = self._winning_bracket(brackets, total)
        return await self._lock(campaign, winner)

    async def cancel_campaign(self, campaign_id: UUID) -> Campaign:
        campaign = await self.get_campaign(campaign_id)
        self._require_status(campaign, CampaignStatus.CANCELLED, CANCELLABLE_STATUSES)

        had_pledging = campaign.status != CampaignStatus.DRAFT

        async def apply() -> None:
            if had_pledging:
                await self.pledges.withdraw_all_pending_pledges(campaign_id)

        return await self._transition(campaign, CampaignStatus.CANCELLED, apply)

    async def complete_campaign(self, campaign_id: UUID) -> Campaign:
        """LOCKED -> DONE once every committed pledge is invoiced-and-paid and delivered.

        Raises:
            CampaignValidationError: Unpaid invoices, or undelivered fulfillment
        """
        campaign = await self.get_campaign(campaign_id)
        self._require_status(campaign, CampaignStatus.DONE, {CampaignStatus.LOCKED})

        pledges = await self.pledges.find_all_by_campaign_id_and_status(
            campaign_id, PledgeStatus.COMMITTED
        )
        pledge_ids = {pledge.pledge_id for pledge in pledges}

        invoices = await self.invoices.find_all_by_campaign_id(campaign_id)
        paid = {inv.pledge_id for inv in invoices if inv.status == InvoiceStatus.PAID}
        if not pledge_ids <= paid:
            raise CampaignValidationError(
                "Cannot complete campaign: not all invoices have been paid"
            )

        if not await self.fulfillments.are_all_delivered(campaign_id, pledge_ids):
            raise CampaignValidationError(
                "Cannot complete campaign: not all fulfillments have been delivered"
            )

        return await self._transition(campaign, CampaignStatus.DONE)

    async def recover_settlement(self, campaign_id: UUID) -> int:
        """Create payment intents and invoices missing from a LOCKED campaign.

        Returns:
            Number of invoices created
        """
        campaign = await self.get_campaign(campaign_id)
        if campaign.status != CampaignStatus.LOCKED:
            raise IllegalStateError(
                f"Settlement can only be recovered for a LOCKED campaign. "
                f"Current status: {campaign.status.name}"
            )

        total, _, brackets = await self._viability(campaign_id)
        winner = self._winning_bracket(brackets, total)

        try:
            await self.payment_intents.generate_payment_intents(campaign_id, winner)
            invoices = await self.invoices.generate_invoices_for_campaign(
                campaign_id, winner, issue_date=self.clock()
            )
            if invoices:
                campaign.touch()
            await self.uow.commit()
        except Exception:
            await self.uow.rollback()
            raise

        record_invoices_generated(len(invoices))
        logger.info(f"Recovered settlement for campaign {campaign_id}: {len(invoices)} invoices created")
        return len(invoices)

    # ==================== Helpers ====================

    @staticmethod
    def _require_status(campaign: Campaign, target: CampaignStatus, allowed) -> None:
        if campaign.status not in allowed:
            raise InvalidStateTransitionError(campaign.status, target)

    async def _viability(self, campaign_id: UUID) -> tuple[int, int, list[DiscountBracket]]:
        """Committed total, minimum viable quantity and the bracket table."""
        total = await self.pledges.calculate_total_committed_pledges(campaign_id)
        brackets = await self.brackets.get_all_brackets(campaign_id)
        minimum = brackets[0].min_quantity if brackets else 0
        return total, minimum, brackets

    @staticmethod
    def _winning_bracket(brackets: list[DiscountBracket], total: int) -> DiscountBracket:
        winner = find_bracket_for_quantity(brackets, total)
        if winner is None:
            raise CampaignValidationError("No applicable bracket found")
        return winner

    async def _lock(self, campaign: Campaign, winner: DiscountBracket) -> Campaign:
        created = []

        async def apply() -> None:
            await self.pledges.withdraw_all_pending_pledges(campaign.campaign_id)
            await self.payment_intents.generate_payment_intents(campaign.campaign_id, winner)
            created.extend(
                await self.invoices.generate_invoices_for_campaign(
                    campaign.campaign_id, winner, issue_date=self.clock()
                )
            )

        campaign = await self._transition(campaign, CampaignStatus.LOCKED, apply)
        record_invoices_generated(len(created))
        return campaign

    async def _transition(self, campaign: Campaign, target: CampaignStatus, apply=None) -> Campaign:
        """Set the new status, run side effects in the same unit of work and commit.

        Status is assigned before ``apply`` runs so that collaborators see the
        campaign in its new state.
        """
        previous = campaign.status
        try:
            campaign.status = target
            campaign.touch()
            if apply is not None:
                await apply()
            await self.uow.commit()
        except Exception:
            await self.uow.rollback()
            raise

        record_campaign_transition(previous, target)
        logger.info(f"Campaign {campaign.campaign_id}: {previous.name} -> {target.name}")
        return campaign
