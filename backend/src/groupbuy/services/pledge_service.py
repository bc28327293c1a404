"""Pledge aggregation and buyer pledge management."""

import logging
import uuid
from uuid import UUID

from groupbuy.models import Campaign, CampaignStatus, Pledge, PledgeStatus
from groupbuy.models.base import utcnow
from groupbuy.repositories import UnitOfWork
from groupbuy.services.exceptions import (
    CampaignNotFoundError,
    InvalidStateTransitionError,
    PledgeNotFoundError,
    PledgeValidationError,
)

logger = logging.getLogger(__name__)

PLEDGE_OPEN_STATUSES = (CampaignStatus.ACTIVE, CampaignStatus.GRACE_PERIOD)


class PledgeService:
    """Service for pledge totals, bulk withdrawal and the buyer pledge flow."""

    def __init__(self, uow: UnitOfWork):
        self.uow = uow

    # ==================== Aggregation ====================

    async def calculate_total_committed_pledges(self, campaign_id: UUID) -> int:
        return await self.uow.pledges.sum_quantity(campaign_id, [PledgeStatus.COMMITTED])

    async def calculate_total_active_pledges(self, campaign_id: UUID) -> int:
        """PENDING plus COMMITTED quantity, used for display."""
        return await self.uow.pledges.sum_quantity(
            campaign_id, [PledgeStatus.PENDING, PledgeStatus.COMMITTED]
        )

    async def find_all_by_campaign_id_and_status(
        self, campaign_id: UUID, status: PledgeStatus
    ) -> list[Pledge]:
        return await self.uow.pledges.find_by_campaign_id_and_status(
            campaign_id, PledgeStatus.parse(status)
        )

    async def withdraw_all_pending_pledges(self, campaign_id: UUID) -> int:
        """Withdraw every PENDING pledge of a campaign.

        Runs inside the caller's unit of work and does not commit.

        Returns:
            Number of pledges withdrawn
        """
        pending = await self.uow.pledges.find_by_campaign_id_and_status(
            campaign_id, PledgeStatus.PENDING
        )
        for pledge in pending:
            pledge.status = PledgeStatus.WITHDRAWN
            pledge.touch()

        if pending:
            logger.info(f"Withdrew {len(pending)} pending pledges for campaign {campaign_id}")
        return len(pending)

    # ==================== Buyer Operations ====================

    async def create_pledge(
        self, campaign_id: UUID, organization_id: UUID, quantity: int
    ) -> Pledge:
        """Create a PENDING pledge, or reactivate the organization's withdrawn one.

        Raises:
            CampaignNotFoundError: Campaign does not exist
            InvalidStateTransitionError: Campaign is not accepting pledges
            PledgeValidationError: Non-positive quantity or a live pledge already exists
        """
        if quantity is None or quantity <= 0:
            raise PledgeValidationError("Pledge quantity must be positive")

        campaign = await self._get_campaign(campaign_id)
        if campaign.status not in PLEDGE_OPEN_STATUSES:
            raise InvalidStateTransitionError(
                campaign.status,
                CampaignStatus.ACTIVE,
                f"Cannot pledge to campaign {campaign_id} in status {campaign.status.name}",
            )

        existing = await self.uow.pledges.find_by_campaign_and_organization(
            campaign_id, organization_id
        )
        if existing is not None and existing.status != PledgeStatus.WITHDRAWN:
            raise PledgeValidationError(
                f"Organization {organization_id} already has a pledge for campaign {campaign_id}"
            )

        try:
            if existing is not None:
                existing.status = PledgeStatus.PENDING
                existing.quantity = quantity
                existing.committed_at = None
                existing.touch()
                pledge = existing
            else:
                pledge = Pledge(
                    pledge_id=uuid.uuid4(),
                    campaign_id=campaign_id,
                    organization_id=organization_id,
                    quantity=quantity,
                    status=PledgeStatus.PENDING,
                )
                await self.uow.pledges.add(pledge)
            await self.uow.commit()
        except Exception:
            await self.uow.rollback()
            raise

        logger.info(
            f"Pledge {pledge.pledge_id} of {quantity} by organization {organization_id} "
            f"for campaign {campaign_id}"
        )
        return pledge

    async def update_pledge_quantity(
        self, pledge_id: UUID, organization_id: UUID, quantity: int
    ) -> Pledge:
        """Change a live pledge's quantity while the campaign is ACTIVE."""
        if quantity is None or quantity <= 0:
            raise PledgeValidationError("Pledge quantity must be positive")

        pledge = await self._get_owned_pledge(pledge_id, organization_id)
        campaign = await self._get_campaign(pledge.campaign_id)
        self._require_active(campaign)
        if pledge.status == PledgeStatus.WITHDRAWN:
            raise PledgeValidationError(f"Pledge {pledge_id} has been withdrawn")

        try:
            pledge.quantity = quantity
            pledge.touch()
            await self.uow.commit()
        except Exception:
            await self.uow.rollback()
            raise
        return pledge

    async def commit_pledge(self, pledge_id: UUID, organization_id: UUID) -> Pledge:
        """PENDING -> COMMITTED, only during the grace period.

        Raises:
            PledgeNotFoundError: Pledge does not exist
            PledgeValidationError: Wrong owner, or pledge not PENDING
            InvalidStateTransitionError: Campaign is not in GRACE_PERIOD
        """
        pledge = await self._get_owned_pledge(pledge_id, organization_id)
        campaign = await self._get_campaign(pledge.campaign_id)
        if campaign.status != CampaignStatus.GRACE_PERIOD:
            raise InvalidStateTransitionError(
                campaign.status,
                CampaignStatus.GRACE_PERIOD,
                f"Pledges can only be committed during the grace period "
                f"(campaign {campaign.campaign_id} is {campaign.status.name})",
            )
        if pledge.status != PledgeStatus.PENDING:
            raise PledgeValidationError(
                f"Pledge {pledge_id} must be PENDING to commit (current: {pledge.status.name})"
            )

        try:
            pledge.status = PledgeStatus.COMMITTED
            pledge.committed_at = utcnow()
            pledge.touch()
            await self.uow.commit()
        except Exception:
            await self.uow.rollback()
            raise

        logger.info(f"Pledge {pledge_id} committed for campaign {pledge.campaign_id}")
        return pledge

    async def withdraw_pledge(self, pledge_id: UUID, organization_id: UUID) -> Pledge:
        """Withdraw a pledge while the campaign is ACTIVE. Withdrawn pledges are left as is."""
        pledge = await self._get_owned_pledge(pledge_id, organization_id)
        if pledge.status == PledgeStatus.WITHDRAWN:
            return pledge

        campaign = await self._get_campaign(pledge.campaign_id)
        self._require_active(campaign)

        try:
            pledge.status = PledgeStatus.WITHDRAWN
            pledge.touch()
            await self.uow.commit()
        except Exception:
            await self.uow.rollback()
            raise

        logger.info(f"Pledge {pledge_id} withdrawn from campaign {pledge.campaign_id}")
        return pledge

    # ==================== Helpers ====================

    async def _get_campaign(self, campaign_id: UUID) -> Campaign:
        campaign = await self.uow.campaigns.get(campaign_id)
        if campaign is None:
            raise CampaignNotFoundError(f"Campaign not found: {campaign_id}")
        return campaign

    async def _get_owned_pledge(self, pledge_id: UUID, organization_id: UUID) -> Pledge:
        pledge = await self.uow.pledges.get(pledge_id)
        if pledge is None:
            raise PledgeNotFoundError(f"Pledge not found: {pledge_id}")
        if pledge.organization_id != organization_id:
            raise PledgeValidationError("You do not have permission to modify this pledge")
        return pledge

    @staticmethod
    def _require_active(campaign: Campaign) -> None:
        if campaign.status != CampaignStatus.ACTIVE:
            raise InvalidStateTransitionError(
                campaign.status,
                CampaignStatus.ACTIVE,
                f"Pledges can only be changed while campaign {campaign.campaign_id} "
                f"is ACTIVE (current: {campaign.status.name})",
            )
