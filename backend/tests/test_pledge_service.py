"""Tests for pledge aggregation and the buyer pledge flow."""

import uuid

import pytest

from builders import make_campaign, make_pledge
from groupbuy.models import CampaignStatus, PledgeStatus
from groupbuy.services.exceptions import (
    CampaignNotFoundError,
    InvalidStateTransitionError,
    PledgeNotFoundError,
    PledgeValidationError,
    UnknownStatusError,
)
from groupbuy.services.pledge_service import PledgeService


class TestPledgeAggregation:

    @pytest.mark.asyncio
    async def test_totals(self, uow, active_campaign):
        campaign_id = active_campaign.campaign_id
        uow.seed(
            make_pledge(campaign_id, 4),
            make_pledge(campaign_id, 6),
            make_pledge(campaign_id, 3, PledgeStatus.PENDING),
            make_pledge(campaign_id, 50, PledgeStatus.WITHDRAWN),
            make_pledge(uuid.uuid4(), 99),
        )
        service = PledgeService(uow)

        assert await service.calculate_total_committed_pledges(campaign_id) == 10
        assert await service.calculate_total_active_pledges(campaign_id) == 13

    @pytest.mark.asyncio
    async def test_totals_without_pledges(self, uow, active_campaign):
        service = PledgeService(uow)

        assert await service.calculate_total_committed_pledges(active_campaign.campaign_id) == 0

    @pytest.mark.asyncio
    async def test_find_by_status_accepts_names(self, uow, active_campaign):
        campaign_id = active_campaign.campaign_id
        pending = make_pledge(campaign_id, 2, PledgeStatus.PENDING)
        uow.seed(pending, make_pledge(campaign_id, 5))
        service = PledgeService(uow)

        found = await service.find_all_by_campaign_id_and_status(campaign_id, "PENDING")

        assert found == [pending]

    @pytest.mark.asyncio
    async def test_find_by_unknown_status(self, uow, active_campaign):
        with pytest.raises(UnknownStatusError):
            await PledgeService(uow).find_all_by_campaign_id_and_status(
                active_campaign.campaign_id, "SHIPPED"
            )

    @pytest.mark.asyncio
    async def test_withdraw_all_pending_does_not_commit(self, uow, active_campaign):
        campaign_id = active_campaign.campaign_id
        pending = [make_pledge(campaign_id, q, PledgeStatus.PENDING) for q in (1, 2, 3)]
        committed = make_pledge(campaign_id, 5)
        uow.seed(*pending, committed)

        withdrawn = await PledgeService(uow).withdraw_all_pending_pledges(campaign_id)

        assert withdrawn == 3
        assert all(p.status == PledgeStatus.WITHDRAWN for p in pending)
        assert committed.status == PledgeStatus.COMMITTED
        assert uow.commits == 0


class TestCreatePledge:

    @pytest.mark.asyncio
    async def test_create_pending_pledge(self, uow, active_campaign):
        organization_id = uuid.uuid4()

        pledge = await PledgeService(uow).create_pledge(
            active_campaign.campaign_id, organization_id, 12
        )

        assert pledge.status == PledgeStatus.PENDING
        assert pledge.quantity == 12
        assert pledge.organization_id == organization_id
        assert await uow.pledges.get(pledge.pledge_id) is pledge
        assert uow.commits == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quantity", [0, -3])
    async def test_quantity_must_be_positive(self, uow, active_campaign, quantity):
        with pytest.raises(PledgeValidationError, match="positive"):
            await PledgeService(uow).create_pledge(
                active_campaign.campaign_id, uuid.uuid4(), quantity
            )

    @pytest.mark.asyncio
    async def test_one_live_pledge_per_organization(self, uow, active_campaign):
        organization_id = uuid.uuid4()
        service = PledgeService(uow)
        await service.create_pledge(active_campaign.campaign_id, organization_id, 5)

        with pytest.raises(PledgeValidationError, match="already has a pledge"):
            await service.create_pledge(active_campaign.campaign_id, organization_id, 7)

    @pytest.mark.asyncio
    async def test_withdrawn_pledge_is_reactivated(self, uow, active_campaign):
        organization_id = uuid.uuid4()
        withdrawn = make_pledge(
            active_campaign.campaign_id, 5, PledgeStatus.WITHDRAWN, organization_id
        )
        uow.seed(withdrawn)

        pledge = await PledgeService(uow).create_pledge(
            active_campaign.campaign_id, organization_id, 9
        )

        assert pledge is withdrawn
        assert pledge.status == PledgeStatus.PENDING
        assert pledge.quantity == 9

    @pytest.mark.asyncio
    async def test_pledging_allowed_during_grace_period(self, uow, grace_campaign):
        pledge = await PledgeService(uow).create_pledge(
            grace_campaign.campaign_id, uuid.uuid4(), 3
        )

        assert pledge.status == PledgeStatus.PENDING

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status", [CampaignStatus.DRAFT, CampaignStatus.LOCKED, CampaignStatus.CANCELLED]
    )
    async def test_closed_campaign_rejects_pledges(self, uow, status):
        campaign = make_campaign(status)
        uow.seed(campaign)

        with pytest.raises(InvalidStateTransitionError, match="Cannot pledge"):
            await PledgeService(uow).create_pledge(campaign.campaign_id, uuid.uuid4(), 3)

    @pytest.mark.asyncio
    async def test_unknown_campaign(self, uow):
        with pytest.raises(CampaignNotFoundError):
            await PledgeService(uow).create_pledge(uuid.uuid4(), uuid.uuid4(), 3)


class TestPledgeChanges:

    @pytest.mark.asyncio
    async def test_commit_during_grace_period(self, uow, grace_campaign):
        pledge = make_pledge(grace_campaign.campaign_id, 4, PledgeStatus.PENDING)
        uow.seed(pledge)

        committed = await PledgeService(uow).commit_pledge(
            pledge.pledge_id, pledge.organization_id
        )

        assert committed.status == PledgeStatus.COMMITTED
        assert committed.committed_at is not None
        assert uow.commits == 1

    @pytest.mark.asyncio
    async def test_commit_outside_grace_period(self, uow, active_campaign):
        pledge = make_pledge(active_campaign.campaign_id, 4, PledgeStatus.PENDING)
        uow.seed(pledge)

        with pytest.raises(InvalidStateTransitionError, match="grace period"):
            await PledgeService(uow).commit_pledge(pledge.pledge_id, pledge.organization_id)
        assert pledge.status == PledgeStatus.PENDING

    @pytest.mark.asyncio
    async def test_commit_twice(self, uow, grace_campaign):
        pledge = make_pledge(grace_campaign.campaign_id, 4, PledgeStatus.COMMITTED)
        uow.seed(pledge)

        with pytest.raises(PledgeValidationError, match="must be PENDING"):
            await PledgeService(uow).commit_pledge(pledge.pledge_id, pledge.organization_id)

    @pytest.mark.asyncio
    async def test_other_organization_cannot_modify(self, uow, grace_campaign):
        pledge = make_pledge(grace_campaign.campaign_id, 4, PledgeStatus.PENDING)
        uow.seed(pledge)

        with pytest.raises(PledgeValidationError, match="permission"):
            await PledgeService(uow).commit_pledge(pledge.pledge_id, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_unknown_pledge(self, uow):
        with pytest.raises(PledgeNotFoundError):
            await PledgeService(uow).withdraw_pledge(uuid.uuid4(), uuid.uuid4())

    @pytest.mark.asyncio
    async def test_withdraw_while_active(self, uow, active_campaign):
        pledge = make_pledge(active_campaign.campaign_id, 4, PledgeStatus.PENDING)
        uow.seed(pledge)
        service = PledgeService(uow)

        await service.withdraw_pledge(pledge.pledge_id, pledge.organization_id)
        again = await service.withdraw_pledge(pledge.pledge_id, pledge.organization_id)

        assert again.status == PledgeStatus.WITHDRAWN
        assert uow.commits == 1

    @pytest.mark.asyncio
    async def test_withdraw_during_grace_period_rejected(self, uow, grace_campaign):
        pledge = make_pledge(grace_campaign.campaign_id, 4, PledgeStatus.COMMITTED)
        uow.seed(pledge)

        with pytest.raises(InvalidStateTransitionError, match="ACTIVE"):
            await PledgeService(uow).withdraw_pledge(pledge.pledge_id, pledge.organization_id)

    @pytest.mark.asyncio
    async def test_update_quantity(self, uow, active_campaign):
        pledge = make_pledge(active_campaign.campaign_id, 4, PledgeStatus.PENDING)
        uow.seed(pledge)

        updated = await PledgeService(uow).update_pledge_quantity(
            pledge.pledge_id, pledge.organization_id, 20
        )

        assert updated.quantity == 20

    @pytest.mark.asyncio
    async def test_update_withdrawn_pledge(self, uow, active_campaign):
        pledge = make_pledge(active_campaign.campaign_id, 4, PledgeStatus.WITHDRAWN)
        uow.seed(pledge)

        with pytest.raises(PledgeValidationError, match="withdrawn"):
            await PledgeService(uow).update_pledge_quantity(
                pledge.pledge_id, pledge.organization_id, 20
            )
