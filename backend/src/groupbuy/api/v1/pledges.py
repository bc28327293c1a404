"""Buyer pledge API endpoints."""

from uuid import UUID

from fastapi import APIRouter

from groupbuy.api.deps import PledgeServiceDep, RedisServiceDep
from groupbuy.schemas import PledgeAction, PledgeResponse

router = APIRouter()


@router.post("/{pledge_id}/commit", response_model=PledgeResponse)
async def commit_pledge(pledge_id: UUID, request: PledgeAction, service: PledgeServiceDep):
    """PENDING -> COMMITTED during the grace period."""
    return await service.commit_pledge(pledge_id, request.organization_id)


@router.post("/{pledge_id}/withdraw", response_model=PledgeResponse)
async def withdraw_pledge(
    pledge_id: UUID,
    request: PledgeAction,
    service: PledgeServiceDep,
    redis_service: RedisServiceDep,
):
    pledge = await service.withdraw_pledge(pledge_id, request.organization_id)
    await redis_service.invalidate_bracket_progress(str(pledge.campaign_id))
    return pledge
