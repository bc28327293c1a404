"""Campaign lifecycle and bracket API endpoints."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from groupbuy.api.deps import (
    BracketServiceDep,
    InvoiceServiceDep,
    LifecycleServiceDep,
    PaymentIntentServiceDep,
    PledgeServiceDep,
    RedisServiceDep,
)
from groupbuy.models import DiscountBracket
from groupbuy.schemas import (
    BracketProgressResponse,
    BracketReplaceRequest,
    BracketResponse,
    CampaignResponse,
    InvoiceResponse,
    PaymentIntentResponse,
    PledgeCreate,
    PledgeResponse,
    PledgeTotalsResponse,
    SettlementRecoveryResponse,
)

router = APIRouter()


@router.get("/{campaign_id}", response_model=CampaignResponse)
async def get_campaign(campaign_id: UUID, service: LifecycleServiceDep):
    return await service.get_campaign(campaign_id)


# ==================== Lifecycle Transitions ====================


@router.post("/{campaign_id}/publish", response_model=CampaignResponse)
async def publish_campaign(
    campaign_id: UUID,
    service: LifecycleServiceDep,
    redis_service: RedisServiceDep,
):
    """DRAFT -> ACTIVE."""
    campaign = await service.publish(campaign_id)
    await redis_service.invalidate_bracket_progress(str(campaign_id))
    return campaign


@router.post("/{campaign_id}/grace-period", response_model=CampaignResponse)
async def start_grace_period(campaign_id: UUID, service: LifecycleServiceDep):
    """ACTIVE -> GRACE_PERIOD."""
    return await service.start_grace_period(campaign_id)


@router.post("/{campaign_id}/evaluate", response_model=CampaignResponse)
async def evaluate_campaign(campaign_id: UUID, service: LifecycleServiceDep):
    """GRACE_PERIOD -> LOCKED or CANCELLED depending on committed demand."""
    return await service.evaluate_campaign(campaign_id)


@router.post("/{campaign_id}/lock", response_model=CampaignResponse)
async def lock_campaign(campaign_id: UUID, service: LifecycleServiceDep):
    """Lock early; fails instead of cancelling when the minimum is not met."""
    return await service.lock_campaign(campaign_id)


@router.post("/{campaign_id}/cancel", response_model=CampaignResponse)
async def cancel_campaign(campaign_id: UUID, service: LifecycleServiceDep):
    return await service.cancel_campaign(campaign_id)


@router.post("/{campaign_id}/complete", response_model=CampaignResponse)
async def complete_campaign(campaign_id: UUID, service: LifecycleServiceDep):
    """LOCKED -> DONE once invoices are paid and goods delivered."""
    return await service.complete_campaign(campaign_id)


@router.post("/{campaign_id}/settlement/recover", response_model=SettlementRecoveryResponse)
async def recover_settlement(campaign_id: UUID, service: LifecycleServiceDep):
    created = await service.recover_settlement(campaign_id)
    return SettlementRecoveryResponse(campaign_id=campaign_id, invoices_created=created)


# ==================== Brackets ====================


@router.get("/{campaign_id}/brackets", response_model=list[BracketResponse])
async def list_brackets(campaign_id: UUID, service: BracketServiceDep):
    return await service.get_all_brackets(campaign_id)


@router.put("/{campaign_id}/brackets", response_model=list[BracketResponse])
async def replace_brackets(
    campaign_id: UUID,
    request: BracketReplaceRequest,
    service: BracketServiceDep,
):
    """Replace the bracket table of a DRAFT campaign."""
    brackets = [DiscountBracket(**b.model_dump()) for b in request.brackets]
    return await service.replace_brackets(campaign_id, brackets)


@router.get("/{campaign_id}/bracket-progress", response_model=BracketProgressResponse)
async def get_bracket_progress(campaign_id: UUID, service: BracketServiceDep):
    """Progress of an ACTIVE campaign towards its next price tier."""
    progress = await service.get_bracket_progress(campaign_id)
    return BracketProgressResponse.model_validate(progress)


# ==================== Pledges ====================


@router.post(
    "/{campaign_id}/pledges",
    response_model=PledgeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_pledge(
    campaign_id: UUID,
    request: PledgeCreate,
    service: PledgeServiceDep,
    redis_service: RedisServiceDep,
):
    pledge = await service.create_pledge(campaign_id, request.organization_id, request.quantity)
    await redis_service.invalidate_bracket_progress(str(campaign_id))
    return pledge


@router.get("/{campaign_id}/pledges/totals", response_model=PledgeTotalsResponse)
async def get_pledge_totals(campaign_id: UUID, service: PledgeServiceDep):
    return PledgeTotalsResponse(
        campaign_id=campaign_id,
        total_committed=await service.calculate_total_committed_pledges(campaign_id),
        total_active=await service.calculate_total_active_pledges(campaign_id),
    )


# ==================== Settlement Reads ====================


@router.get("/{campaign_id}/invoices", response_model=list[InvoiceResponse])
async def list_campaign_invoices(campaign_id: UUID, service: InvoiceServiceDep):
    return await service.find_all_by_campaign_id(campaign_id)


@router.get("/{campaign_id}/payment-intents", response_model=list[PaymentIntentResponse])
async def list_campaign_payment_intents(
    campaign_id: UUID,
    service: PaymentIntentServiceDep,
    status_filter: Optional[str] = Query(None, alias="status"),
):
    if status_filter:
        return await service.get_payment_intents_by_status(campaign_id, status_filter)
    return await service.find_all_by_campaign_id(campaign_id)
