"""Payment intent workflow API endpoints."""

from uuid import UUID

from fastapi import APIRouter

from groupbuy.api.deps import PaymentIntentServiceDep
from groupbuy.schemas import (
    ArResolution,
    GatewayOutcome,
    PaymentIntentResponse,
    PaymentStatusUpdate,
)

router = APIRouter()


@router.get("/{payment_intent_id}", response_model=PaymentIntentResponse)
async def get_payment_intent(payment_intent_id: UUID, service: PaymentIntentServiceDep):
    return await service.get_payment_intent(payment_intent_id)


@router.post("/{payment_intent_id}/status", response_model=PaymentIntentResponse)
async def update_payment_status(
    payment_intent_id: UUID,
    request: PaymentStatusUpdate,
    service: PaymentIntentServiceDep,
):
    return await service.update_payment_status(payment_intent_id, request.status)


@router.post("/{payment_intent_id}/retry", response_model=PaymentIntentResponse)
async def retry_failed_payment(payment_intent_id: UUID, service: PaymentIntentServiceDep):
    return await service.retry_failed_payment(payment_intent_id)


@router.post("/{payment_intent_id}/send-to-ar", response_model=PaymentIntentResponse)
async def send_to_ar(payment_intent_id: UUID, service: PaymentIntentServiceDep):
    return await service.mark_as_sent_to_ar(payment_intent_id)


@router.post("/{payment_intent_id}/gateway-outcome", response_model=PaymentIntentResponse)
async def record_gateway_outcome(
    payment_intent_id: UUID,
    request: GatewayOutcome,
    service: PaymentIntentServiceDep,
):
    """Gateway webhook: report the result of an attempt in PROCESSING."""
    return await service.record_gateway_outcome(payment_intent_id, request.succeeded)


@router.post("/{payment_intent_id}/resolve-ar", response_model=PaymentIntentResponse)
async def resolve_ar(
    payment_intent_id: UUID,
    request: ArResolution,
    service: PaymentIntentServiceDep,
):
    return await service.resolve_ar(payment_intent_id, request.collected)
