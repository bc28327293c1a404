"""Invoice API endpoints."""

from uuid import UUID

from fastapi import APIRouter

from groupbuy.api.deps import InvoiceServiceDep
from groupbuy.schemas import InvoiceResponse, MarkAsPaidRequest

router = APIRouter()


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(invoice_id: UUID, service: InvoiceServiceDep):
    return await service.get_invoice(invoice_id)


@router.post("/{invoice_id}/pay", response_model=InvoiceResponse)
async def mark_invoice_paid(
    invoice_id: UUID,
    request: MarkAsPaidRequest,
    service: InvoiceServiceDep,
):
    """Record full payment; settles the linked payment intent."""
    return await service.mark_as_paid(
        invoice_id,
        amount=request.amount,
        paid_date=request.paid_date,
        notes=request.notes,
    )


@router.post("/{invoice_id}/cancel", response_model=InvoiceResponse)
async def cancel_invoice(invoice_id: UUID, service: InvoiceServiceDep):
    return await service.cancel_invoice(invoice_id)
