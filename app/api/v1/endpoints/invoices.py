"""API endpoints for GST sales invoices."""
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.api.deps import (
    Invoices, backend_http_exception, require_finance_write,
)
from app.core.backend import BackendError
from app.schemas.invoice import (
    InvoiceCancelRequest, InvoiceDetailResponse, InvoiceFormPayload,
    InvoiceListResponse, InvoicePreviewResponse, InvoicePrintResponse,
)


router = APIRouter()


# ==================== Reads ====================

@router.get("", response_model=InvoiceListResponse)
async def list_invoices(
    service: Invoices,
    status_filter: Optional[str] = Query(None, alias="status"),
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: int = Query(100, ge=1, le=500),
):
    """List invoices, newest first."""
    try:
        items = await service.list_invoices(status_filter, date_from, date_to, limit)
    except BackendError as e:
        raise backend_http_exception(e, "Loading invoices")
    return InvoiceListResponse(items=items, total=len(items))


@router.get("/{invoice_id}", response_model=InvoiceDetailResponse)
async def get_invoice(invoice_id: UUID, service: Invoices):
    """Get an invoice with per-line amounts and resolved totals."""
    try:
        return await service.get_detail(invoice_id)
    except BackendError as e:
        raise backend_http_exception(e, "Loading invoice")


@router.get("/{invoice_id}/print", response_model=InvoicePrintResponse)
async def print_invoice(invoice_id: UUID, service: Invoices):
    """Print-ready tax invoice."""
    try:
        return await service.build_print_view(invoice_id)
    except BackendError as e:
        raise backend_http_exception(e, "Loading invoice")


@router.post("/preview", response_model=InvoicePreviewResponse)
async def preview_invoice(payload: InvoiceFormPayload, service: Invoices):
    """Running totals for an unsaved invoice form. Nothing is persisted."""
    try:
        return await service.preview(payload)
    except BackendError as e:
        raise backend_http_exception(e, "Loading company GST profile")


# ==================== Writes ====================

@router.post(
    "",
    response_model=InvoiceDetailResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_finance_write)],
)
async def create_invoice(payload: InvoiceFormPayload, service: Invoices):
    """Create a draft invoice with its lines."""
    try:
        document = await service.create_draft(payload)
        return await service.detail_response(document)
    except BackendError as e:
        raise backend_http_exception(e, "Saving invoice")


@router.put(
    "/{invoice_id}",
    response_model=InvoiceDetailResponse,
    dependencies=[Depends(require_finance_write)],
)
async def update_invoice(invoice_id: UUID, payload: InvoiceFormPayload, service: Invoices):
    """Save a draft invoice. Issued and cancelled invoices are returned unchanged."""
    try:
        document = await service.save_draft(invoice_id, payload)
        return await service.detail_response(document)
    except BackendError as e:
        raise backend_http_exception(e, "Saving invoice")


@router.post(
    "/{invoice_id}/recompute",
    response_model=InvoiceDetailResponse,
    dependencies=[Depends(require_finance_write)],
)
async def recompute_invoice(invoice_id: UUID, service: Invoices):
    try:
        await service.recompute_totals(invoice_id)
        return await service.get_detail(invoice_id)
    except BackendError as e:
        raise backend_http_exception(e, "Recomputing totals")


@router.post(
    "/{invoice_id}/issue",
    response_model=InvoiceDetailResponse,
    dependencies=[Depends(require_finance_write)],
)
async def issue_invoice(invoice_id: UUID, service: Invoices):
    """Issue a draft invoice. Lines are locked afterwards."""
    try:
        document = await service.issue(invoice_id)
        return await service.detail_response(document)
    except BackendError as e:
        raise backend_http_exception(e, "Issuing invoice")


@router.post(
    "/{invoice_id}/cancel",
    response_model=InvoiceDetailResponse,
    dependencies=[Depends(require_finance_write)],
)
async def cancel_invoice(
    invoice_id: UUID,
    cancel_request: InvoiceCancelRequest,
    service: Invoices,
):
    """Cancel a draft or issued invoice. A reason is required."""
    try:
        document = await service.cancel(invoice_id, cancel_request.reason)
        return await service.detail_response(document)
    except BackendError as e:
        raise backend_http_exception(e, "Cancelling invoice")
