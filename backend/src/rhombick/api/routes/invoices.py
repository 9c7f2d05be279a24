"""
Invoice endpoints, including the item sub-resource.

Every mutating endpoint returns the whole recomputed invoice.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, status

from rhombick.api.dependencies import InvoiceServiceDep, SettingsDep
from rhombick.api.schemas import (
    Envelope,
    ErrorEnvelope,
    InvoiceCreate,
    InvoiceResponse,
    InvoiceUpdate,
    LineItemCreate,
    LineItemResponse,
    LineItemUpdate,
    Pagination,
)
from rhombick.domain.models import Invoice
from rhombick.services import InvoiceService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invoices", tags=["invoices"])

ERROR_RESPONSES = {
    400: {"model": ErrorEnvelope, "description": "Invalid identifier or payload"},
    404: {"model": ErrorEnvelope, "description": "Invoice or item not found"},
}


async def _present(service: InvoiceService, invoice: Invoice) -> InvoiceResponse:
    """Render an invoice with its customer populated."""
    customers = await service.customers_for([invoice])
    return InvoiceResponse.from_domain(invoice, customers.get(invoice.customer_id))


@router.get("", response_model=Envelope[list[InvoiceResponse]], responses=ERROR_RESPONSES)
async def list_invoices(
    service: InvoiceServiceDep,
    settings: SettingsDep,
    page: int = 1,
    limit: int | None = None,
    search: str | None = None,
    sort: str | None = None,
) -> Envelope[list[InvoiceResponse]]:
    """
    List invoices with search, sorting and pagination.

    `search` matches invoice, PO and DC numbers, item descriptions and
    codes, status and customer name. `sort` takes one field; prefix it
    with '-' for descending order.
    """
    result = await service.list_invoices(
        search=search,
        sort=sort,
        page=page,
        limit=limit if limit is not None else settings.default_page_size,
    )
    customers = await service.customers_for(result.items)
    return Envelope(
        data=[
            InvoiceResponse.from_domain(invoice, customers.get(invoice.customer_id))
            for invoice in result.items
        ],
        pagination=Pagination.from_page(result),
    )


@router.post(
    "",
    response_model=Envelope[InvoiceResponse],
    status_code=status.HTTP_201_CREATED,
    responses={**ERROR_RESPONSES, 409: {"model": ErrorEnvelope, "description": "Duplicate invoice number"}},
)
async def create_invoice(
    request: InvoiceCreate,
    service: InvoiceServiceDep,
) -> Envelope[InvoiceResponse]:
    """Create an invoice; totals and tax rates are computed server-side."""
    invoice = await service.create_invoice(request.to_domain())
    return Envelope(data=await _present(service, invoice))


@router.get("/{invoice_id}", response_model=Envelope[InvoiceResponse], responses=ERROR_RESPONSES)
async def get_invoice(invoice_id: UUID, service: InvoiceServiceDep) -> Envelope[InvoiceResponse]:
    """Fetch one invoice with its customer populated."""
    invoice = await service.get_invoice(str(invoice_id))
    return Envelope(data=await _present(service, invoice))


@router.put(
    "/{invoice_id}",
    response_model=Envelope[InvoiceResponse],
    responses={**ERROR_RESPONSES, 409: {"model": ErrorEnvelope, "description": "Duplicate invoice number"}},
)
async def update_invoice(
    invoice_id: UUID,
    request: InvoiceUpdate,
    service: InvoiceServiceDep,
) -> Envelope[InvoiceResponse]:
    """Update invoice fields; omitted fields are left as they are."""
    invoice = await service.update_invoice(str(invoice_id), request.to_patch())
    return Envelope(data=await _present(service, invoice))


@router.delete("/{invoice_id}", response_model=Envelope[None], responses=ERROR_RESPONSES)
async def delete_invoice(invoice_id: UUID, service: InvoiceServiceDep) -> Envelope[None]:
    await service.delete_invoice(str(invoice_id))
    return Envelope(message="Invoice deleted")


# =============================================================================
# Items
# =============================================================================

@router.post("/{invoice_id}/items", response_model=Envelope[InvoiceResponse], responses=ERROR_RESPONSES)
async def add_invoice_item(
    invoice_id: UUID,
    request: LineItemCreate,
    service: InvoiceServiceDep,
) -> Envelope[InvoiceResponse]:
    """Append a line item and return the recomputed invoice."""
    invoice = await service.add_item(str(invoice_id), request.to_domain())
    return Envelope(data=await _present(service, invoice))


@router.get(
    "/{invoice_id}/items/{item_id}",
    response_model=Envelope[LineItemResponse],
    responses=ERROR_RESPONSES,
)
async def get_invoice_item(
    invoice_id: UUID,
    item_id: UUID,
    service: InvoiceServiceDep,
) -> Envelope[LineItemResponse]:
    item = await service.get_item(str(invoice_id), str(item_id))
    return Envelope(data=LineItemResponse.from_domain(item))


@router.put(
    "/{invoice_id}/items/{item_id}",
    response_model=Envelope[InvoiceResponse],
    responses=ERROR_RESPONSES,
)
async def update_invoice_item(
    invoice_id: UUID,
    item_id: UUID,
    request: LineItemUpdate,
    service: InvoiceServiceDep,
) -> Envelope[InvoiceResponse]:
    """Merge the supplied item fields and return the recomputed invoice."""
    invoice = await service.update_item(str(invoice_id), str(item_id), request.to_patch())
    return Envelope(data=await _present(service, invoice))


@router.delete(
    "/{invoice_id}/items/{item_id}",
    response_model=Envelope[InvoiceResponse],
    responses=ERROR_RESPONSES,
)
async def delete_invoice_item(
    invoice_id: UUID,
    item_id: UUID,
    service: InvoiceServiceDep,
) -> Envelope[InvoiceResponse]:
    """Remove a line item and return the recomputed invoice."""
    invoice = await service.remove_item(str(invoice_id), str(item_id))
    return Envelope(data=await _present(service, invoice))
