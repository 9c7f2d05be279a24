"""
Customer endpoints.

Handles customer listing, lookup and maintenance.
"""

from uuid import UUID

from fastapi import APIRouter, status

from rhombick.api.dependencies import CustomerServiceDep, SettingsDep
from rhombick.api.schemas import (
    CustomerCreate,
    CustomerResponse,
    CustomerUpdate,
    Envelope,
    ErrorEnvelope,
    Pagination,
)

router = APIRouter(prefix="/customers", tags=["customers"])

ERROR_RESPONSES = {
    400: {"model": ErrorEnvelope, "description": "Invalid identifier or payload"},
    404: {"model": ErrorEnvelope, "description": "Customer not found"},
}


@router.get("", response_model=Envelope[list[CustomerResponse]], responses=ERROR_RESPONSES)
async def list_customers(
    service: CustomerServiceDep,
    settings: SettingsDep,
    page: int = 1,
    limit: int | None = None,
    search: str | None = None,
    sort: str | None = None,
) -> Envelope[list[CustomerResponse]]:
    """List customers, searching code, name, email and phone number."""
    result = await service.list_customers(
        search=search,
        sort=sort,
        page=page,
        limit=limit if limit is not None else settings.default_page_size,
    )
    return Envelope(
        data=[CustomerResponse.from_domain(customer) for customer in result.items],
        pagination=Pagination.from_page(result),
    )


@router.post(
    "",
    response_model=Envelope[CustomerResponse],
    status_code=status.HTTP_201_CREATED,
    responses={**ERROR_RESPONSES, 409: {"model": ErrorEnvelope, "description": "Duplicate customer ID or email"}},
)
async def create_customer(
    request: CustomerCreate,
    service: CustomerServiceDep,
) -> Envelope[CustomerResponse]:
    customer = await service.create_customer(request.to_domain())
    return Envelope(data=CustomerResponse.from_domain(customer))


@router.get("/{customer_id}", response_model=Envelope[CustomerResponse], responses=ERROR_RESPONSES)
async def get_customer(customer_id: UUID, service: CustomerServiceDep) -> Envelope[CustomerResponse]:
    customer = await service.get_customer(str(customer_id))
    return Envelope(data=CustomerResponse.from_domain(customer))


@router.put(
    "/{customer_id}",
    response_model=Envelope[CustomerResponse],
    responses={**ERROR_RESPONSES, 409: {"model": ErrorEnvelope, "description": "Duplicate customer ID or email"}},
)
async def update_customer(
    customer_id: UUID,
    request: CustomerUpdate,
    service: CustomerServiceDep,
) -> Envelope[CustomerResponse]:
    """
    Update customer fields; omitted fields are left as they are.

    Tax rates of existing invoices are recomputed only when those
    invoices are next modified.
    """
    customer = await service.update_customer(str(customer_id), request.to_patch())
    return Envelope(data=CustomerResponse.from_domain(customer))


@router.delete(
    "/{customer_id}",
    response_model=Envelope[None],
    responses={**ERROR_RESPONSES, 409: {"model": ErrorEnvelope, "description": "Customer has invoices"}},
)
async def delete_customer(customer_id: UUID, service: CustomerServiceDep) -> Envelope[None]:
    """Delete a customer. Refused while any invoice references it."""
    await service.delete_customer(str(customer_id))
    return Envelope(message="Customer deleted")
