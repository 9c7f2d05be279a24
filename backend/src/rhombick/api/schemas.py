"""
Pydantic schemas for API request/response validation.

These schemas define the contract between frontend and backend.
JSON keys are camelCase; customer fields keep the names the web
frontend already uses (customerId, customerName, gstNumber).
Derived invoice fields are response-only: clients cannot set them.
"""

from dataclasses import replace
from datetime import date, datetime
from typing import Any, Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from rhombick.domain.errors import ValidationError
from rhombick.domain.models import (
    Address,
    AddressPatch,
    AgeingBucket,
    Customer,
    CustomerPatch,
    Invoice,
    InvoicePatch,
    InvoiceStatus,
    LineItem,
    LineItemPatch,
    ManagerName,
    ManagerNamePatch,
    Page,
    RevenueSummary,
    new_id,
)

T = TypeVar("T")


class ApiModel(BaseModel):
    """Base schema: camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _supplied(model: BaseModel) -> dict[str, Any]:
    """Fields the client actually sent, including explicit nulls."""
    return {name: getattr(model, name) for name in model.model_fields_set}


# =============================================================================
# Envelope
# =============================================================================

class Pagination(ApiModel):
    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def from_page(cls, page: Page) -> "Pagination":
        return cls(page=page.page, limit=page.limit, total=page.total, total_pages=page.total_pages)


class Envelope(ApiModel, Generic[T]):
    """Standard response wrapper for every endpoint."""
    success: bool = True
    data: T | None = None
    message: str | None = None
    pagination: Pagination | None = None


class ErrorEnvelope(ApiModel):
    """Standard error response."""
    success: bool = False
    message: str
    errors: dict[str, str] | None = None


# =============================================================================
# Line items
# =============================================================================

class LineItemCreate(ApiModel):
    """A new line item."""
    description: str = Field(..., min_length=1, max_length=256)
    classification_code: str | None = Field(
        default=None,
        max_length=32,
        description="HSN/SAC code",
    )
    quantity: float = Field(..., gt=0, allow_inf_nan=False)
    rate: float = Field(..., ge=0, allow_inf_nan=False)

    def to_domain(self) -> LineItem:
        return LineItem(
            description=self.description,
            classification_code=self.classification_code,
            quantity=self.quantity,
            rate=self.rate,
        )


class InvoiceItemInput(LineItemCreate):
    """
    Line item inside an invoice update body.

    An `id` is kept only if it already belongs to the invoice being
    updated; any other id is replaced with a fresh one.
    """
    id: UUID | None = None

    def to_domain(self) -> LineItem:
        item = super().to_domain()
        if self.id is None:
            return item
        return replace(item, id=str(self.id))


class LineItemUpdate(ApiModel):
    """Partial item update: omitted fields are left unchanged."""
    description: str | None = Field(default=None, min_length=1, max_length=256)
    classification_code: str | None = Field(default=None, max_length=32)
    quantity: float | None = Field(default=None, gt=0, allow_inf_nan=False)
    rate: float | None = Field(default=None, ge=0, allow_inf_nan=False)

    def to_patch(self) -> LineItemPatch:
        return LineItemPatch.from_mapping(_supplied(self))


class LineItemResponse(ApiModel):
    id: str
    description: str
    classification_code: str | None
    quantity: float
    rate: float
    amount: float

    @classmethod
    def from_domain(cls, item: LineItem) -> "LineItemResponse":
        return cls(
            id=item.id,
            description=item.description,
            classification_code=item.classification_code,
            quantity=item.quantity,
            rate=item.rate,
            amount=item.amount,
        )


# =============================================================================
# Customers
# =============================================================================

class AddressSchema(ApiModel):
    street: str | None = Field(default=None, max_length=256)
    city: str | None = Field(default=None, max_length=128)
    state: str | None = Field(default=None, max_length=128)
    postal_code: str | None = Field(default=None, max_length=16)
    country: str | None = Field(default=None, max_length=128)

    def to_domain(self) -> Address:
        return Address(**self.model_dump())

    def to_patch(self) -> AddressPatch:
        return AddressPatch.from_mapping(_supplied(self))


class ManagerSchema(ApiModel):
    first_name: str | None = Field(default=None, max_length=128)
    last_name: str | None = Field(default=None, max_length=128)

    def to_domain(self) -> ManagerName:
        return ManagerName(**self.model_dump())

    def to_patch(self) -> ManagerNamePatch:
        return ManagerNamePatch.from_mapping(_supplied(self))


class CustomerCreate(ApiModel):
    """Request to create a customer."""
    customer_code: str = Field(..., alias="customerId", min_length=1, max_length=64)
    name: str = Field(..., alias="customerName", min_length=1, max_length=256)
    email: str = Field(..., max_length=256)
    phone_number: str = Field(..., max_length=32)
    address: AddressSchema = Field(default_factory=AddressSchema)
    manager: ManagerSchema = Field(default_factory=ManagerSchema)
    tax_registration_number: str | None = Field(default=None, alias="gstNumber", max_length=32)

    def to_domain(self) -> Customer:
        return Customer(
            customer_code=self.customer_code,
            name=self.name,
            email=self.email,
            phone_number=self.phone_number,
            address=self.address.to_domain(),
            manager=self.manager.to_domain(),
            tax_registration_number=self.tax_registration_number,
        )


class CustomerUpdate(ApiModel):
    """Partial customer update; nested address/manager merge field by field."""
    customer_code: str | None = Field(default=None, alias="customerId", min_length=1, max_length=64)
    name: str | None = Field(default=None, alias="customerName", min_length=1, max_length=256)
    email: str | None = Field(default=None, max_length=256)
    phone_number: str | None = Field(default=None, max_length=32)
    address: AddressSchema | None = None
    manager: ManagerSchema | None = None
    tax_registration_number: str | None = Field(default=None, alias="gstNumber", max_length=32)

    def to_patch(self) -> CustomerPatch:
        data = _supplied(self)
        for nested in ("address", "manager"):
            if nested not in data:
                continue
            if data[nested] is None:
                raise ValidationError.for_field(nested, "must be an object, not null")
            data[nested] = data[nested].to_patch()
        return CustomerPatch.from_mapping(data)


class CustomerResponse(ApiModel):
    id: str
    customer_code: str = Field(alias="customerId")
    name: str = Field(alias="customerName")
    email: str
    phone_number: str
    address: AddressSchema
    manager: ManagerSchema
    tax_registration_number: str | None = Field(default=None, alias="gstNumber")
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, customer: Customer) -> "CustomerResponse":
        return cls(
            id=customer.id,
            customer_code=customer.customer_code,
            name=customer.name,
            email=customer.email,
            phone_number=customer.phone_number,
            address=AddressSchema(**vars(customer.address)),
            manager=ManagerSchema(**vars(customer.manager)),
            tax_registration_number=customer.tax_registration_number,
            created_at=customer.created_at,
            updated_at=customer.updated_at,
        )


# =============================================================================
# Invoices
# =============================================================================

class InvoiceCreate(ApiModel):
    """Request to create an invoice. Customer and items are required up front."""
    invoice_number: str = Field(..., min_length=1, max_length=64)
    customer: UUID = Field(..., description="Id of the customer being billed")
    items: list[LineItemCreate] = Field(default_factory=list)
    invoice_date: date | None = Field(default=None, description="Defaults to today")
    purchase_order_number: str | None = Field(default=None, max_length=64)
    purchase_order_date: date | None = None
    delivery_challan_number: str | None = Field(default=None, max_length=64)
    delivery_challan_date: date | None = None
    status: InvoiceStatus = InvoiceStatus.DRAFT
    notes: str | None = None

    def to_domain(self) -> Invoice:
        fields: dict[str, Any] = {}
        if self.invoice_date is not None:
            fields["invoice_date"] = self.invoice_date
        return Invoice(
            id=new_id(),
            invoice_number=self.invoice_number,
            customer_id=str(self.customer),
            items=tuple(item.to_domain() for item in self.items),
            purchase_order_number=self.purchase_order_number,
            purchase_order_date=self.purchase_order_date,
            delivery_challan_number=self.delivery_challan_number,
            delivery_challan_date=self.delivery_challan_date,
            status=self.status,
            notes=self.notes,
            **fields,
        )


class InvoiceUpdate(ApiModel):
    """
    Whole-record invoice update.

    Omitted fields are left unchanged. `items`, when present, replaces the
    item list; send an item's `id` to keep its identity.
    """
    invoice_number: str | None = Field(default=None, min_length=1, max_length=64)
    customer: UUID | None = None
    items: list[InvoiceItemInput] | None = None
    invoice_date: date | None = None
    purchase_order_number: str | None = Field(default=None, max_length=64)
    purchase_order_date: date | None = None
    delivery_challan_number: str | None = Field(default=None, max_length=64)
    delivery_challan_date: date | None = None
    status: InvoiceStatus | None = None
    notes: str | None = None

    def to_patch(self) -> InvoicePatch:
        data = _supplied(self)
        if "customer" in data:
            customer = data.pop("customer")
            data["customer_id"] = str(customer) if customer is not None else None
        if "items" in data:
            if data["items"] is None:
                raise ValidationError.for_field("items", "must be a list, not null")
            data["items"] = tuple(item.to_domain() for item in data["items"])
        return InvoicePatch.from_mapping(data)


class InvoiceResponse(ApiModel):
    id: str
    invoice_number: str
    invoice_date: date
    purchase_order_number: str | None
    purchase_order_date: date | None
    delivery_challan_number: str | None
    delivery_challan_date: date | None
    customer_ref: str
    customer: CustomerResponse | None = Field(
        default=None,
        description="Populated customer; null if the reference is dangling",
    )
    items: list[LineItemResponse]
    status: InvoiceStatus
    notes: str | None

    local_tax_rate_a: float = Field(description="CGST percentage")
    local_tax_rate_b: float = Field(description="SGST percentage")
    interstate_tax_rate: float = Field(description="IGST percentage")
    local_tax_amount_a: float
    local_tax_amount_b: float
    interstate_tax_amount: float
    subtotal: float
    tax_amount: float
    total_amount: float
    ageing: AgeingBucket

    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, invoice: Invoice, customer: Customer | None = None) -> "InvoiceResponse":
        return cls(
            id=invoice.id,
            invoice_number=invoice.invoice_number,
            invoice_date=invoice.invoice_date,
            purchase_order_number=invoice.purchase_order_number,
            purchase_order_date=invoice.purchase_order_date,
            delivery_challan_number=invoice.delivery_challan_number,
            delivery_challan_date=invoice.delivery_challan_date,
            customer_ref=invoice.customer_id,
            customer=CustomerResponse.from_domain(customer) if customer else None,
            items=[LineItemResponse.from_domain(item) for item in invoice.items],
            status=invoice.status,
            notes=invoice.notes,
            local_tax_rate_a=invoice.local_tax_rate_a,
            local_tax_rate_b=invoice.local_tax_rate_b,
            interstate_tax_rate=invoice.interstate_tax_rate,
            local_tax_amount_a=invoice.local_tax_amount_a,
            local_tax_amount_b=invoice.local_tax_amount_b,
            interstate_tax_amount=invoice.interstate_tax_amount,
            subtotal=invoice.subtotal,
            tax_amount=invoice.tax_amount,
            total_amount=invoice.total_amount,
            ageing=invoice.ageing(),
            created_at=invoice.created_at,
            updated_at=invoice.updated_at,
        )


# =============================================================================
# Reports and health
# =============================================================================

class MonthlyRevenueResponse(ApiModel):
    month: str
    revenue: float
    count: int


class SummaryResponse(ApiModel):
    total_customers: int
    total_invoices: int
    total_revenue: float
    monthly: list[MonthlyRevenueResponse]

    @classmethod
    def from_domain(cls, summary: RevenueSummary) -> "SummaryResponse":
        return cls(
            total_customers=summary.total_customers,
            total_invoices=summary.total_invoices,
            total_revenue=summary.total_revenue,
            monthly=[
                MonthlyRevenueResponse(month=m.month, revenue=m.revenue, count=m.count)
                for m in summary.monthly
            ],
        )


class HealthResponse(ApiModel):
    """Health check response."""
    status: str = "healthy"
    version: str
    database: str = "connected"
    storage_backend: str
