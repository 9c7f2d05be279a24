"""
Domain models for customers, invoices and their line items.

These are plain value objects. Derived invoice fields (item amounts,
tax rates, subtotal, tax amount, total) are only ever written by
`rhombick.domain.computation.recompute`.

Design Decisions:
- Frozen dataclasses; every mutation produces a new object via `replace`
- Items are an ordered tuple addressed by a generated id, never by position
- Partial updates are explicit `Patch` objects: a field left as `UNSET`
  is not touched, a field set to `None` is cleared
- Money is carried as float; totals are summed left-to-right in item order
"""

from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Generic, Self, TypeVar
from uuid import uuid4


def new_id() -> str:
    """Generate an opaque entity identifier."""
    return str(uuid4())


T = TypeVar("T")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Unset(Enum):
    """Marker for a patch field that was not supplied."""
    UNSET = "UNSET"

    def __repr__(self) -> str:
        return "UNSET"


UNSET = Unset.UNSET


class InvoiceStatus(str, Enum):
    """Workflow status of an invoice."""
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    CANCELLED = "cancelled"


class AgeingBucket(str, Enum):
    """How long ago an invoice was raised."""
    RECENT = "recent"
    DUE_SOON = "due_soon"
    OVERDUE = "overdue"


# Ageing thresholds in days since the invoice date
RECENT_DAYS = 30
DUE_SOON_DAYS = 60


@dataclass(frozen=True)
class Address:
    """Postal address of a customer. `state` drives tax classification."""
    street: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None


@dataclass(frozen=True)
class ManagerName:
    first_name: str | None = None
    last_name: str | None = None


@dataclass(frozen=True)
class Customer:
    """
    A customer that invoices are raised against.

    Invoices hold a reference to the customer id only; the customer is
    shared, not owned.
    """
    customer_code: str
    name: str
    email: str
    phone_number: str
    address: Address = field(default_factory=Address)
    manager: ManagerName = field(default_factory=ManagerName)
    tax_registration_number: str | None = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def jurisdiction(self) -> str | None:
        """The attribute the tax policy classifies on."""
        return self.address.state


@dataclass(frozen=True)
class LineItem:
    """
    One billable row of an invoice.

    `amount` is stored for display and refreshed on every recomputation.
    """
    description: str
    quantity: float
    rate: float
    classification_code: str | None = None  # HSN/SAC code
    amount: float = 0.0
    id: str = field(default_factory=new_id)

    @property
    def calculated_amount(self) -> float:
        """Compute the row amount from quantity * rate."""
        return self.quantity * self.rate


@dataclass(frozen=True)
class TaxRates:
    """
    Tax percentages applied to an invoice.

    Either the local pair (e.g. CGST + SGST) or the interstate rate
    (e.g. IGST) is in effect, never both.
    """
    local_a: float = 0.0
    local_b: float = 0.0
    interstate: float = 0.0

    @property
    def combined(self) -> float:
        return self.local_a + self.local_b + self.interstate


@dataclass(frozen=True)
class Invoice:
    """
    Invoice aggregate: header fields, owned line items and derived totals.

    Invariants after recomputation:
        subtotal == sum(item.quantity * item.rate for item in items)
        tax_amount == subtotal * tax_rates.combined / 100
        total_amount == subtotal + tax_amount
    """
    invoice_number: str
    customer_id: str
    items: tuple[LineItem, ...] = ()
    invoice_date: date = field(default_factory=date.today)
    purchase_order_number: str | None = None
    purchase_order_date: date | None = None
    delivery_challan_number: str | None = None
    delivery_challan_date: date | None = None
    status: InvoiceStatus = InvoiceStatus.DRAFT
    notes: str | None = None

    # Derived
    local_tax_rate_a: float = 0.0
    local_tax_rate_b: float = 0.0
    interstate_tax_rate: float = 0.0
    subtotal: float = 0.0
    tax_amount: float = 0.0
    total_amount: float = 0.0

    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def tax_rates(self) -> TaxRates:
        return TaxRates(
            local_a=self.local_tax_rate_a,
            local_b=self.local_tax_rate_b,
            interstate=self.interstate_tax_rate,
        )

    @property
    def local_tax_amount_a(self) -> float:
        return self.subtotal * self.local_tax_rate_a / 100

    @property
    def local_tax_amount_b(self) -> float:
        return self.subtotal * self.local_tax_rate_b / 100

    @property
    def interstate_tax_amount(self) -> float:
        return self.subtotal * self.interstate_tax_rate / 100

    def ageing(self, today: date | None = None) -> AgeingBucket:
        """Bucket the invoice by days elapsed since its invoice date."""
        elapsed = ((today or date.today()) - self.invoice_date).days
        if elapsed <= RECENT_DAYS:
            return AgeingBucket.RECENT
        if elapsed <= DUE_SOON_DAYS:
            return AgeingBucket.DUE_SOON
        return AgeingBucket.OVERDUE


class Patch:
    """
    Base for partial updates.

    Subclasses are dataclasses whose fields default to `UNSET`. Nested
    patches (e.g. an address inside a customer patch) are merged into the
    current nested value instead of replacing it.
    """

    def changes(self) -> dict[str, Any]:
        """Return only the fields that were supplied."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not UNSET
        }

    def apply(self, target: T) -> T:
        """Merge the supplied fields into `target`, returning a new object."""
        updates = {}
        for name, value in self.changes().items():
            if isinstance(value, Patch):
                value = value.apply(getattr(target, name))
            updates[name] = value
        if not updates:
            return target
        return replace(target, **updates)

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> Self:
        """Build a patch from a mapping that only holds supplied keys."""
        return cls(**data)


@dataclass(frozen=True)
class LineItemPatch(Patch):
    description: str | None | Unset = UNSET
    classification_code: str | None | Unset = UNSET
    quantity: float | None | Unset = UNSET
    rate: float | None | Unset = UNSET


@dataclass(frozen=True)
class AddressPatch(Patch):
    street: str | None | Unset = UNSET
    city: str | None | Unset = UNSET
    state: str | None | Unset = UNSET
    postal_code: str | None | Unset = UNSET
    country: str | None | Unset = UNSET


@dataclass(frozen=True)
class ManagerNamePatch(Patch):
    first_name: str | None | Unset = UNSET
    last_name: str | None | Unset = UNSET


@dataclass(frozen=True)
class CustomerPatch(Patch):
    customer_code: str | None | Unset = UNSET
    name: str | None | Unset = UNSET
    email: str | None | Unset = UNSET
    phone_number: str | None | Unset = UNSET
    address: AddressPatch | Unset = UNSET
    manager: ManagerNamePatch | Unset = UNSET
    tax_registration_number: str | None | Unset = UNSET


@dataclass(frozen=True)
class InvoicePatch(Patch):
    """
    Whole-record invoice update.

    `items`, when supplied, replaces the item list; items carrying an
    existing id keep it.
    """
    invoice_number: str | None | Unset = UNSET
    customer_id: str | None | Unset = UNSET
    items: tuple[LineItem, ...] | Unset = UNSET
    invoice_date: date | None | Unset = UNSET
    purchase_order_number: str | None | Unset = UNSET
    purchase_order_date: date | None | Unset = UNSET
    delivery_challan_number: str | None | Unset = UNSET
    delivery_challan_date: date | None | Unset = UNSET
    status: InvoiceStatus | None | Unset = UNSET
    notes: str | None | Unset = UNSET


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of a listing together with the unpaged total."""
    items: list[T]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        # ceil(total / limit)
        return -(-self.total // self.limit) if self.limit else 0


@dataclass(frozen=True)
class MonthlyRevenue:
    month: str  # YYYY-MM
    revenue: float
    count: int


@dataclass(frozen=True)
class RevenueSummary:
    """Dashboard totals across all customers and invoices."""
    total_customers: int
    total_invoices: int
    total_revenue: float
    monthly: list[MonthlyRevenue] = field(default_factory=list)
