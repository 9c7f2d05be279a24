"""
Repository interfaces for customers and invoices.

The services only talk to these abstract classes. Two backends exist:
- SQL (`rhombick.infrastructure.sql`) for real deployments
- in-memory (`rhombick.infrastructure.memory`) for development and tests

Design Decisions:
- Repositories store and return whole aggregates; an invoice is always
  written together with its items in a single operation
- Sorting accepts one field name, API (camelCase) or internal
  (snake_case); a leading '-' sorts descending
- Ties are broken by id so paging is deterministic for a given data set
- Records with no value in the sort field come last in either direction
"""

import re
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Mapping

from rhombick.domain.errors import ValidationError
from rhombick.domain.models import Customer, Invoice, MonthlyRevenue

CUSTOMER_SORT_FIELDS: dict[str, str] = {
    "customer_code": "customer_code",
    "customerId": "customer_code",
    "name": "name",
    "customerName": "name",
    "email": "email",
    "phone_number": "phone_number",
    "created_at": "created_at",
    "updated_at": "updated_at",
    "id": "id",
}

INVOICE_SORT_FIELDS: dict[str, str] = {
    name: name
    for name in (
        "invoice_number",
        "invoice_date",
        "purchase_order_number",
        "purchase_order_date",
        "delivery_challan_number",
        "delivery_challan_date",
        "status",
        "subtotal",
        "tax_amount",
        "total_amount",
        "created_at",
        "updated_at",
        "id",
    )
}

DEFAULT_SORT = "created_at"

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def to_snake_case(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


@dataclass(frozen=True)
class SortOrder:
    """A parsed sort request."""
    field: str
    descending: bool = False


def parse_sort(sort: str | None, allowed: Mapping[str, str]) -> SortOrder:
    """
    Resolve a client sort string against the allowed fields.

    Examples:
        "invoiceDate" -> SortOrder("invoice_date")
        "-totalAmount" -> SortOrder("total_amount", descending=True)

    Raises:
        ValidationError: If the field is not sortable.
    """
    raw = (sort or DEFAULT_SORT).strip()
    descending = raw.startswith("-")
    name = raw.lstrip("-+")

    field = allowed.get(name) or allowed.get(to_snake_case(name))
    if field is None:
        choices = ", ".join(sorted(set(allowed.values())))
        raise ValidationError.for_field("sort", f"cannot sort by '{name}'; choose one of {choices}")
    return SortOrder(field=field, descending=descending)


def group_by_month(rows: Iterable[tuple[date, float]]) -> list[MonthlyRevenue]:
    """Aggregate (invoice_date, total_amount) pairs into YYYY-MM buckets."""
    revenue: dict[str, float] = defaultdict(float)
    counts: dict[str, int] = defaultdict(int)
    for invoice_date, total in rows:
        month = invoice_date.strftime("%Y-%m")
        revenue[month] += total or 0.0
        counts[month] += 1
    return [
        MonthlyRevenue(month=month, revenue=revenue[month], count=counts[month])
        for month in sorted(revenue)
    ]


class CustomerRepository(ABC):
    """Persistence boundary for customers."""

    @abstractmethod
    async def get(self, customer_id: str) -> Customer | None:
        """Fetch one customer, or None."""
        pass

    @abstractmethod
    async def get_many(self, customer_ids: Iterable[str]) -> dict[str, Customer]:
        """Fetch several customers keyed by id; missing ids are skipped."""
        pass

    @abstractmethod
    async def find(
        self,
        search: str | None,
        sort: SortOrder,
        skip: int,
        limit: int,
    ) -> list[Customer]:
        """
        List customers whose code, name, email or phone number contains
        `search` (case-insensitive).
        """
        pass

    @abstractmethod
    async def count(self, search: str | None) -> int:
        """Count customers matching `search`."""
        pass

    @abstractmethod
    async def find_duplicates(
        self,
        customer_code: str,
        email: str,
        exclude_id: str | None = None,
    ) -> list[Customer]:
        """Customers other than `exclude_id` sharing the code or email."""
        pass

    @abstractmethod
    async def insert(self, customer: Customer) -> Customer:
        pass

    @abstractmethod
    async def replace(self, customer: Customer) -> Customer:
        """Overwrite a stored customer. Raises NotFound if absent."""
        pass

    @abstractmethod
    async def delete(self, customer_id: str) -> bool:
        """Delete a customer. Returns True if deleted."""
        pass


class InvoiceRepository(ABC):
    """Persistence boundary for invoice aggregates."""

    @abstractmethod
    async def get(self, invoice_id: str) -> Invoice | None:
        """Fetch one invoice with its items, or None."""
        pass

    @abstractmethod
    async def find(
        self,
        search: str | None,
        sort: SortOrder,
        skip: int,
        limit: int,
    ) -> list[Invoice]:
        """
        List invoices matching `search` (case-insensitive substring) on
        invoice number, PO number, DC number, item description, item
        classification code, status or the customer's name.
        """
        pass

    @abstractmethod
    async def count(self, search: str | None) -> int:
        """Count invoices matching `search`."""
        pass

    @abstractmethod
    async def find_by_invoice_number(self, invoice_number: str) -> Invoice | None:
        pass

    @abstractmethod
    async def count_for_customer(self, customer_id: str) -> int:
        """Number of invoices referencing a customer."""
        pass

    @abstractmethod
    async def revenue_by_month(self) -> list[MonthlyRevenue]:
        """Invoice totals grouped by invoice month, oldest first."""
        pass

    @abstractmethod
    async def insert(self, invoice: Invoice) -> Invoice:
        pass

    @abstractmethod
    async def replace(self, invoice: Invoice) -> Invoice:
        """Overwrite a stored invoice and its items. Raises NotFound if absent."""
        pass

    @abstractmethod
    async def delete(self, invoice_id: str) -> bool:
        """Delete an invoice and its items. Returns True if deleted."""
        pass
