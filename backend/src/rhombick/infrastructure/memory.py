"""
In-memory repositories for development and tests.

Data lives in dicts for the lifetime of the process. Domain objects are
immutable, so stored values can be handed out without copying.
"""

import logging
from typing import Any, Iterable, TypeVar

from rhombick.domain.errors import Conflict, NotFound
from rhombick.domain.models import Customer, Invoice, MonthlyRevenue

from .repositories import CustomerRepository, InvoiceRepository, SortOrder, group_by_month

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _contains(value: Any, needle: str) -> bool:
    return value is not None and needle in str(value).casefold()


def _sorted(records: Iterable[T], sort: SortOrder) -> list[T]:
    # Ties stay in id order; records without a value come last either way
    ordered = sorted(records, key=lambda record: record.id)
    present = [record for record in ordered if getattr(record, sort.field) is not None]
    missing = [record for record in ordered if getattr(record, sort.field) is None]
    present.sort(key=lambda record: getattr(record, sort.field), reverse=sort.descending)
    return present + missing


class InMemoryCustomerRepository(CustomerRepository):
    """Customers kept in a dict keyed by id."""

    def __init__(self) -> None:
        self._customers: dict[str, Customer] = {}

    def _matching(self, search: str | None) -> list[Customer]:
        if not search:
            return list(self._customers.values())
        needle = search.casefold()
        return [
            customer
            for customer in self._customers.values()
            if _contains(customer.customer_code, needle)
            or _contains(customer.name, needle)
            or _contains(customer.email, needle)
            or _contains(customer.phone_number, needle)
        ]

    async def get(self, customer_id: str) -> Customer | None:
        return self._customers.get(customer_id)

    async def get_many(self, customer_ids: Iterable[str]) -> dict[str, Customer]:
        return {
            customer_id: self._customers[customer_id]
            for customer_id in set(customer_ids)
            if customer_id in self._customers
        }

    async def find(
        self,
        search: str | None,
        sort: SortOrder,
        skip: int,
        limit: int,
    ) -> list[Customer]:
        return _sorted(self._matching(search), sort)[skip : skip + limit]

    async def count(self, search: str | None) -> int:
        return len(self._matching(search))

    async def find_duplicates(
        self,
        customer_code: str,
        email: str,
        exclude_id: str | None = None,
    ) -> list[Customer]:
        return [
            customer
            for customer in self._customers.values()
            if customer.id != exclude_id
            and (customer.customer_code == customer_code or customer.email.casefold() == email.casefold())
        ]

    async def insert(self, customer: Customer) -> Customer:
        if customer.id in self._customers:
            raise Conflict(f"Customer {customer.id} already exists")
        self._customers[customer.id] = customer
        return customer

    async def replace(self, customer: Customer) -> Customer:
        if customer.id not in self._customers:
            raise NotFound("Customer", customer.id)
        self._customers[customer.id] = customer
        return customer

    async def delete(self, customer_id: str) -> bool:
        return self._customers.pop(customer_id, None) is not None


class InMemoryInvoiceRepository(InvoiceRepository):
    """
    Invoices kept in a dict keyed by id.

    Needs the customer repository to search by customer name.
    """

    def __init__(self, customers: InMemoryCustomerRepository) -> None:
        self._invoices: dict[str, Invoice] = {}
        self._customers = customers

    async def _matching(self, search: str | None) -> list[Invoice]:
        if not search:
            return list(self._invoices.values())
        needle = search.casefold()
        names = await self._customers.get_many(
            invoice.customer_id for invoice in self._invoices.values()
        )

        def matches(invoice: Invoice) -> bool:
            customer = names.get(invoice.customer_id)
            return (
                _contains(invoice.invoice_number, needle)
                or _contains(invoice.purchase_order_number, needle)
                or _contains(invoice.delivery_challan_number, needle)
                or _contains(invoice.status.value, needle)
                or any(
                    _contains(item.description, needle) or _contains(item.classification_code, needle)
                    for item in invoice.items
                )
                or (customer is not None and _contains(customer.name, needle))
            )

        return [invoice for invoice in self._invoices.values() if matches(invoice)]

    async def get(self, invoice_id: str) -> Invoice | None:
        return self._invoices.get(invoice_id)

    async def find(
        self,
        search: str | None,
        sort: SortOrder,
        skip: int,
        limit: int,
    ) -> list[Invoice]:
        return _sorted(await self._matching(search), sort)[skip : skip + limit]

    async def count(self, search: str | None) -> int:
        return len(await self._matching(search))

    async def find_by_invoice_number(self, invoice_number: str) -> Invoice | None:
        for invoice in self._invoices.values():
            if invoice.invoice_number == invoice_number:
                return invoice
        return None

    async def count_for_customer(self, customer_id: str) -> int:
        return sum(1 for invoice in self._invoices.values() if invoice.customer_id == customer_id)

    async def revenue_by_month(self) -> list[MonthlyRevenue]:
        return group_by_month(
            (invoice.invoice_date, invoice.total_amount) for invoice in self._invoices.values()
        )

    async def insert(self, invoice: Invoice) -> Invoice:
        if invoice.id in self._invoices:
            raise Conflict(f"Invoice {invoice.id} already exists")
        self._invoices[invoice.id] = invoice
        return invoice

    async def replace(self, invoice: Invoice) -> Invoice:
        if invoice.id not in self._invoices:
            raise NotFound("Invoice", invoice.id)
        self._invoices[invoice.id] = invoice
        return invoice

    async def delete(self, invoice_id: str) -> bool:
        return self._invoices.pop(invoice_id, None) is not None
