"""
Customer service.

Customers are shared by reference from invoices. A customer that is still
referenced by any invoice cannot be deleted; the caller has to delete or
reassign those invoices first.
"""

import logging
from dataclasses import replace

from rhombick.domain.errors import Conflict, NotFound
from rhombick.domain.models import Customer, CustomerPatch, Page, utcnow
from rhombick.domain.validation import validate_customer
from rhombick.infrastructure.repositories import (
    CUSTOMER_SORT_FIELDS,
    CustomerRepository,
    InvoiceRepository,
    parse_sort,
)

from .paging import page_offset

logger = logging.getLogger(__name__)


class CustomerService:
    """CRUD over customers with uniqueness and reference checks."""

    def __init__(
        self,
        customers: CustomerRepository,
        invoices: InvoiceRepository,
        default_country: str = "India",
        max_page_size: int = 100,
    ) -> None:
        self.customers = customers
        self.invoices = invoices
        self.default_country = default_country
        self.max_page_size = max_page_size

    async def list_customers(
        self,
        search: str | None = None,
        sort: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> Page[Customer]:
        skip = page_offset(page, limit, self.max_page_size)
        order = parse_sort(sort, CUSTOMER_SORT_FIELDS)
        search = (search or "").strip() or None

        customers = await self.customers.find(search, order, skip, limit)
        total = await self.customers.count(search)
        return Page(items=customers, total=total, page=page, limit=limit)

    async def get_customer(self, customer_id: str) -> Customer:
        customer = await self.customers.get(customer_id)
        if customer is None:
            raise NotFound("Customer", customer_id)
        return customer

    async def create_customer(self, customer: Customer) -> Customer:
        """
        Validate and store a new customer.

        Raises:
            ValidationError: Missing or malformed fields
            Conflict: Customer code or email already in use
        """
        now = utcnow()
        customer = replace(self._with_default_country(customer), created_at=now, updated_at=now)
        validate_customer(customer)
        await self._ensure_unique(customer)

        saved = await self.customers.insert(customer)
        logger.info(f"Created customer {saved.customer_code} ({saved.id})")
        return saved

    async def update_customer(self, customer_id: str, patch: CustomerPatch) -> Customer:
        """
        Merge `patch` into the stored customer.

        Existing invoices keep their stored tax rates until they are next
        modified.
        """
        current = await self.get_customer(customer_id)
        updated = self._with_default_country(patch.apply(current))
        updated = replace(updated, updated_at=utcnow())
        validate_customer(updated)
        await self._ensure_unique(updated)

        saved = await self.customers.replace(updated)
        logger.info(f"Updated customer {saved.customer_code} ({saved.id})")
        return saved

    async def delete_customer(self, customer_id: str) -> None:
        """
        Delete a customer that no invoice references.

        Raises:
            NotFound: Customer missing
            Conflict: Invoices still reference the customer
        """
        customer = await self.get_customer(customer_id)

        referencing = await self.invoices.count_for_customer(customer_id)
        if referencing:
            raise Conflict(
                f"Customer {customer.customer_code} is referenced by {referencing} invoice(s)"
            )

        if not await self.customers.delete(customer_id):
            raise NotFound("Customer", customer_id)
        logger.info(f"Deleted customer {customer.customer_code} ({customer_id})")

    def _with_default_country(self, customer: Customer) -> Customer:
        if customer.address.country:
            return customer
        return replace(customer, address=replace(customer.address, country=self.default_country))

    async def _ensure_unique(self, customer: Customer) -> None:
        duplicates = await self.customers.find_duplicates(
            customer.customer_code,
            customer.email,
            exclude_id=customer.id,
        )
        for duplicate in duplicates:
            if duplicate.customer_code == customer.customer_code:
                raise Conflict(f"Customer ID {customer.customer_code} already exists")
            raise Conflict(f"Email {customer.email} is already registered")
