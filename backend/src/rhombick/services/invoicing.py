"""
Invoice service: every path that creates or changes an invoice.

Each mutating operation follows the same sequence:
1. load the invoice aggregate
2. apply the item or header change
3. validate
4. load the referenced customer and recompute derived fields
5. write the aggregate once

There is no locking; concurrent writers to one invoice race and the
last write wins.
"""

import logging
from dataclasses import replace

from rhombick.domain.computation import recompute
from rhombick.domain.errors import Conflict, NotFound, PreconditionFailed, ValidationError
from rhombick.domain.items import adopt_items, append_item, drop_item, find_item, patch_item
from rhombick.domain.models import (
    Customer,
    Invoice,
    InvoicePatch,
    LineItem,
    LineItemPatch,
    Page,
    new_id,
    utcnow,
)
from rhombick.domain.tax import TaxPolicy
from rhombick.domain.validation import validate_invoice
from rhombick.infrastructure.repositories import (
    INVOICE_SORT_FIELDS,
    CustomerRepository,
    InvoiceRepository,
    parse_sort,
)

from .paging import page_offset

logger = logging.getLogger(__name__)


class InvoiceService:
    """
    Orchestrates invoice and line item operations.

    Example:
        service = InvoiceService(
            invoices=SqlInvoiceRepository(database),
            customers=SqlCustomerRepository(database),
            policy=settings.tax_policy,
        )
        invoice = await service.add_item(invoice_id, LineItem("Widget", 2, 100))
    """

    def __init__(
        self,
        invoices: InvoiceRepository,
        customers: CustomerRepository,
        policy: TaxPolicy,
        max_page_size: int = 100,
    ) -> None:
        self.invoices = invoices
        self.customers = customers
        self.policy = policy
        self.max_page_size = max_page_size

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def list_invoices(
        self,
        search: str | None = None,
        sort: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> Page[Invoice]:
        """
        Search, sort and page invoices.

        Pagination is not stable under concurrent writes.
        """
        skip = page_offset(page, limit, self.max_page_size)
        order = parse_sort(sort, INVOICE_SORT_FIELDS)
        search = (search or "").strip() or None

        invoices = await self.invoices.find(search, order, skip, limit)
        total = await self.invoices.count(search)
        return Page(items=invoices, total=total, page=page, limit=limit)

    async def get_invoice(self, invoice_id: str) -> Invoice:
        invoice = await self.invoices.get(invoice_id)
        if invoice is None:
            raise NotFound("Invoice", invoice_id)
        return invoice

    async def customers_for(self, invoices: list[Invoice]) -> dict[str, Customer]:
        """Fetch the customers referenced by `invoices`, keyed by id."""
        return await self.customers.get_many(invoice.customer_id for invoice in invoices)

    async def get_item(self, invoice_id: str, item_id: str) -> LineItem:
        """Look up one item. Does not modify the invoice."""
        invoice = await self.get_invoice(invoice_id)
        return find_item(invoice, item_id)

    # -------------------------------------------------------------------------
    # Invoice mutations
    # -------------------------------------------------------------------------

    async def create_invoice(self, invoice: Invoice) -> Invoice:
        """
        Create an invoice with its customer and items.

        Raises:
            ValidationError: Missing fields, bad items or unknown customer
            Conflict: Invoice number already in use
        """
        invoice = replace(invoice, items=adopt_items(None, invoice.items))
        validate_invoice(invoice)
        await self._ensure_unique_number(invoice.invoice_number)
        await self._ensure_customer_exists(invoice.customer_id)

        now = utcnow()
        invoice = replace(invoice, created_at=now, updated_at=now)
        saved = await self._recompute_and_write(invoice, is_new=True)
        logger.info(
            f"Created invoice {saved.invoice_number} ({saved.id}) "
            f"with {len(saved.items)} items, total {saved.total_amount:.2f}"
        )
        return saved

    async def update_invoice(self, invoice_id: str, patch: InvoicePatch) -> Invoice:
        """
        Merge a whole-record patch into the invoice and recompute.

        Supplied items keep their id only if it already belongs to this
        invoice.
        """
        current = await self.get_invoice(invoice_id)
        updated = patch.apply(current)
        updated = replace(updated, items=adopt_items(current, updated.items))
        validate_invoice(updated)

        if updated.invoice_number != current.invoice_number:
            await self._ensure_unique_number(updated.invoice_number, exclude_id=invoice_id)
        if updated.customer_id != current.customer_id:
            await self._ensure_customer_exists(updated.customer_id)

        saved = await self._recompute_and_write(replace(updated, updated_at=utcnow()))
        logger.info(f"Updated invoice {saved.invoice_number} ({saved.id})")
        return saved

    async def delete_invoice(self, invoice_id: str) -> None:
        """Delete an invoice together with its items."""
        if not await self.invoices.delete(invoice_id):
            raise NotFound("Invoice", invoice_id)
        logger.info(f"Deleted invoice {invoice_id}")

    # -------------------------------------------------------------------------
    # Item mutations
    # -------------------------------------------------------------------------

    async def add_item(self, invoice_id: str, item: LineItem) -> Invoice:
        """Append a new item with a fresh id and recompute totals."""
        current = await self.get_invoice(invoice_id)
        item = replace(item, id=new_id())
        updated = append_item(current, item)
        validate_invoice(updated)

        saved = await self._recompute_and_write(replace(updated, updated_at=utcnow()))
        logger.info(f"Added item {item.id} to invoice {saved.invoice_number}")
        return saved

    async def update_item(self, invoice_id: str, item_id: str, patch: LineItemPatch) -> Invoice:
        """
        Merge `patch` into one item; fields not supplied stay unchanged.

        Raises:
            NotFound: Invoice or item missing
            ValidationError: The merged item is not billable
        """
        current = await self.get_invoice(invoice_id)
        updated, _ = patch_item(current, item_id, patch)
        validate_invoice(updated)

        saved = await self._recompute_and_write(replace(updated, updated_at=utcnow()))
        logger.info(f"Updated item {item_id} on invoice {saved.invoice_number}")
        return saved

    async def remove_item(self, invoice_id: str, item_id: str) -> Invoice:
        """
        Remove one item and recompute totals.

        Raises:
            NotFound: Invoice or item missing; nothing is written.
        """
        current = await self.get_invoice(invoice_id)
        updated = drop_item(current, item_id)

        saved = await self._recompute_and_write(replace(updated, updated_at=utcnow()))
        logger.info(f"Removed item {item_id} from invoice {saved.invoice_number}")
        return saved

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _ensure_unique_number(self, invoice_number: str, exclude_id: str | None = None) -> None:
        existing = await self.invoices.find_by_invoice_number(invoice_number)
        if existing is not None and existing.id != exclude_id:
            raise Conflict(f"Invoice number {invoice_number} already exists")

    async def _ensure_customer_exists(self, customer_id: str) -> None:
        if await self.customers.get(customer_id) is None:
            raise ValidationError.for_field("customer", f"customer {customer_id} does not exist")

    async def _recompute_and_write(self, invoice: Invoice, is_new: bool = False) -> Invoice:
        """
        Recompute derived fields against the current customer and persist.

        Raises:
            PreconditionFailed: The referenced customer no longer exists.
        """
        customer = await self.customers.get(invoice.customer_id)
        try:
            computed = recompute(invoice, customer, self.policy)
        except PreconditionFailed:
            logger.error(
                f"Invoice {invoice.invoice_number} ({invoice.id}) references "
                f"missing customer {invoice.customer_id}"
            )
            raise

        if is_new:
            return await self.invoices.insert(computed)
        return await self.invoices.replace(computed)
