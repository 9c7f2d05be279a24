"""
SQL repositories built on async SQLAlchemy.

Each public method runs in its own session and transaction (see
`Database.session`). Invoice writes replace the header row and the item
rows together, so readers never see totals that disagree with items.
"""

import logging
from typing import Any, Iterable

from sqlalchemy import ColumnElement, delete, func, or_, select

from rhombick.domain.errors import NotFound
from rhombick.domain.models import (
    Address,
    Customer,
    Invoice,
    InvoiceStatus,
    LineItem,
    ManagerName,
    MonthlyRevenue,
)

from .database import CustomerRecord, Database, InvoiceItemRecord, InvoiceRecord
from .repositories import CustomerRepository, InvoiceRepository, SortOrder, group_by_month

logger = logging.getLogger(__name__)


def _like_pattern(search: str) -> str:
    escaped = search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _ilike(column: Any, pattern: str) -> ColumnElement[bool]:
    return column.ilike(pattern, escape="\\")


def _order_by(model: type, sort: SortOrder) -> list[Any]:
    column = getattr(model, sort.field)
    primary = column.desc() if sort.descending else column.asc()
    return [primary.nulls_last(), model.id.asc()]


# =============================================================================
# Customers
# =============================================================================

def customer_from_record(record: CustomerRecord) -> Customer:
    return Customer(
        id=record.id,
        customer_code=record.customer_code,
        name=record.name,
        email=record.email,
        phone_number=record.phone_number,
        address=Address(
            street=record.street,
            city=record.city,
            state=record.state,
            postal_code=record.postal_code,
            country=record.country,
        ),
        manager=ManagerName(
            first_name=record.manager_first_name,
            last_name=record.manager_last_name,
        ),
        tax_registration_number=record.tax_registration_number,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _write_customer(record: CustomerRecord, customer: Customer) -> None:
    record.customer_code = customer.customer_code
    record.name = customer.name
    record.email = customer.email
    record.phone_number = customer.phone_number
    record.street = customer.address.street
    record.city = customer.address.city
    record.state = customer.address.state
    record.postal_code = customer.address.postal_code
    record.country = customer.address.country
    record.manager_first_name = customer.manager.first_name
    record.manager_last_name = customer.manager.last_name
    record.tax_registration_number = customer.tax_registration_number
    record.created_at = customer.created_at
    record.updated_at = customer.updated_at


def _customer_search(search: str | None) -> ColumnElement[bool] | None:
    if not search:
        return None
    pattern = _like_pattern(search)
    return or_(
        _ilike(CustomerRecord.customer_code, pattern),
        _ilike(CustomerRecord.name, pattern),
        _ilike(CustomerRecord.email, pattern),
        _ilike(CustomerRecord.phone_number, pattern),
    )


class SqlCustomerRepository(CustomerRepository):
    """Customers stored in the `customers` table."""

    def __init__(self, database: Database) -> None:
        self.database = database

    async def get(self, customer_id: str) -> Customer | None:
        async with self.database.session() as session:
            record = await session.get(CustomerRecord, customer_id)
            return customer_from_record(record) if record else None

    async def get_many(self, customer_ids: Iterable[str]) -> dict[str, Customer]:
        ids = set(customer_ids)
        if not ids:
            return {}
        async with self.database.session() as session:
            records = await session.scalars(
                select(CustomerRecord).where(CustomerRecord.id.in_(ids))
            )
            return {record.id: customer_from_record(record) for record in records}

    async def find(
        self,
        search: str | None,
        sort: SortOrder,
        skip: int,
        limit: int,
    ) -> list[Customer]:
        stmt = select(CustomerRecord)
        condition = _customer_search(search)
        if condition is not None:
            stmt = stmt.where(condition)
        stmt = stmt.order_by(*_order_by(CustomerRecord, sort)).offset(skip).limit(limit)

        async with self.database.session() as session:
            records = await session.scalars(stmt)
            return [customer_from_record(record) for record in records]

    async def count(self, search: str | None) -> int:
        stmt = select(func.count()).select_from(CustomerRecord)
        condition = _customer_search(search)
        if condition is not None:
            stmt = stmt.where(condition)

        async with self.database.session() as session:
            return await session.scalar(stmt) or 0

    async def find_duplicates(
        self,
        customer_code: str,
        email: str,
        exclude_id: str | None = None,
    ) -> list[Customer]:
        stmt = select(CustomerRecord).where(
            or_(
                CustomerRecord.customer_code == customer_code,
                func.lower(CustomerRecord.email) == email.lower(),
            )
        )
        if exclude_id is not None:
            stmt = stmt.where(CustomerRecord.id != exclude_id)

        async with self.database.session() as session:
            records = await session.scalars(stmt)
            return [customer_from_record(record) for record in records]

    async def insert(self, customer: Customer) -> Customer:
        record = CustomerRecord(id=customer.id)
        _write_customer(record, customer)
        async with self.database.session() as session:
            session.add(record)
        return customer

    async def replace(self, customer: Customer) -> Customer:
        async with self.database.session() as session:
            record = await session.get(CustomerRecord, customer.id)
            if record is None:
                raise NotFound("Customer", customer.id)
            _write_customer(record, customer)
        return customer

    async def delete(self, customer_id: str) -> bool:
        async with self.database.session() as session:
            result = await session.execute(
                delete(CustomerRecord).where(CustomerRecord.id == customer_id)
            )
            return result.rowcount > 0


# =============================================================================
# Invoices
# =============================================================================

def invoice_from_record(record: InvoiceRecord) -> Invoice:
    return Invoice(
        id=record.id,
        invoice_number=record.invoice_number,
        customer_id=record.customer_id,
        items=tuple(
            LineItem(
                id=item.id,
                description=item.description,
                classification_code=item.classification_code,
                quantity=item.quantity,
                rate=item.rate,
                amount=item.amount,
            )
            for item in record.items
        ),
        invoice_date=record.invoice_date,
        purchase_order_number=record.purchase_order_number,
        purchase_order_date=record.purchase_order_date,
        delivery_challan_number=record.delivery_challan_number,
        delivery_challan_date=record.delivery_challan_date,
        status=InvoiceStatus(record.status),
        notes=record.notes,
        local_tax_rate_a=record.local_tax_rate_a,
        local_tax_rate_b=record.local_tax_rate_b,
        interstate_tax_rate=record.interstate_tax_rate,
        subtotal=record.subtotal,
        tax_amount=record.tax_amount,
        total_amount=record.total_amount,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _write_invoice(record: InvoiceRecord, invoice: Invoice) -> None:
    """Copy header fields and reconcile item rows by id, keeping order."""
    record.invoice_number = invoice.invoice_number
    record.invoice_date = invoice.invoice_date
    record.purchase_order_number = invoice.purchase_order_number
    record.purchase_order_date = invoice.purchase_order_date
    record.delivery_challan_number = invoice.delivery_challan_number
    record.delivery_challan_date = invoice.delivery_challan_date
    record.customer_id = invoice.customer_id
    record.status = invoice.status.value
    record.notes = invoice.notes
    record.local_tax_rate_a = invoice.local_tax_rate_a
    record.local_tax_rate_b = invoice.local_tax_rate_b
    record.interstate_tax_rate = invoice.interstate_tax_rate
    record.subtotal = invoice.subtotal
    record.tax_amount = invoice.tax_amount
    record.total_amount = invoice.total_amount
    record.created_at = invoice.created_at
    record.updated_at = invoice.updated_at

    existing = {item.id: item for item in record.items}
    rows = []
    for position, item in enumerate(invoice.items):
        row = existing.get(item.id) or InvoiceItemRecord(id=item.id)
        row.position = position
        row.description = item.description
        row.classification_code = item.classification_code
        row.quantity = item.quantity
        row.rate = item.rate
        row.amount = item.amount
        rows.append(row)
    # Rows missing from the new list are deleted by the delete-orphan cascade
    record.items = rows


def _invoice_search(search: str | None) -> ColumnElement[bool] | None:
    if not search:
        return None
    pattern = _like_pattern(search)
    matching_customers = select(CustomerRecord.id).where(_ilike(CustomerRecord.name, pattern))
    return or_(
        _ilike(InvoiceRecord.invoice_number, pattern),
        _ilike(InvoiceRecord.purchase_order_number, pattern),
        _ilike(InvoiceRecord.delivery_challan_number, pattern),
        _ilike(InvoiceRecord.status, pattern),
        InvoiceRecord.items.any(
            or_(
                _ilike(InvoiceItemRecord.description, pattern),
                _ilike(InvoiceItemRecord.classification_code, pattern),
            )
        ),
        InvoiceRecord.customer_id.in_(matching_customers),
    )


class SqlInvoiceRepository(InvoiceRepository):
    """Invoices stored in `invoices` with items in `invoice_items`."""

    def __init__(self, database: Database) -> None:
        self.database = database

    async def get(self, invoice_id: str) -> Invoice | None:
        async with self.database.session() as session:
            record = await session.get(InvoiceRecord, invoice_id)
            return invoice_from_record(record) if record else None

    async def find(
        self,
        search: str | None,
        sort: SortOrder,
        skip: int,
        limit: int,
    ) -> list[Invoice]:
        stmt = select(InvoiceRecord)
        condition = _invoice_search(search)
        if condition is not None:
            stmt = stmt.where(condition)
        stmt = stmt.order_by(*_order_by(InvoiceRecord, sort)).offset(skip).limit(limit)

        async with self.database.session() as session:
            records = await session.scalars(stmt)
            return [invoice_from_record(record) for record in records]

    async def count(self, search: str | None) -> int:
        stmt = select(func.count()).select_from(InvoiceRecord)
        condition = _invoice_search(search)
        if condition is not None:
            stmt = stmt.where(condition)

        async with self.database.session() as session:
            return await session.scalar(stmt) or 0

    async def find_by_invoice_number(self, invoice_number: str) -> Invoice | None:
        async with self.database.session() as session:
            record = await session.scalar(
                select(InvoiceRecord).where(InvoiceRecord.invoice_number == invoice_number)
            )
            return invoice_from_record(record) if record else None

    async def count_for_customer(self, customer_id: str) -> int:
        stmt = (
            select(func.count())
            .select_from(InvoiceRecord)
            .where(InvoiceRecord.customer_id == customer_id)
        )
        async with self.database.session() as session:
            return await session.scalar(stmt) or 0

    async def revenue_by_month(self) -> list[MonthlyRevenue]:
        async with self.database.session() as session:
            result = await session.execute(
                select(InvoiceRecord.invoice_date, InvoiceRecord.total_amount)
            )
            return group_by_month(result.tuples())

    async def insert(self, invoice: Invoice) -> Invoice:
        record = InvoiceRecord(id=invoice.id, items=[])
        _write_invoice(record, invoice)
        async with self.database.session() as session:
            session.add(record)
        return invoice

    async def replace(self, invoice: Invoice) -> Invoice:
        async with self.database.session() as session:
            record = await session.get(InvoiceRecord, invoice.id)
            if record is None:
                raise NotFound("Invoice", invoice.id)
            _write_invoice(record, invoice)
        return invoice

    async def delete(self, invoice_id: str) -> bool:
        async with self.database.session() as session:
            record = await session.get(InvoiceRecord, invoice_id)
            if record is None:
                return False
            await session.delete(record)
            return True
