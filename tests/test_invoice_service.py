"""Invoice service tests, mostly over the in-memory repositories."""

from datetime import date

import pytest

from conftest import make_customer, make_invoice
from rhombick.domain.errors import Conflict, NotFound, PreconditionFailed, ValidationError
from rhombick.domain.models import InvoicePatch, InvoiceStatus, LineItem, LineItemPatch
from rhombick.infrastructure.database import Database
from rhombick.infrastructure.memory import InMemoryCustomerRepository, InMemoryInvoiceRepository
from rhombick.infrastructure.sql import SqlCustomerRepository, SqlInvoiceRepository
from rhombick.services import InvoiceService


def assert_consistent(invoice):
    """The derived fields agree with the items."""
    assert invoice.subtotal == pytest.approx(sum(i.quantity * i.rate for i in invoice.items))
    assert invoice.tax_amount == pytest.approx(invoice.subtotal * invoice.tax_rates.combined / 100)
    assert invoice.total_amount == pytest.approx(invoice.subtotal + invoice.tax_amount)
    for item in invoice.items:
        assert item.amount == pytest.approx(item.quantity * item.rate)


@pytest.fixture
async def local_customer(customer_repository):
    return await customer_repository.insert(make_customer(state="Karnataka"))


@pytest.fixture
async def remote_customer(customer_repository):
    return await customer_repository.insert(
        make_customer(code="CUST002", name="Beta Traders", email="b@beta.com", state="Maharashtra")
    )


@pytest.fixture
async def invoice(invoice_service, local_customer):
    return await invoice_service.create_invoice(make_invoice(local_customer, "INV-001"))


# --------------------------------------------------------------------
# CREATE
# --------------------------------------------------------------------
async def test_create_local_invoice(invoice):
    assert invoice.subtotal == 200
    assert (invoice.local_tax_rate_a, invoice.local_tax_rate_b, invoice.interstate_tax_rate) == (9, 9, 0)
    assert invoice.tax_amount == 36
    assert invoice.total_amount == 236


async def test_create_interstate_invoice(invoice_service, remote_customer):
    invoice = await invoice_service.create_invoice(make_invoice(remote_customer, "INV-002"))
    assert invoice.interstate_tax_rate == 18
    assert invoice.local_tax_rate_a == invoice.local_tax_rate_b == 0
    assert invoice.tax_amount == 36
    assert invoice.total_amount == 236


async def test_create_persists_computed_invoice(invoice_service, invoice):
    stored = await invoice_service.get_invoice(invoice.id)
    assert stored == invoice


async def test_duplicate_invoice_number_conflicts(invoice_service, local_customer, invoice):
    with pytest.raises(Conflict):
        await invoice_service.create_invoice(make_invoice(local_customer, "INV-001"))


async def test_unknown_customer_is_a_validation_error(invoice_service):
    ghost = make_customer(code="GHOST", email="ghost@example.com")
    with pytest.raises(ValidationError) as excinfo:
        await invoice_service.create_invoice(make_invoice(ghost, "INV-404"))
    assert "customer" in excinfo.value.errors


async def test_create_rejects_bad_items(invoice_service, local_customer):
    bad = make_invoice(local_customer, "INV-003", LineItem(description="Widget", quantity=0, rate=1))
    with pytest.raises(ValidationError):
        await invoice_service.create_invoice(bad)


# --------------------------------------------------------------------
# ITEMS
# --------------------------------------------------------------------
async def test_add_item_recomputes(invoice_service, invoice):
    updated = await invoice_service.add_item(
        invoice.id, LineItem(description="Bracket", quantity=3, rate=50)
    )
    assert len(updated.items) == 2
    assert updated.subtotal == 350
    assert updated.tax_amount == 63
    assert updated.total_amount == 413
    assert_consistent(updated)


async def test_add_item_assigns_fresh_id(invoice_service, invoice):
    proposed = LineItem(description="Bracket", quantity=1, rate=1, id=invoice.items[0].id)
    updated = await invoice_service.add_item(invoice.id, proposed)
    assert len({item.id for item in updated.items}) == 2


async def test_add_then_get_round_trip(invoice_service, invoice):
    updated = await invoice_service.add_item(
        invoice.id, LineItem(description="Bracket", quantity=3, rate=50, classification_code="7326")
    )
    added = updated.items[-1]
    fetched = await invoice_service.get_item(invoice.id, added.id)

    assert fetched.description == "Bracket"
    assert fetched.classification_code == "7326"
    assert fetched.quantity == 3
    assert fetched.rate == 50
    assert fetched.amount == 150


async def test_get_item_is_idempotent(invoice_service, invoice):
    item_id = invoice.items[0].id
    first = await invoice_service.get_item(invoice.id, item_id)
    second = await invoice_service.get_item(invoice.id, item_id)
    assert first == second


async def test_get_unknown_item(invoice_service, invoice):
    with pytest.raises(NotFound):
        await invoice_service.get_item(invoice.id, "missing")


async def test_update_item_merges_patch(invoice_service, invoice):
    item_id = invoice.items[0].id
    updated = await invoice_service.update_item(invoice.id, item_id, LineItemPatch(rate=150))

    item = updated.items[0]
    assert item.id == item_id
    assert item.description == "Widget"
    assert item.quantity == 2
    assert item.rate == 150
    assert updated.subtotal == 300
    assert_consistent(updated)


async def test_update_item_rejects_invalid_merge(invoice_service, invoice):
    with pytest.raises(ValidationError):
        await invoice_service.update_item(invoice.id, invoice.items[0].id, LineItemPatch(quantity=-1))
    stored = await invoice_service.get_invoice(invoice.id)
    assert stored.items[0].quantity == 2


async def test_update_unknown_item(invoice_service, invoice):
    with pytest.raises(NotFound):
        await invoice_service.update_item(invoice.id, "missing", LineItemPatch(rate=1))


async def test_remove_item_recomputes(invoice_service, invoice):
    grown = await invoice_service.add_item(invoice.id, LineItem(description="Bracket", quantity=3, rate=50))
    updated = await invoice_service.remove_item(invoice.id, grown.items[0].id)

    assert [item.description for item in updated.items] == ["Bracket"]
    assert updated.subtotal == 150
    assert_consistent(updated)


async def test_remove_unknown_item_leaves_invoice_unchanged(invoice_service, invoice):
    with pytest.raises(NotFound):
        await invoice_service.remove_item(invoice.id, "missing")
    stored = await invoice_service.get_invoice(invoice.id)
    assert stored == invoice
    assert len(stored.items) == 1


async def test_item_operations_on_missing_invoice(invoice_service):
    with pytest.raises(NotFound):
        await invoice_service.add_item("missing", LineItem(description="X", quantity=1, rate=1))


async def test_mutation_with_deleted_customer_fails_loudly(
    invoice_service, customer_repository, local_customer, invoice
):
    await customer_repository.delete(local_customer.id)
    with pytest.raises(PreconditionFailed):
        await invoice_service.add_item(invoice.id, LineItem(description="X", quantity=1, rate=1))
    stored = await invoice_service.get_invoice(invoice.id)
    assert len(stored.items) == 1


# --------------------------------------------------------------------
# UPDATE / DELETE
# --------------------------------------------------------------------
async def test_update_invoice_switches_tax_branch(invoice_service, invoice, remote_customer):
    updated = await invoice_service.update_invoice(
        invoice.id, InvoicePatch(customer_id=remote_customer.id)
    )
    assert updated.interstate_tax_rate == 18
    assert updated.local_tax_rate_a == 0
    assert_consistent(updated)


async def test_update_invoice_replaces_items(invoice_service, invoice):
    kept = invoice.items[0]
    updated = await invoice_service.update_invoice(
        invoice.id,
        InvoicePatch(items=(kept, LineItem(description="Bracket", quantity=1, rate=10))),
    )
    assert updated.items[0].id == kept.id
    assert updated.subtotal == 210


async def test_update_invoice_header_fields(invoice_service, invoice):
    updated = await invoice_service.update_invoice(
        invoice.id,
        InvoicePatch(
            purchase_order_number="PO-7",
            purchase_order_date=date(2024, 5, 1),
            status=InvoiceStatus.SENT,
        ),
    )
    assert updated.purchase_order_number == "PO-7"
    assert updated.status is InvoiceStatus.SENT
    assert updated.invoice_number == "INV-001"
    assert updated.total_amount == 236


async def test_update_invoice_number_must_stay_unique(invoice_service, local_customer, invoice):
    await invoice_service.create_invoice(make_invoice(local_customer, "INV-002"))
    with pytest.raises(Conflict):
        await invoice_service.update_invoice(invoice.id, InvoicePatch(invoice_number="INV-002"))


async def test_update_cannot_clear_required_fields(invoice_service, invoice):
    with pytest.raises(ValidationError):
        await invoice_service.update_invoice(invoice.id, InvoicePatch(invoice_number=None))


async def test_delete_invoice(invoice_service, invoice):
    await invoice_service.delete_invoice(invoice.id)
    with pytest.raises(NotFound):
        await invoice_service.get_invoice(invoice.id)
    with pytest.raises(NotFound):
        await invoice_service.delete_invoice(invoice.id)


# --------------------------------------------------------------------
# LISTING
# --------------------------------------------------------------------
@pytest.fixture
async def catalogue(invoice_service, local_customer, remote_customer):
    first = await invoice_service.create_invoice(make_invoice(local_customer, "INV-001"))
    second = await invoice_service.create_invoice(
        make_invoice(remote_customer, "INV-002", LineItem(description="Bolt", quantity=10, rate=2))
    )
    third = await invoice_service.create_invoice(
        make_invoice(
            remote_customer,
            "INV-003",
            LineItem(description="Nut", quantity=10, rate=1, classification_code="7318"),
        )
    )
    return first, second, third


async def test_search_by_item_description(invoice_service, catalogue):
    page = await invoice_service.list_invoices(search="widget")
    assert [invoice.invoice_number for invoice in page.items] == ["INV-001"]
    assert page.total == 1


async def test_search_by_customer_name(invoice_service, catalogue):
    page = await invoice_service.list_invoices(search="BETA", sort="invoiceNumber")
    assert [invoice.invoice_number for invoice in page.items] == ["INV-002", "INV-003"]


async def test_search_by_classification_code(invoice_service, catalogue):
    page = await invoice_service.list_invoices(search="7318")
    assert [invoice.invoice_number for invoice in page.items] == ["INV-003"]


async def test_search_by_status(invoice_service, catalogue):
    page = await invoice_service.list_invoices(search="draft")
    assert page.total == 3


async def test_sort_descending_and_paginate(invoice_service, catalogue):
    page = await invoice_service.list_invoices(sort="-totalAmount", page=1, limit=2)
    assert [invoice.invoice_number for invoice in page.items] == ["INV-001", "INV-002"]
    assert page.total == 3
    assert page.total_pages == 2

    last = await invoice_service.list_invoices(sort="-totalAmount", page=2, limit=2)
    assert [invoice.invoice_number for invoice in last.items] == ["INV-003"]


async def test_unknown_sort_field(invoice_service, catalogue):
    with pytest.raises(ValidationError) as excinfo:
        await invoice_service.list_invoices(sort="password")
    assert "sort" in excinfo.value.errors


@pytest.mark.parametrize("page, limit", [(0, 10), (1, 0), (1, 1000)])
async def test_invalid_paging(invoice_service, page, limit):
    with pytest.raises(ValidationError):
        await invoice_service.list_invoices(page=page, limit=limit)


async def test_customers_for_populates(invoice_service, catalogue, local_customer, remote_customer):
    customers = await invoice_service.customers_for(list(catalogue))
    assert customers == {local_customer.id: local_customer, remote_customer.id: remote_customer}


# --------------------------------------------------------------------
# BACKEND PARITY
# --------------------------------------------------------------------
@pytest.fixture(params=["memory", "sql"])
async def stores(request):
    """Customer and invoice repositories of either backend."""
    if request.param == "memory":
        customers = InMemoryCustomerRepository()
        yield customers, InMemoryInvoiceRepository(customers)
        return

    database = Database("sqlite+aiosqlite://")
    await database.connect()
    yield SqlCustomerRepository(database), SqlInvoiceRepository(database)
    await database.close()


@pytest.fixture
async def any_service(stores, policy):
    customers, invoices = stores
    return InvoiceService(invoices=invoices, customers=customers, policy=policy)


@pytest.fixture
async def stored_customer(stores):
    customers, _ = stores
    return await customers.insert(make_customer())


async def test_create_reissues_item_ids_on_every_backend(any_service, stored_customer):
    first = await any_service.create_invoice(make_invoice(stored_customer, "INV-001"))
    second = await any_service.create_invoice(make_invoice(stored_customer, "INV-002", *first.items))

    assert second.items[0].id != first.items[0].id
    assert (await any_service.get_invoice(first.id)).items[0].id == first.items[0].id


async def test_update_reissues_foreign_item_ids_on_every_backend(any_service, stored_customer):
    first = await any_service.create_invoice(make_invoice(stored_customer, "INV-001"))
    second = await any_service.create_invoice(make_invoice(stored_customer, "INV-002"))
    own = second.items[0]
    foreign = first.items[0]

    updated = await any_service.update_invoice(second.id, InvoicePatch(items=(own, foreign)))

    assert updated.items[0].id == own.id
    assert updated.items[1].id not in {own.id, foreign.id}
    assert updated.subtotal == 400
    assert [item.id for item in (await any_service.get_invoice(first.id)).items] == [foreign.id]
    stored = await any_service.get_invoice(second.id)
    assert [item.id for item in stored.items] == [item.id for item in updated.items]


@pytest.mark.parametrize(
    "sort, expected",
    [
        ("purchaseOrderDate", ["INV-002", "INV-001", "INV-003"]),
        ("-purchaseOrderDate", ["INV-001", "INV-002", "INV-003"]),
    ],
)
async def test_missing_sort_values_come_last_on_every_backend(any_service, stored_customer, sort, expected):
    dates = {"INV-001": date(2024, 3, 1), "INV-002": date(2024, 1, 1), "INV-003": None}
    for number, po_date in dates.items():
        invoice = make_invoice(stored_customer, number)
        await any_service.create_invoice(
            InvoicePatch(purchase_order_date=po_date).apply(invoice)
        )

    page = await any_service.list_invoices(sort=sort)
    assert [invoice.invoice_number for invoice in page.items] == expected
