"""Customer service and dashboard report tests."""

from datetime import date

import pytest

from conftest import make_customer, make_invoice
from rhombick.domain.errors import Conflict, NotFound, ValidationError
from rhombick.domain.models import Address, AddressPatch, CustomerPatch, InvoicePatch


@pytest.fixture
async def acme(customer_service):
    return await customer_service.create_customer(make_customer())


async def test_create_applies_default_country(acme):
    assert acme.address.country == "India"
    assert acme.address.state == "Karnataka"


async def test_create_keeps_explicit_country(customer_service):
    customer = make_customer(code="CUST009", email="x@example.com")
    customer = CustomerPatch(address=AddressPatch(country="Nepal")).apply(customer)
    saved = await customer_service.create_customer(customer)
    assert saved.address.country == "Nepal"


async def test_duplicate_code_conflicts(customer_service, acme):
    with pytest.raises(Conflict) as excinfo:
        await customer_service.create_customer(make_customer(code="CUST001", email="other@acme.com"))
    assert "CUST001" in excinfo.value.message


async def test_duplicate_email_conflicts_ignoring_case(customer_service, acme):
    with pytest.raises(Conflict) as excinfo:
        await customer_service.create_customer(make_customer(code="CUST002", email="A@ACME.com"))
    assert "already registered" in excinfo.value.message


async def test_create_rejects_bad_email(customer_service):
    with pytest.raises(ValidationError) as excinfo:
        await customer_service.create_customer(make_customer(email="nope"))
    assert "email" in excinfo.value.errors


async def test_get_unknown_customer(customer_service):
    with pytest.raises(NotFound):
        await customer_service.get_customer("missing")


async def test_update_merges_nested_address(customer_service, acme):
    updated = await customer_service.update_customer(
        acme.id,
        CustomerPatch(name="Acme Industries", address=AddressPatch(city="Mysuru")),
    )
    assert updated.name == "Acme Industries"
    assert updated.email == acme.email
    assert updated.address == Address(city="Mysuru", state="Karnataka", country="India")
    assert updated.created_at == acme.created_at


async def test_update_can_keep_own_code_and_email(customer_service, acme):
    updated = await customer_service.update_customer(
        acme.id, CustomerPatch(customer_code="CUST001", email="a@acme.com")
    )
    assert updated.customer_code == "CUST001"


async def test_update_to_taken_email_conflicts(customer_service, acme):
    other = await customer_service.create_customer(make_customer(code="CUST002", email="b@acme.com"))
    with pytest.raises(Conflict):
        await customer_service.update_customer(other.id, CustomerPatch(email="a@acme.com"))


async def test_update_cannot_clear_required_field(customer_service, acme):
    with pytest.raises(ValidationError):
        await customer_service.update_customer(acme.id, CustomerPatch(name=None))


async def test_state_change_applies_on_next_invoice_mutation(customer_service, invoice_service, acme):
    invoice = await invoice_service.create_invoice(make_invoice(acme))
    assert invoice.local_tax_rate_a == 9

    await customer_service.update_customer(acme.id, CustomerPatch(address=AddressPatch(state="Goa")))
    stored = await invoice_service.get_invoice(invoice.id)
    assert stored.local_tax_rate_a == 9

    touched = await invoice_service.update_invoice(invoice.id, InvoicePatch(notes="moved"))
    assert touched.interstate_tax_rate == 18
    assert touched.local_tax_rate_a == 0


async def test_delete_customer(customer_service, acme):
    await customer_service.delete_customer(acme.id)
    with pytest.raises(NotFound):
        await customer_service.get_customer(acme.id)


async def test_delete_referenced_customer_is_blocked(customer_service, invoice_service, acme):
    await invoice_service.create_invoice(make_invoice(acme))
    with pytest.raises(Conflict):
        await customer_service.delete_customer(acme.id)
    assert await customer_service.get_customer(acme.id) == acme


async def test_list_search_and_sort(customer_service, acme):
    await customer_service.create_customer(
        make_customer(code="CUST002", name="Beta Traders", email="sales@beta.com")
    )
    await customer_service.create_customer(
        make_customer(code="CUST003", name="Gamma", email="hello@gamma.com")
    )

    page = await customer_service.list_customers(search="beta")
    assert [customer.name for customer in page.items] == ["Beta Traders"]

    page = await customer_service.list_customers(sort="-customerName", limit=2)
    assert [customer.name for customer in page.items] == ["Gamma", "Beta Traders"]
    assert page.total == 3
    assert page.total_pages == 2


async def test_list_searches_phone_number(customer_service, acme):
    page = await customer_service.list_customers(search="98765")
    assert page.total == 1


# --------------------------------------------------------------------
# REPORTS
# --------------------------------------------------------------------
async def test_summary_of_empty_store(report_service):
    summary = await report_service.summary()
    assert summary.total_customers == 0
    assert summary.total_invoices == 0
    assert summary.total_revenue == 0
    assert summary.monthly == []


async def test_summary_groups_revenue_by_month(report_service, invoice_service, acme):
    first = await invoice_service.create_invoice(make_invoice(acme, "INV-001"))
    await invoice_service.update_invoice(first.id, InvoicePatch(invoice_date=date(2024, 1, 15)))
    second = await invoice_service.create_invoice(make_invoice(acme, "INV-002"))
    await invoice_service.update_invoice(second.id, InvoicePatch(invoice_date=date(2024, 1, 20)))
    third = await invoice_service.create_invoice(make_invoice(acme, "INV-003"))
    await invoice_service.update_invoice(third.id, InvoicePatch(invoice_date=date(2024, 3, 1)))

    summary = await report_service.summary()
    assert summary.total_customers == 1
    assert summary.total_invoices == 3
    assert summary.total_revenue == pytest.approx(708)
    assert [(bucket.month, bucket.count) for bucket in summary.monthly] == [
        ("2024-01", 2),
        ("2024-03", 1),
    ]
    assert summary.monthly[0].revenue == pytest.approx(472)
