"""Shared fixtures: tax policy, in-memory repositories, services and an API client."""

import pytest
from fastapi.testclient import TestClient

from rhombick.config import Settings
from rhombick.domain.models import Address, Customer, Invoice, LineItem
from rhombick.domain.tax import TaxPolicy
from rhombick.infrastructure.memory import InMemoryCustomerRepository, InMemoryInvoiceRepository
from rhombick.main import create_app
from rhombick.services import CustomerService, InvoiceService, ReportService


def make_customer(
    code: str = "CUST001",
    name: str = "Acme",
    email: str = "a@acme.com",
    state: str | None = "Karnataka",
) -> Customer:
    return Customer(
        customer_code=code,
        name=name,
        email=email,
        phone_number="9876543210",
        address=Address(state=state),
    )


def make_invoice(customer: Customer, number: str = "INV-001", *items: LineItem) -> Invoice:
    return Invoice(
        invoice_number=number,
        customer_id=customer.id,
        items=items or (LineItem(description="Widget", quantity=2, rate=100),),
    )


@pytest.fixture
def policy() -> TaxPolicy:
    return TaxPolicy(home_jurisdiction="Karnataka", local_rate_pair=(9.0, 9.0), interstate_rate=18.0)


@pytest.fixture
def customer_repository() -> InMemoryCustomerRepository:
    return InMemoryCustomerRepository()


@pytest.fixture
def invoice_repository(customer_repository) -> InMemoryInvoiceRepository:
    return InMemoryInvoiceRepository(customer_repository)


@pytest.fixture
def invoice_service(invoice_repository, customer_repository, policy) -> InvoiceService:
    return InvoiceService(
        invoices=invoice_repository,
        customers=customer_repository,
        policy=policy,
    )


@pytest.fixture
def customer_service(customer_repository, invoice_repository) -> CustomerService:
    return CustomerService(customers=customer_repository, invoices=invoice_repository)


@pytest.fixture
def report_service(customer_repository, invoice_repository) -> ReportService:
    return ReportService(customers=customer_repository, invoices=invoice_repository)


@pytest.fixture
def client():
    """API client backed by the in-memory store."""
    settings = Settings(storage_backend="memory", debug=True)
    with TestClient(create_app(settings)) as test_client:
        yield test_client
