"""Dashboard figures across all customers and invoices."""

from rhombick.domain.models import RevenueSummary
from rhombick.infrastructure.repositories import CustomerRepository, InvoiceRepository


class ReportService:
    def __init__(self, customers: CustomerRepository, invoices: InvoiceRepository) -> None:
        self.customers = customers
        self.invoices = invoices

    async def summary(self) -> RevenueSummary:
        """Customer and invoice counts, total revenue and revenue per month."""
        monthly = await self.invoices.revenue_by_month()
        return RevenueSummary(
            total_customers=await self.customers.count(None),
            total_invoices=sum(bucket.count for bucket in monthly),
            total_revenue=sum(bucket.revenue for bucket in monthly),
            monthly=monthly,
        )
