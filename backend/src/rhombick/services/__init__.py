"""
Services package - Use cases over the domain and the repositories.

Includes invoice and line item management, customers and dashboard reports.
"""

from .customers import CustomerService
from .invoicing import InvoiceService
from .reports import ReportService

__all__ = ["CustomerService", "InvoiceService", "ReportService"]
