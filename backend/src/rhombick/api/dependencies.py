"""
FastAPI dependencies.

Services are built once in the application lifespan and kept on
`app.state`; routes receive them through these providers.
"""

from typing import Annotated

from fastapi import Depends, Request

from rhombick.config import Settings
from rhombick.services import CustomerService, InvoiceService, ReportService


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_invoice_service(request: Request) -> InvoiceService:
    return request.app.state.invoice_service


def get_customer_service(request: Request) -> CustomerService:
    return request.app.state.customer_service


def get_report_service(request: Request) -> ReportService:
    return request.app.state.report_service


SettingsDep = Annotated[Settings, Depends(get_app_settings)]
InvoiceServiceDep = Annotated[InvoiceService, Depends(get_invoice_service)]
CustomerServiceDep = Annotated[CustomerService, Depends(get_customer_service)]
ReportServiceDep = Annotated[ReportService, Depends(get_report_service)]
