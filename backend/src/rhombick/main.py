"""
FastAPI application entry point.

This is the main application that ties together all components:
- API routes for customers, invoices and reports
- Repository and database lifecycle management
- CORS configuration for frontend access
- Error handling and logging
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from rhombick import __version__
from rhombick.api.routes import customers, health, invoices, reports
from rhombick.api.schemas import ErrorEnvelope
from rhombick.config import Settings, get_settings
from rhombick.domain.errors import (
    Conflict,
    InvoicingError,
    NotFound,
    PreconditionFailed,
    StorageUnavailable,
    ValidationError,
)
from rhombick.infrastructure.database import Database
from rhombick.infrastructure.memory import InMemoryCustomerRepository, InMemoryInvoiceRepository
from rhombick.infrastructure.sql import SqlCustomerRepository, SqlInvoiceRepository
from rhombick.services import CustomerService, InvoiceService, ReportService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
)
logger = logging.getLogger(__name__)

# Most specific first
ERROR_STATUS: list[tuple[type[InvoicingError], int]] = [
    (ValidationError, 400),
    (NotFound, 404),
    (Conflict, 409),
    (PreconditionFailed, 500),
    (StorageUnavailable, 503),
]


def status_for(exc: InvoicingError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 500


def error_response(status_code: int, message: str, errors: dict[str, str] | None = None) -> JSONResponse:
    envelope = ErrorEnvelope(message=message, errors=errors or None)
    return JSONResponse(
        status_code=status_code,
        content=envelope.model_dump(by_alias=True, exclude_none=True),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown tasks:
    - Open the database (or in-memory store)
    - Build the services on app.state
    - Close the database on shutdown
    """
    settings: Settings = app.state.settings

    logger.info(f"Starting Rhombick v{__version__}")
    logger.info(f"Storage backend: {settings.storage_backend}")
    logger.info(
        f"Tax policy: home state {settings.home_state}, "
        f"local {settings.local_tax_rates}, interstate {settings.interstate_tax_rate}"
    )

    database: Database | None = None
    if settings.storage_backend == "memory":
        customer_repository = InMemoryCustomerRepository()
        invoice_repository = InMemoryInvoiceRepository(customer_repository)
    else:
        database = Database(settings.database_url, echo=settings.debug)
        try:
            await database.connect()
            logger.info("Database initialized")
        except StorageUnavailable as e:
            logger.error(f"Database initialization failed: {e}")
            # Requests answer 503 until the database becomes reachable
        customer_repository = SqlCustomerRepository(database)
        invoice_repository = SqlInvoiceRepository(database)

    app.state.database = database
    app.state.invoice_service = InvoiceService(
        invoices=invoice_repository,
        customers=customer_repository,
        policy=settings.tax_policy,
        max_page_size=settings.max_page_size,
    )
    app.state.customer_service = CustomerService(
        customers=customer_repository,
        invoices=invoice_repository,
        default_country=settings.default_country,
        max_page_size=settings.max_page_size,
    )
    app.state.report_service = ReportService(
        customers=customer_repository,
        invoices=invoice_repository,
    )

    yield  # Application runs here

    # Shutdown
    logger.info("Shutting down Rhombick")
    if database is not None:
        await database.close()


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Explicit settings; loaded from the environment if None.

    Returns:
        Configured FastAPI instance ready to serve requests.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Rhombick API",
        description=(
            "Customer records and GST invoices.\n\n"
            "Invoice subtotals, tax rates and totals are always computed "
            "server-side from the line items and the customer's state."
        ),
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routers
    app.include_router(health.router)
    app.include_router(customers.router, prefix="/api/v1")
    app.include_router(invoices.router, prefix="/api/v1")
    app.include_router(reports.router, prefix="/api/v1")

    @app.exception_handler(InvoicingError)
    async def invoicing_error_handler(request: Request, exc: InvoicingError):
        """Map domain failures to status codes and the error envelope."""
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")

        errors = exc.errors if isinstance(exc, ValidationError) else None
        return error_response(status_code, exc.message, errors)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        """Malformed identifiers, query parameters or bodies are client errors."""
        errors = {
            ".".join(str(part) for part in error["loc"] if part != "body"): error["msg"]
            for error in exc.errors()
        }
        return error_response(400, "Invalid request", errors)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return error_response(exc.status_code, str(exc.detail))

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Catch-all exception handler for unhandled errors."""
        logger.exception(f"Unhandled error: {exc}")

        # Don't expose internal errors in production
        if settings.debug:
            detail = str(exc)
        else:
            detail = "An internal error occurred"

        return error_response(500, detail)

    return app


# Create the application instance
app = create_app()


# Development server entry point
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "rhombick.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
