"""
Database configuration and session management with SQLAlchemy.

Uses async SQLAlchemy for non-blocking database operations.

Design Decisions:
- AsyncSession for non-blocking operations
- One explicitly constructed `Database` handle, opened on startup and
  closed on shutdown; no module-level engine
- One session and one transaction per repository call, so each invoice
  write (header plus items) is atomic
- Driver failures are translated into domain errors at this boundary
"""

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import AsyncGenerator
from uuid import uuid4

from sqlalchemy import Date, DateTime, Float, ForeignKey, Integer, String, Text, make_url, text
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.pool import StaticPool

from rhombick.domain.errors import Conflict, StorageUnavailable

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class CustomerRecord(Base):
    """A customer row. Address and manager are flattened into columns."""
    __tablename__ = "customers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    customer_code: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(256), index=True)
    email: Mapped[str] = mapped_column(String(256), unique=True)
    phone_number: Mapped[str] = mapped_column(String(32))

    street: Mapped[str | None] = mapped_column(String(256))
    city: Mapped[str | None] = mapped_column(String(128))
    state: Mapped[str | None] = mapped_column(String(128))
    postal_code: Mapped[str | None] = mapped_column(String(16))
    country: Mapped[str | None] = mapped_column(String(128))

    manager_first_name: Mapped[str | None] = mapped_column(String(128))
    manager_last_name: Mapped[str | None] = mapped_column(String(128))

    tax_registration_number: Mapped[str | None] = mapped_column(String(32))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class InvoiceRecord(Base):
    """
    An invoice row with its derived totals.

    Items live in `invoice_items` and are owned by the invoice: they are
    loaded with it, written with it and deleted with it.
    """
    __tablename__ = "invoices"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    invoice_number: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    invoice_date: Mapped[date] = mapped_column(Date, index=True)

    purchase_order_number: Mapped[str | None] = mapped_column(String(64))
    purchase_order_date: Mapped[date | None] = mapped_column(Date)
    delivery_challan_number: Mapped[str | None] = mapped_column(String(64))
    delivery_challan_date: Mapped[date | None] = mapped_column(Date)

    customer_id: Mapped[str] = mapped_column(String(36), ForeignKey("customers.id"), index=True)
    status: Mapped[str] = mapped_column(String(16), default="draft")
    notes: Mapped[str | None] = mapped_column(Text)

    # Derived
    local_tax_rate_a: Mapped[float] = mapped_column(Float, default=0.0)
    local_tax_rate_b: Mapped[float] = mapped_column(Float, default=0.0)
    interstate_tax_rate: Mapped[float] = mapped_column(Float, default=0.0)
    subtotal: Mapped[float] = mapped_column(Float, default=0.0)
    tax_amount: Mapped[float] = mapped_column(Float, default=0.0)
    total_amount: Mapped[float] = mapped_column(Float, default=0.0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    items: Mapped[list["InvoiceItemRecord"]] = relationship(
        back_populates="invoice",
        order_by="InvoiceItemRecord.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class InvoiceItemRecord(Base):
    """A line item row. `position` keeps the display order."""
    __tablename__ = "invoice_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    invoice_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("invoices.id", ondelete="CASCADE"), index=True
    )
    position: Mapped[int] = mapped_column(Integer)

    description: Mapped[str] = mapped_column(String(256))
    classification_code: Mapped[str | None] = mapped_column(String(32))
    quantity: Mapped[float] = mapped_column(Float)
    rate: Mapped[float] = mapped_column(Float)
    amount: Mapped[float] = mapped_column(Float)

    invoice: Mapped[InvoiceRecord] = relationship(back_populates="items")


class Database:
    """
    Handle on the SQL database.

    Usage:
        database = Database("postgresql+asyncpg://...")
        await database.connect()
        async with database.session() as session:
            session.add(record)
        await database.close()
    """

    def __init__(self, url: str, echo: bool = False) -> None:
        self.url = url
        self.echo = echo
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def is_connected(self) -> bool:
        return self._engine is not None

    def _create_engine(self) -> AsyncEngine:
        if make_url(self.url).get_backend_name() == "sqlite":
            # In-memory SQLite only exists on a single connection
            return create_async_engine(self.url, echo=self.echo, poolclass=StaticPool)

        return create_async_engine(
            self.url,
            echo=self.echo,
            pool_size=5,
            max_overflow=10,
            pool_timeout=30,
            pool_pre_ping=True,
        )

    async def connect(self) -> None:
        """
        Create the engine and ensure tables exist.

        In production, use Alembic migrations instead of create_all.

        Raises:
            StorageUnavailable: If the database cannot be reached.
        """
        if self._engine is not None:
            return

        engine = self._create_engine()
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except (OperationalError, InterfaceError, OSError) as e:
            await engine.dispose()
            raise StorageUnavailable(f"Database unreachable: {e}") from e

        self._engine = engine
        self._session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        safe_url = make_url(self.url).render_as_string(hide_password=True)
        logger.info(f"Database connected: {safe_url}")

    async def close(self) -> None:
        """Close database connections on shutdown."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
        logger.info("Database connections closed")

    async def ping(self) -> bool:
        """Return True if a trivial query succeeds."""
        if self._engine is None:
            return False
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (OperationalError, InterfaceError, OSError):
            logger.warning("Database ping failed")
            return False
        return True

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Open a session wrapped in one transaction.

        Commits when the block exits normally and rolls back otherwise.
        Unique constraint violations become Conflict; connection failures
        become StorageUnavailable. Connects first if startup could not.
        """
        if self._session_factory is None:
            await self.connect()

        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except IntegrityError as e:
            await session.rollback()
            logger.info(f"Integrity violation: {e.orig}")
            raise Conflict("Record conflicts with an existing record") from e
        except (OperationalError, InterfaceError, OSError) as e:
            logger.error(f"Database unavailable: {e}")
            raise StorageUnavailable("Database unavailable") from e
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
