"""Warranty model.

Only the stored facts live here. Status and days remaining depend on the
current date and are computed by backoffice.services.warranty_status at
read time; they are never written to this table.
"""
import uuid
from datetime import datetime, date, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, Boolean, DateTime, Date, ForeignKey, Integer, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.database import Base
from backoffice.db_types import UUIDType

if TYPE_CHECKING:
    from backoffice.models.sale import Sale, SaleItem
    from backoffice.models.service_history import ServiceHistory


class WarrantyStatus(str, Enum):
    """Derived status, computed at read time."""
    ACTIVE = "active"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"


class Warranty(Base):
    __tablename__ = "warranties"
    __table_args__ = (
        UniqueConstraint("sale_item_id", "serial_number", name="uq_warranties_item_serial"),
        Index("ix_warranties_company_created", "company_id", "created_at"),
        Index("ix_warranties_company_expires", "company_id", "expires_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    sale_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("sales.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    sale_item_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("sale_items.id", ondelete="CASCADE"),
        nullable=False
    )
    product_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("products.id", ondelete="SET NULL"),
        nullable=True
    )

    serial_number: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    invoice_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Customer snapshot copied from the sale
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    warranty_months: Mapped[int] = mapped_column(Integer, nullable=False)
    expires_at: Mapped[date] = mapped_column(Date, nullable=False, comment="start_date + warranty_months")

    # Manual revocation, terminal
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    deactivated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    sale: Mapped["Sale"] = relationship("Sale", back_populates="warranties")
    sale_item: Mapped["SaleItem"] = relationship("SaleItem")
    service_histories: Mapped[List["ServiceHistory"]] = relationship(
        "ServiceHistory",
        back_populates="warranty",
        order_by="ServiceHistory.entry_date.desc()"
    )

    def __repr__(self) -> str:
        return f"<Warranty {self.serial_number}>"
