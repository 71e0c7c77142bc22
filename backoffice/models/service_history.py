"""Service history (repair tracking) model."""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, DateTime, ForeignKey, Text, Index, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.database import Base
from backoffice.db_types import UUIDType, JSONType

if TYPE_CHECKING:
    from backoffice.models.warranty import Warranty


class ServiceStatus(str, Enum):
    """Repair workflow status. Order matters: received -> in_repair -> delivered."""
    RECEIVED = "received"
    IN_REPAIR = "in_repair"
    DELIVERED = "delivered"


OPEN_SERVICE_STATUSES = (ServiceStatus.RECEIVED.value, ServiceStatus.IN_REPAIR.value)

# At most one open service per warranty, enforced by the store itself
_OPEN_PREDICATE = text("status IN ('received', 'in_repair')")


class ServiceHistory(Base):
    __tablename__ = "service_histories"
    __table_args__ = (
        Index(
            "uq_service_histories_open_per_warranty",
            "warranty_id",
            unique=True,
            postgresql_where=_OPEN_PREDICATE,
            sqlite_where=_OPEN_PREDICATE,
        ),
        Index("ix_service_histories_company_status", "company_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    warranty_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("warranties.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Copied from the warranty at creation so the audit trail survives later edits
    serial_number: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    product_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        default=ServiceStatus.RECEIVED.value,
        nullable=False,
        comment="received, in_repair, delivered"
    )
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    observations: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    photos: Mapped[List[str]] = mapped_column(JSONType, default=list, nullable=False)

    entry_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    warranty: Mapped["Warranty"] = relationship("Warranty", back_populates="service_histories")

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_SERVICE_STATUSES

    def __repr__(self) -> str:
        return f"<ServiceHistory {self.serial_number} {self.status}>"
