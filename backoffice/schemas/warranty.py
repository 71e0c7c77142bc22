"""Warranty schemas for API requests/responses."""
from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime, date
from decimal import Decimal
import uuid

from backoffice.models.warranty import WarrantyStatus
from backoffice.schemas.base import BaseResponseSchema
from backoffice.schemas.service import ServiceHistoryResponse


class SaleProductSnapshot(BaseResponseSchema):
    """Line item of the owning sale, as shown next to the warranty."""
    product_id: Optional[uuid.UUID] = None
    product_name: str
    quantity: int
    unit_price: Decimal
    serial_number: Optional[str] = None


class WarrantyResponse(BaseResponseSchema):
    """Warranty with fields derived at read time."""
    id: uuid.UUID
    company_id: uuid.UUID
    sale_id: uuid.UUID
    sale_item_id: uuid.UUID
    product_id: Optional[uuid.UUID] = None
    serial_number: str
    product_name: str
    invoice_number: Optional[str] = None
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    start_date: date
    warranty_months: int
    expires_at: date
    is_active: bool
    deactivated_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    # Derived
    days_remaining: int
    warranty_status: WarrantyStatus
    service_count: int = 0

    # Denormalized from the sale
    sale_date: Optional[date] = None
    sale_total: Optional[Decimal] = None
    sale_products: List[SaleProductSnapshot] = []


class WarrantyDetailResponse(WarrantyResponse):
    """Warranty plus its service history, newest first."""
    service_histories: List[ServiceHistoryResponse] = []


class WarrantySortField:
    """Allowed sort keys for the warranty list."""
    CREATED_AT = "created_at"
    EXPIRES_AT = "expires_at"
    START_DATE = "start_date"
    CUSTOMER_NAME = "customer_name"

    @classmethod
    def all(cls) -> List[str]:
        return [cls.CREATED_AT, cls.EXPIRES_AT, cls.START_DATE, cls.CUSTOMER_NAME]


class WarrantyStatistics(BaseModel):
    total: int = 0
    active: int = 0
    expiring_soon: int = 0
    expired: int = 0
    deactivated: int = 0

