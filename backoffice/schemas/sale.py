"""Sale schemas."""
from pydantic import Field, field_validator
from typing import Optional, List
from datetime import datetime, date
from decimal import Decimal
import uuid

from backoffice.config import settings
from backoffice.models.sale import PaymentMethod
from backoffice.schemas.base import BaseCreateSchema, BaseResponseSchema
from backoffice.schemas.warranty import WarrantyResponse


def _check_months(v: Optional[int]) -> Optional[int]:
    if v is not None and not 0 <= v <= settings.MAX_WARRANTY_MONTHS:
        raise ValueError(f"warranty_months must be between 0 and {settings.MAX_WARRANTY_MONTHS}")
    return v


class SaleItemCreate(BaseCreateSchema):
    """Sale line item. Falls back to the product name when product_name is omitted."""
    product_id: Optional[uuid.UUID] = None
    product_name: Optional[str] = Field(None, max_length=255)
    quantity: int = Field(1, ge=1)
    unit_price: Decimal = Field(..., ge=0)
    discount: Decimal = Field(Decimal("0"), ge=0)
    serial_number: Optional[str] = Field(None, max_length=255)
    warranty_months: Optional[int] = None

    @field_validator("warranty_months")
    @classmethod
    def validate_warranty_months(cls, v):
        return _check_months(v)


class SaleCreate(BaseCreateSchema):
    customer_name: str = Field(..., min_length=1, max_length=255)
    customer_email: Optional[str] = Field(None, max_length=255)
    customer_phone: Optional[str] = Field(None, max_length=50)
    customer_address: Optional[str] = None
    sale_date: Optional[date] = None
    payment_method: PaymentMethod = PaymentMethod.CASH
    warranty_months: Optional[int] = None
    discount_amount: Decimal = Field(Decimal("0"), ge=0)
    notes: Optional[str] = None
    items: List[SaleItemCreate] = Field(..., min_length=1)

    @field_validator("warranty_months")
    @classmethod
    def validate_warranty_months(cls, v):
        return _check_months(v)


class SaleItemResponse(BaseResponseSchema):
    id: uuid.UUID
    position: int
    product_id: Optional[uuid.UUID] = None
    product_name: str
    quantity: int
    unit_price: Decimal
    discount: Decimal
    serial_number: Optional[str] = None
    warranty_months: int
    line_total: Decimal


class SaleResponse(BaseResponseSchema):
    id: uuid.UUID
    company_id: uuid.UUID
    user_id: uuid.UUID
    invoice_number: str
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    sale_date: date
    payment_method: PaymentMethod
    warranty_months: int
    subtotal: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    notes: Optional[str] = None
    created_at: datetime
    items: List[SaleItemResponse] = []
    warranties: List[WarrantyResponse] = []
