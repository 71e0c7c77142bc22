"""Service history (repair) schemas."""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
import uuid

from backoffice.models.service_history import ServiceStatus
from backoffice.schemas.base import BaseCreateSchema, BaseResponseSchema


class ServiceCreate(BaseCreateSchema):
    """Open a service/repair against a warranty."""
    reason: str = Field(..., min_length=1, max_length=2000)
    observations: Optional[str] = Field(None, max_length=5000)
    photos: List[str] = Field(default_factory=list, max_length=20)


class ServiceStatusUpdate(BaseModel):
    """Advance a service to its next status."""
    status: ServiceStatus


class ServiceHistoryResponse(BaseResponseSchema):
    id: uuid.UUID
    company_id: uuid.UUID
    warranty_id: uuid.UUID
    serial_number: str
    product_name: Optional[str] = None
    customer_name: Optional[str] = None
    status: ServiceStatus
    reason: str
    observations: Optional[str] = None
    photos: List[str] = []
    entry_date: datetime
    delivered_at: Optional[datetime] = None
    created_by: Optional[uuid.UUID] = None
    updated_at: datetime
    next_statuses: List[ServiceStatus] = []


class ServiceSortField:
    """Allowed sort keys for the service list."""
    ENTRY_DATE = "entry_date"
    STATUS = "status"
    SERIAL_NUMBER = "serial_number"
    CUSTOMER_NAME = "customer_name"

    @classmethod
    def all(cls) -> List[str]:
        return [cls.ENTRY_DATE, cls.STATUS, cls.SERIAL_NUMBER, cls.CUSTOMER_NAME]


class ServiceStatistics(BaseModel):
    total: int = 0
    received: int = 0
    in_repair: int = 0
    delivered: int = 0
    open: int = 0
