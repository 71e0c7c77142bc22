"""Service (repair) API endpoints."""
from typing import Annotated, List, Optional
from datetime import date
import uuid

from fastapi import APIRouter, Depends, Query

from backoffice.api.deps import DB, require_capability
from backoffice.core.permissions import Capability
from backoffice.core.tenant_context import TenantContext
from backoffice.models.service_history import ServiceStatus
from backoffice.schemas.base import DataResponse, PaginatedResponse
from backoffice.schemas.service import ServiceHistoryResponse, ServiceStatistics, ServiceStatusUpdate
from backoffice.services.service_history_service import ServiceHistoryService


router = APIRouter()

CanRead = Annotated[TenantContext, Depends(require_capability(Capability.SERVICE_READ))]


@router.get("", response_model=PaginatedResponse[ServiceHistoryResponse])
async def list_services(
    db: DB,
    ctx: CanRead,
    status: Optional[ServiceStatus] = Query(None),
    serial_number: Optional[str] = Query(None),
    customer_name: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None, description="Entry date from (inclusive)"),
    end_date: Optional[date] = Query(None, description="Entry date to (inclusive)"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, description="Clamped to PAGINATION_MAX_LIMIT"),
    sort_by: Optional[str] = Query(None, description="entry_date, status, serial_number, customer_name"),
    sort_order: str = Query("desc", pattern="^(asc|desc|ASC|DESC)$"),
):
    """Get paginated list of the company's service records."""
    items, pagination = await ServiceHistoryService(db).list(
        ctx.company_id,
        status=status,
        serial_number=serial_number,
        customer_name=customer_name,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return PaginatedResponse[ServiceHistoryResponse](data=items, pagination=pagination)


@router.get("/statistics", response_model=DataResponse[ServiceStatistics])
async def get_service_statistics(db: DB, ctx: CanRead):
    stats = await ServiceHistoryService(db).get_statistics(ctx.company_id)
    return DataResponse[ServiceStatistics](data=stats)


@router.get("/serial/{serial_number}", response_model=DataResponse[List[ServiceHistoryResponse]])
async def get_services_by_serial(serial_number: str, db: DB, ctx: CanRead):
    """Service history of a serial number, newest first."""
    services = await ServiceHistoryService(db).find_by_serial_number(ctx.company_id, serial_number)
    return DataResponse[List[ServiceHistoryResponse]](data=services)


@router.get("/{service_id}", response_model=DataResponse[ServiceHistoryResponse])
async def get_service(service_id: uuid.UUID, db: DB, ctx: CanRead):
    service = await ServiceHistoryService(db).get(service_id, ctx.company_id)
    return DataResponse[ServiceHistoryResponse](data=service)


@router.patch("/{service_id}/status", response_model=DataResponse[ServiceHistoryResponse])
async def update_service_status(
    service_id: uuid.UUID,
    data: ServiceStatusUpdate,
    db: DB,
    ctx: Annotated[TenantContext, Depends(require_capability(Capability.SERVICE_UPDATE))],
):
    """
    Advance a service: received -> in_repair -> delivered.

    Any other move (skipping, going back, leaving delivered) returns 422.
    """
    service = await ServiceHistoryService(db).advance(service_id, ctx.company_id, data.status)
    return DataResponse[ServiceHistoryResponse](message="Service status updated", data=service)
