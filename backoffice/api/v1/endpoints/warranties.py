"""Warranty API endpoints: listing, lookups, deactivation and service intake."""
from typing import Annotated, List, Optional
import uuid

from fastapi import APIRouter, Depends, Query, status

from backoffice.api.deps import DB, CurrentUser, require_capability
from backoffice.core.permissions import Capability
from backoffice.core.tenant_context import TenantContext
from backoffice.models.warranty import WarrantyStatus
from backoffice.schemas.base import DataResponse, PaginatedResponse
from backoffice.schemas.service import ServiceCreate, ServiceHistoryResponse
from backoffice.schemas.warranty import (
    WarrantyDetailResponse,
    WarrantyResponse,
    WarrantyStatistics,
)
from backoffice.services.service_history_service import ServiceHistoryService
from backoffice.services.warranty_query_service import WarrantyQueryService
from backoffice.services.warranty_service import WarrantyService


router = APIRouter()

CanRead = Annotated[TenantContext, Depends(require_capability(Capability.WARRANTY_READ))]


@router.get("", response_model=PaginatedResponse[WarrantyResponse])
async def list_warranties(
    db: DB,
    ctx: CanRead,
    status: Optional[WarrantyStatus] = Query(None),
    serial_number: Optional[str] = Query(None),
    customer_name: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, description="Clamped to PAGINATION_MAX_LIMIT"),
    sort_by: Optional[str] = Query(None, description="created_at, expires_at, start_date, customer_name"),
    sort_order: str = Query("desc", pattern="^(asc|desc|ASC|DESC)$"),
):
    """Get paginated list of warranties with derived status."""
    items, pagination = await WarrantyQueryService(db).list(
        ctx.company_id,
        status=status,
        serial_number=serial_number,
        customer_name=customer_name,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return PaginatedResponse[WarrantyResponse](data=items, pagination=pagination)


@router.get("/statistics", response_model=DataResponse[WarrantyStatistics])
async def get_warranty_statistics(db: DB, ctx: CanRead):
    stats = await WarrantyService(db).get_statistics(ctx.company_id)
    return DataResponse[WarrantyStatistics](data=stats)


@router.get("/expiring", response_model=DataResponse[List[WarrantyResponse]])
async def get_expiring_warranties(
    db: DB,
    ctx: CanRead,
    days: Optional[int] = Query(None, ge=1, le=365),
):
    """Active warranties expiring within `days` (default: expiring-soon threshold)."""
    items = await WarrantyService(db).get_expiring(ctx.company_id, days)
    return DataResponse[List[WarrantyResponse]](data=items)


@router.get("/serial/{serial_number}", response_model=DataResponse[WarrantyDetailResponse])
async def get_warranty_by_serial(serial_number: str, db: DB, ctx: CanRead):
    warranty = await WarrantyService(db).get_by_serial_number(ctx.company_id, serial_number)
    return DataResponse[WarrantyDetailResponse](data=warranty)


@router.get("/{warranty_id}", response_model=DataResponse[WarrantyDetailResponse])
async def get_warranty(warranty_id: uuid.UUID, db: DB, ctx: CanRead):
    warranty = await WarrantyService(db).get_by_id(warranty_id, ctx.company_id, include_services=True)
    return DataResponse[WarrantyDetailResponse](data=warranty)


@router.post("/{warranty_id}/deactivate", response_model=DataResponse[WarrantyResponse])
async def deactivate_warranty(
    warranty_id: uuid.UUID,
    db: DB,
    ctx: Annotated[TenantContext, Depends(require_capability(Capability.WARRANTY_DEACTIVATE))],
):
    """Deactivate a warranty. Calling it again is a no-op."""
    warranty = await WarrantyService(db).deactivate(warranty_id, ctx.company_id)
    return DataResponse[WarrantyResponse](message="Warranty deactivated", data=warranty)


# ==================== SERVICES OF A WARRANTY ====================

@router.post(
    "/{warranty_id}/services",
    response_model=DataResponse[ServiceHistoryResponse],
    status_code=status.HTTP_201_CREATED,
)
async def open_service(
    warranty_id: uuid.UUID,
    data: ServiceCreate,
    db: DB,
    current_user: CurrentUser,
    ctx: Annotated[TenantContext, Depends(require_capability(Capability.SERVICE_CREATE))],
):
    """Open a service/repair for a warranty. Fails with 409 while another one is open."""
    service = await ServiceHistoryService(db).open(
        warranty_id,
        ctx.company_id,
        reason=data.reason,
        observations=data.observations,
        photos=data.photos,
        created_by=current_user.id,
    )
    return DataResponse[ServiceHistoryResponse](message="Service opened", data=service)


@router.get("/{warranty_id}/services", response_model=DataResponse[List[ServiceHistoryResponse]])
async def list_warranty_services(
    warranty_id: uuid.UUID,
    db: DB,
    ctx: Annotated[TenantContext, Depends(require_capability(Capability.SERVICE_READ))],
):
    services = await ServiceHistoryService(db).list_for_warranty(warranty_id, ctx.company_id)
    return DataResponse[List[ServiceHistoryResponse]](data=services)
