"""Sales API endpoints. Creating a sale creates its warranties."""
from typing import Annotated
import uuid

from fastapi import APIRouter, Depends, status

from backoffice.api.deps import DB, require_capability
from backoffice.core.permissions import Capability
from backoffice.core.tenant_context import TenantContext
from backoffice.schemas.base import DataResponse
from backoffice.schemas.sale import SaleCreate, SaleResponse
from backoffice.services.sale_service import SaleService


router = APIRouter()


@router.post("", response_model=DataResponse[SaleResponse], status_code=status.HTTP_201_CREATED)
async def create_sale(
    data: SaleCreate,
    db: DB,
    ctx: Annotated[TenantContext, Depends(require_capability(Capability.SALE_CREATE))],
):
    sale = await SaleService(db).create_sale(ctx.company_id, ctx.user_id, data)
    return DataResponse[SaleResponse](message="Sale created", data=sale)


@router.get("/{sale_id}", response_model=DataResponse[SaleResponse])
async def get_sale(
    sale_id: uuid.UUID,
    db: DB,
    ctx: Annotated[TenantContext, Depends(require_capability(Capability.SALE_READ))],
):
    sale = await SaleService(db).get_sale(sale_id, ctx.company_id)
    return DataResponse[SaleResponse](data=sale)
