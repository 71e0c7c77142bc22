"""Company and membership endpoints."""
from typing import Annotated, List
import uuid

from fastapi import APIRouter, Depends, status

from backoffice.api.deps import DB, CurrentUser, require_capability
from backoffice.core.permissions import Capability
from backoffice.core.tenant_context import TenantContext
from backoffice.schemas.base import DataResponse, MessageResponse
from backoffice.schemas.company import (
    CompanyCreate,
    CompanyResponse,
    InviteRequest,
    InviteResponse,
    MemberResponse,
    RoleUpdate,
)
from backoffice.services.company_service import CompanyService


router = APIRouter()


@router.post("", response_model=DataResponse[CompanyResponse], status_code=status.HTTP_201_CREATED)
async def create_company(data: CompanyCreate, db: DB, current_user: CurrentUser):
    """Create a company. The caller becomes its owner."""
    company = await CompanyService(db).create_company(current_user.id, data)
    return DataResponse[CompanyResponse](message="Company created", data=CompanyResponse.model_validate(company))


@router.get("/{company_id}", response_model=DataResponse[CompanyResponse])
async def get_company(
    company_id: uuid.UUID,
    db: DB,
    ctx: Annotated[TenantContext, Depends(require_capability(Capability.COMPANY_READ))],
):
    company = await CompanyService(db).get_company(ctx.company_id)
    return DataResponse[CompanyResponse](data=CompanyResponse.model_validate(company))


@router.get("/{company_id}/members", response_model=DataResponse[List[MemberResponse]])
async def list_members(
    company_id: uuid.UUID,
    db: DB,
    ctx: Annotated[TenantContext, Depends(require_capability(Capability.MEMBER_READ))],
):
    members = await CompanyService(db).list_members(ctx.company_id)
    return DataResponse[List[MemberResponse]](data=members)


@router.post(
    "/{company_id}/invite",
    response_model=DataResponse[InviteResponse],
    status_code=status.HTTP_201_CREATED,
)
async def invite_member(
    company_id: uuid.UUID,
    data: InviteRequest,
    db: DB,
    ctx: Annotated[TenantContext, Depends(require_capability(Capability.MEMBER_INVITE))],
):
    """Invite a user by email. Unknown emails get an account (name required)."""
    member, is_new_user = await CompanyService(db).invite(
        ctx.company_id,
        invited_by=ctx.user_id,
        email=data.email,
        role=data.role,
        name=data.name,
        phone=data.phone,
        password=data.password,
    )
    return DataResponse[InviteResponse](
        message="User invited",
        data=InviteResponse(member=member, is_new_user=is_new_user),
    )


@router.patch("/{company_id}/members/{user_id}/role", response_model=DataResponse[MemberResponse])
async def update_member_role(
    company_id: uuid.UUID,
    user_id: uuid.UUID,
    data: RoleUpdate,
    db: DB,
    ctx: Annotated[TenantContext, Depends(require_capability(Capability.MEMBER_UPDATE_ROLE))],
):
    member = await CompanyService(db).update_member_role(ctx.company_id, user_id, data.role, ctx.user_id)
    return DataResponse[MemberResponse](message="Role updated", data=member)


@router.delete("/{company_id}/members/{user_id}", response_model=MessageResponse)
async def remove_member(
    company_id: uuid.UUID,
    user_id: uuid.UUID,
    db: DB,
    ctx: Annotated[TenantContext, Depends(require_capability(Capability.MEMBER_REMOVE))],
):
    await CompanyService(db).remove_member(ctx.company_id, user_id, ctx.user_id)
    return MessageResponse(message="Member removed")
