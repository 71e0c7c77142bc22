"""Company and membership schemas."""
from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional
from datetime import datetime
import uuid

from backoffice.models.company import ASSIGNABLE_ROLES, CompanyRole
from backoffice.schemas.base import BaseCreateSchema, BaseResponseSchema


def _assignable(v: CompanyRole) -> CompanyRole:
    if v not in ASSIGNABLE_ROLES:
        allowed = ", ".join(r.value for r in ASSIGNABLE_ROLES)
        raise ValueError(f"Invalid role. Must be one of: {allowed}")
    return v


class CompanyCreate(BaseCreateSchema):
    name: str = Field(..., min_length=1, max_length=255)
    tax_id: str = Field(..., min_length=1, max_length=50)
    address: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=50)
    email: Optional[EmailStr] = None
    website: Optional[str] = Field(None, max_length=255)


class CompanyResponse(BaseResponseSchema):
    id: uuid.UUID
    name: str
    tax_id: str
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    is_active: bool
    created_at: datetime


class InviteRequest(BaseCreateSchema):
    """Invite a user by email. Unknown emails create the user (name required)."""
    email: EmailStr
    role: CompanyRole
    name: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    password: Optional[str] = Field(None, min_length=6, max_length=128)

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        return _assignable(v)


class RoleUpdate(BaseModel):
    role: CompanyRole

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        return _assignable(v)


class MemberResponse(BaseResponseSchema):
    id: uuid.UUID
    company_id: uuid.UUID
    user_id: uuid.UUID
    email: str
    name: str
    phone: Optional[str] = None
    role: CompanyRole
    is_active: bool
    invited_by: Optional[uuid.UUID] = None
    invited_by_name: Optional[str] = None
    joined_at: datetime


class InviteResponse(BaseModel):
    member: MemberResponse
    is_new_user: bool
