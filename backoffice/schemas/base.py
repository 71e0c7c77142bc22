"""
Base Schema Classes for Pydantic Models

RULE: All response schemas that use `from_attributes=True` MUST inherit from BaseResponseSchema.
"""

from typing import Any, Generic, List, Optional, Tuple, TypeVar
from math import ceil

from pydantic import BaseModel, ConfigDict, Field

from backoffice.config import settings


T = TypeVar("T")


class BaseResponseSchema(BaseModel):
    """
    Base class for all response schemas that read from ORM models.

    Usage:
        class WarrantyResponse(BaseResponseSchema):
            id: UUID
            serial_number: str
    """
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """
    Base class for create/input schemas.

    Unknown fields are ignored (forward compatibility).
    """
    model_config = ConfigDict(
        extra='ignore',
        str_strip_whitespace=True,
    )


class PaginationMeta(BaseModel):
    """Pagination block of list responses. total/totalPages ignore the page slice."""
    model_config = ConfigDict(populate_by_name=True)

    page: int
    limit: int
    total: int
    total_pages: int = Field(alias="totalPages")
    has_next: bool = Field(alias="hasNext")
    has_prev: bool = Field(alias="hasPrev")

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "PaginationMeta":
        total_pages = ceil(total / limit) if total > 0 else 0
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


def clamp_page(page: Optional[int], limit: Optional[int]) -> Tuple[int, int]:
    """page >= 1; limit in [1, PAGINATION_MAX_LIMIT], defaulting to PAGINATION_DEFAULT_LIMIT."""
    page = max(1, page or 1)
    limit = limit or settings.PAGINATION_DEFAULT_LIMIT
    limit = max(1, min(limit, settings.PAGINATION_MAX_LIMIT))
    return page, limit


class DataResponse(BaseModel, Generic[T]):
    """Envelope for single-object responses."""
    success: bool = True
    message: Optional[str] = None
    data: T


class PaginatedResponse(BaseModel, Generic[T]):
    """Envelope for list responses."""
    success: bool = True
    data: List[T]
    pagination: PaginationMeta


class MessageResponse(BaseModel):
    success: bool = True
    message: str
    data: Optional[Any] = None
