"""
Tenant context resolution.

Every request that touches company data is bound to exactly one company
and to the caller's role inside it. The resolver only reads: it checks
that the company exists and that the principal holds an active
membership, then hands back a TenantContext that downstream services use
as the mandatory company_id of every query.
"""
import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.errors import CompanyNotFound, NotMember
from backoffice.database import with_timeout
from backoffice.models.company import Company, CompanyMember, CompanyRole


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TenantContext:
    """Resolved (company, principal, role) triple for one request."""
    company_id: uuid.UUID
    user_id: uuid.UUID
    role: CompanyRole


async def resolve_tenant_context(
    db: AsyncSession,
    user_id: uuid.UUID,
    company_id: uuid.UUID,
) -> TenantContext:
    """
    Bind a principal to a company.

    Raises:
        CompanyNotFound: company id does not resolve to an active company
        NotMember: principal has no active membership in the company
    """
    company = await with_timeout(
        db.scalar(
            select(Company.id).where(
                Company.id == company_id,
                Company.is_active == True,  # noqa: E712
            )
        )
    )
    if company is None:
        logger.warning(f"company_not_found company_id={company_id} user_id={user_id}")
        raise CompanyNotFound()

    role = await with_timeout(
        db.scalar(
            select(CompanyMember.role).where(
                CompanyMember.company_id == company_id,
                CompanyMember.user_id == user_id,
                CompanyMember.is_active == True,  # noqa: E712
            )
        )
    )
    if role is None:
        logger.warning(f"wrong_company_access company_id={company_id} user_id={user_id}")
        raise NotMember()

    return TenantContext(company_id=company_id, user_id=user_id, role=CompanyRole(role))
