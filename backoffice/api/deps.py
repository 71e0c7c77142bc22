from typing import Annotated, Optional
import uuid
import logging

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.database import get_db, with_timeout
from backoffice.core.errors import ValidationError
from backoffice.core.permissions import ensure_allowed
from backoffice.core.security import verify_access_token
from backoffice.core.tenant_context import TenantContext, resolve_tenant_context
from backoffice.models.user import User


logger = logging.getLogger(__name__)

# HTTP Bearer security scheme
security = HTTPBearer()

DB = Annotated[AsyncSession, Depends(get_db)]


async def get_current_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: DB,
) -> User:
    """
    Dependency to get the current authenticated user.
    Validates the bearer token and returns the user object.

    The token claims are kept on request.state for tenant selection.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    claims = verify_access_token(credentials.credentials)
    if claims is None:
        logger.warning("Token verification failed - invalid or expired token")
        raise credentials_exception

    try:
        user_uuid = uuid.UUID(str(claims["sub"]))
    except ValueError:
        logger.warning(f"Invalid user_id in token: {claims['sub']}")
        raise credentials_exception

    user = await with_timeout(db.get(User, user_uuid))
    if user is None:
        logger.warning(f"User {user_uuid} not found")
        raise credentials_exception

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated"
        )

    request.state.token_claims = claims
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def _parse_company_id(raw: str, source: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        raise ValidationError(f"Invalid company id in {source}", details={"company_id": str(raw)})


async def get_tenant_context(
    request: Request,
    user: CurrentUser,
    db: DB,
    x_company_id: Annotated[Optional[str], Header(alias="X-Company-ID")] = None,
) -> TenantContext:
    """
    Bind the request to one company.

    Company is taken from the {company_id} path parameter, else the
    X-Company-ID header, else the token's company_id claim.
    """
    if "company_id" in request.path_params:
        company_id = _parse_company_id(request.path_params["company_id"], "path")
    elif x_company_id:
        company_id = _parse_company_id(x_company_id, "X-Company-ID header")
    else:
        claim = getattr(request.state, "token_claims", {}).get("company_id")
        if not claim:
            raise ValidationError("Company context required (X-Company-ID header or token company_id)")
        company_id = _parse_company_id(claim, "token")

    return await resolve_tenant_context(db, user.id, company_id)


Tenant = Annotated[TenantContext, Depends(get_tenant_context)]


def require_capability(capability: str):
    """
    Dependency factory to require a capability in the resolved company.

    Usage:
        @router.post("/{warranty_id}/deactivate")
        async def deactivate(
            ctx: Annotated[TenantContext, Depends(require_capability(Capability.WARRANTY_DEACTIVATE))],
        ):
    """
    async def capability_checker(ctx: Tenant) -> TenantContext:
        ensure_allowed(ctx.role, capability)
        return ctx

    return capability_checker
