"""
Access policy for company roles.

Roles are a flat enumeration. Every guarded operation names a capability
and each capability maps to the set of roles allowed to use it; there is
no role inheritance. Checking is a pure function of (role, capability).
"""
import logging
from typing import Dict, FrozenSet, Iterable, Optional, Union

from backoffice.core.errors import Forbidden
from backoffice.models.company import CompanyRole


logger = logging.getLogger(__name__)

RoleLike = Union[CompanyRole, str]

_ALL = frozenset(CompanyRole)
_OWNER_ADMIN = frozenset({CompanyRole.OWNER, CompanyRole.ADMIN})
_SELLER_AND_ABOVE = frozenset({CompanyRole.OWNER, CompanyRole.ADMIN, CompanyRole.SELLER})


class Capability:
    """Capability codes - use these instead of strings."""
    WARRANTY_READ = "warranty:read"
    WARRANTY_DEACTIVATE = "warranty:deactivate"
    SERVICE_READ = "service:read"
    SERVICE_CREATE = "service:create"
    SERVICE_UPDATE = "service:update"
    SALE_READ = "sale:read"
    SALE_CREATE = "sale:create"
    COMPANY_READ = "company:read"
    MEMBER_READ = "member:read"
    MEMBER_INVITE = "member:invite"
    MEMBER_UPDATE_ROLE = "member:update_role"
    MEMBER_REMOVE = "member:remove"


# capability -> roles allowed to use it
CAPABILITY_ROLES: Dict[str, FrozenSet[CompanyRole]] = {
    Capability.WARRANTY_READ: _ALL,
    Capability.WARRANTY_DEACTIVATE: _OWNER_ADMIN,
    Capability.SERVICE_READ: _ALL,
    Capability.SERVICE_CREATE: _SELLER_AND_ABOVE,
    Capability.SERVICE_UPDATE: _SELLER_AND_ABOVE,
    Capability.SALE_READ: _ALL,
    Capability.SALE_CREATE: _SELLER_AND_ABOVE,
    Capability.COMPANY_READ: _ALL,
    Capability.MEMBER_READ: _ALL,
    Capability.MEMBER_INVITE: _OWNER_ADMIN,
    Capability.MEMBER_UPDATE_ROLE: frozenset({CompanyRole.OWNER}),
    Capability.MEMBER_REMOVE: _OWNER_ADMIN,
}


def _coerce_role(role: RoleLike) -> Optional[CompanyRole]:
    if isinstance(role, CompanyRole):
        return role
    try:
        return CompanyRole(str(role))
    except ValueError:
        return None


def roles_for(capability: str) -> FrozenSet[CompanyRole]:
    """Roles allowed to use a capability. Unknown capabilities allow nobody."""
    return CAPABILITY_ROLES.get(capability, frozenset())


def is_allowed(role: RoleLike, required: Union[str, Iterable[RoleLike]]) -> bool:
    """
    Check a role against a capability code or an explicit role set.

    Args:
        role: The caller's role in the company
        required: Capability code (e.g. 'warranty:deactivate') or set of roles

    Returns:
        True if the role is in the required set
    """
    resolved = _coerce_role(role)
    if resolved is None:
        return False

    if isinstance(required, str):
        allowed = roles_for(required)
    else:
        allowed = {r for r in (_coerce_role(x) for x in required) if r is not None}

    return resolved in allowed


def ensure_allowed(role: RoleLike, required: Union[str, Iterable[RoleLike]]) -> None:
    """
    Raise Forbidden unless the role satisfies the requirement.

    Raises:
        Forbidden: on mismatch
    """
    if is_allowed(role, required):
        return

    if isinstance(required, str):
        required_roles = sorted(r.value for r in roles_for(required))
        label = required
    else:
        required_roles = sorted(str(getattr(r, "value", r)) for r in required)
        label = "operation"

    current = getattr(role, "value", role)
    logger.warning(f"permission_denied capability={label} role={current} required={required_roles}")
    raise Forbidden(
        f"Insufficient permissions for {label}",
        details={"required": required_roles, "current": current},
    )
