# drivecrm/security/roles.py
# Coarse role gate: cheap checks on the role claim alone, run before any
# permission lookup touches the database.
from typing import Optional

from .errors import ApiError, forbidden
from .keys import Role

ADMIN_ROLE = Role.ADMIN.value
TELESALES_ROLE = Role.TELESALES.value
LEAD_ROLES = frozenset({ADMIN_ROLE, TELESALES_ROLE})


def _role_key(role) -> str:
    if isinstance(role, Role):
        return role.value
    return role.strip().lower() if isinstance(role, str) else ""


def is_admin_role(role) -> bool:
    return _role_key(role) == ADMIN_ROLE


def is_telesales_role(role) -> bool:
    return _role_key(role) == TELESALES_ROLE


def can_access_leads(role) -> bool:
    return _role_key(role) in LEAD_ROLES


def require_admin_role(role) -> Optional[ApiError]:
    """None if admin, otherwise a 403 AUTH_FORBIDDEN for the caller to return."""
    if is_admin_role(role):
        return None
    return forbidden("Admin only")


def require_lead_role(role) -> Optional[ApiError]:
    if can_access_leads(role):
        return None
    return forbidden("Lead access requires admin or telesales role")
