# drivecrm/security/route_auth.py
"""
Entry points route handlers call before touching data.

Each returns ``Granted`` or ``Denied``; a Denied carries the ApiError the
handler must return as-is. Nothing here writes state.
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from fastapi import Request

from .auth import Principal, authenticate
from .errors import ApiError, AuthError, forbidden
from .permissions import NOT_LOADED, EffectivePermissions, get_effective_permissions, require_permission
from .route_map import resolve_route_permission

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Granted:
    auth: Principal
    permissions: Optional[EffectivePermissions] = None
    # User row read during the permission check, reusable by the handler
    subject: Any = NOT_LOADED


@dataclass(frozen=True)
class Denied:
    error: ApiError


AuthResult = Union[Granted, Denied]


def require_route_auth(request: Request) -> AuthResult:
    """Authenticate only: bearer header first, then the session cookie."""
    try:
        return Granted(auth=authenticate(request))
    except AuthError as e:
        return Denied(e)


def _check(principal: Principal, module, action, store) -> AuthResult:
    subject = store.load_subject(principal.sub)
    permissions = get_effective_permissions(principal, store, subject=subject)
    error = require_permission(principal, module, action, permissions)
    if error is not None:
        logger.info("Denied %s (%s) %s:%s", principal.sub, principal.role.value,
                    getattr(module, "value", module), getattr(action, "value", action))
        return Denied(error)
    return Granted(auth=principal, permissions=permissions, subject=subject)


def require_permission_route_auth(request: Request, module, action, store) -> AuthResult:
    result = require_route_auth(request)
    if isinstance(result, Denied):
        return result
    return _check(result.auth, module, action, store)


def require_mapped_route_permission_auth(request: Request, store) -> AuthResult:
    """Like require_permission_route_auth, with the pair looked up from the route table."""
    result = require_route_auth(request)
    if isinstance(result, Denied):
        return result
    rule = resolve_route_permission(request.url.path, request.method)
    if rule is None:
        logger.warning("No permission mapping for %s %s", request.method, request.url.path)
        return Denied(forbidden())
    return _check(result.auth, rule.module, rule.action, store)
