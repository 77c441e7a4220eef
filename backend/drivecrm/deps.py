# drivecrm/deps.py
# FastAPI adapters over the route-auth entry points: a Denied result is
# raised as its ApiError and rendered by the app's exception handler.
from fastapi import Depends, Request

from drivecrm.db import get_pool
from drivecrm.security.auth import Principal
from drivecrm.security.route_auth import (
    Denied, Granted, require_mapped_route_permission_auth, require_permission_route_auth, require_route_auth,
)
from drivecrm.security.service_auth import ServiceCall, verify_service_auth
from drivecrm.store import PermissionStore


def get_permission_store() -> PermissionStore:
    return PermissionStore(get_pool())


def require_auth(request: Request) -> Principal:
    result = require_route_auth(request)
    if isinstance(result, Denied):
        raise result.error
    return result.auth


def permission_required(module, action):
    """Dependency factory for an explicit (module, action) check."""
    def dependency(request: Request, store: PermissionStore = Depends(get_permission_store)) -> Granted:
        result = require_permission_route_auth(request, module, action, store)
        if isinstance(result, Denied):
            raise result.error
        return result
    return dependency


def require_mapped_permission(request: Request, store: PermissionStore = Depends(get_permission_store)) -> Granted:
    result = require_mapped_route_permission_auth(request, store)
    if isinstance(result, Denied):
        raise result.error
    return result


async def require_service_auth(request: Request) -> ServiceCall:
    result = verify_service_auth(request.headers, await request.body())
    if not isinstance(result, ServiceCall):
        raise result
    return result
