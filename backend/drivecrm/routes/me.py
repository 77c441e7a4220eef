# drivecrm/routes/me.py
from fastapi import APIRouter, Depends

from drivecrm.deps import get_permission_store, require_auth
from drivecrm.models import MeOut, PermissionsOut
from drivecrm.security.auth import INVALID_MESSAGE, Principal
from drivecrm.security.errors import AUTH_INVALID_TOKEN, AuthError
from drivecrm.security.permissions import get_effective_permissions
from drivecrm.store import PermissionStore

router = APIRouter(prefix="/api", tags=["auth"])


@router.get("/auth/me", response_model=MeOut)
def me(
    principal: Principal = Depends(require_auth),
    store: PermissionStore = Depends(get_permission_store),
):
    """Current user; a token for a deleted or deactivated user is rejected."""
    subject = store.load_subject(principal.sub)
    if subject is None or not subject.is_active:
        raise AuthError(AUTH_INVALID_TOKEN, INVALID_MESSAGE)
    return {"user": {"id": subject.id, "role": principal.role.value, "email": subject.email}}


@router.get("/me/permissions", response_model=PermissionsOut)
def my_permissions(
    principal: Principal = Depends(require_auth),
    store: PermissionStore = Depends(get_permission_store),
):
    permissions = get_effective_permissions(principal, store)
    return {
        "role": principal.role.value,
        "permissions": permissions.to_list(),
        "modules": permissions.by_module(),
    }
