# drivecrm/routes/admin.py
import logging

from fastapi import APIRouter, Depends

from drivecrm.deps import get_permission_store, permission_required, require_auth
from drivecrm.models import PutOverridesIn, UserPermissionsOut
from drivecrm.security.auth import Principal
from drivecrm.security.errors import ApiError
from drivecrm.security.keys import Action, Module, Role, parse_role
from drivecrm.security.permissions import (
    DEFAULT_ROLE_PERMISSIONS, EffectivePermissions, get_effective_permissions, parse_permission_entries,
)
from drivecrm.security.roles import require_admin_role
from drivecrm.store import UNSET, PermissionStore, SubjectRecord

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


def _not_found() -> ApiError:
    return ApiError(404, "NOT_FOUND", "User not found")


def _target(subject: SubjectRecord) -> Principal:
    try:
        role = parse_role(subject.role)
    except ValueError:
        logger.error("User %s has unknown stored role %r", subject.id, subject.role)
        raise ApiError(409, "INVALID_ROLE", "User has an unknown role") from None
    return Principal(sub=subject.id, role=role, email=subject.email)


def _user_permissions(store: PermissionStore, subject: SubjectRecord) -> dict:
    target = _target(subject)
    effective = get_effective_permissions(target, store, subject=subject)
    return {
        "user": {
            "id": subject.id,
            "email": subject.email,
            "name": subject.name,
            "role": target.role.value,
            "group_id": subject.group_id,
        },
        "overrides": subject.overrides,
        "effective_permissions": effective.to_list(),
    }


@router.get("/roles")
def role_defaults(principal: Principal = Depends(require_auth)):
    """Default permission matrix per role (admin only)."""
    error = require_admin_role(principal.role)
    if error is not None:
        raise error
    return {
        role.value: EffectivePermissions(DEFAULT_ROLE_PERMISSIONS[role]).to_list()
        for role in Role
    }


@router.get(
    "/users/{user_id}/permission-overrides",
    response_model=UserPermissionsOut,
    dependencies=[Depends(permission_required(Module.ADMIN_USERS, Action.VIEW))],
)
def get_overrides(
    user_id: str,
    store: PermissionStore = Depends(get_permission_store),
):
    subject = store.load_subject(user_id)
    if subject is None:
        raise _not_found()
    return _user_permissions(store, subject)


@router.put(
    "/users/{user_id}/permission-overrides",
    response_model=UserPermissionsOut,
    dependencies=[Depends(permission_required(Module.ADMIN_USERS, Action.UPDATE))],
)
def put_overrides(
    user_id: str,
    payload: PutOverridesIn,
    store: PermissionStore = Depends(get_permission_store),
):
    """Replace the user's override list (and optionally their permission group)."""
    existing = store.load_subject(user_id)
    if existing is None:
        raise _not_found()
    _target(existing)

    # Raises InvalidRulesError before anything is written
    entries = parse_permission_entries(payload.overrides)

    group_id = UNSET
    if "group_id" in payload.model_fields_set:
        if payload.group_id is not None and not store.group_exists(payload.group_id):
            raise ApiError(400, "INVALID_GROUP", "Permission group not found")
        group_id = payload.group_id

    store.replace_overrides(user_id, entries, group_id=group_id)

    subject = store.load_subject(user_id)
    if subject is None:
        raise _not_found()
    return _user_permissions(store, subject)
