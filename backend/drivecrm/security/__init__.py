# Re-export security primitives from a single namespace.
from .auth import Principal, authenticate
from .errors import ApiError, AuthError, InvalidRulesError, ScopeUnsupportedError
from .keys import Action, Module, Role
from .permissions import EffectivePermissions, get_effective_permissions, resolve_permissions
from .roles import can_access_leads, is_admin_role, require_admin_role, require_lead_role
from .route_auth import (
    Denied, Granted, require_mapped_route_permission_auth, require_permission_route_auth, require_route_auth,
)
from .scope import AccessScope, apply_scope_to_where, get_scope

__all__ = [
    "Principal", "authenticate",
    "ApiError", "AuthError", "InvalidRulesError", "ScopeUnsupportedError",
    "Action", "Module", "Role",
    "EffectivePermissions", "get_effective_permissions", "resolve_permissions",
    "can_access_leads", "is_admin_role", "require_admin_role", "require_lead_role",
    "Denied", "Granted", "require_route_auth", "require_permission_route_auth",
    "require_mapped_route_permission_auth",
    "AccessScope", "apply_scope_to_where", "get_scope",
]
