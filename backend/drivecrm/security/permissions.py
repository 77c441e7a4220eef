# drivecrm/security/permissions.py
"""
Effective permission resolution.

A principal's permissions are computed per request:

    role defaults  ->  permission-group rules  ->  per-user overrides

Each layer replaces the allow/deny answer for the (module, action) pairs it
names. Any pair that ends up absent from the set is denied.
"""
import logging
from collections.abc import Mapping
from types import MappingProxyType
from typing import Iterable, NamedTuple, Optional

from .errors import ApiError, InvalidRulesError, forbidden
from .keys import Action, Module, Role, parse_action, parse_module, parse_role

logger = logging.getLogger(__name__)


class PermissionEntry(NamedTuple):
    module: Module
    action: Action
    allowed: bool


class EffectivePermissions:
    """Immutable set of allowed (module, action) pairs; everything else is denied."""

    __slots__ = ("_pairs",)

    def __init__(self, pairs: Iterable[tuple] = ()):
        self._pairs = frozenset((parse_module(m), parse_action(a)) for m, a in pairs)

    def allows(self, module, action) -> bool:
        try:
            key = (parse_module(module), parse_action(action))
        except ValueError:
            return False
        return key in self._pairs

    def __contains__(self, item) -> bool:
        module, action = item
        return self.allows(module, action)

    def __iter__(self):
        return iter(self._pairs)

    def __len__(self) -> int:
        return len(self._pairs)

    def __eq__(self, other) -> bool:
        if not isinstance(other, EffectivePermissions):
            return NotImplemented
        return self._pairs == other._pairs

    def __hash__(self) -> int:
        return hash(self._pairs)

    def __repr__(self) -> str:
        return f"EffectivePermissions({self.to_list()!r})"

    def to_list(self) -> list[str]:
        return sorted(f"{m.value}:{a.value}" for m, a in self._pairs)

    def by_module(self) -> dict[str, list[str]]:
        out: dict[str, list[str]] = {}
        for module in Module:
            actions = [a.value for a in Action if (module, a) in self._pairs]
            if actions:
                out[module.value] = actions
        return out


# ---------- Role defaults ----------

FULL_ACTIONS = tuple(Action)
VIEW_ONLY = ("VIEW",)


def _matrix(rows: dict) -> frozenset:
    pairs = set()
    for module, actions in rows.items():
        for action in actions:
            pairs.add((parse_module(module), parse_action(action)))
    return frozenset(pairs)


_MANAGER = {
    "overview": ("VIEW", "EXPORT"),
    "leads": ("VIEW", "CREATE", "UPDATE", "ASSIGN", "EXPORT"),
    "leads_board": ("VIEW", "UPDATE", "ASSIGN"),
    "kpi_daily": ("VIEW", "EXPORT"),
    "kpi_targets": ("VIEW", "EDIT"),
    "goals": ("VIEW", "EDIT"),
    "ai_kpi_coach": ("VIEW", "CREATE", "UPDATE"),
    "students": ("VIEW", "CREATE", "UPDATE", "EXPORT"),
    "courses": ("VIEW", "CREATE", "UPDATE", "EXPORT"),
    "schedule": ("VIEW", "CREATE", "UPDATE", "EXPORT"),
    "receipts": ("VIEW", "CREATE", "UPDATE", "EXPORT"),
    "notifications": ("VIEW", "CREATE", "UPDATE"),
    "messaging": ("VIEW", "CREATE", "UPDATE", "RUN"),
    "my_payroll": VIEW_ONLY,
    "ops_ai_hr": VIEW_ONLY,
    "ops_n8n": VIEW_ONLY,
    "automation_logs": ("VIEW", "CREATE", "EXPORT"),
    "automation_run": ("VIEW", "RUN"),
    "marketing_meta_ads": ("VIEW", "EXPORT"),
    "admin_branches": VIEW_ONLY,
    "admin_users": VIEW_ONLY,
    "admin_segments": ("VIEW", "ASSIGN"),
    "admin_tuition": ("VIEW", "UPDATE"),
    "admin_notification_admin": ("VIEW", "UPDATE"),
    "admin_automation_admin": ("VIEW", "RUN"),
    "admin_send_progress": ("VIEW", "RUN"),
    "admin_plans": ("VIEW", "RUN"),
    "admin_student_content": ("VIEW", "CREATE", "UPDATE"),
    "hr_kpi": ("VIEW", "EXPORT"),
    "hr_payroll_profiles": VIEW_ONLY,
    "hr_attendance": VIEW_ONLY,
    "hr_total_payroll": ("VIEW", "EXPORT"),
    "api_hub": VIEW_ONLY,
    "expenses": ("VIEW", "EDIT"),
    "salary": ("VIEW", "EDIT"),
    "insights": VIEW_ONLY,
}

_TELESALES = {
    "overview": VIEW_ONLY,
    "leads": ("VIEW", "CREATE", "UPDATE"),
    "leads_board": ("VIEW", "UPDATE"),
    "kpi_daily": VIEW_ONLY,
    "kpi_targets": VIEW_ONLY,
    "goals": VIEW_ONLY,
    "ai_kpi_coach": VIEW_ONLY,
    "students": ("VIEW", "CREATE", "UPDATE"),
    "courses": VIEW_ONLY,
    "schedule": ("VIEW", "CREATE", "UPDATE"),
    "receipts": ("VIEW", "CREATE", "UPDATE"),
    "notifications": ("VIEW", "UPDATE"),
    "messaging": ("VIEW", "CREATE", "RUN"),
    "my_payroll": VIEW_ONLY,
    "automation_logs": VIEW_ONLY,
    "marketing_meta_ads": VIEW_ONLY,
    "api_hub": VIEW_ONLY,
    "expenses": VIEW_ONLY,
    "salary": VIEW_ONLY,
    "insights": VIEW_ONLY,
}

# Direct-page staff work like telesales but cannot trigger message runs or
# edit receipts.
_DIRECT_PAGE = {
    **_TELESALES,
    "messaging": ("VIEW", "CREATE"),
    "receipts": ("VIEW", "CREATE"),
}

_VIEWER = {
    "overview": VIEW_ONLY,
    "kpi_daily": VIEW_ONLY,
    "kpi_targets": VIEW_ONLY,
    "goals": VIEW_ONLY,
    "ai_kpi_coach": VIEW_ONLY,
    "notifications": VIEW_ONLY,
    "my_payroll": VIEW_ONLY,
    "api_hub": VIEW_ONLY,
    "expenses": VIEW_ONLY,
    "salary": VIEW_ONLY,
    "insights": VIEW_ONLY,
}

DEFAULT_ROLE_PERMISSIONS = MappingProxyType({
    Role.ADMIN: frozenset((m, a) for m in Module for a in FULL_ACTIONS),
    Role.MANAGER: _matrix(_MANAGER),
    Role.TELESALES: _matrix(_TELESALES),
    Role.DIRECT_PAGE: _matrix(_DIRECT_PAGE),
    Role.VIEWER: _matrix(_VIEWER),
})


def default_permissions(role) -> EffectivePermissions:
    return EffectivePermissions(DEFAULT_ROLE_PERMISSIONS[parse_role(role)])


# ---------- Rule parsing / merging ----------

def parse_permission_entries(value) -> list[PermissionEntry]:
    """
    Validate raw override/group-rule input into PermissionEntry tuples.

    Input must be a list of mappings with a known ``module``, a known
    ``action`` and a boolean ``allowed``. Keys are normalized (trimmed,
    module lower-cased, action upper-cased) before the duplicate check.
    Raises InvalidRulesError on the first problem; nothing is dropped.
    """
    if not isinstance(value, (list, tuple)):
        raise InvalidRulesError("rules must be a list")

    entries: list[PermissionEntry] = []
    seen: set = set()
    for index, row in enumerate(value):
        if isinstance(row, PermissionEntry):
            row = row._asdict()
        if not isinstance(row, Mapping):
            raise InvalidRulesError(f"rule #{index} is not an object")
        try:
            module = parse_module(row.get("module"))
            action = parse_action(row.get("action"))
        except ValueError as e:
            raise InvalidRulesError(f"rule #{index}: {e}") from None
        allowed = row.get("allowed")
        if not isinstance(allowed, bool):
            raise InvalidRulesError(f"rule #{index}: 'allowed' must be a boolean")
        key = (module, action)
        if key in seen:
            raise InvalidRulesError(f"duplicate rule for {module.value}:{action.value}")
        seen.add(key)
        entries.append(PermissionEntry(module, action, allowed))
    return entries


def _apply(pairs: set, entries: Iterable[PermissionEntry]) -> None:
    for entry in entries:
        key = (entry.module, entry.action)
        if entry.allowed:
            pairs.add(key)
        else:
            pairs.discard(key)


def resolve_permissions(role, overrides=(), group_rules=()) -> EffectivePermissions:
    """Pure merge of role defaults, group rules and user overrides."""
    group_entries = parse_permission_entries(group_rules)
    override_entries = parse_permission_entries(overrides)
    pairs = set(DEFAULT_ROLE_PERMISSIONS[parse_role(role)])
    _apply(pairs, group_entries)
    _apply(pairs, override_entries)
    return EffectivePermissions(pairs)


# Marks a subject record the caller has not fetched yet; None means "no such user".
NOT_LOADED = object()


def get_effective_permissions(principal, store, subject=NOT_LOADED) -> EffectivePermissions:
    """
    Resolve from the subject's group rules and overrides.

    Pass ``subject`` when the caller already holds the user row, so the
    request reads it once.
    """
    if subject is NOT_LOADED:
        subject = store.load_subject(principal.sub)
    if subject is None:
        return default_permissions(principal.role)
    group_rules = store.load_group_rules(subject.group_id) if subject.group_id else []
    try:
        return resolve_permissions(principal.role, subject.overrides, group_rules)
    except InvalidRulesError:
        logger.error("Stored permission rules for user %s are malformed", principal.sub)
        raise


def has_permission(principal, module, action, permissions: Optional[EffectivePermissions] = None) -> bool:
    if permissions is None:
        permissions = default_permissions(principal.role)
    return permissions.allows(module, action)


def require_permission(principal, module, action, permissions: Optional[EffectivePermissions] = None) -> Optional[ApiError]:
    if has_permission(principal, module, action, permissions):
        return None
    return forbidden()


def serialize_permissions(permissions: EffectivePermissions) -> list[str]:
    return permissions.to_list()
