# drivecrm/security/scope.py
"""
Row-level scope for list and aggregate queries.

A scope is derived from the principal's role and branch and is merged into
the caller's filter with AND, so it can only narrow a result set.

Filters are plain dicts shaped like the query they describe:

    {"status": "NEW"}                           column equality
    {"branch_id": {"in": ["b1", "b2"]}}         membership
    {"owner_id": None}                          IS NULL
    {"lead": {"owner_id": "u1"}}                to-one relation
    {"students": {"some": {...}}}               to-many relation
    {"AND": [{...}, {...}]}                     conjunction

``compile_where`` renders a filter to SQL for psycopg.
"""
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple, Optional

from psycopg import sql

from .errors import ScopeUnsupportedError
from .keys import Role, parse_role
from .permissions import NOT_LOADED

NO_ACCESS_BRANCH = "__NO_ACCESS__"


class ScopeMode(str, Enum):
    SYSTEM = "SYSTEM"
    BRANCH = "BRANCH"
    OWNER = "OWNER"


@dataclass(frozen=True)
class AccessScope:
    mode: ScopeMode
    branch_id: Optional[str] = None
    owner_id: Optional[str] = None

    def __post_init__(self):
        # A restricted scope without its key would narrow nothing.
        if self.mode is ScopeMode.BRANCH and not self.branch_id:
            raise ValueError("BRANCH scope requires branch_id")
        if self.mode is ScopeMode.OWNER and not self.owner_id:
            raise ValueError("OWNER scope requires owner_id")

    def to_dict(self) -> dict:
        out = {"mode": self.mode.value}
        if self.branch_id:
            out["branchId"] = self.branch_id
        if self.owner_id:
            out["ownerId"] = self.owner_id
        return out


def resolve_scope(principal, branch_id: Optional[str]) -> AccessScope:
    role = parse_role(principal.role)
    if role is Role.ADMIN:
        return AccessScope(ScopeMode.SYSTEM)
    if role in (Role.TELESALES, Role.DIRECT_PAGE):
        return AccessScope(ScopeMode.OWNER, branch_id=branch_id or None, owner_id=principal.sub)
    if branch_id:
        return AccessScope(ScopeMode.BRANCH, branch_id=branch_id)
    return AccessScope(ScopeMode.OWNER, owner_id=principal.sub)


def get_scope(principal, store, subject=NOT_LOADED) -> AccessScope:
    if parse_role(principal.role) is Role.ADMIN:
        return AccessScope(ScopeMode.SYSTEM)
    if subject is NOT_LOADED:
        subject = store.load_subject(principal.sub)
    return resolve_scope(principal, subject.branch_id if subject else None)


# ---------- Scope -> filter ----------

def _lead_owner(owner_id):
    return {"owner_id": owner_id}


def _student_owner(owner_id):
    return {"lead": {"owner_id": owner_id}}


def _receipt_owner(owner_id):
    return {"student": {"lead": {"owner_id": owner_id}}}


def _schedule_owner(owner_id):
    return {"course": {"students": {"some": {"lead": {"owner_id": owner_id}}}}}


OWNER_FILTERS = {
    "lead": _lead_owner,
    "student": _student_owner,
    "receipt": _receipt_owner,
    "schedule": _schedule_owner,
}

RESOURCE_TABLES = {
    "lead": "leads",
    "student": "students",
    "receipt": "receipts",
    "schedule": "course_schedule_items",
}


def _with_and(where: Optional[dict], extra: dict) -> dict:
    base = [where] if where else []
    return {"AND": [*base, extra]}


def apply_scope_to_where(where: Optional[dict], scope: AccessScope, resource_kind: str) -> dict:
    """
    AND the scope's restriction onto ``where`` for ``resource_kind``.

    Raises ScopeUnsupportedError for kinds without an owner rule, in every
    mode, so a typo never turns into an unscoped query.
    """
    owner_filter = OWNER_FILTERS.get(resource_kind)
    if owner_filter is None:
        raise ScopeUnsupportedError(resource_kind)

    if scope.mode is ScopeMode.SYSTEM:
        return where or {}
    if scope.mode is ScopeMode.BRANCH:
        return _with_and(where, {"branch_id": scope.branch_id})

    restriction = owner_filter(scope.owner_id)
    if scope.branch_id:
        restriction = {"AND": [restriction, {"branch_id": scope.branch_id}]}
    return _with_and(where, restriction)


# ---------- Branch helpers ----------

def get_allowed_branch_ids(principal, store, subject=NOT_LOADED) -> list[str]:
    if parse_role(principal.role) is Role.ADMIN:
        return store.active_branch_ids()
    if subject is NOT_LOADED:
        subject = store.load_subject(principal.sub)
    return [subject.branch_id] if subject and subject.branch_id else []


def enforce_branch_scope(branch_id: Optional[str], allowed_ids) -> Optional[str]:
    """Return ``branch_id`` if the caller may use it, else None."""
    if not branch_id or branch_id not in allowed_ids:
        return None
    return branch_id


def where_branch_scope(principal, where: Optional[dict], allowed_ids) -> dict:
    if parse_role(principal.role) is Role.ADMIN:
        return where or {}
    if not allowed_ids:
        return _with_and(where, {"branch_id": NO_ACCESS_BRANCH})
    return _with_and(where, {"branch_id": {"in": list(allowed_ids)}})


def where_owner_scope(principal, where: Optional[dict]) -> dict:
    return _with_and(where, {"owner_id": principal.sub})


# ---------- SQL ----------

def _is_op(value, op: str) -> bool:
    return isinstance(value, Mapping) and set(value) == {op}


class Relation(NamedTuple):
    local: str
    target: str
    remote: str
    many: bool = False


RELATIONS = {
    ("students", "lead"): Relation("lead_id", "leads", "id"),
    ("receipts", "student"): Relation("student_id", "students", "id"),
    ("course_schedule_items", "course"): Relation("course_id", "courses", "id"),
    ("courses", "students"): Relation("id", "students", "course_id", many=True),
}


def compile_where(where: Optional[Mapping], table: str) -> tuple[sql.Composable, list]:
    """Render a filter dict to a WHERE clause body and its positional params."""
    params: list = []
    return _compile(where or {}, table, params), params


def _compile(where: Mapping, table: str, params: list) -> sql.Composable:
    parts = []
    for key, value in where.items():
        if key == "AND":
            for item in value:
                parts.append(sql.SQL("({})").format(_compile(item, table, params)))
            continue

        relation = RELATIONS.get((table, key))
        if relation is not None:
            if relation.many:
                if not _is_op(value, "some"):
                    raise ValueError(f"to-many relation {table}.{key} needs a 'some' filter")
                value = value["some"]
            inner = _compile(value, relation.target, params)
            parts.append(sql.SQL("{} IN (SELECT {} FROM {} WHERE {})").format(
                sql.Identifier(table, relation.local),
                sql.Identifier(relation.target, relation.remote),
                sql.Identifier(relation.target),
                inner,
            ))
            continue

        column = sql.Identifier(table, key)
        if _is_op(value, "in"):
            params.append(list(value["in"]))
            parts.append(sql.SQL("{} = ANY(%s)").format(column))
        elif isinstance(value, Mapping):
            raise ValueError(f"unsupported filter on {table}.{key}")
        elif value is None:
            parts.append(sql.SQL("{} IS NULL").format(column))
        else:
            params.append(value)
            parts.append(sql.SQL("{} = %s").format(column))

    if not parts:
        return sql.SQL("TRUE")
    return sql.SQL(" AND ").join(parts)
