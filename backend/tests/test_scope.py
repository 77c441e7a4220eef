import pytest
from psycopg import sql

from drivecrm.security.auth import Principal
from drivecrm.security.errors import SCOPE_UNSUPPORTED_RESOURCE, ScopeUnsupportedError
from drivecrm.security.keys import Role
from drivecrm.security.scope import (
    NO_ACCESS_BRANCH, AccessScope, ScopeMode, apply_scope_to_where, compile_where, enforce_branch_scope,
    get_allowed_branch_ids, get_scope, resolve_scope, where_branch_scope, where_owner_scope,
)
from drivecrm.store import SubjectRecord
from rowfilters import matches

KINDS = ("lead", "student", "receipt", "schedule")


def _lead(owner, branch, status="NEW"):
    return {"owner_id": owner, "branch_id": branch, "status": status}


def _row(kind, owner, branch, status="NEW"):
    lead = _lead(owner, branch, status)
    if kind == "lead":
        return lead
    student = {"branch_id": branch, "status": status, "lead": lead}
    if kind == "student":
        return student
    if kind == "receipt":
        return {"branch_id": branch, "status": status, "student": student}
    return {"branch_id": branch, "status": status, "course": {"students": [student]}}


def _owner_of(kind, row):
    if kind == "lead":
        return row["owner_id"]
    if kind == "student":
        return row["lead"]["owner_id"]
    if kind == "receipt":
        return row["student"]["lead"]["owner_id"]
    return row["course"]["students"][0]["lead"]["owner_id"]


def _sample(kind):
    return [
        _row(kind, owner, branch, status)
        for owner in ("u1", "u2", None)
        for branch in ("b1", "b2")
        for status in ("NEW", "WON")
    ]


SCOPES = [
    AccessScope(ScopeMode.SYSTEM),
    AccessScope(ScopeMode.BRANCH, branch_id="b1"),
    AccessScope(ScopeMode.OWNER, owner_id="u1"),
    AccessScope(ScopeMode.OWNER, branch_id="b2", owner_id="u1"),
]


# ---------- resolve_scope ----------

@pytest.mark.parametrize("role,branch,expected", [
    ("admin", "b1", AccessScope(ScopeMode.SYSTEM)),
    ("admin", None, AccessScope(ScopeMode.SYSTEM)),
    ("telesales", "b1", AccessScope(ScopeMode.OWNER, branch_id="b1", owner_id="u1")),
    ("telesales", None, AccessScope(ScopeMode.OWNER, owner_id="u1")),
    ("direct_page", "b1", AccessScope(ScopeMode.OWNER, branch_id="b1", owner_id="u1")),
    ("manager", "b1", AccessScope(ScopeMode.BRANCH, branch_id="b1")),
    ("manager", None, AccessScope(ScopeMode.OWNER, owner_id="u1")),
    ("viewer", "b2", AccessScope(ScopeMode.BRANCH, branch_id="b2")),
    ("viewer", "", AccessScope(ScopeMode.OWNER, owner_id="u1")),
])
def test_resolve_scope(role, branch, expected):
    principal = Principal(sub="u1", role=Role(role))
    assert resolve_scope(principal, branch) == expected


def test_get_scope_reads_branch_from_store(store):
    store.load_subject.return_value = SubjectRecord(id="u1", role="manager", branch_id="b7")
    scope = get_scope(Principal(sub="u1", role=Role.MANAGER), store)
    assert scope == AccessScope(ScopeMode.BRANCH, branch_id="b7")


def test_get_scope_admin_skips_store(store):
    assert get_scope(Principal(sub="a", role=Role.ADMIN), store).mode is ScopeMode.SYSTEM
    store.load_subject.assert_not_called()


def test_get_scope_uses_loaded_subject(store):
    subject = SubjectRecord(id="u1", role="telesales", branch_id="b3")
    scope = get_scope(Principal(sub="u1", role=Role.TELESALES), store, subject=subject)
    assert scope == AccessScope(ScopeMode.OWNER, branch_id="b3", owner_id="u1")
    store.load_subject.assert_not_called()


def test_get_scope_with_missing_subject(store):
    scope = get_scope(Principal(sub="u1", role=Role.MANAGER), store, subject=None)
    assert scope == AccessScope(ScopeMode.OWNER, owner_id="u1")
    store.load_subject.assert_not_called()


def test_restricted_scope_requires_its_key():
    with pytest.raises(ValueError):
        AccessScope(ScopeMode.BRANCH)
    with pytest.raises(ValueError):
        AccessScope(ScopeMode.OWNER, branch_id="b1")


def test_scope_to_dict():
    scope = AccessScope(ScopeMode.OWNER, branch_id="b1", owner_id="u1")
    assert scope.to_dict() == {"mode": "OWNER", "branchId": "b1", "ownerId": "u1"}
    assert AccessScope(ScopeMode.SYSTEM).to_dict() == {"mode": "SYSTEM"}


# ---------- apply_scope_to_where ----------

def test_owner_scope_on_leads():
    scope = AccessScope(ScopeMode.OWNER, owner_id="u1")
    assert apply_scope_to_where({"status": "NEW"}, scope, "lead") == {
        "AND": [{"status": "NEW"}, {"owner_id": "u1"}],
    }


def test_owner_scope_on_receipts_goes_through_lead():
    scope = AccessScope(ScopeMode.OWNER, owner_id="u1")
    assert apply_scope_to_where({}, scope, "receipt") == {
        "AND": [{"student": {"lead": {"owner_id": "u1"}}}],
    }


def test_owner_scope_with_branch():
    scope = AccessScope(ScopeMode.OWNER, branch_id="b1", owner_id="u1")
    assert apply_scope_to_where(None, scope, "student") == {
        "AND": [{"AND": [{"lead": {"owner_id": "u1"}}, {"branch_id": "b1"}]}],
    }


def test_branch_scope():
    scope = AccessScope(ScopeMode.BRANCH, branch_id="b1")
    assert apply_scope_to_where({"status": "NEW"}, scope, "schedule") == {
        "AND": [{"status": "NEW"}, {"branch_id": "b1"}],
    }


def test_system_scope_leaves_filter_alone():
    where = {"status": "NEW"}
    assert apply_scope_to_where(where, AccessScope(ScopeMode.SYSTEM), "lead") == where
    assert apply_scope_to_where(None, AccessScope(ScopeMode.SYSTEM), "lead") == {}


@pytest.mark.parametrize("scope", SCOPES)
def test_unknown_kind_raises_in_every_mode(scope):
    with pytest.raises(ScopeUnsupportedError) as exc:
        apply_scope_to_where({}, scope, "invoice")
    assert exc.value.code == SCOPE_UNSUPPORTED_RESOURCE
    assert exc.value.resource_kind == "invoice"


@pytest.mark.parametrize("kind", KINDS)
@pytest.mark.parametrize("scope", SCOPES)
@pytest.mark.parametrize("where", [{}, {"status": "NEW"}, {"branch_id": "b2"}])
def test_scoping_only_narrows(kind, scope, where):
    scoped = apply_scope_to_where(where, scope, kind)
    for row in _sample(kind):
        if matches(scoped, row):
            assert matches(where, row)
            if scope.mode is ScopeMode.OWNER:
                assert _owner_of(kind, row) == scope.owner_id
            if scope.branch_id:
                assert row["branch_id"] == scope.branch_id


@pytest.mark.parametrize("kind", KINDS)
def test_owner_scope_keeps_own_rows(kind):
    scope = AccessScope(ScopeMode.OWNER, owner_id="u1")
    scoped = apply_scope_to_where({}, scope, kind)
    kept = [r for r in _sample(kind) if matches(scoped, r)]
    assert len(kept) == 4
    assert all(_owner_of(kind, r) == "u1" for r in kept)


# ---------- branch helpers ----------

def test_allowed_branches_admin_gets_all_active(store):
    store.active_branch_ids.return_value = ["b1", "b2"]
    assert get_allowed_branch_ids(Principal(sub="a", role=Role.ADMIN), store) == ["b1", "b2"]


def test_allowed_branches_staff_gets_own(store):
    store.load_subject.return_value = SubjectRecord(id="u1", role="manager", branch_id="b1")
    assert get_allowed_branch_ids(Principal(sub="u1", role=Role.MANAGER), store) == ["b1"]
    store.load_subject.return_value = SubjectRecord(id="u1", role="manager")
    assert get_allowed_branch_ids(Principal(sub="u1", role=Role.MANAGER), store) == []


def test_allowed_branches_from_loaded_subject(store):
    subject = SubjectRecord(id="u1", role="manager", branch_id="b4")
    assert get_allowed_branch_ids(Principal(sub="u1", role=Role.MANAGER), store, subject=subject) == ["b4"]
    store.load_subject.assert_not_called()


def test_enforce_branch_scope():
    assert enforce_branch_scope("b1", ["b1", "b2"]) == "b1"
    assert enforce_branch_scope("b3", ["b1"]) is None
    assert enforce_branch_scope(None, ["b1"]) is None


def test_where_branch_scope():
    admin = Principal(sub="a", role=Role.ADMIN)
    staff = Principal(sub="u1", role=Role.MANAGER)
    assert where_branch_scope(admin, {"status": "NEW"}, []) == {"status": "NEW"}
    assert where_branch_scope(staff, None, ["b1"]) == {"AND": [{"branch_id": {"in": ["b1"]}}]}
    assert where_branch_scope(staff, {"status": "NEW"}, []) == {
        "AND": [{"status": "NEW"}, {"branch_id": NO_ACCESS_BRANCH}],
    }


def test_no_access_branch_matches_nothing():
    staff = Principal(sub="u1", role=Role.TELESALES)
    where = where_branch_scope(staff, {}, [])
    assert not any(matches(where, r) for r in _sample("lead"))


def test_where_owner_scope():
    principal = Principal(sub="u1", role=Role.TELESALES)
    assert where_owner_scope(principal, {"status": "NEW"}) == {"AND": [{"status": "NEW"}, {"owner_id": "u1"}]}


# ---------- matches / compile_where ----------

def test_matches_operators():
    row = {"owner_id": None, "branch_id": "b1", "course": {"students": []}}
    assert matches({"owner_id": None}, row)
    assert matches({"branch_id": {"in": ["b1", "b2"]}}, row)
    assert not matches({"branch_id": {"in": []}}, row)
    assert not matches({"course": {"students": {"some": {"status": "NEW"}}}}, row)
    assert not matches({"lead": {"owner_id": "u1"}}, row)
    assert matches({}, row)


def test_compile_empty_filter():
    clause, params = compile_where({}, "leads")
    assert clause == sql.SQL("TRUE")
    assert params == []


def test_compile_params_follow_filter_order():
    where = {"AND": [{"status": "NEW"}, {"AND": [{"owner_id": "u1"}, {"branch_id": "b1"}]}]}
    _, params = compile_where(where, "leads")
    assert params == ["NEW", "u1", "b1"]


def test_compile_in_and_null():
    _, params = compile_where({"branch_id": {"in": ("b1", "b2")}, "owner_id": None}, "leads")
    assert params == [["b1", "b2"]]


def test_compile_nested_relations():
    scope = AccessScope(ScopeMode.OWNER, branch_id="b1", owner_id="u1")
    where = apply_scope_to_where({"status": "PAID"}, scope, "schedule")
    clause, params = compile_where(where, "course_schedule_items")
    assert isinstance(clause, sql.Composable)
    assert params == ["PAID", "u1", "b1"]


def test_compile_rejects_unsupported_filters():
    with pytest.raises(ValueError):
        compile_where({"students": {"status": "NEW"}}, "courses")
    with pytest.raises(ValueError):
        compile_where({"owner_id": {"gt": 1}}, "leads")
