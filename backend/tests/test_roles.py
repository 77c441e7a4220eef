import pytest

from drivecrm.security.errors import AUTH_FORBIDDEN
from drivecrm.security.keys import Role, parse_role
from drivecrm.security.roles import (
    can_access_leads, is_admin_role, is_telesales_role, require_admin_role, require_lead_role,
)


@pytest.mark.parametrize("role", ["admin", "Admin", "ADMIN", " admin ", Role.ADMIN])
def test_admin_role_is_case_insensitive(role):
    assert is_admin_role(role)
    assert require_admin_role(role) is None


def test_non_admin_gets_forbidden():
    err = require_admin_role("telesales")
    assert err is not None
    assert err.status == 403
    assert err.code == AUTH_FORBIDDEN
    assert err.message
    assert err.to_dict() == {"error": {"code": AUTH_FORBIDDEN, "message": "Admin only"}}


@pytest.mark.parametrize("role", [None, "", "administrator", 42])
def test_garbage_roles_are_not_admin(role):
    assert not is_admin_role(role)


@pytest.mark.parametrize("role,expected", [
    ("admin", True),
    ("Telesales", True),
    ("manager", False),
    ("direct_page", False),
    ("viewer", False),
])
def test_lead_gate(role, expected):
    assert can_access_leads(role) is expected
    assert (require_lead_role(role) is None) is expected


def test_lead_gate_denial_shape():
    err = require_lead_role("viewer")
    assert (err.status, err.code) == (403, AUTH_FORBIDDEN)


def test_telesales_role():
    assert is_telesales_role("TELESALES")
    assert is_telesales_role(" telesales")
    assert can_access_leads("Telesales\n")
    assert not is_telesales_role("admin")


def test_parse_role_rejects_unknown():
    assert parse_role(" Manager ") is Role.MANAGER
    with pytest.raises(ValueError):
        parse_role("student")
    with pytest.raises(ValueError):
        parse_role(None)


@pytest.mark.parametrize("raw", [" Admin", "manager ", "\tVIEWER"])
def test_gate_and_parser_agree_on_padding(raw):
    assert is_admin_role(raw) == (parse_role(raw) is Role.ADMIN)
