import time
from unittest.mock import MagicMock

import jwt
import pytest
from fastapi import Request
from fastapi.testclient import TestClient

from drivecrm import config
from drivecrm.deps import get_permission_store
from drivecrm.main import app

TEST_SECRET = "test-secret-0123456789abcdef0123456789"


@pytest.fixture(autouse=True)
def _secrets(monkeypatch):
    monkeypatch.setattr(config, "JWT_SECRET", TEST_SECRET)
    monkeypatch.setattr(config, "JWT_ALG", "HS256")
    monkeypatch.setattr(config, "SERVICE_TOKEN", "svc-token")
    monkeypatch.setattr(config, "CRM_HMAC_SECRET", "hmac-secret")


@pytest.fixture
def mint():
    """Factory for signed access tokens."""
    def _mint(sub="u-1", role="telesales", ttl=3600, secret=TEST_SECRET, **extra):
        now = int(time.time())
        payload = {"sub": sub, "role": role, "email": f"{sub}@example.test", "iat": now, "exp": now + ttl}
        payload.update(extra)
        return jwt.encode(payload, secret, algorithm="HS256")
    return _mint


@pytest.fixture
def make_request():
    """Factory for bare Starlette requests (no app round-trip)."""
    def _make(method="GET", path="/", headers=None):
        raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
        return Request({
            "type": "http",
            "method": method,
            "path": path,
            "headers": raw,
            "query_string": b"",
        })
    return _make


@pytest.fixture
def store():
    s = MagicMock()
    s.load_subject.return_value = None
    s.load_group_rules.return_value = []
    s.active_branch_ids.return_value = []
    s.count_leads.return_value = 0
    s.fetch_leads.return_value = []
    return s


@pytest.fixture
def client(store):
    app.dependency_overrides[get_permission_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()
