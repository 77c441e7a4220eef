# drivecrm/security/auth.py
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import jwt  # PyJWT
from fastapi import Request

from drivecrm import config
from .errors import AUTH_INVALID_TOKEN, AUTH_MISSING_BEARER, AuthError
from .keys import Role, parse_role

logger = logging.getLogger(__name__)

MISSING_MESSAGE = "Missing or invalid Authorization Bearer token"
INVALID_MESSAGE = "Invalid or expired token"


@dataclass(frozen=True)
class Principal:
    """Represents an authenticated staff user for the lifetime of one request."""
    sub: str
    role: Role
    email: Optional[str] = None


def _missing(detail: str) -> AuthError:
    logger.warning("Auth failed: %s", detail)
    return AuthError(AUTH_MISSING_BEARER, MISSING_MESSAGE)


def _invalid(detail: str) -> AuthError:
    logger.warning("Auth failed: %s", detail)
    return AuthError(AUTH_INVALID_TOKEN, INVALID_MESSAGE)


def extract_token(authorization: Optional[str], cookie: Optional[str]) -> str:
    """
    Pick the credential for this request:
    - an Authorization header, when present, must be exactly "Bearer <token>"
    - otherwise fall back to the session cookie
    """
    if authorization is not None and authorization.strip():
        parts = authorization.split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            raise _missing("Malformed Authorization header")
        return parts[1]
    if cookie:
        return cookie
    raise _missing("No bearer token or session cookie")


def principal_from_claims(payload: Dict[str, Any]) -> Principal:
    sub = payload.get("sub")
    if not isinstance(sub, str) or not sub:
        raise _invalid("Token has no subject")
    if payload.get("type") == "refresh":
        raise _invalid("Refresh token used as access token")
    try:
        role = parse_role(payload.get("role"))
    except ValueError:
        raise _invalid(f"Unknown role claim {payload.get('role')!r}") from None
    email = payload.get("email")
    return Principal(sub=sub, role=role, email=email if isinstance(email, str) else None)


def decode_access_token(token: str) -> Principal:
    if not config.JWT_SECRET:
        raise _invalid("JWT_SECRET not configured")
    try:
        payload = jwt.decode(
            token,
            config.JWT_SECRET,
            algorithms=[config.JWT_ALG],
            leeway=config.JWT_LEEWAY_SECONDS,
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise _invalid("Token expired") from None
    except jwt.InvalidSignatureError:
        raise _invalid("Bad signature") from None
    except jwt.PyJWTError as e:
        raise _invalid(f"JWT error: {e}") from None
    return principal_from_claims(payload)


def authenticate(request: Request) -> Principal:
    """Resolve the principal from a bearer header or the access-token cookie."""
    token = extract_token(
        request.headers.get("authorization"),
        request.cookies.get(config.ACCESS_TOKEN_COOKIE),
    )
    return decode_access_token(token)


__all__ = ["Principal", "authenticate", "decode_access_token", "extract_token", "principal_from_claims"]
