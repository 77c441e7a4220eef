# drivecrm/security/errors.py
from fastapi.responses import JSONResponse

AUTH_MISSING_BEARER = "AUTH_MISSING_BEARER"
AUTH_INVALID_TOKEN = "AUTH_INVALID_TOKEN"
AUTH_FORBIDDEN = "AUTH_FORBIDDEN"
INVALID_RULES = "INVALID_RULES"
SCOPE_UNSUPPORTED_RESOURCE = "SCOPE_UNSUPPORTED_RESOURCE"


class ApiError(Exception):
    """HTTP-shaped failure: status, stable code and a human-readable message."""

    def __init__(self, status: int, code: str, message: str):
        super().__init__(message)
        self.status = status
        self.code = code
        self.message = message

    def to_dict(self) -> dict:
        return {"error": {"code": self.code, "message": self.message}}

    def to_response(self) -> JSONResponse:
        return JSONResponse(self.to_dict(), status_code=self.status)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.status}, {self.code!r}, {self.message!r})"


class AuthError(ApiError):
    """Authentication failure (401). Code tells missing from invalid credentials."""

    def __init__(self, code: str, message: str):
        super().__init__(401, code, message)


def forbidden(message: str = "You do not have permission to perform this action") -> ApiError:
    return ApiError(403, AUTH_FORBIDDEN, message)


class InvalidRulesError(ValueError):
    """Malformed permission override or group rule data. Mapped to 400."""

    code = INVALID_RULES
    status = 400


class ScopeUnsupportedError(LookupError):
    """No narrowing rule exists for the requested resource kind. Mapped to 500."""

    code = SCOPE_UNSUPPORTED_RESOURCE
    status = 500

    def __init__(self, resource_kind):
        super().__init__(f"no scope rule for resource kind {resource_kind!r}")
        self.resource_kind = resource_kind
