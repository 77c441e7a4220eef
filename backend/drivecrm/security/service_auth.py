# drivecrm/security/service_auth.py
import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from drivecrm import config
from .errors import AUTH_INVALID_TOKEN, ApiError

logger = logging.getLogger(__name__)

REPLAY_WINDOW_MS = 5 * 60 * 1000


@dataclass(frozen=True)
class ServiceCall:
    body: Any


def _deny(status: int, code: str, message: str) -> ApiError:
    logger.warning("Service auth failed: %s", code)
    return ApiError(status, code, message)


def _same(given: str, expected: str) -> bool:
    # Header values arrive latin-1 decoded; compare_digest only takes ASCII str
    return hmac.compare_digest(given.encode("utf-8", "surrogateescape"), expected.encode("utf-8"))


def sign_body(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()


def verify_service_auth(
    headers: Mapping[str, str],
    raw_body: bytes,
    now_ms: Optional[int] = None,
) -> Union[ServiceCall, ApiError]:
    """
    Verify a service-to-service request:
    1. x-service-token equals SERVICE_TOKEN
    2. x-timestamp (epoch ms) is within the replay window
    3. body is JSON
    4. x-signature is the hex HMAC-SHA256 of the raw body
    """
    expected = config.SERVICE_TOKEN
    token = headers.get("x-service-token") or ""
    if not expected or not _same(token, expected):
        return _deny(401, AUTH_INVALID_TOKEN, "Invalid service token")

    if now_ms is None:
        now_ms = int(time.time() * 1000)
    try:
        ts = int(headers.get("x-timestamp") or "")
    except ValueError:
        ts = 0
    if not ts or abs(now_ms - ts) > REPLAY_WINDOW_MS:
        return _deny(401, "AUTH_REPLAY", "Request timestamp out of range")

    try:
        body = json.loads(raw_body)
    except ValueError:
        return _deny(400, "INVALID_JSON", "Invalid JSON body")

    signature = headers.get("x-signature") or ""
    expected_sig = sign_body(raw_body, config.CRM_HMAC_SECRET)
    if not signature or not _same(signature, expected_sig):
        return _deny(401, "AUTH_INVALID_SIGNATURE", "Invalid HMAC signature")

    return ServiceCall(body=body)
