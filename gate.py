"""
Request gate in front of the admin pages and every mutating API route.

It checks HTTP Basic credentials against ``ADMIN_USERNAME``/``ADMIN_PASSWORD``
and counts failed attempts per client IP in a fixed window. Routes that
carry their own member session (comments, projects, forum, ...) and the
public submission endpoints pass straight through.

The counters live in this process only: they reset on restart and are not
shared between instances.
"""
from __future__ import annotations

import base64
import binascii
import logging
import math
import re
import secrets
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Union

from limits import RateLimitItem, parse
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from config import Settings, get_settings
from errors import error_response

LOGGER = logging.getLogger(__name__)

MAX_FAILED_ATTEMPTS = 5
WINDOW_SECONDS = 15 * 60
FAILED_LOGIN_LIMIT = f"{MAX_FAILED_ATTEMPTS}/15minutes"

ADMIN_PREFIX = "/admin"
API_PREFIX = "/api"
WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

AUTH_REALM = 'Basic realm="Admin Panel"'

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}
DENIAL_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
}

# Write routes authenticated by the member session cookie, or public.
SESSION_WRITE_PREFIXES: Tuple[str, ...] = (
    "/api/auth",
    "/api/comments",
    "/api/projects",
    "/api/forum",
    "/api/notifications",
)
PUBLIC_POST_PREFIXES: Tuple[str, ...] = (
    "/api/registrations",
    "/api/applicants",
)
PUBLIC_POST_PATTERNS = (
    re.compile(r"^/api/elections/[^/]+/(verify|vote)$"),
    re.compile(r"^/api/events/[^/]+/checkin$"),
)


def _under(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix + "/")


def client_ip(headers) -> str:
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return "unknown"


class AttemptTracker:
    """Fixed-window counter keyed by client IP, held in a ``limits`` memory store.

    A window opens with the first hit on a key and lasts for the rate's
    period; once it has elapsed the key starts over. The store reads
    ``time.time`` itself, so ``clock`` must tell the same time.
    """

    def __init__(
        self,
        limit: Union[str, RateLimitItem] = FAILED_LOGIN_LIMIT,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.item = parse(limit) if isinstance(limit, str) else limit
        self._storage = MemoryStorage()
        self._limiter = FixedWindowRateLimiter(self._storage)
        self._clock = clock

    @property
    def max_attempts(self) -> int:
        return self.item.amount

    @property
    def window_seconds(self) -> int:
        return self.item.get_expiry()

    def is_limited(self, key: str) -> bool:
        return not self._limiter.test(self.item, key)

    def record_failure(self, key: str) -> int:
        """Count one failure for ``key`` and return the count in the window."""
        self._limiter.hit(self.item, key)
        return self.attempts(key)

    def hit(self, key: str) -> bool:
        """Count one request and report whether it is still within the limit."""
        return self._limiter.hit(self.item, key)

    def clear(self, key: str) -> None:
        self._limiter.clear(self.item, key)

    def attempts(self, key: str) -> int:
        return self._storage.get(self.item.key_for(key))

    def remaining_seconds(self, key: str) -> int:
        if not self.attempts(key):
            return 0
        reset_time, _ = self._limiter.get_window_stats(self.item, key)
        return max(0, math.ceil(reset_time - self._clock()))


@dataclass(frozen=True)
class CredentialCheck:
    valid: bool
    record_failure: bool


def check_basic_credentials(authorization: Optional[str], settings: Settings) -> CredentialCheck:
    if not settings.admin_credentials_configured:
        LOGGER.error("SECURITY: ADMIN_USERNAME or ADMIN_PASSWORD is not configured.")
        return CredentialCheck(valid=False, record_failure=False)

    if not authorization:
        return CredentialCheck(valid=False, record_failure=False)

    scheme, _, encoded = authorization.partition(" ")
    if scheme != "Basic" or not encoded.strip():
        return CredentialCheck(valid=False, record_failure=True)

    try:
        decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return CredentialCheck(valid=False, record_failure=True)

    username, _, password = decoded.partition(":")
    username_ok = secrets.compare_digest(username.encode(), settings.admin_username.encode())
    password_ok = secrets.compare_digest(password.encode(), settings.admin_password.encode())
    if username_ok and password_ok:
        return CredentialCheck(valid=True, record_failure=False)
    return CredentialCheck(valid=False, record_failure=True)


def _is_session_or_public_write(method: str, path: str) -> bool:
    if any(_under(path, prefix) for prefix in SESSION_WRITE_PREFIXES):
        return True
    if method != "POST":
        return False
    if any(_under(path, prefix) for prefix in PUBLIC_POST_PREFIXES):
        return True
    return any(pattern.match(path) for pattern in PUBLIC_POST_PATTERNS)


def _unauthorized() -> Response:
    headers = dict(DENIAL_HEADERS)
    headers["WWW-Authenticate"] = AUTH_REALM
    return error_response(401, "Authentication required", headers)


def _forbidden(minutes: int) -> Response:
    return error_response(
        403,
        f"Too many failed login attempts. Please try again in {minutes} minutes.",
        DENIAL_HEADERS,
    )


class RequestGate:
    """Decides per request whether it may reach the routes."""

    def __init__(
        self,
        tracker: Optional[AttemptTracker] = None,
        settings_provider: Callable[[], Settings] = get_settings,
    ) -> None:
        self.tracker = tracker or AttemptTracker()
        self._settings_provider = settings_provider

    def _require_credentials(self, authorization: Optional[str], ip: str) -> Optional[Response]:
        check = check_basic_credentials(authorization, self._settings_provider())
        if not check.valid:
            if check.record_failure:
                count = self.tracker.record_failure(ip)
                LOGGER.warning("Failed admin authentication from %s (%d in window)", ip, count)
            return _unauthorized()
        self.tracker.clear(ip)
        return None

    def evaluate(self, method: str, path: str, headers) -> Optional[Response]:
        """Return a denial response, or ``None`` to let the request through."""
        method = method.upper()
        ip = client_ip(headers)
        is_admin_path = _under(path, ADMIN_PREFIX)
        is_api_write = _under(path, API_PREFIX) and method in WRITE_METHODS
        # Rate-limit scope: every non-GET /api request, not only the writes.
        is_protected = is_admin_path or (_under(path, API_PREFIX) and method != "GET")

        if is_protected and self.tracker.is_limited(ip):
            LOGGER.warning("Rate limited request from %s to %s %s", ip, method, path)
            minutes = max(1, math.ceil(self.tracker.remaining_seconds(ip) / 60))
            return _forbidden(minutes)

        authorization = headers.get("authorization")

        if is_admin_path:
            return self._require_credentials(authorization, ip)

        if is_api_write:
            if _is_session_or_public_write(method, path):
                return None
            if "/admin" in headers.get("referer", ""):
                return None
            return self._require_credentials(authorization, ip)

        return None


def apply_security_headers(response: Response) -> Response:
    for name, value in SECURITY_HEADERS.items():
        response.headers[name] = value
    return response


class RequestGateMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, gate: RequestGate) -> None:
        super().__init__(app)
        self.gate = gate

    async def dispatch(self, request: Request, call_next):
        denial = self.gate.evaluate(request.method, request.url.path, request.headers)
        if denial is not None:
            return denial
        response = await call_next(request)
        return apply_security_headers(response)


__all__ = [
    "AttemptTracker",
    "RequestGate",
    "RequestGateMiddleware",
    "apply_security_headers",
    "check_basic_credentials",
    "client_ip",
]
