"""
Storefront - Authorization
Single capability-checked principal resolved from any supported credential.
"""
import hmac
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, FrozenSet, Optional

import jwt
from fastapi import Depends, Request
from starlette.middleware.base import BaseHTTPMiddleware

from storefront.core.config import Settings
from storefront.core.errors import Forbidden, Unauthorized


# ============================================================
# CAPABILITIES
# ============================================================

ORDERS_READ = "orders:read"
ORDERS_REJECT = "orders:reject"
ORDERS_DELIVER = "orders:deliver"
CATALOG_WRITE = "catalog:write"
REVIEWS_DELETE = "reviews:delete"
SETTINGS_WRITE = "settings:write"
INTERNAL_CRON = "internal:cron"
INTERNAL_MONITOR = "internal:monitor"

ROLE_CAPABILITIES: Dict[str, FrozenSet[str]] = {
    "admin": frozenset({
        ORDERS_READ, ORDERS_REJECT, ORDERS_DELIVER,
        CATALOG_WRITE, REVIEWS_DELETE, SETTINGS_WRITE,
    }),
    "cron": frozenset({INTERNAL_CRON}),
    "monitor": frozenset({INTERNAL_MONITOR}),
    "user": frozenset(),
}


@dataclass(frozen=True)
class Principal:
    subject: str
    role: str
    capabilities: FrozenSet[str] = field(default_factory=frozenset)
    email: Optional[str] = None

    def can(self, capability: str) -> bool:
        return capability in self.capabilities


def principal_for_role(subject: str, role: str, email: Optional[str] = None) -> Principal:
    return Principal(
        subject=subject,
        role=role,
        capabilities=ROLE_CAPABILITIES.get(role, frozenset()),
        email=email,
    )


# ============================================================
# TOKENS
# ============================================================

def create_access_token(
    settings: Settings,
    subject: str,
    role: str = "user",
    email: Optional[str] = None,
    expires_delta: Optional[timedelta] = None
) -> str:
    """Create a signed bearer token"""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "role": role,
        "iat": now,
        "exp": now + (expires_delta or timedelta(days=7)),
    }
    if email:
        payload["email"] = email
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def _secret_matches(provided: Optional[str], expected: str) -> bool:
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


def resolve_principal(request: Request, settings: Settings) -> Optional[Principal]:
    """
    Map whatever credential the caller sent onto a Principal.

    Bearer JWT (role claim), x-admin-key, x-cron-secret / x-api-secret and
    x-monitoring-secret all land here; routes only ever ask for capabilities.
    """
    auth_header = request.headers.get("authorization", "")
    if auth_header.lower().startswith("bearer "):
        token = auth_header.split(" ", 1)[1].strip()
        try:
            claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        except jwt.InvalidTokenError:
            raise Unauthorized("Invalid or expired token")
        return principal_for_role(
            subject=str(claims.get("sub", "")),
            role=str(claims.get("role", "user")),
            email=claims.get("email"),
        )

    if _secret_matches(request.headers.get("x-admin-key"), settings.ADMIN_API_KEY):
        return principal_for_role("admin-key", "admin")

    cron_secret = request.headers.get("x-cron-secret") or request.headers.get("x-api-secret")
    if _secret_matches(cron_secret, settings.CRON_SECRET):
        return principal_for_role("cron", "cron")

    monitor_secret = settings.MONITOR_SECRET or settings.CRON_SECRET
    if _secret_matches(request.headers.get("x-monitoring-secret"), monitor_secret):
        return principal_for_role("monitor", "monitor")

    return None


# ============================================================
# DEPENDENCIES
# ============================================================

def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def optional_principal(
    request: Request,
    settings: Settings = Depends(get_settings)
) -> Optional[Principal]:
    return resolve_principal(request, settings)


def require_capability(capability: str):
    """Route dependency: caller must hold the given capability"""

    def dependency(principal: Optional[Principal] = Depends(optional_principal)) -> Principal:
        if principal is None:
            raise Unauthorized("Authentication required")
        if not principal.can(capability):
            raise Forbidden("Insufficient permissions")
        return principal

    return dependency


# ============================================================
# SECURITY HEADERS MIDDLEWARE
# ============================================================

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        if request.app.state.settings.ENVIRONMENT == "production":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response
