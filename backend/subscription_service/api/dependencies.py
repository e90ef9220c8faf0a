"""
API Dependencies

FastAPI dependency injection for authentication and the lifecycle services.

Security: end-user JWTs are verified with the shared HS256 secret issued by
the identity service. Service-to-service calls authenticate with X-API-Key.
"""

import logging
import secrets
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel

from subscription_service.config.settings import get_settings
from subscription_service.infrastructure.db.unit_of_work import (
    UnitOfWorkFactory,
    get_unit_of_work,
)
from subscription_service.infrastructure.services.lifecycle_scheduler import (
    get_lifecycle_scheduler,
)
from subscription_service.infrastructure.services.lifecycle_service import (
    get_lifecycle_manager,
)
from subscription_service.infrastructure.services.usage_service import get_usage_service


logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

OWNER_ROLE = "OWNER"
PLATFORM_ADMIN_ROLE = "PLATFORM_ADMIN"


class Principal(BaseModel):
    """Caller identity taken from verified JWT claims."""
    user_id: str
    organization_id: Optional[int] = None
    role: Optional[str] = None

    @property
    def is_platform_admin(self) -> bool:
        return self.role == PLATFORM_ADMIN_ROLE

    def can_view(self, organization_id: int) -> bool:
        return self.is_platform_admin or self.organization_id == organization_id

    def can_manage(self, organization_id: int) -> bool:
        if self.is_platform_admin:
            return True
        return self.organization_id == organization_id and self.role == OWNER_ROLE


def decode_token(token: str, secret: str, algorithm: str = "HS256") -> dict:
    """Verify a JWT signed with the shared secret."""
    return jwt.decode(
        token,
        secret,
        algorithms=[algorithm],
        options={"require": ["exp", "sub"]},
    )


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Principal:
    """
    Extract and verify the caller from a bearer JWT.

    Returns:
        Principal built from the `sub`, `org_id` and `role` claims.

    Raises:
        HTTPException 401: token missing, expired, or invalid.
        HTTPException 503: JWT secret not configured.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    settings = get_settings()
    if not settings.jwt_secret:
        logger.error("JWT_SECRET environment variable not set")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication not configured",
        )

    try:
        payload = decode_token(credentials.credentials, settings.jwt_secret, settings.jwt_algorithm)
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
        )
    except jwt.InvalidTokenError as e:
        logger.warning("JWT verification failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or unverifiable token",
        )

    org_claim = payload.get("org_id")
    try:
        organization_id = int(org_claim) if org_claim is not None else None
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: malformed organization claim",
        )

    return Principal(
        user_id=str(payload["sub"]),
        organization_id=organization_id,
        role=payload.get("role"),
    )


def ensure_can_view(principal: Principal, organization_id: int) -> None:
    if not principal.can_view(organization_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not allowed to access this organization",
        )


def ensure_can_manage(principal: Principal, organization_id: int) -> None:
    if not principal.can_manage(organization_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the organization owner can change the subscription",
        )


def get_uow_factory() -> UnitOfWorkFactory:
    """Unit of work factory for routes that read repositories directly."""
    return get_unit_of_work


def _check_key(provided: str, expected: Optional[str], name: str) -> None:
    if not expected:
        logger.error(f"{name} environment variable not set")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service authentication not configured",
        )

    # Use secrets.compare_digest for timing-attack resistance
    if not secrets.compare_digest(provided, expected):
        logger.warning(f"Invalid {name} attempt")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )


async def verify_internal_api_key(
    x_api_key: str = Header(..., description="Service-to-service API key"),
) -> bool:
    """Verify the X-API-Key header used by internal callers."""
    _check_key(x_api_key, get_settings().internal_api_key, "INTERNAL_API_KEY")
    return True


async def verify_admin_api_key(
    x_admin_key: str = Header(..., description="Admin API key for protected operations"),
) -> bool:
    """Verify the X-Admin-Key header used by operators."""
    _check_key(x_admin_key, get_settings().admin_api_key, "ADMIN_API_KEY")
    return True


__all__ = [
    "Principal",
    "decode_token",
    "ensure_can_manage",
    "ensure_can_view",
    "get_current_principal",
    "get_lifecycle_manager",
    "get_lifecycle_scheduler",
    "get_uow_factory",
    "get_usage_service",
    "verify_admin_api_key",
    "verify_internal_api_key",
]
