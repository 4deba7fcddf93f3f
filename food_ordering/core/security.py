"""
Bearer Token Authentication

Resolves an ``Authorization: Bearer <jwt>`` header to the calling user.
Tokens are issued by the identity provider (or ``scripts/issue_token.py``
during development) and carry:

    sub   - user id
    role  - "customer" or "admin"
    name  - optional display name
    exp   - expiry (seconds since epoch)

The ordering services trust the resolved identity; they never look at
credentials themselves.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from food_ordering.core.config import Settings, get_settings
from food_ordering.exceptions import AuthenticationFailed, Forbidden

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class Role(str, enum.Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"


@dataclass(frozen=True)
class CurrentUser:
    """Identity resolved from a bearer token."""
    id: str
    role: Role
    name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def display_name(self) -> str:
        return self.name or self.id


def create_access_token(
    user_id: str,
    role: Role = Role.CUSTOMER,
    name: Optional[str] = None,
    expires_in: Optional[timedelta] = None,
    settings: Optional[Settings] = None,
) -> str:
    """Sign a token for ``user_id``. Used by scripts and tests."""
    settings = settings or get_settings()
    if expires_in is None:
        expires_in = timedelta(minutes=settings.jwt_expire_minutes)

    payload = {
        "sub": user_id,
        "role": Role(role).value,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    if name:
        payload["name"] = name
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Optional[Settings] = None) -> CurrentUser:
    """
    Verify ``token`` and build the caller's identity.

    Raises:
        AuthenticationFailed: expired, badly signed or incomplete token
    """
    settings = settings or get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationFailed("Token has expired")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Rejected bearer token: {e}")
        raise AuthenticationFailed("Invalid token")

    try:
        role = Role(payload.get("role", Role.CUSTOMER.value))
    except ValueError:
        raise AuthenticationFailed("Invalid token")

    return CurrentUser(id=str(payload["sub"]), role=role, name=payload.get("name"))


# =============================================================================
# FASTAPI DEPENDENCIES
# =============================================================================

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> CurrentUser:
    """Any authenticated caller."""
    if credentials is None:
        raise AuthenticationFailed("No token provided, access denied")
    return decode_access_token(credentials.credentials)


async def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Authenticated caller with the admin role."""
    if not user.is_admin:
        raise Forbidden("Admin access required")
    return user
