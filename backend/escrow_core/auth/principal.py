"""
Authenticated principal and HS256 token helpers
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, Optional
from uuid import UUID

import jwt as pyjwt

from escrow_core.core.users.models import UserRole, STAFF_ROLES
from escrow_core.infrastructure.settings import get_settings
from escrow_core.utils.time import utcnow


@dataclass
class Principal:
    """Caller identity resolved from a bearer token; role comes from the users table"""
    user_id: UUID
    role: UserRole
    claims: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


def create_access_token(
    user_id: UUID,
    expires_in: Optional[timedelta] = None,
    extra_claims: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Issue an access token for a user.

    Tokens are normally issued by the host application; this helper exists for
    scripts and tests that share the same secret.
    """
    settings = get_settings()
    now = utcnow()
    payload: Dict[str, Any] = {
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int((now + (expires_in or timedelta(hours=1))).timestamp()),
    }
    if extra_claims:
        payload.update(extra_claims)
    return pyjwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Verify signature and expiry; raises jwt.InvalidTokenError"""
    settings = get_settings()
    return pyjwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
