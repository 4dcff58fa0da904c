"""
Authentication dependencies for FastAPI
"""

from uuid import UUID
from fastapi import Depends, HTTPException, Header, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session
import jwt as pyjwt

from escrow_core.auth.principal import Principal, decode_access_token
from escrow_core.core.users.models import User
from escrow_core.infrastructure.database import get_db


def _unauthorized(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": {"code": code, "message": message}},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_principal(
    request: Request,
    authorization: str = Header(None),
    db: Session = Depends(get_db),
) -> Principal:
    """
    Extract Principal from the JWT in the Authorization header.

    The token only proves identity (sub = user UUID). The role is read from
    the users table so that demotions apply immediately.
    """
    if not authorization:
        raise _unauthorized("AUTHORIZATION_MISSING", "Authorization header missing")

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise _unauthorized("INVALID_AUTHORIZATION", "Invalid authorization header format")
    if scheme.lower() != "bearer":
        raise _unauthorized("INVALID_AUTHORIZATION", "Invalid authentication scheme")

    try:
        payload = decode_access_token(token)
    except pyjwt.ExpiredSignatureError:
        raise _unauthorized("TOKEN_EXPIRED", "Token expired")
    except pyjwt.InvalidTokenError as e:
        raise _unauthorized("INVALID_TOKEN", f"Invalid token: {str(e)}")

    try:
        user_id = UUID(str(payload.get("sub")))
    except (ValueError, TypeError):
        raise _unauthorized("INVALID_TOKEN", "Invalid token - invalid user identifier format")

    user = db.execute(select(User).where(User.id == user_id)).scalar_one_or_none()
    if user is None:
        raise _unauthorized("USER_NOT_FOUND", "Unknown user")

    principal = Principal(user_id=user.id, role=user.role, claims=payload)
    request.state.principal = principal
    return principal


def require_user():
    """Any authenticated user - returns dependency"""
    async def _check(principal: Principal = Depends(get_current_principal)):
        return principal
    return _check


def require_staff():
    """MODERATOR or ADMIN role - returns dependency"""
    async def _check(principal: Principal = Depends(get_current_principal)):
        if not principal.is_staff:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"error": {"code": "FORBIDDEN", "message": "Insufficient permissions - MODERATOR or ADMIN role required"}},
            )
        return principal
    return _check
