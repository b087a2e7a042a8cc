"""
FastAPI dependencies for resolving the acting user.
"""
from datetime import datetime, timezone
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.permissions.exceptions import Unauthenticated
from app.features.users.auth import verify_jwt_token
from app.features.users.models import User


# auto_error is off: a missing header yields no actor, and the gate answers 401
security = HTTPBearer(auto_error=False)


async def get_current_actor(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Optional[User]:
    """
    Resolve the acting user from the bearer token, or None.

    Missing credentials, an unknown user id and a trashed user all give None.
    A malformed or expired token is rejected with 401, and a user whose status
    is not active with 403.
    """
    if credentials is None:
        return None

    payload = verify_jwt_token(credentials.credentials)

    result = await db.execute(select(User).where(User.id == str(payload["sub"])))
    user = result.scalar_one_or_none()

    if user is None or user.is_trashed:
        return None

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    user.last_login_at = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(user)

    return user


async def get_current_user(
    actor: Annotated[Optional[User], Depends(get_current_actor)],
) -> User:
    """
    Require an authenticated user.

    Usage:
        @router.get("/me")
        async def get_me(user: User = Depends(get_current_user)):
            return user
    """
    if actor is None:
        raise Unauthenticated()
    return actor


def get_authorization_header(request: Request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"
