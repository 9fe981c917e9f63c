from __future__ import annotations

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.db import get_db
from storefront.core.security import TokenError, decode_token
from storefront.models.user import User

log = structlog.get_logger(__name__)

# tokens are issued by the account service; this app only verifies them
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

ADMIN_ROLE = "admin"


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _subject(payload: dict) -> int:
    sub = payload.get("sub")
    if sub is None:
        raise _unauthorized("Token missing user id (sub)")
    try:
        return int(sub)
    except (TypeError, ValueError):
        raise _unauthorized("Invalid user id in token")


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """The active customer or admin behind the bearer token."""
    try:
        payload = decode_token(token)
    except TokenError as e:
        raise _unauthorized(str(e))

    if payload.get("type", "access") != "access":
        raise _unauthorized("Not an access token")

    user_id = _subject(payload)

    res = await db.execute(select(User).where(User.id == user_id))
    user = res.scalar_one_or_none()

    if user is None or not user.is_active:
        log.warning("auth_rejected", user_id=user_id, reason="missing" if user is None else "inactive")
        raise _unauthorized("User not found or inactive")

    return user


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != ADMIN_ROLE:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin only")
    return current_user
