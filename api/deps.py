from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import Role, User
from app.utils.security import decode_token
from core.db import get_db
from core.exceptions.base import ForbiddenException, UnauthorizedException

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db_session: AsyncSession = Depends(get_db),
) -> User:
    """Get the current authenticated user from the bearer JWT."""
    if not credentials or not credentials.credentials:
        raise UnauthorizedException(message="Not authenticated")

    payload = decode_token(credentials.credentials)

    if payload.get("type", "access") != "access":
        raise UnauthorizedException(message="Invalid token type")

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedException(message="Token has no subject")

    user = await User.get_by_id(db_session, user_id)

    if not user:
        raise UnauthorizedException(message="User not found")

    if not user.is_active:
        raise UnauthorizedException(message="User is inactive")

    return user


async def get_current_admin(
    current_user: User = Depends(get_current_user),
) -> User:
    """Get the current user if they have the admin role."""
    if current_user.role != Role.ADMIN:
        raise ForbiddenException(message="Admin access required")
    return current_user


async def get_current_staff(
    current_user: User = Depends(get_current_user),
) -> User:
    """Get the current user if they have teacher or admin role."""
    if current_user.role not in [Role.TEACHER, Role.ADMIN]:
        raise ForbiddenException(message="Teacher/admin access required")
    return current_user


async def get_current_student(
    current_user: User = Depends(get_current_user),
) -> User:
    """Get the current user if they have the student role."""
    if current_user.role != Role.STUDENT:
        raise ForbiddenException(message="Student access required")
    return current_user
