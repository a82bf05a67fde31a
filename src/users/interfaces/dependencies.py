"""
Authentication Dependencies
===========================

FastAPI dependencies resolving the caller from a bearer token and
enforcing roles. Failures raise the application's auth exceptions, which
the exception handlers turn into 401/403 responses.
"""

from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from core import AuthenticationException, AuthorizationException
from core.security import verify_access_token
from infrastructure.database import get_session
from users.application import UserService
from users.domain import User
from users.infrastructure import SQLAlchemyUserRepository

bearer_scheme = HTTPBearer(auto_error=False, description="Access token from /api/users/login")


async def get_user_service(
    session: AsyncSession = Depends(get_session)
) -> UserService:
    """Get user service instance."""
    return UserService(SQLAlchemyUserRepository(session))


async def _user_from_token(token: str, session: AsyncSession) -> User:
    payload = verify_access_token(token)
    user = await SQLAlchemyUserRepository(session).get_by_id(payload["sub"])
    if user is None or not user.is_active:
        raise AuthenticationException("Inactive or missing user")
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_session)
) -> User:
    """The authenticated, active caller."""
    if credentials is None:
        raise AuthenticationException()
    return await _user_from_token(credentials.credentials, session)


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_session)
) -> Optional[User]:
    """The caller if a token was sent, else None. A bad token still fails."""
    if credentials is None:
        return None
    return await _user_from_token(credentials.credentials, session)


def require_roles(*roles: str):
    """Dependency factory allowing only callers with one of ``roles``."""
    allowed = [getattr(role, "value", role) for role in roles]

    async def dependency(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise AuthorizationException(
                "Insufficient permissions",
                {"required_roles": allowed, "role": user.role}
            )
        return user

    return dependency
