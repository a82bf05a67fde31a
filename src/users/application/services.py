"""
User Application Services
=========================

Registration, profile updates and credential checks.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

from config import settings
from core import (
    AuthenticationException, ResourceNotFoundException, ValidationException
)
from core.security import create_access_token, get_password_hash, verify_password
from shared.infrastructure.logging import get_logger
from users.application.dto import UserCreateRequest, UserUpdateRequest
from users.domain import User

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class IUserRepository(ABC):
    """Interface for user data access."""

    @abstractmethod
    async def get_by_id(self, user_id: str) -> Optional[User]:
        """Get user by UUID."""

    @abstractmethod
    async def get_by_email(self, email: str) -> Optional[User]:
        """Get user by (lower-cased) email."""

    @abstractmethod
    async def add(self, user: User) -> User:
        """Persist a new user."""

    @abstractmethod
    async def save(self, user: User) -> User:
        """Persist changes to an existing user."""

    @abstractmethod
    async def list(self, filters: dict, limit: int = 100, offset: int = 0) -> List[User]:
        """List users matching filters."""


# ========== Application Services ==========

class UserService:
    """Service for user accounts and authentication."""

    def __init__(
        self,
        user_repository: IUserRepository,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self._user_repo = user_repository
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def create_user(self, request: UserCreateRequest) -> User:
        """
        Register a user.

        Raises:
            ValidationException: If the email is already registered
        """
        email = request.email.lower()
        if await self._user_repo.get_by_email(email) is not None:
            raise ValidationException(
                "Email already registered",
                errors=["email: already registered"]
            )

        now = self._clock()
        user = User(
            name=request.name,
            email=email,
            password_hash=get_password_hash(request.password),
            role=request.role,
            created_at=now,
            updated_at=now,
        )
        user = await self._user_repo.add(user)

        logger.info("User created", extra={"user_id": user.id, "role": user.role})
        return user

    async def get_user(self, user_id: str) -> User:
        user = await self._user_repo.get_by_id(user_id)
        if user is None:
            raise ResourceNotFoundException("User", user_id)
        return user

    async def list_users(
        self,
        role: Optional[str] = None,
        is_active: Optional[bool] = None,
        limit: int = 100,
        offset: int = 0
    ) -> List[User]:
        filters = {}
        if role is not None:
            filters["role"] = role
        if is_active is not None:
            filters["is_active"] = is_active
        return await self._user_repo.list(filters, limit=limit, offset=offset)

    async def update_user(self, user_id: str, request: UserUpdateRequest) -> User:
        """Apply an administrator's changes to a user."""
        user = await self.get_user(user_id)

        email = request.email.lower() if request.email is not None else None
        if email is not None and email != user.email:
            if await self._user_repo.get_by_email(email) is not None:
                raise ValidationException(
                    "Email already registered",
                    errors=["email: already registered"]
                )

        user.update_profile(
            name=request.name,
            email=email,
            role=request.role,
            is_active=request.is_active,
            at=self._clock(),
        )
        user = await self._user_repo.save(user)

        logger.info(
            "User updated",
            extra={"user_id": user.id, "role": user.role, "is_active": user.is_active}
        )
        return user

    async def authenticate(self, email: str, password: str) -> Tuple[User, str]:
        """
        Check credentials, record the login and issue an access token.

        Raises:
            AuthenticationException: Unknown email, wrong password or disabled account
        """
        user = await self._user_repo.get_by_email(email.lower())
        if user is None or not verify_password(password, user.password_hash):
            logger.warning("Login failed", extra={"reason": "invalid_credentials"})
            raise AuthenticationException("Invalid credentials")
        if not user.is_active:
            logger.warning("Login failed", extra={"user_id": user.id, "reason": "inactive"})
            raise AuthenticationException("Account is disabled")

        user.record_login(self._clock())
        user = await self._user_repo.save(user)

        token = create_access_token(
            user.id,
            expires_delta=timedelta(minutes=settings.access_token_expire_minutes),
            extra_claims={"role": user.role},
        )
        logger.info("User logged in", extra={"user_id": user.id, "role": user.role})
        return user, token
