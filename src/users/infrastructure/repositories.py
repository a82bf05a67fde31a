"""
User Infrastructure Repositories
================================

SQLAlchemy implementation of the user repository.
"""

from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import and_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core import RepositoryException, ValidationException
from users.application import IUserRepository
from users.domain import User
from users.infrastructure.models import UserModel


def _email_taken() -> ValidationException:
    return ValidationException("Email already registered", errors=["email: already registered"])


def _to_domain(model: UserModel) -> User:
    return User(
        id=str(model.id),
        name=model.name,
        email=model.email,
        password_hash=model.password_hash,
        role=model.role,
        is_active=model.is_active,
        last_login=model.last_login,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


class SQLAlchemyUserRepository(IUserRepository):
    """
    SQLAlchemy implementation of user repository.

    Handles persistence of User entities using async SQLAlchemy.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _get_model(self, user_id: str) -> Optional[UserModel]:
        try:
            user_uuid = UUID(str(user_id))
        except ValueError:
            return None
        return await self._session.get(UserModel, user_uuid)

    async def get_by_id(self, user_id: str) -> Optional[User]:
        model = await self._get_model(user_id)
        return _to_domain(model) if model else None

    async def get_by_email(self, email: str) -> Optional[User]:
        stmt = select(UserModel).where(UserModel.email == email.lower())
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return _to_domain(model) if model else None

    async def add(self, user: User) -> User:
        model = UserModel(
            id=UUID(user.id) if user.id else uuid4(),
            name=user.name,
            email=user.email,
            password_hash=user.password_hash,
            role=user.role,
            is_active=user.is_active,
            last_login=user.last_login,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )
        # A duplicate email only rolls back to the savepoint
        try:
            async with self._session.begin_nested():
                self._session.add(model)
                await self._session.flush()
        except IntegrityError as e:
            raise _email_taken() from e

        user.id = str(model.id)
        return user

    async def save(self, user: User) -> User:
        model = await self._get_model(user.id) if user.id else None
        if model is None:
            raise RepositoryException(f"User {user.id} not found")

        try:
            async with self._session.begin_nested():
                model.name = user.name
                model.email = user.email
                model.password_hash = user.password_hash
                model.role = user.role
                model.is_active = user.is_active
                model.last_login = user.last_login
                model.updated_at = user.updated_at
                await self._session.flush()
        except IntegrityError as e:
            raise _email_taken() from e
        return user

    async def list(self, filters: dict, limit: int = 100, offset: int = 0) -> List[User]:
        """List users with filters, by name."""
        stmt = select(UserModel)

        conditions = []
        if "role" in filters:
            conditions.append(UserModel.role == filters["role"])
        if "is_active" in filters:
            conditions.append(UserModel.is_active.is_(filters["is_active"]))

        if conditions:
            stmt = stmt.where(and_(*conditions))

        stmt = stmt.order_by(UserModel.name.asc(), UserModel.id.asc())
        stmt = stmt.limit(limit).offset(offset)

        result = await self._session.execute(stmt)
        return [_to_domain(model) for model in result.scalars().all()]
