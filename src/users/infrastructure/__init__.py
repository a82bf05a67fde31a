"""
Users Infrastructure Layer
==========================

- Models: SQLAlchemy ORM model
- Repositories: Data access layer
"""

from users.infrastructure.models import UserModel
from users.infrastructure.repositories import SQLAlchemyUserRepository

__all__ = ["UserModel", "SQLAlchemyUserRepository"]
