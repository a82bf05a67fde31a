"""
Users Application Layer
=======================

Contains:
- Services: Registration, updates and authentication
- DTOs: Request and response models
"""

from users.application.dto import (
    LoginRequest,
    LoginResponse,
    UserCreateRequest,
    UserResponse,
    UserUpdateRequest,
)
from users.application.services import IUserRepository, UserService

__all__ = [
    "UserCreateRequest",
    "UserUpdateRequest",
    "LoginRequest",
    "LoginResponse",
    "UserResponse",
    "UserService",
    "IUserRepository",
]
