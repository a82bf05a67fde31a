"""
User Application DTOs
=====================

Request and response models for the users API.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from users.domain import User

UserRoleStr = Literal["customer", "technician", "admin"]


class UserCreateRequest(BaseModel):
    """Request model for user registration."""
    name: str = Field(..., min_length=3, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    role: UserRoleStr = Field(default="customer")

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("password")
    @classmethod
    def password_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("password must not be blank")
        return v


class UserUpdateRequest(BaseModel):
    """Partial update by an administrator."""
    name: Optional[str] = Field(None, min_length=3, max_length=100)
    email: Optional[EmailStr] = None
    role: Optional[UserRoleStr] = None
    is_active: Optional[bool] = None

    @model_validator(mode="after")
    def require_one_field(self) -> "UserUpdateRequest":
        if self.name is None and self.email is None and self.role is None and self.is_active is None:
            raise ValueError("At least one of name, email, role or is_active is required")
        return self


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class UserResponse(BaseModel):
    """Public view of a user. Never includes the password hash."""
    id: str
    name: str
    email: str
    role: UserRoleStr
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            is_active=user.is_active,
            last_login=user.last_login,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class LoginResponse(BaseModel):
    user: UserResponse
    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Token lifetime in seconds")
