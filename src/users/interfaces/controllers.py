"""
User Controllers (API Routes)
=============================

FastAPI routes for user accounts and login.

Controllers are thin - they delegate to application services.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from config import UserRole, settings
from core import AuthorizationException
from users.application import (
    LoginRequest, LoginResponse, UserCreateRequest, UserResponse,
    UserService, UserUpdateRequest
)
from users.application.dto import UserRoleStr
from users.domain import User
from users.interfaces.dependencies import (
    get_current_user, get_optional_user, get_user_service, require_roles
)

router = APIRouter(prefix="/api/users", tags=["Users"])

LOGIN_RESPONSE_EXAMPLE = {
    "user": {
        "id": "123e4567-e89b-12d3-a456-426614174000",
        "name": "Administrador",
        "email": "admin@example.com",
        "role": "admin",
        "is_active": True,
        "last_login": "2024-01-15T10:00:00Z",
        "created_at": "2024-01-01T00:00:00Z",
        "updated_at": "2024-01-15T10:00:00Z"
    },
    "access_token": "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9...",
    "token_type": "bearer",
    "expires_in": 28800
}


@router.post(
    "",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a user",
    description="""
    Create a user account.

    Anyone may register a `customer`. Creating a `technician` or `admin`
    requires an administrator's bearer token.

    Returns 400 if the email is already registered.
    """
)
async def create_user(
    request: UserCreateRequest,
    caller: Optional[User] = Depends(get_optional_user),
    service: UserService = Depends(get_user_service)
):
    if request.role != UserRole.CUSTOMER.value and (caller is None or not caller.is_admin):
        raise AuthorizationException("Only administrators can create staff accounts")

    user = await service.create_user(request)
    return UserResponse.from_domain(user)


@router.get(
    "",
    response_model=List[UserResponse],
    summary="List users",
    description="List user accounts, by name. Administrators only."
)
async def list_users(
    role: Optional[UserRoleStr] = Query(None, description="Filter by role"),
    is_active: Optional[bool] = Query(None, description="Filter by active flag"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    _: User = Depends(require_roles(UserRole.ADMIN)),
    service: UserService = Depends(get_user_service)
):
    users = await service.list_users(role=role, is_active=is_active, limit=limit, offset=offset)
    return [UserResponse.from_domain(user) for user in users]


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Log in",
    description="""
    Exchange email and password for a bearer access token.

    Send the token as `Authorization: Bearer <token>` on protected routes.
    Returns 401 for unknown emails, wrong passwords and disabled accounts.
    """,
    responses={200: {"content": {"application/json": {"example": LOGIN_RESPONSE_EXAMPLE}}}}
)
async def login(
    request: LoginRequest,
    service: UserService = Depends(get_user_service)
):
    user, token = await service.authenticate(request.email, request.password)
    return LoginResponse(
        user=UserResponse.from_domain(user),
        access_token=token,
        expires_in=settings.access_token_expire_minutes * 60,
    )


@router.get(
    "/{user_id}",
    response_model=UserResponse,
    summary="Get a user"
)
async def get_user(
    user_id: str,
    _: User = Depends(get_current_user),
    service: UserService = Depends(get_user_service)
):
    user = await service.get_user(user_id)
    return UserResponse.from_domain(user)


@router.put(
    "/{user_id}",
    response_model=UserResponse,
    summary="Update a user",
    description="Change name, email, role or active flag. Administrators only."
)
async def update_user(
    user_id: str,
    request: UserUpdateRequest,
    _: User = Depends(require_roles(UserRole.ADMIN)),
    service: UserService = Depends(get_user_service)
):
    user = await service.update_user(user_id, request)
    return UserResponse.from_domain(user)
