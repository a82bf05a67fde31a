"""
User Domain Entities
====================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from config import STAFF_ROLES, UserRole, VALID_ROLES
from core import DomainException


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class User:
    """
    Account of a customer, technician or administrator.

    Holds the bcrypt hash only; the plaintext password never reaches the entity.
    """

    name: str
    email: str
    password_hash: str
    role: str = UserRole.CUSTOMER.value

    id: Optional[str] = None
    is_active: bool = True
    last_login: Optional[datetime] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        self.email = self.email.strip().lower()
        self._check_role(self.role)

    @staticmethod
    def _check_role(role: str) -> None:
        if role not in VALID_ROLES:
            raise DomainException(f"Invalid role '{role}'", {"valid_roles": VALID_ROLES})

    @property
    def is_staff(self) -> bool:
        """Technicians and admins handle tickets."""
        return self.role in STAFF_ROLES

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    def record_login(self, at: Optional[datetime] = None) -> None:
        self.last_login = at or _utcnow()

    def update_profile(
        self,
        name: Optional[str] = None,
        email: Optional[str] = None,
        role: Optional[str] = None,
        is_active: Optional[bool] = None,
        at: Optional[datetime] = None
    ) -> None:
        """Apply the given changes; ``None`` leaves a field untouched."""
        if role is not None:
            self._check_role(role)
            self.role = role
        if name is not None:
            self.name = name
        if email is not None:
            self.email = email.strip().lower()
        if is_active is not None:
            self.is_active = is_active
        self.updated_at = at or _utcnow()
