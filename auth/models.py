"""
auth/models.py -- Domain types for authentication and access control.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work; these types only own the shape.

Role is a closed enum. Handlers never compare role strings directly -- they
ask the access gate (auth/scope.py) for an authorization decision or a
QueryScope.

Layer rule: no imports from api/, services/, inventory/, or audit/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    SUPER_ADMIN = "SuperAdmin"
    DEPARTMENT_MANAGER = "DepartmentManager"


@dataclass
class User:
    """An authenticated principal.

    department_id is required for DepartmentManager and always None for
    SuperAdmin; UserStore and the users service enforce that invariant on
    every write.
    """

    username: str
    role: Role
    id: int | None = None
    hashed_password: str | None = None
    department_id: int | None = None
    email: str | None = None
    is_active: bool = True
    last_login: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def is_super_admin(self) -> bool:
        return self.role is Role.SUPER_ADMIN

    def snapshot(self) -> dict:
        """Audit-safe representation. Never includes the password hash."""
        return {
            "id": self.id,
            "username": self.username,
            "role": self.role.value,
            "departmentId": self.department_id,
            "email": self.email,
            "isActive": self.is_active,
            "lastLogin": self.last_login,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
