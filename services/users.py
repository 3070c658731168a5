"""
services/users.py -- User account management (SuperAdmin only).

Guards against locking everyone out:
  - a SuperAdmin cannot deactivate or delete their own account
  - the last active SuperAdmin cannot be deactivated, demoted, or deleted

Role/department invariant: a DepartmentManager always references an
existing department; a SuperAdmin never references one (UserStore nulls it).

Snapshots handed to the audit recorder come from User.snapshot(), which
never includes the password hash.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError

from audit.models import AuditAction, AuditContext, AuditDraft, TargetType
from audit.recorder import AuditRecorder
from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import hash_password
from core.errors import Conflict, NotFound, ValidationFailed
from inventory.store import InventoryStore

logger = logging.getLogger("proxyvault.services.users")

USER_CONFLICT = "User with this username already exists"

_UPDATABLE = {"username", "password", "role", "department_id", "email", "is_active"}


class UserService:
    def __init__(self, users: UserStore, inventory: InventoryStore, recorder: AuditRecorder) -> None:
        self.users = users
        self.inventory = inventory
        self.recorder = recorder

    def list_users(
        self,
        role: Optional[Role] = None,
        department_id: Optional[int] = None,
        is_active: Optional[bool] = None,
    ) -> list[User]:
        return self.users.list_users(role=role, department_id=department_id, is_active=is_active)

    def get(self, user_id: int) -> User:
        user = self.users.get_by_id(user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    def create(
        self,
        username: str,
        password: str,
        role: Role,
        ctx: AuditContext,
        department_id: Optional[int] = None,
        email: Optional[str] = None,
    ) -> User:
        role = Role(role)
        if role is Role.DEPARTMENT_MANAGER:
            self._require_department(department_id)
        user = User(
            username=username,
            role=role,
            hashed_password=hash_password(password),
            department_id=department_id,
            email=email,
        )
        try:
            user_id = self.users.create_user(user)
        except IntegrityError as exc:
            raise Conflict(USER_CONFLICT) from exc

        created = self.get(user_id)
        logger.info("User %r (%s) created by %s", created.username, created.role.value, ctx.actor_username)
        self.recorder.record(AuditDraft.created(ctx, AuditAction.CREATE_USER, TargetType.USER, created.snapshot()))
        return created

    def update(self, user_id: int, changes: dict[str, Any], actor: User, ctx: AuditContext) -> User:
        before = self.get(user_id)
        fields = {k: v for k, v in changes.items() if k in _UPDATABLE}

        deactivating = fields.get("is_active") is False and before.is_active
        new_role = Role(fields.get("role", before.role))
        demoting = before.role is Role.SUPER_ADMIN and new_role is not Role.SUPER_ADMIN

        if deactivating and user_id == actor.id:
            raise ValidationFailed("You cannot deactivate your own account")
        if (deactivating or demoting) and self._is_last_active_super_admin(before):
            raise ValidationFailed("Cannot deactivate or demote the last active SuperAdmin")

        if new_role is Role.DEPARTMENT_MANAGER:
            self._require_department(fields.get("department_id", before.department_id))
        else:
            fields.pop("department_id", None)
        if "password" in fields:
            fields["hashed_password"] = hash_password(fields.pop("password"))

        try:
            updated = self.users.update_user(user_id, **fields)
        except IntegrityError as exc:
            raise Conflict(USER_CONFLICT) from exc
        if not updated:
            raise NotFound("User not found")

        after = self.get(user_id)
        self.recorder.record(
            AuditDraft.updated(ctx, AuditAction.UPDATE_USER, TargetType.USER, before.snapshot(), after.snapshot())
        )
        return after

    def delete(self, user_id: int, actor: User, ctx: AuditContext) -> None:
        if user_id == actor.id:
            raise ValidationFailed("You cannot delete your own account")
        before = self.get(user_id)
        if self._is_last_active_super_admin(before):
            raise ValidationFailed("Cannot delete the last active SuperAdmin")
        if not self.users.delete_user(user_id):
            raise NotFound("User not found")
        logger.info("User %r deleted by %s", before.username, ctx.actor_username)
        self.recorder.record(AuditDraft.deleted(ctx, AuditAction.DELETE_USER, TargetType.USER, before.snapshot()))

    # ------------------------------------------------------------------

    def _is_last_active_super_admin(self, user: User) -> bool:
        return user.role is Role.SUPER_ADMIN and user.is_active and self.users.count_active_super_admins() <= 1

    def _require_department(self, department_id: Optional[int]) -> None:
        if department_id is None:
            raise ValidationFailed(
                errors=[{"field": "departmentId", "message": "Department is required for DepartmentManager"}]
            )
        if self.inventory.get_department(department_id) is None:
            raise ValidationFailed(
                "Invalid department ID", errors=[{"field": "departmentId", "message": "Invalid department ID"}]
            )
