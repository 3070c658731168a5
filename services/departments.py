"""
services/departments.py -- Department operations.

Reads honour the caller's QueryScope (a DepartmentManager sees only their own
department). Writes are SuperAdmin-only; the route layer enforces that
through require_super_admin before this service is reached.

Deletion is refused while any proxy or user still references the
department. Nothing is cascaded or orphaned.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import IntegrityError

from audit.models import AuditAction, AuditContext, AuditDraft, TargetType
from audit.recorder import AuditRecorder
from auth.scope import UNRESTRICTED, QueryScope
from auth.store import UserStore
from core.errors import Conflict, NotFound
from inventory.models import Department
from inventory.store import InventoryStore

logger = logging.getLogger("proxyvault.services.departments")

DEPARTMENT_CONFLICT = "Department with this name already exists"


class DepartmentService:
    def __init__(self, inventory: InventoryStore, users: UserStore, recorder: AuditRecorder) -> None:
        self.inventory = inventory
        self.users = users
        self.recorder = recorder

    def list_departments(self, scope: QueryScope) -> list[tuple[Department, int]]:
        """Return (department, proxy_count) pairs visible in scope."""
        counts = self.inventory.department_proxy_counts()
        return [(d, counts.get(d.id, 0)) for d in self.inventory.list_departments(scope)]

    def get(self, department_id: int, scope: QueryScope = UNRESTRICTED) -> Department:
        department = self.inventory.get_department(department_id, scope)
        if department is None:
            raise NotFound("Department not found")
        return department

    def create(self, name: str, description: str | None, ctx: AuditContext) -> Department:
        try:
            department_id = self.inventory.create_department(Department(name=name, description=description))
        except IntegrityError as exc:
            raise Conflict(DEPARTMENT_CONFLICT) from exc
        created = self.get(department_id)
        logger.info("Department %r created by %s", created.name, ctx.actor_username)
        self.recorder.record(
            AuditDraft.created(ctx, AuditAction.CREATE_DEPARTMENT, TargetType.DEPARTMENT, created.snapshot())
        )
        return created

    def update(self, department_id: int, changes: dict[str, Any], ctx: AuditContext) -> Department:
        before = self.get(department_id)
        fields = {k: v for k, v in changes.items() if k in ("name", "description")}
        try:
            updated = self.inventory.update_department(department_id, **fields)
        except IntegrityError as exc:
            raise Conflict(DEPARTMENT_CONFLICT) from exc
        if not updated:
            raise NotFound("Department not found")
        after = self.get(department_id)
        self.recorder.record(
            AuditDraft.updated(
                ctx, AuditAction.UPDATE_DEPARTMENT, TargetType.DEPARTMENT, before.snapshot(), after.snapshot()
            )
        )
        return after

    def delete(self, department_id: int, ctx: AuditContext) -> None:
        before = self.get(department_id)
        proxies = self.inventory.count_proxies_in_department(department_id)
        users = self.users.count_by_department(department_id)
        if proxies or users:
            raise Conflict(
                "Cannot delete department with associated proxies or users",
                errors=[
                    {"field": "proxies", "message": f"{proxies} proxies reference this department"},
                    {"field": "users", "message": f"{users} users reference this department"},
                ],
            )
        if not self.inventory.delete_department(department_id):
            raise NotFound("Department not found")
        logger.info("Department %r deleted by %s", before.name, ctx.actor_username)
        self.recorder.record(
            AuditDraft.deleted(ctx, AuditAction.DELETE_DEPARTMENT, TargetType.DEPARTMENT, before.snapshot())
        )
