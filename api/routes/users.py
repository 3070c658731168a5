"""
api/routes/users.py -- User management routes (SuperAdmin only).

Routes:
  GET    /users             -- list, filterable by role / departmentId / isActive
  POST   /users             -- create
  GET    /users/{user_id}   -- detail
  PUT    /users/{user_id}   -- update
  DELETE /users/{user_id}   -- delete

Router-level dependency applies require_super_admin to every route, so a
DepartmentManager gets 403 before any handler runs.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, Request

from api.deps import audit_context, ok, user_service
from api.models import UserCreate, UserOut, UserUpdate, dump
from auth.dependencies import require_super_admin
from auth.models import Role, User
from services.users import UserService

router = APIRouter(dependencies=[Depends(require_super_admin)])


@router.get("/users")
def list_users(
    role: Optional[Role] = Query(default=None),
    department_id: Optional[int] = Query(default=None, alias="departmentId", ge=1),
    is_active: Optional[bool] = Query(default=None, alias="isActive"),
    users: UserService = Depends(user_service),
) -> dict:
    found = users.list_users(role=role, department_id=department_id, is_active=is_active)
    return ok({"users": [dump(UserOut.from_domain(u)) for u in found]})


@router.post("/users", status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    actor: User = Depends(require_super_admin),
    users: UserService = Depends(user_service),
) -> dict:
    created = users.create(
        body.username,
        body.password,
        body.role,
        audit_context(request, actor),
        department_id=body.department_id,
        email=body.email,
    )
    return ok({"user": dump(UserOut.from_domain(created))}, "User created successfully")


@router.get("/users/{user_id}")
def get_user(
    user_id: int = Path(ge=1),
    users: UserService = Depends(user_service),
) -> dict:
    return ok({"user": dump(UserOut.from_domain(users.get(user_id)))})


@router.put("/users/{user_id}")
def update_user(
    request: Request,
    body: UserUpdate,
    user_id: int = Path(ge=1),
    actor: User = Depends(require_super_admin),
    users: UserService = Depends(user_service),
) -> dict:
    updated = users.update(user_id, body.changes(), actor, audit_context(request, actor))
    return ok({"user": dump(UserOut.from_domain(updated))}, "User updated successfully")


@router.delete("/users/{user_id}")
def delete_user(
    request: Request,
    user_id: int = Path(ge=1),
    actor: User = Depends(require_super_admin),
    users: UserService = Depends(user_service),
) -> dict:
    users.delete(user_id, actor, audit_context(request, actor))
    return ok(message="User deleted successfully")
