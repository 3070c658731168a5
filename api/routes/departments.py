"""
api/routes/departments.py -- Department routes.

Routes:
  GET    /departments                  -- list (managers: own department only)
  POST   /departments                  -- create (SuperAdmin)
  GET    /departments/{department_id}  -- detail (managers: own department only)
  PUT    /departments/{department_id}  -- update (SuperAdmin)
  DELETE /departments/{department_id}  -- delete (SuperAdmin; refused while referenced)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path, Request

from api.deps import audit_context, department_service, ok
from api.models import DepartmentCreate, DepartmentOut, DepartmentUpdate, dump
from auth.dependencies import require_super_admin, scoped_any_role
from auth.models import User
from auth.scope import QueryScope
from services.departments import DepartmentService

router = APIRouter()


@router.get("/departments")
def list_departments(
    scope: QueryScope = Depends(scoped_any_role),
    departments: DepartmentService = Depends(department_service),
) -> dict:
    rows = departments.list_departments(scope)
    return ok({"departments": [dump(DepartmentOut.from_domain(d, count)) for d, count in rows]})


@router.post("/departments", status_code=201)
def create_department(
    request: Request,
    body: DepartmentCreate,
    user: User = Depends(require_super_admin),
    departments: DepartmentService = Depends(department_service),
) -> dict:
    created = departments.create(body.name, body.description, audit_context(request, user))
    return ok({"department": dump(DepartmentOut.from_domain(created, 0))}, "Department created successfully")


@router.get("/departments/{department_id}")
def get_department(
    department_id: int = Path(ge=1),
    scope: QueryScope = Depends(scoped_any_role),
    departments: DepartmentService = Depends(department_service),
) -> dict:
    department = departments.get(department_id, scope)
    return ok({"department": dump(DepartmentOut.from_domain(department))})


@router.put("/departments/{department_id}")
def update_department(
    request: Request,
    body: DepartmentUpdate,
    department_id: int = Path(ge=1),
    user: User = Depends(require_super_admin),
    departments: DepartmentService = Depends(department_service),
) -> dict:
    updated = departments.update(department_id, body.model_dump(exclude_unset=True), audit_context(request, user))
    return ok({"department": dump(DepartmentOut.from_domain(updated))}, "Department updated successfully")


@router.delete("/departments/{department_id}")
def delete_department(
    request: Request,
    department_id: int = Path(ge=1),
    user: User = Depends(require_super_admin),
    departments: DepartmentService = Depends(department_service),
) -> dict:
    departments.delete(department_id, audit_context(request, user))
    return ok(message="Department deleted successfully")
