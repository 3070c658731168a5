"""
api/routes/proxies.py -- Proxy inventory routes.

Routes (in registration order to avoid FastAPI path capture conflicts):
  GET    /proxies                      -- paginated, filtered, sorted list
  POST   /proxies                      -- create
  GET    /proxies/stats                -- dashboard counters
  GET    /proxies/export               -- CSV download
  POST   /proxies/bulk-status          -- set status on many proxies
  GET    /proxies/{proxy_id}           -- detail
  PUT    /proxies/{proxy_id}           -- update
  DELETE /proxies/{proxy_id}           -- delete
  GET    /proxies/{proxy_id}/credentials  -- decrypted username/password
  POST   /proxies/{proxy_id}/assign    -- move to another department (SuperAdmin)

Every route resolves a QueryScope through the access gate before the handler
body runs. The optional ?departmentId= parameter is consumed by the gate, not
by the handlers: a DepartmentManager naming a foreign department gets 403
before any data is touched.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, Request
from fastapi.responses import JSONResponse, Response

from api.deps import audit_context, ok, proxy_service
from api.models import (
    SORT_FIELD_PATTERN,
    BulkStatusRequest,
    CredentialsOut,
    ProxyAssign,
    ProxyCreate,
    ProxyOut,
    ProxyUpdate,
    StatsOut,
    dump,
)
from auth.dependencies import get_current_user, require_super_admin, scoped_any_role
from auth.models import User
from auth.scope import QueryScope
from core.database import utc_now
from inventory.models import PageRequest, Protocol, ProxyFilter, ProxyStatus
from services.proxies import ProxyService

router = APIRouter()


def _filters(
    status: Optional[ProxyStatus] = Query(default=None),
    protocol: Optional[Protocol] = Query(default=None),
    location: Optional[str] = Query(default=None, max_length=200),
    search: Optional[str] = Query(default=None, max_length=200),
) -> ProxyFilter:
    return ProxyFilter(
        status=status,
        protocol=protocol,
        location=(location.strip() or None) if location else None,
        search=(search.strip() or None) if search else None,
    )


# ---------------------------------------------------------------------------
# Collection routes
# ---------------------------------------------------------------------------


@router.get("/proxies")
def list_proxies(
    scope: QueryScope = Depends(scoped_any_role),
    filters: ProxyFilter = Depends(_filters),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    sort_by: str = Query(default="createdAt", alias="sortBy", pattern=SORT_FIELD_PATTERN),
    sort_order: str = Query(default="desc", alias="sortOrder", pattern="^(asc|desc)$"),
    proxies: ProxyService = Depends(proxy_service),
) -> dict:
    result = proxies.list_proxies(
        scope,
        filters,
        PageRequest(page=page, limit=limit, sort_by=sort_by, sort_order=sort_order),
    )
    return ok(
        {
            "proxies": [dump(ProxyOut.from_domain(p)) for p in result.proxies],
            "pagination": result.pagination(),
        }
    )


@router.post("/proxies", status_code=201)
def create_proxy(
    request: Request,
    body: ProxyCreate,
    scope: QueryScope = Depends(scoped_any_role),
    user: User = Depends(get_current_user),
    proxies: ProxyService = Depends(proxy_service),
) -> dict:
    """Create a proxy. DepartmentManager callers always create in their own department."""
    created = proxies.create(body.to_domain(), body.password, scope, user, audit_context(request, user))
    return ok({"proxy": dump(ProxyOut.from_domain(created))}, "Proxy created successfully")


@router.get("/proxies/stats")
def proxy_stats(
    scope: QueryScope = Depends(scoped_any_role),
    proxies: ProxyService = Depends(proxy_service),
) -> dict:
    return ok(dump(StatsOut.from_domain(proxies.stats(scope))))


@router.get("/proxies/export")
def export_proxies(
    request: Request,
    scope: QueryScope = Depends(scoped_any_role),
    filters: ProxyFilter = Depends(_filters),
    user: User = Depends(get_current_user),
    proxies: ProxyService = Depends(proxy_service),
) -> Response:
    """Download every proxy in scope (matching the filters) as CSV."""
    body, _count = proxies.export(scope, filters, audit_context(request, user))
    filename = f"proxies-export-{utc_now().date().isoformat()}.csv"
    return Response(
        content=body,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/proxies/bulk-status")
def bulk_update_status(
    request: Request,
    body: BulkStatusRequest,
    scope: QueryScope = Depends(scoped_any_role),
    user: User = Depends(get_current_user),
    proxies: ProxyService = Depends(proxy_service),
) -> dict:
    result = proxies.bulk_update_status(body.proxy_ids, body.status, scope, user, audit_context(request, user))
    return ok(result, f"{result['updatedCount']} proxies updated")


# ---------------------------------------------------------------------------
# Item routes
# ---------------------------------------------------------------------------


@router.get("/proxies/{proxy_id}")
def get_proxy(
    proxy_id: int = Path(ge=1),
    scope: QueryScope = Depends(scoped_any_role),
    proxies: ProxyService = Depends(proxy_service),
) -> dict:
    return ok({"proxy": dump(ProxyOut.from_domain(proxies.get(proxy_id, scope)))})


@router.put("/proxies/{proxy_id}")
def update_proxy(
    request: Request,
    body: ProxyUpdate,
    proxy_id: int = Path(ge=1),
    scope: QueryScope = Depends(scoped_any_role),
    user: User = Depends(get_current_user),
    proxies: ProxyService = Depends(proxy_service),
) -> dict:
    """Update a proxy. departmentId is ignored for DepartmentManager callers."""
    updated = proxies.update(proxy_id, body.changes(), scope, user, audit_context(request, user))
    return ok({"proxy": dump(ProxyOut.from_domain(updated))}, "Proxy updated successfully")


@router.delete("/proxies/{proxy_id}")
def delete_proxy(
    request: Request,
    proxy_id: int = Path(ge=1),
    scope: QueryScope = Depends(scoped_any_role),
    user: User = Depends(get_current_user),
    proxies: ProxyService = Depends(proxy_service),
) -> dict:
    proxies.delete(proxy_id, scope, user, audit_context(request, user))
    return ok(message="Proxy deleted successfully")


@router.get("/proxies/{proxy_id}/credentials")
def get_credentials(
    proxy_id: int = Path(ge=1),
    scope: QueryScope = Depends(scoped_any_role),
    proxies: ProxyService = Depends(proxy_service),
) -> JSONResponse:
    creds = CredentialsOut(**proxies.credentials(proxy_id, scope))
    resp = JSONResponse(content=ok({"credentials": dump(creds)}))
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/proxies/{proxy_id}/assign")
def assign_proxy(
    request: Request,
    body: ProxyAssign,
    proxy_id: int = Path(ge=1),
    user: User = Depends(require_super_admin),
    proxies: ProxyService = Depends(proxy_service),
) -> dict:
    assigned = proxies.assign(proxy_id, body.department_id, user, audit_context(request, user))
    return ok({"proxy": dump(ProxyOut.from_domain(assigned))}, "Proxy assigned successfully")
